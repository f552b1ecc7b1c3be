from __future__ import annotations

import pytest

from blocktranscoding.evaluator import evaluate
from blocktranscoding.models import NO_ACTION, Action, Verdict
from blocktranscoding.settings import GuardConfig, Resolution

from conftest import make_snapshot


def _config(**kw) -> GuardConfig:
    kw.setdefault("block_enabled", True)
    kw.setdefault("max_resolution", Resolution.FULL_HD)
    kw.setdefault("custom_message", "")
    return GuardConfig(**kw)


def test_oversized_transcode_without_message_stops() -> None:
    verdict = evaluate(make_snapshot(width=3840, height=2160), _config())
    assert verdict == Verdict.stop()
    assert verdict.action is Action.STOP


def test_oversized_transcode_with_message_stops_and_notifies() -> None:
    verdict = evaluate(make_snapshot(), _config(custom_message="Too high"))
    assert verdict == Verdict.stop_and_notify("Too high")


def test_within_ultra_hd_ceiling_is_allowed() -> None:
    snap = make_snapshot(width=1920, height=1080)
    assert evaluate(snap, _config(max_resolution=Resolution.ULTRA_HD)) == NO_ACTION


def test_disabled_never_acts() -> None:
    for snap in (make_snapshot(), make_snapshot(width=10000, height=10000, video_direct=None)):
        assert evaluate(snap, _config(block_enabled=False, custom_message="x")) == NO_ACTION


@pytest.mark.parametrize("media_type", ["Audio", "Photo", None, ""])
def test_non_video_is_ignored(media_type) -> None:
    assert evaluate(make_snapshot(media_type=media_type), _config()) == NO_ACTION


@pytest.mark.parametrize("play_method", ["DirectPlay", "DirectStream", None])
def test_non_transcode_is_ignored(play_method) -> None:
    assert evaluate(make_snapshot(play_method=play_method), _config()) == NO_ACTION


def test_case_insensitive_media_type_and_play_method() -> None:
    snap = make_snapshot(media_type="video", play_method="transcode")
    assert evaluate(snap, _config()).is_stop


def test_video_direct_transcode_skipped_by_default() -> None:
    snap = make_snapshot(video_direct=True)
    assert evaluate(snap, _config()) == NO_ACTION


def test_video_direct_policy_can_be_turned_off() -> None:
    snap = make_snapshot(video_direct=True)
    assert evaluate(snap, _config(skip_video_direct=False)) == Verdict.stop()


def test_unknown_video_direct_is_not_direct() -> None:
    assert evaluate(make_snapshot(video_direct=None), _config()).is_stop


@pytest.mark.parametrize(
    "width, height, expected_stop",
    [
        (1920, 1080, False),
        (1280, 720, False),
        (1921, 1080, True),
        (1920, 1081, True),
        (2560, 1080, True),
        (1440, 1440, True),
        (None, None, False),
    ],
)
def test_ceiling_boundaries(width, height, expected_stop) -> None:
    snap = make_snapshot(width=width, height=height)
    assert evaluate(snap, _config()).is_stop is expected_stop


def test_same_input_same_verdict() -> None:
    snap = make_snapshot()
    cfg = _config(custom_message="Too high")
    assert evaluate(snap, cfg) == evaluate(snap, cfg)
