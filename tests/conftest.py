"""Shared fakes for the observer and dispatcher tests."""

from __future__ import annotations

from typing import List, Optional, Tuple

import pytest

from blocktranscoding.models import SessionSnapshot


def make_snapshot(
    session_id: str = "s1",
    user_id: str = "u1",
    device_id: str = "D",
    item_id: Optional[str] = "item-1",
    media_type: Optional[str] = "Video",
    width: Optional[int] = 3840,
    height: Optional[int] = 2160,
    play_method: Optional[str] = "Transcode",
    video_direct: Optional[bool] = False,
    play_session_id: Optional[str] = None,
) -> SessionSnapshot:
    return SessionSnapshot(
        session_id=session_id,
        user_id=user_id,
        device_id=device_id,
        item_id=item_id,
        media_type=media_type,
        width=width,
        height=height,
        play_method=play_method,
        video_direct=video_direct,
        play_session_id=play_session_id,
    )


class FakeRegistry:
    def __init__(self, sessions: Optional[List[SessionSnapshot]] = None) -> None:
        self.items: List[SessionSnapshot] = list(sessions or [])
        self.error: Optional[Exception] = None
        self.calls = 0

    def sessions(self) -> List[SessionSnapshot]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.items)


class FakeSink:
    def __init__(self) -> None:
        self.stops: List[Tuple[str, str, str]] = []
        self.messages: List[Tuple[str, str, str, int]] = []
        self.fail_stop = False
        self.fail_message = False

    def stop_playback(self, session_id: str, controlling_session_id: str, controlling_user_id: str) -> None:
        if self.fail_stop:
            raise RuntimeError("host unavailable")
        self.stops.append((session_id, controlling_session_id, controlling_user_id))

    def show_message(self, session_id: str, header: str, text: str, timeout_ms: int) -> None:
        if self.fail_message:
            raise RuntimeError("host unavailable")
        self.messages.append((session_id, header, text, timeout_ms))


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()
