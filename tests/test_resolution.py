from __future__ import annotations

import pytest

from blocktranscoding.settings import Resolution, get_size


@pytest.mark.parametrize(
    "resolution, size",
    [
        (Resolution.SD, (640, 480)),
        (Resolution.HD, (1280, 720)),
        (Resolution.FULL_HD, (1920, 1080)),
        (Resolution.QUAD_HD, (2560, 1440)),
        (Resolution.ULTRA_HD, (3840, 2160)),
    ],
)
def test_get_size_table(resolution: Resolution, size) -> None:
    assert get_size(resolution) == size


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("FullHD", Resolution.FULL_HD),
        ("fullhd", Resolution.FULL_HD),
        ("1080p", Resolution.FULL_HD),
        ("StandardDefinition", Resolution.SD),
        ("HighDefinition", Resolution.HD),
        ("Quad HD", Resolution.QUAD_HD),
        ("4k", Resolution.ULTRA_HD),
        ("ULTRA_HD", Resolution.ULTRA_HD),
    ],
)
def test_parse_accepts_names_and_descriptions(raw: str, expected: Resolution) -> None:
    assert Resolution.parse(raw) is expected


def test_parse_unknown_uses_default_or_raises() -> None:
    assert Resolution.parse("8k", Resolution.HD) is Resolution.HD
    with pytest.raises(ValueError):
        Resolution.parse("8k")


def test_description() -> None:
    assert Resolution.QUAD_HD.description == "1440p"
