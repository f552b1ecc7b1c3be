"""
Decision rule: should an active playback be stopped?

Pure function of (SessionSnapshot, GuardConfig). Suppressing repeated commands
for the same playback is the tracker's job, not this module's.
"""

from __future__ import annotations

from .models import NO_ACTION, SessionSnapshot, Verdict
from .settings import GuardConfig, get_size


def exceeds_ceiling(snapshot: SessionSnapshot, config: GuardConfig) -> bool:
    max_w, max_h = get_size(config.max_resolution)
    # Unknown dimensions never count as oversized.
    width = snapshot.width or 0
    height = snapshot.height or 0
    return width > max_w or height > max_h


def evaluate(snapshot: SessionSnapshot, config: GuardConfig) -> Verdict:
    """
    Apply the rules in order, stopping at the first one that lets playback continue:

      1) blocking disabled
      2) not a video
      3) not transcoding
      4) video stream is copied (skip_video_direct policy)
      5) within the configured ceiling

    Anything left is oversized: Stop, or StopAndNotify when a custom message is set.
    """
    if not config.block_enabled:
        return NO_ACTION

    if not snapshot.is_video:
        return NO_ACTION

    if not snapshot.is_transcoding:
        return NO_ACTION

    if config.skip_video_direct and snapshot.video_direct:
        return NO_ACTION

    if not exceeds_ceiling(snapshot, config):
        return NO_ACTION

    if not config.custom_message:
        return Verdict.stop()
    return Verdict.stop_and_notify(config.custom_message)
