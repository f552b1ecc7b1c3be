from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Tuple

MEDIA_TYPE_VIDEO = "video"
PLAY_METHOD_TRANSCODE = "transcode"
PLAY_METHOD_DIRECT_PLAY = "directplay"


def normalize_token(value: Optional[str]) -> str:
    """'Transcode', 'Direct Stream', 'direct_play' -> 'transcode', 'directstream', 'directplay'."""
    return (value or "").strip().lower().replace(" ", "").replace("_", "")


@dataclass(frozen=True)
class SessionSnapshot:
    """
    State of one playback session at the moment it is evaluated.

    Hosts build these from whatever their session registry exposes; the core
    never holds on to one beyond a single evaluation.
    """

    session_id: str
    user_id: str
    device_id: str
    item_id: Optional[str] = None
    media_type: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    play_method: Optional[str] = None
    # None when the host does not report it.
    video_direct: Optional[bool] = None
    # Changes every time playback (re)starts, where the host reports it.
    play_session_id: Optional[str] = None

    @property
    def playback_key(self) -> Tuple[str, Optional[str], Optional[str]]:
        """Identifies one playback on a session: same key, same playback."""
        return self.session_id, self.item_id, self.play_session_id

    @property
    def is_video(self) -> bool:
        return normalize_token(self.media_type) == MEDIA_TYPE_VIDEO

    @property
    def is_transcoding(self) -> bool:
        return normalize_token(self.play_method) == PLAY_METHOD_TRANSCODE

    def describe(self) -> str:
        return "session=%s user=%s device=%s item=%s %sx%s method=%s video_direct=%s" % (
            self.session_id, self.user_id, self.device_id, self.item_id,
            self.width, self.height, self.play_method, self.video_direct,
        )


class Action(enum.Enum):
    NO_ACTION = "no_action"
    STOP = "stop"
    STOP_AND_NOTIFY = "stop_and_notify"


@dataclass(frozen=True)
class Verdict:
    action: Action
    message: Optional[str] = None

    @classmethod
    def stop(cls) -> "Verdict":
        return cls(Action.STOP)

    @classmethod
    def stop_and_notify(cls, message: str) -> "Verdict":
        return cls(Action.STOP_AND_NOTIFY, message)

    @property
    def is_stop(self) -> bool:
        return self.action is not Action.NO_ACTION


NO_ACTION = Verdict(Action.NO_ACTION)


# -------------------------
# Signals
# -------------------------
class LifecycleKind(enum.Enum):
    START = "start"
    FINISHED = "finished"


@dataclass(frozen=True)
class PlaybackProgress:
    """One progress tick for one session."""

    snapshot: SessionSnapshot


@dataclass(frozen=True)
class PlaybackLifecycle:
    """Playback start/finish, keyed the way the host reports it: by user and item."""

    kind: LifecycleKind
    user_id: str
    item_id: str
