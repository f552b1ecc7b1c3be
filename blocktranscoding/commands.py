"""
Command dispatch: turn a stop verdict into host commands.

Both commands are fire-and-forget. A failing host call is logged and reported
back as False; it never escapes into the observer.
"""

from __future__ import annotations

import logging
from typing import Protocol

from .models import Action, SessionSnapshot, Verdict

log = logging.getLogger(__name__)

MESSAGE_HEADER = ""
MESSAGE_TIMEOUT_MS = 2000


class CommandSink(Protocol):
    """The host's command API, as far as this project needs it."""

    def stop_playback(self, session_id: str, controlling_session_id: str, controlling_user_id: str) -> None: ...

    def show_message(self, session_id: str, header: str, text: str, timeout_ms: int) -> None: ...


class CommandDispatcher:
    def __init__(self, sink: CommandSink) -> None:
        self._sink = sink

    def dispatch(self, snapshot: SessionSnapshot, verdict: Verdict) -> bool:
        """
        Send stop (and the message, for StopAndNotify). Returns True when the stop command went out.
        """
        if not verdict.is_stop:
            return False

        log.info(
            "Stopping playback above ceiling: %s notify=%s",
            snapshot.describe(), verdict.action is Action.STOP_AND_NOTIFY,
        )

        try:
            self._sink.stop_playback(snapshot.session_id, snapshot.session_id, snapshot.user_id)
        except Exception as e:
            log.warning("Stop command failed for session %s: %s", snapshot.session_id, e)
            return False

        if verdict.action is Action.STOP_AND_NOTIFY and verdict.message:
            try:
                self._sink.show_message(snapshot.session_id, MESSAGE_HEADER, verdict.message, MESSAGE_TIMEOUT_MS)
            except Exception as e:
                log.warning("Message command failed for session %s: %s", snapshot.session_id, e)

        return True
