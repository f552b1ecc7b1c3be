"""
Playback signal stream.

SignalHub is the in-process subscribe/unsubscribe point the observers attach
to. SessionPoller feeds it for hosts that only offer a session list over HTTP:
every poll publishes a progress signal per playing session, and start/finish
signals whenever a session starts a new playback (a different item, or the
same item under a new play session).
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Protocol

from .models import LifecycleKind, PlaybackLifecycle, PlaybackProgress, SessionSnapshot

log = logging.getLogger(__name__)

ProgressHandler = Callable[[PlaybackProgress], None]
LifecycleHandler = Callable[[PlaybackLifecycle], None]


class SessionRegistry(Protocol):
    def sessions(self) -> List[SessionSnapshot]: ...


class SignalHub:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._progress: List[ProgressHandler] = []
        self._lifecycle: List[LifecycleHandler] = []

    def subscribe_progress(self, handler: ProgressHandler) -> None:
        with self._lock:
            self._progress.append(handler)

    def unsubscribe_progress(self, handler: ProgressHandler) -> None:
        with self._lock:
            if handler in self._progress:
                self._progress.remove(handler)

    def subscribe_lifecycle(self, handler: LifecycleHandler) -> None:
        with self._lock:
            self._lifecycle.append(handler)

    def unsubscribe_lifecycle(self, handler: LifecycleHandler) -> None:
        with self._lock:
            if handler in self._lifecycle:
                self._lifecycle.remove(handler)

    def publish_progress(self, event: PlaybackProgress) -> None:
        with self._lock:
            handlers = list(self._progress)
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                log.exception("Progress handler %r failed", handler)

    def publish_lifecycle(self, event: PlaybackLifecycle) -> None:
        with self._lock:
            handlers = list(self._lifecycle)
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                log.exception("Lifecycle handler %r failed", handler)

    def clear(self) -> None:
        with self._lock:
            self._progress.clear()
            self._lifecycle.clear()


class SessionPoller:
    """Poll a SessionRegistry on a fixed interval and publish what changed."""

    def __init__(self, registry: SessionRegistry, hub: SignalHub, interval_s: float = 10.0) -> None:
        self._registry = registry
        self._hub = hub
        self._interval_s = interval_s
        self._playing: Dict[str, SessionSnapshot] = {}
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="SessionPoller", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=max(2.0, self._interval_s))
            self._thread = None

    def poll_once(self) -> None:
        try:
            sessions = self._registry.sessions()
        except Exception as e:
            log.warning("Session poll failed: %s", e)
            return

        playing = {s.session_id: s for s in sessions if s.item_id}
        previous = self._playing
        self._playing = playing

        for session_id, before in previous.items():
            now = playing.get(session_id)
            if now is None or now.playback_key != before.playback_key:
                log.debug("Playback finished: user=%s item=%s", before.user_id, before.item_id)
                self._hub.publish_lifecycle(PlaybackLifecycle(LifecycleKind.FINISHED, before.user_id, before.item_id or ""))

        for session_id, now in playing.items():
            before = previous.get(session_id)
            if before is None or before.playback_key != now.playback_key:
                log.debug("Playback start: user=%s item=%s", now.user_id, now.item_id)
                self._hub.publish_lifecycle(PlaybackLifecycle(LifecycleKind.START, now.user_id, now.item_id or ""))

        for now in playing.values():
            self._hub.publish_progress(PlaybackProgress(now))

    def _run(self) -> None:
        self.poll_once()
        while not self._stop_event.wait(self._interval_s):
            self.poll_once()
