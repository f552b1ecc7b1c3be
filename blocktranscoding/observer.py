"""
Session observers: where signals meet the decision rule.

ProgressObserver (preferred)
  Evaluates every progress signal as it arrives and dispatches directly.
  There is no suppression state: the host only sends one progress signal per
  session per interval.

PollingObserver
  Scans every known session on its own timer (1000 ms by default). A
  per-device SuppressionTracker keeps it from re-sending the stop command
  each tick while the offending playback is still listed. Start/finish
  signals reset the latch for that device, and so does a tick that finds the
  device idle or on a different playback than the one it stopped.

Neither observer lets an exception out of a handler or tick.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from .commands import CommandDispatcher
from .evaluator import evaluate
from .models import PlaybackLifecycle, PlaybackProgress, SessionSnapshot
from .settings import ConfigListener, GuardConfig
from .signals import SessionRegistry, SignalHub
from .tracker import SuppressionTracker

log = logging.getLogger(__name__)

DEFAULT_CHECK_INTERVAL_MS = 1000


class ConfigSource(Protocol):
    def current(self) -> GuardConfig: ...

    def subscribe(self, listener: ConfigListener) -> None: ...

    def unsubscribe(self, listener: ConfigListener) -> None: ...


def read_config(source: Optional[ConfigSource]) -> GuardConfig:
    """Latest configuration, or a disabled one if the source cannot be read."""
    if source is None:
        return GuardConfig.disabled()
    try:
        return source.current()
    except Exception as e:
        log.warning("Configuration unavailable, treating blocking as disabled: %s", e)
        return GuardConfig.disabled()


class ProgressObserver:
    def __init__(self, hub: SignalHub, config: ConfigSource, dispatcher: CommandDispatcher) -> None:
        self._hub = hub
        self._config = config
        self._dispatcher = dispatcher
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        log.info("Setting up BlockTranscoding (progress mode)")
        self._hub.subscribe_progress(self.on_progress)
        self._started = True

    def stop(self) -> None:
        if not self._started:
            return
        self._hub.unsubscribe_progress(self.on_progress)
        self._started = False

    def on_progress(self, event: PlaybackProgress) -> None:
        try:
            cfg = read_config(self._config)
            verdict = evaluate(event.snapshot, cfg)
            if verdict.is_stop:
                self._dispatcher.dispatch(event.snapshot, verdict)
        except Exception:
            log.exception("Progress handling failed for session %s", event.snapshot.session_id)


class RepeatingTimer:
    """
    Calls `function` every `interval_s` seconds on a daemon thread while enabled.

    Disabling keeps the thread alive but idle, so flipping the switch back on
    does not need a new thread.
    """

    def __init__(self, interval_s: float, function: Callable[[], None], name: str = "RepeatingTimer") -> None:
        self._interval_s = interval_s
        self._function = function
        self._name = name
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._enabled = threading.Event()

    @property
    def enabled(self) -> bool:
        return self._enabled.is_set()

    @enabled.setter
    def enabled(self, value: bool) -> None:
        if value:
            self._enabled.set()
        else:
            self._enabled.clear()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._enabled.clear()
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=max(2.0, self._interval_s * 2))
            self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval_s):
            if not self._enabled.is_set():
                continue
            try:
                self._function()
            except Exception:
                log.exception("%s tick failed", self._name)


class PollingObserver:
    def __init__(
        self,
        registry: SessionRegistry,
        hub: SignalHub,
        config: ConfigSource,
        dispatcher: CommandDispatcher,
        tracker: Optional[SuppressionTracker] = None,
        interval_ms: int = DEFAULT_CHECK_INTERVAL_MS,
    ) -> None:
        self._registry = registry
        self._hub = hub
        self._config = config
        self._dispatcher = dispatcher
        self.tracker = tracker or SuppressionTracker()
        # Playback each latched device was stopped for; only touched from tick().
        self._stopped: Dict[str, Tuple[str, Optional[str], Optional[str]]] = {}
        self._timer = RepeatingTimer(interval_ms / 1000.0, self.tick, name="BlockTranscodingTimer")
        self._started = False

    @property
    def timer(self) -> RepeatingTimer:
        return self._timer

    def start(self) -> None:
        if self._started:
            return
        log.info("Setting up BlockTranscoding (polling mode)")
        self._hub.subscribe_lifecycle(self.on_lifecycle)
        self._config.subscribe(self.on_config_changed)
        self._timer.start()
        self.on_config_changed(read_config(self._config))
        self._started = True

    def stop(self) -> None:
        if not self._started:
            return
        self._hub.unsubscribe_lifecycle(self.on_lifecycle)
        self._config.unsubscribe(self.on_config_changed)
        self._timer.stop()
        self._started = False

    def on_config_changed(self, cfg: GuardConfig) -> None:
        log.debug("Setting playback timer enabled to %s.", cfg.block_enabled)
        self._timer.enabled = cfg.block_enabled

    def tick(self) -> None:
        try:
            sessions = self._registry.sessions()
        except Exception as e:
            log.warning("Unable to list sessions: %s", e)
            return

        cfg = read_config(self._config)
        for session in sessions:
            self._check_session(session, cfg)

    def _check_session(self, session: SessionSnapshot, cfg: GuardConfig) -> None:
        device_id = session.device_id
        if not self.tracker.should_dispatch(device_id):
            stopped = self._stopped.get(device_id)
            if stopped is None or stopped == session.playback_key:
                log.debug("Already sent stop command for device %s", device_id)
                return
            # The device went idle or started another playback since the stop.
            log.debug("Device %s moved on from the stopped playback, clearing latch", device_id)
            self.tracker.reset(device_id)

        verdict = evaluate(session, cfg)
        if not verdict.is_stop:
            return

        if not self.tracker.claim(device_id):
            return

        if not self._dispatcher.dispatch(session, verdict):
            # Stop never reached the host; let the next tick try again.
            self.tracker.reset(device_id)
            return
        self._stopped[device_id] = session.playback_key

    def on_lifecycle(self, event: PlaybackLifecycle) -> None:
        try:
            session = self._find_session(event.user_id, event.item_id)
        except Exception as e:
            log.info("Session lookup failed for %s: %s", event.item_id, e)
            return

        if session is None:
            log.info("Unable to find session for %s", event.item_id)
            return

        self.tracker.reset(session.device_id)

    def _find_session(self, user_id: str, item_id: str) -> Optional[SessionSnapshot]:
        sessions: List[SessionSnapshot] = self._registry.sessions()
        for needle in sessions:
            if needle.user_id == user_id and needle.item_id == item_id:
                return needle
        return None
