"""
Service entry point.

Usage:
  blocktranscoding [--server-type=jellyfin|emby|plex] [--mode=progress|polling]
                   [--env-file=PATH] [--interval=SECONDS] [--check-interval-ms=MS] [--verbose]

Flags override the matching environment variables for this run. Everything
else (server URL/token, BLOCK_TRANSCODING, MAX_RESOLUTION, CUSTOM_MESSAGE, ...)
comes from the environment or the .env file; the policy knobs are re-read
while the service runs.
"""

from __future__ import annotations

import logging
import os
import signal
import sys
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from dotenv import dotenv_values

from . import __version__
from .commands import CommandDispatcher, CommandSink
from .log import setup_logger
from .observer import PollingObserver, ProgressObserver
from .settings import EnvConfigSource, ServiceSettings, resolve_env_file
from .signals import SessionPoller, SessionRegistry, SignalHub

log = logging.getLogger(__name__)

CONFIG_RELOAD_S = 5.0


@dataclass
class CliOptions:
    server_type: Optional[str] = None
    mode: Optional[str] = None
    env_file: Optional[str] = None
    interval_s: Optional[float] = None
    check_interval_ms: Optional[int] = None
    verbose: bool = False
    show_help: bool = False


def parse_args(argv: List[str]) -> CliOptions:
    """
    Flag parser: --key=value or --key value. Unknown flags are ignored with a warning.
    """
    opts = CliOptions()

    i = 1
    while i < len(argv):
        a = argv[i]
        if not a.startswith("--"):
            i += 1
            continue

        key = a.lstrip("-")
        val: Optional[str] = None
        if "=" in key:
            key, val = key.split("=", 1)
        elif i + 1 < len(argv) and not argv[i + 1].startswith("--"):
            val = argv[i + 1]
            i += 1

        key = key.replace("-", "_").strip().lower()
        if val is not None:
            val = val.strip() or None

        if key in ("server_type", "server"):
            opts.server_type = val.lower() if val else None
        elif key == "mode":
            opts.mode = val.lower() if val else None
        elif key in ("env_file", "env"):
            opts.env_file = val
        elif key in ("interval", "poll_interval", "poll_interval_s"):
            opts.interval_s = _parse_number(key, val, float)
        elif key in ("check_interval_ms", "check_interval"):
            opts.check_interval_ms = _parse_number(key, val, int)
        elif key in ("verbose", "debug"):
            opts.verbose = True
        elif key in ("help", "h"):
            opts.show_help = True
        else:
            log.warning("Ignoring unknown flag --%s", key)

        i += 1

    return opts


def _parse_number(key: str, val: Optional[str], kind: Callable[[str], float]):
    if val is None:
        raise SystemExit("--%s needs a value" % key.replace("_", "-"))
    try:
        return kind(val)
    except ValueError:
        raise SystemExit("--%s expects a number, got %r" % (key.replace("_", "-"), val)) from None


def apply_overrides(settings: ServiceSettings, opts: CliOptions) -> ServiceSettings:
    if opts.server_type:
        settings.server_type = opts.server_type
    if opts.mode:
        settings.mode = opts.mode
    if opts.interval_s is not None:
        settings.poll_interval_s = opts.interval_s
    if opts.check_interval_ms is not None:
        settings.check_interval_ms = opts.check_interval_ms
    if opts.verbose:
        settings.log_level = "DEBUG"
    return settings


def build_host(settings: ServiceSettings, config: EnvConfigSource) -> Tuple[SessionRegistry, CommandSink, Callable[[], None]]:
    """
    Connect to the configured media server. Returns (registry, sink, close).
    Raises RuntimeError when the server cannot be reached.
    """
    if settings.server_type == "plex":
        from .hosts.plex import PlexCommandSink, PlexSessionRegistry, connect_plex

        plex = connect_plex(settings.plex_url, settings.plex_token, settings.http_timeout_s)
        sink = PlexCommandSink(
            plex,
            settings.plex_url,
            settings.plex_token,
            tautulli_url=settings.tautulli_url,
            tautulli_apikey=settings.tautulli_apikey,
            reason=lambda: config.current().custom_message,
            timeout_s=settings.http_timeout_s,
        )
        return PlexSessionRegistry(plex), sink, sink.close

    from .hosts.jellyfin import JellyfinClient, JellyfinCommandSink, JellyfinSessionRegistry

    client = JellyfinClient(settings.server_url, settings.server_token, settings.server_type, settings.http_timeout_s)
    if not client.test_connection():
        client.close()
        raise RuntimeError("Media server at %s is not reachable." % settings.server_url)
    return JellyfinSessionRegistry(client), JellyfinCommandSink(client), client.close


def main(argv: List[str]) -> int:
    opts = parse_args(argv)
    if opts.show_help:
        print(__doc__)
        return 0

    env_file = resolve_env_file(opts.env_file)
    env = dict(os.environ)
    if env_file is not None:
        env.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})

    settings = apply_overrides(ServiceSettings.from_env(env), opts)
    setup_logger(
        settings.log_level,
        settings.log_file or None,
        settings.log_to_stderr,
        settings.log_max_bytes,
        settings.log_backup_count,
    )

    log.info("BlockTranscoding v%s (server=%s mode=%s)", __version__, settings.server_type, settings.mode)
    if env_file is not None:
        log.info("Using env file %s", env_file)

    problems = settings.validate()
    if problems:
        for p in problems:
            log.error(p)
        return 1

    config = EnvConfigSource(env_file)
    config.reload()

    try:
        registry, sink, close_host = build_host(settings, config)
    except RuntimeError as e:
        log.error("%s", e)
        return 1

    hub = SignalHub()
    dispatcher = CommandDispatcher(sink)
    poller = SessionPoller(registry, hub, settings.poll_interval_s)

    if settings.mode == "polling":
        observer = PollingObserver(registry, hub, config, dispatcher, interval_ms=settings.check_interval_ms)
    else:
        observer = ProgressObserver(hub, config, dispatcher)

    stop_event = threading.Event()

    def handle_signal(signum, frame):
        log.info("Received signal %s, shutting down...", signum)
        stop_event.set()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    try:
        observer.start()
        poller.start()
        log.info("Monitoring started (poll every %ss)", settings.poll_interval_s)

        while not stop_event.wait(CONFIG_RELOAD_S):
            config.reload()
    finally:
        # Unsubscribe before the host is closed.
        observer.stop()
        poller.stop()
        hub.clear()
        close_host()
        log.info("Stopped.")

    return 0


def run() -> None:
    try:
        sys.exit(main(sys.argv))
    except SystemExit:
        raise
    except Exception as e:
        # Absolute last-ditch safety net.
        log.critical("Unexpected error: %s", e, exc_info=True)
        sys.exit(1)
