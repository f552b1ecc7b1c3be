"""
Configuration for BlockTranscoding.

Options come from the environment, optionally seeded from a .env file:
  - ENV_FILE=/path/to/file.env wins
  - otherwise ./blocktranscoding.env in the working directory

Policy knobs are read again at every evaluation (see EnvConfigSource) so an
admin can flip BLOCK_TRANSCODING or change MAX_RESOLUTION without a restart.
"""

from __future__ import annotations

import enum
import logging
import os
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from dotenv import dotenv_values

log = logging.getLogger(__name__)

DEFAULT_ENV_FILENAME = "blocktranscoding.env"
DEFAULT_CUSTOM_MESSAGE = "4k trasconding is disabled."


# -------------------------
# Env helpers
# -------------------------
def env_str(name: str, default: str = "", env: Optional[Dict[str, str]] = None) -> str:
    v = (os.environ if env is None else env).get(name)
    return v.strip() if v is not None and str(v).strip() != "" else default


def env_int(name: str, default: Optional[int] = None, env: Optional[Dict[str, str]] = None) -> Optional[int]:
    v = (os.environ if env is None else env).get(name)
    if v is None or str(v).strip() == "":
        return default
    try:
        return int(str(v).strip())
    except ValueError:
        return default


def env_float(name: str, default: float, env: Optional[Dict[str, str]] = None) -> float:
    v = (os.environ if env is None else env).get(name)
    if v is None or str(v).strip() == "":
        return default
    try:
        return float(str(v).strip())
    except ValueError:
        return default


def env_bool(name: str, default: bool = False, env: Optional[Dict[str, str]] = None) -> bool:
    v = (os.environ if env is None else env).get(name)
    if v is None or str(v).strip() == "":
        return default
    return str(v).strip().lower() in ("1", "true", "yes", "y", "on")


def resolve_env_file(explicit: Optional[str] = None) -> Optional[Path]:
    """
    Pick the .env file to use: explicit argument, then ENV_FILE, then the local default.
    Returns None when nothing exists on disk.
    """
    for candidate in (explicit, env_str("ENV_FILE", "")):
        if candidate and Path(candidate).exists():
            return Path(candidate)
    local_env = Path.cwd() / DEFAULT_ENV_FILENAME
    if local_env.exists():
        return local_env
    return None


# -------------------------
# Resolution ceilings
# -------------------------
class Resolution(enum.Enum):
    SD = "SD"
    HD = "HD"
    FULL_HD = "FullHD"
    QUAD_HD = "QuadHD"
    ULTRA_HD = "UltraHD"

    @classmethod
    def parse(cls, value: object, default: Optional["Resolution"] = None) -> "Resolution":
        """
        Accepts the tier names (FullHD), the long names (StandardDefinition),
        the descriptions (1080p) and a few common spellings ("4k", "uhd").
        """
        if isinstance(value, Resolution):
            return value
        key = str(value or "").strip().lower().replace("_", "").replace(" ", "").replace("-", "")
        found = _RESOLUTION_ALIASES.get(key)
        if found is not None:
            return found
        if default is not None:
            return default
        raise ValueError("Unknown resolution: %r" % (value,))

    @property
    def description(self) -> str:
        return _RESOLUTION_DESCRIPTIONS[self]


_RESOLUTION_ALIASES: Dict[str, Resolution] = {
    "sd": Resolution.SD,
    "standarddefinition": Resolution.SD,
    "480p": Resolution.SD,
    "480": Resolution.SD,
    "hd": Resolution.HD,
    "highdefinition": Resolution.HD,
    "720p": Resolution.HD,
    "720": Resolution.HD,
    "fullhd": Resolution.FULL_HD,
    "fhd": Resolution.FULL_HD,
    "1080p": Resolution.FULL_HD,
    "1080": Resolution.FULL_HD,
    "quadhd": Resolution.QUAD_HD,
    "qhd": Resolution.QUAD_HD,
    "1440p": Resolution.QUAD_HD,
    "1440": Resolution.QUAD_HD,
    "ultrahd": Resolution.ULTRA_HD,
    "uhd": Resolution.ULTRA_HD,
    "4k": Resolution.ULTRA_HD,
    "2160p": Resolution.ULTRA_HD,
    "2160": Resolution.ULTRA_HD,
}

_RESOLUTION_DESCRIPTIONS: Dict[Resolution, str] = {
    Resolution.SD: "480p",
    Resolution.HD: "720p",
    Resolution.FULL_HD: "1080p",
    Resolution.QUAD_HD: "1440p",
    Resolution.ULTRA_HD: "2160p",
}

_RESOLUTION_SIZES: Dict[Resolution, Tuple[int, int]] = {
    Resolution.SD: (640, 480),
    Resolution.HD: (1280, 720),
    Resolution.FULL_HD: (1920, 1080),
    Resolution.QUAD_HD: (2560, 1440),
    Resolution.ULTRA_HD: (3840, 2160),
}


def get_size(resolution: Resolution) -> Tuple[int, int]:
    """(width, height) ceiling for a resolution tier."""
    return _RESOLUTION_SIZES[resolution]


# -------------------------
# Guard configuration
# -------------------------
@dataclass(frozen=True)
class GuardConfig:
    block_enabled: bool = False
    max_resolution: Resolution = Resolution.FULL_HD
    custom_message: str = DEFAULT_CUSTOM_MESSAGE
    # Skip transcodes whose video stream is copied (only audio/container differ).
    skip_video_direct: bool = True

    @classmethod
    def disabled(cls) -> "GuardConfig":
        return cls(block_enabled=False)

    @classmethod
    def from_env(cls, env: Optional[Dict[str, str]] = None) -> "GuardConfig":
        src = os.environ if env is None else env
        # CUSTOM_MESSAGE may be set to "" on purpose, so env_str's blank fallback does not apply.
        message = src.get("CUSTOM_MESSAGE")
        return cls(
            block_enabled=env_bool("BLOCK_TRANSCODING", False, env),
            max_resolution=Resolution.parse(env_str("MAX_RESOLUTION", "", env), Resolution.FULL_HD),
            custom_message=DEFAULT_CUSTOM_MESSAGE if message is None else message.strip(),
            skip_video_direct=env_bool("SKIP_VIDEO_DIRECT", True, env),
        )


ConfigListener = Callable[[GuardConfig], None]


class EnvConfigSource:
    """
    Live view of GuardConfig backed by os.environ and an optional .env file.

    Values in the .env file override the process environment, matching how the
    file is meant to be edited by the admin while the service runs. The file is
    re-parsed only when its mtime changes.
    """

    def __init__(self, env_file: Optional[Path] = None, overrides: Optional[Dict[str, str]] = None) -> None:
        self._env_file = env_file
        self._overrides = dict(overrides or {})
        self._lock = threading.Lock()
        self._file_mtime: Optional[float] = None
        self._file_values: Dict[str, str] = {}
        self._last: Optional[GuardConfig] = None
        self._listeners: List[ConfigListener] = []

    @property
    def env_file(self) -> Optional[Path]:
        return self._env_file

    def subscribe(self, listener: ConfigListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: ConfigListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def current(self) -> GuardConfig:
        with self._lock:
            self._refresh_file_locked()
            return GuardConfig.from_env(self._merged_locked())

    def reload(self) -> GuardConfig:
        """
        Re-read the configuration and notify listeners if it changed since the last reload.
        """
        with self._lock:
            self._refresh_file_locked()
            cfg = GuardConfig.from_env(self._merged_locked())
            changed = cfg != self._last
            self._last = cfg
            listeners = list(self._listeners)

        if changed:
            log.info(
                "Configuration: block_enabled=%s max_resolution=%s custom_message=%r skip_video_direct=%s",
                cfg.block_enabled, cfg.max_resolution.value, cfg.custom_message, cfg.skip_video_direct,
            )
            for listener in listeners:
                try:
                    listener(cfg)
                except Exception:
                    log.exception("Configuration listener %r failed", listener)
        return cfg

    def _merged_locked(self) -> Dict[str, str]:
        merged: Dict[str, str] = dict(os.environ)
        merged.update(self._file_values)
        merged.update(self._overrides)
        return merged

    def _refresh_file_locked(self) -> None:
        if self._env_file is None:
            return
        try:
            mtime = self._env_file.stat().st_mtime
        except OSError as e:
            if self._file_mtime is not None:
                log.warning("Env file %s is no longer readable: %s", self._env_file, e)
            self._file_mtime = None
            self._file_values = {}
            return
        if mtime == self._file_mtime:
            return
        values = dotenv_values(self._env_file)
        self._file_values = {k: v for k, v in values.items() if v is not None}
        self._file_mtime = mtime
        log.debug("Loaded %d values from %s", len(self._file_values), self._env_file)


class StaticConfigSource:
    """Fixed configuration; handy for embedding and tests."""

    def __init__(self, config: Optional[GuardConfig] = None) -> None:
        self._config = config or GuardConfig()
        self._listeners: List[ConfigListener] = []

    def current(self) -> GuardConfig:
        return self._config

    def subscribe(self, listener: ConfigListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: ConfigListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def update(self, **changes) -> GuardConfig:
        self._config = replace(self._config, **changes)
        for listener in list(self._listeners):
            listener(self._config)
        return self._config


# -------------------------
# Service settings
# -------------------------
SERVER_TYPES = ("jellyfin", "emby", "plex")
MODES = ("progress", "polling")


@dataclass
class ServiceSettings:
    """Connection and runtime settings, read once at startup."""

    server_type: str = "jellyfin"
    server_url: str = ""
    server_token: str = ""
    plex_url: str = ""
    plex_token: str = ""
    tautulli_url: str = ""
    tautulli_apikey: str = ""
    mode: str = "progress"
    poll_interval_s: float = 10.0
    check_interval_ms: int = 1000
    http_timeout_s: float = 8.0
    log_file: str = ""
    log_level: str = "INFO"
    log_to_stderr: bool = True
    log_max_bytes: int = 2_000_000
    log_backup_count: int = 5

    @classmethod
    def from_env(cls, env: Optional[Dict[str, str]] = None) -> "ServiceSettings":
        verbose = env_bool("VERBOSE", False, env)
        return cls(
            server_type=env_str("SERVER_TYPE", "jellyfin", env).lower(),
            server_url=env_str("SERVER_URL", "", env),
            server_token=env_str("SERVER_TOKEN", "", env),
            plex_url=env_str("PLEX_URL", "", env),
            plex_token=env_str("PLEX_TOKEN", "", env) or env_str("PLEX_USER_TOKEN", "", env),
            tautulli_url=env_str("TAUTULLI_URL", "", env),
            tautulli_apikey=env_str("TAUTULLI_APIKEY", "", env),
            mode=env_str("MODE", "progress", env).lower(),
            poll_interval_s=env_float("POLL_INTERVAL_S", 10.0, env),
            check_interval_ms=env_int("CHECK_INTERVAL_MS", 1000, env) or 1000,
            http_timeout_s=env_float("HTTP_TIMEOUT_S", 8.0, env),
            log_file=env_str("LOG_FILE", "", env),
            log_level=env_str("LOG_LEVEL", "DEBUG" if verbose else "INFO", env).upper(),
            log_to_stderr=env_bool("LOG_TO_STDERR", True, env),
            log_max_bytes=env_int("LOG_MAX_BYTES", 2_000_000, env) or 2_000_000,
            log_backup_count=env_int("LOG_BACKUP_COUNT", 5, env) or 5,
        )

    def validate(self) -> List[str]:
        """Human-readable problems; empty when the settings are usable."""
        problems: List[str] = []
        if self.server_type not in SERVER_TYPES:
            problems.append("SERVER_TYPE must be one of %s (got %r)." % (", ".join(SERVER_TYPES), self.server_type))
        if self.mode not in MODES:
            problems.append("MODE must be one of %s (got %r)." % (", ".join(MODES), self.mode))
        if self.server_type == "plex":
            if not self.plex_url or not self.plex_token:
                problems.append("PLEX_URL and PLEX_TOKEN (or PLEX_USER_TOKEN) must be set.")
        elif self.server_type in ("jellyfin", "emby"):
            if not self.server_url or not self.server_token:
                problems.append("SERVER_URL and SERVER_TOKEN must be set.")
        if self.poll_interval_s <= 0:
            problems.append("POLL_INTERVAL_S must be positive.")
        if self.check_interval_ms <= 0:
            problems.append("CHECK_INTERVAL_MS must be positive.")
        return problems
