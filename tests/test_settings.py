from __future__ import annotations

import os

from blocktranscoding.settings import (
    DEFAULT_CUSTOM_MESSAGE,
    EnvConfigSource,
    GuardConfig,
    Resolution,
    ServiceSettings,
    env_bool,
    env_float,
    env_int,
    resolve_env_file,
)

GUARD_KEYS = ("BLOCK_TRANSCODING", "MAX_RESOLUTION", "CUSTOM_MESSAGE", "SKIP_VIDEO_DIRECT")


def _clear_guard_env(monkeypatch) -> None:
    for key in GUARD_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_env_helpers() -> None:
    env = {"A": " 12 ", "B": "nope", "C": "yes", "D": "", "F": "2.5"}
    assert env_int("A", env=env) == 12
    assert env_int("B", 3, env=env) == 3
    assert env_bool("C", env=env) is True
    assert env_bool("D", True, env=env) is True
    assert env_float("F", 1.0, env=env) == 2.5
    assert env_float("missing", 1.0, env=env) == 1.0


def test_guard_config_defaults() -> None:
    cfg = GuardConfig.from_env({})
    assert cfg.block_enabled is False
    assert cfg.max_resolution is Resolution.FULL_HD
    assert cfg.custom_message == DEFAULT_CUSTOM_MESSAGE
    assert cfg.skip_video_direct is True


def test_guard_config_from_env_values() -> None:
    cfg = GuardConfig.from_env({
        "BLOCK_TRANSCODING": "true",
        "MAX_RESOLUTION": "UltraHD",
        "CUSTOM_MESSAGE": "",
        "SKIP_VIDEO_DIRECT": "0",
    })
    assert cfg.block_enabled is True
    assert cfg.max_resolution is Resolution.ULTRA_HD
    assert cfg.custom_message == ""
    assert cfg.skip_video_direct is False


def test_bad_resolution_falls_back_to_full_hd() -> None:
    assert GuardConfig.from_env({"MAX_RESOLUTION": "potato"}).max_resolution is Resolution.FULL_HD


def test_env_source_sees_file_edits(tmp_path, monkeypatch) -> None:
    _clear_guard_env(monkeypatch)
    env_file = tmp_path / "blocktranscoding.env"
    env_file.write_text("BLOCK_TRANSCODING=0\n")
    source = EnvConfigSource(env_file)
    assert source.current().block_enabled is False

    env_file.write_text("BLOCK_TRANSCODING=1\nMAX_RESOLUTION=720p\n")
    stat = env_file.stat()
    os.utime(env_file, (stat.st_atime, stat.st_mtime + 10))

    cfg = source.current()
    assert cfg.block_enabled is True
    assert cfg.max_resolution is Resolution.HD


def test_env_source_reads_process_env_live(monkeypatch) -> None:
    _clear_guard_env(monkeypatch)
    source = EnvConfigSource()
    assert source.current().block_enabled is False
    monkeypatch.setenv("BLOCK_TRANSCODING", "1")
    assert source.current().block_enabled is True


def test_reload_notifies_only_on_change(monkeypatch) -> None:
    _clear_guard_env(monkeypatch)
    source = EnvConfigSource()
    seen = []
    source.subscribe(seen.append)

    source.reload()
    source.reload()
    assert len(seen) == 1

    monkeypatch.setenv("BLOCK_TRANSCODING", "1")
    source.reload()
    assert [c.block_enabled for c in seen] == [False, True]

    source.unsubscribe(seen.append)
    monkeypatch.setenv("BLOCK_TRANSCODING", "0")
    source.reload()
    assert len(seen) == 2


def test_missing_env_file_is_not_fatal(tmp_path, monkeypatch) -> None:
    _clear_guard_env(monkeypatch)
    source = EnvConfigSource(tmp_path / "nope.env")
    assert source.current() == GuardConfig()


def test_resolve_env_file(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("ENV_FILE", raising=False)
    monkeypatch.chdir(tmp_path)
    assert resolve_env_file() is None

    local = tmp_path / "blocktranscoding.env"
    local.write_text("")
    assert resolve_env_file() == local

    other = tmp_path / "other.env"
    other.write_text("")
    monkeypatch.setenv("ENV_FILE", str(other))
    assert resolve_env_file() == other
    assert resolve_env_file(str(local)) == local


def test_service_settings_validation() -> None:
    settings = ServiceSettings.from_env({"SERVER_TYPE": "jellyfin"})
    assert any("SERVER_URL" in p for p in settings.validate())

    settings = ServiceSettings.from_env({"SERVER_TYPE": "plex", "PLEX_URL": "http://plex:32400", "PLEX_USER_TOKEN": "t"})
    assert settings.plex_token == "t"
    assert settings.validate() == []

    settings = ServiceSettings.from_env({"SERVER_TYPE": "kodi", "MODE": "push"})
    problems = settings.validate()
    assert any("SERVER_TYPE" in p for p in problems)
    assert any("MODE" in p for p in problems)


def test_verbose_forces_debug() -> None:
    assert ServiceSettings.from_env({"VERBOSE": "1"}).log_level == "DEBUG"
    assert ServiceSettings.from_env({}).log_level == "INFO"
