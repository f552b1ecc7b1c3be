"""
Jellyfin / Emby over the REST API.

  GET  /Sessions                              -> session registry
  POST /Sessions/{id}/Playing/Stop            -> stop playback
  POST /Sessions/{id}/Message                 -> show message

Emby serves the same API under an /emby prefix.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..models import SessionSnapshot
from .common import safe_int, safe_str

log = logging.getLogger(__name__)


class JellyfinClient:
    def __init__(self, url: str, api_key: str, server_type: str = "jellyfin", timeout_s: float = 8.0,
                 http: Optional[requests.Session] = None) -> None:
        self.base = url.rstrip("/")
        self.timeout_s = timeout_s
        self.prefix = "/emby" if server_type == "emby" else ""
        self.http = http or requests.Session()
        self.http.headers["X-Emby-Token"] = api_key

    def _url(self, path: str) -> str:
        return f"{self.base}{self.prefix}{path}"

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        r = self.http.get(self._url(path), params=params, timeout=self.timeout_s)
        r.raise_for_status()
        return r.json()

    def post(self, path: str, params: Optional[Dict[str, Any]] = None, json: Optional[Dict[str, Any]] = None) -> None:
        r = self.http.post(self._url(path), params=params, json=json, timeout=self.timeout_s)
        r.raise_for_status()

    def test_connection(self) -> bool:
        try:
            info = self.get_json("/System/Info/Public")
        except requests.RequestException as e:
            log.error("Cannot reach media server at %s: %s", self.base, e)
            return False
        log.info("Connected to %s %s", info.get("ProductName", "media server"), info.get("Version", ""))
        return True

    def close(self) -> None:
        self.http.close()


def _video_dimensions(item: Dict[str, Any]) -> Tuple[Optional[int], Optional[int]]:
    """
    Best-effort source dimensions: item Width/Height first, then the first video stream.
    """
    width = safe_int(item.get("Width"))
    height = safe_int(item.get("Height"))
    if width and height:
        return width, height

    for stream in item.get("MediaStreams") or []:
        if str(stream.get("Type", "")).lower() != "video":
            continue
        w = safe_int(stream.get("Width"))
        h = safe_int(stream.get("Height"))
        if w or h:
            return w, h

    return width, height


def snapshot_from_session(raw: Dict[str, Any]) -> Optional[SessionSnapshot]:
    """
    Build a SessionSnapshot from one /Sessions entry. Idle sessions still produce
    a snapshot (no item), entries without an Id do not.
    """
    session_id = safe_str(raw.get("Id"))
    if not session_id:
        return None

    item = raw.get("NowPlayingItem") or {}
    play_state = raw.get("PlayState") or {}
    transcoding = raw.get("TranscodingInfo") or {}

    width, height = _video_dimensions(item) if item else (None, None)
    video_direct = transcoding.get("IsVideoDirect")

    return SessionSnapshot(
        session_id=session_id,
        user_id=safe_str(raw.get("UserId")),
        device_id=safe_str(raw.get("DeviceId")),
        item_id=safe_str(item.get("Id")) or None,
        media_type=item.get("MediaType"),
        width=width,
        height=height,
        play_method=play_state.get("PlayMethod"),
        video_direct=bool(video_direct) if video_direct is not None else None,
        play_session_id=safe_str(play_state.get("PlaySessionId")) or None,
    )


class JellyfinSessionRegistry:
    def __init__(self, client: JellyfinClient) -> None:
        self._client = client

    def sessions(self) -> List[SessionSnapshot]:
        raw_sessions = self._client.get_json("/Sessions") or []
        snapshots: List[SessionSnapshot] = []
        for raw in raw_sessions:
            snap = snapshot_from_session(raw)
            if snap is not None:
                snapshots.append(snap)
        return snapshots


class JellyfinCommandSink:
    def __init__(self, client: JellyfinClient) -> None:
        self._client = client

    def stop_playback(self, session_id: str, controlling_session_id: str, controlling_user_id: str) -> None:
        log.debug("Sending Stop to session %s (controlling session %s)", session_id, controlling_session_id)
        self._client.post(
            f"/Sessions/{session_id}/Playing/Stop",
            params={"controllingUserId": controlling_user_id} if controlling_user_id else None,
        )

    def show_message(self, session_id: str, header: str, text: str, timeout_ms: int) -> None:
        log.debug("Sending message to session %s: %r", session_id, text)
        self._client.post(
            f"/Sessions/{session_id}/Message",
            json={"Header": header, "Text": text, "TimeoutMs": timeout_ms},
        )
