"""
Plex via plexapi, with optional Tautulli for terminating sessions.

Session registry
  plex.sessions() is the source of truth. The device is the player's machine
  identifier; dimensions come from the selected Media (falling back to stream
  metadata); a session is "transcode" when Plex reports a transcode session for
  it, and "video direct" when that transcode copies the video stream.

Command sink
  Plex has no toast/message command for arbitrary clients. Instead the stop is
  a session terminate, and the terminate reason is what the viewer sees, so the
  sink takes the message text from a callable (normally the configured
  CUSTOM_MESSAGE). show_message() only logs.

  Terminate order: Tautulli terminate_session (when configured), then
  plexapi session.stop(reason=...), then a direct /status/sessions/terminate call.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from ..models import PLAY_METHOD_DIRECT_PLAY, PLAY_METHOD_TRANSCODE, SessionSnapshot, normalize_token
from .common import safe_int, safe_str

log = logging.getLogger(__name__)

DEFAULT_TERMINATE_REASON = "Transcoding at this resolution is disabled."

# Video decisions that mean the video stream itself is not being re-encoded.
DIRECT_VIDEO_DECISIONS = {"directplay", "directstream", "copy"}

PLEX_VIDEO_TYPES = {"movie", "episode", "clip", "video"}


def connect_plex(url: str, token: str, timeout_s: float = 8.0, http: Optional[requests.Session] = None):
    """
    Connect to Plex using plexapi.
    """
    if not url or not token:
        raise RuntimeError("PLEX_URL and PLEX_TOKEN (or PLEX_USER_TOKEN) must be available.")

    from plexapi.server import PlexServer

    try:
        return PlexServer(url, token, session=http or requests.Session(), timeout=int(timeout_s))
    except Exception as e:
        raise RuntimeError(f"Failed to connect to Plex at {url}: {e}") from e


# -------------------------
# Plex object helpers
# -------------------------
def parse_resolution_hint(res: Optional[str]) -> Optional[int]:
    """
    Convert common resolution strings ("4k", "2160", "1080", "720", "sd") into an approximate height.
    """
    if not res:
        return None
    s = str(res).strip().lower()
    if s in ("4k", "uhd") or "2160" in s:
        return 2160
    if "1440" in s:
        return 1440
    if "1080" in s:
        return 1080
    if "720" in s:
        return 720
    if "576" in s:
        return 576
    if "480" in s or s == "sd":
        return 480
    return safe_int(s)


def selected_media(item) -> Optional[Any]:
    media_list = getattr(item, "media", []) or []
    for m in media_list:
        if getattr(m, "selected", False):
            return m
    return media_list[0] if media_list else None


def media_dimensions(media_obj) -> Tuple[Optional[int], Optional[int]]:
    """
    Best-effort (width, height) for a Media object.
    Plex exposes this as width/height, as a videoResolution string, or only on the video stream.
    """
    if media_obj is None:
        return None, None

    width = safe_int(getattr(media_obj, "width", None))
    height = safe_int(getattr(media_obj, "height", None))
    if width and height:
        return width, height

    try:
        for part in getattr(media_obj, "parts", []) or []:
            for stream in getattr(part, "streams", []) or []:
                if safe_int(getattr(stream, "streamType", None)) == 1:  # video
                    w = safe_int(getattr(stream, "width", None))
                    h = safe_int(getattr(stream, "height", None))
                    if w or h:
                        return w, h
    except Exception as e:
        log.debug("Unable to inspect media streams: %s", e)

    if height is None:
        height = parse_resolution_hint(getattr(media_obj, "videoResolution", None))
    return width, height


def _session_id(s) -> str:
    return safe_str(getattr(getattr(s, "session", None), "id", "") or getattr(s, "sessionId", "") or "")


def _user_id(s) -> str:
    """
    Prefer what plexapi already parsed from the session XML. The `user` property
    may call plex.tv (myPlexAccount), so it is only a guarded last resort.
    """
    local_id = getattr(s, "_userId", None)
    if local_id:
        return safe_str(local_id)
    usernames = getattr(s, "usernames", None) or []
    if usernames:
        return safe_str(usernames[0])

    try:
        u = s.user
    except Exception as e:
        log.debug("Plex user lookup failed: %s", e)
        return ""
    for attr in ("id", "title", "username"):
        if u is not None and getattr(u, attr, None):
            return safe_str(getattr(u, attr))
    return ""


def _device_id(s) -> str:
    player = getattr(s, "player", None)
    if player is None:
        return ""
    for attr in ("machineIdentifier", "clientIdentifier"):
        if getattr(player, attr, None):
            return safe_str(getattr(player, attr))
    return ""


def _transcode_session(s) -> Optional[Any]:
    sessions = getattr(s, "transcodeSessions", None) or []
    return sessions[0] if sessions else None


def snapshot_from_plex_session(s) -> Optional[SessionSnapshot]:
    session_id = _session_id(s)
    if not session_id:
        return None

    item_type = safe_str(getattr(s, "type", "")).lower()
    width, height = media_dimensions(selected_media(s))

    transcode = _transcode_session(s)
    if transcode is not None:
        play_method = PLAY_METHOD_TRANSCODE
        decision = getattr(transcode, "videoDecision", None)
        video_direct = normalize_token(decision) in DIRECT_VIDEO_DECISIONS if decision else None
    else:
        play_method = PLAY_METHOD_DIRECT_PLAY
        video_direct = None

    return SessionSnapshot(
        session_id=session_id,
        user_id=_user_id(s),
        device_id=_device_id(s),
        item_id=safe_str(getattr(s, "ratingKey", "")) or None,
        media_type="video" if item_type in PLEX_VIDEO_TYPES else (item_type or None),
        width=width,
        height=height,
        play_method=play_method,
        video_direct=video_direct,
        play_session_id=safe_str(getattr(s, "sessionKey", "")) or None,
    )


class PlexSessionRegistry:
    def __init__(self, plex) -> None:
        self._plex = plex

    def sessions(self) -> List[SessionSnapshot]:
        snapshots: List[SessionSnapshot] = []
        for s in self._plex.sessions():
            snap = snapshot_from_plex_session(s)
            if snap is not None:
                snapshots.append(snap)
        return snapshots


# -------------------------
# Termination
# -------------------------
class PlexCommandSink:
    def __init__(
        self,
        plex,
        plex_url: str,
        plex_token: str,
        tautulli_url: str = "",
        tautulli_apikey: str = "",
        reason: Optional[Callable[[], str]] = None,
        timeout_s: float = 8.0,
        http: Optional[requests.Session] = None,
    ) -> None:
        self._plex = plex
        self._plex_url = plex_url
        self._plex_token = plex_token
        self._tautulli_url = tautulli_url
        self._tautulli_apikey = tautulli_apikey
        self._reason = reason or (lambda: DEFAULT_TERMINATE_REASON)
        self._timeout_s = timeout_s
        self._http = http or requests.Session()

    def _terminate_reason(self) -> str:
        try:
            return self._reason() or DEFAULT_TERMINATE_REASON
        except Exception as e:
            log.debug("Terminate reason unavailable: %s", e)
            return DEFAULT_TERMINATE_REASON

    def stop_playback(self, session_id: str, controlling_session_id: str, controlling_user_id: str) -> None:
        reason = self._terminate_reason()

        if self.terminate_via_tautulli(session_id, reason):
            return
        if self.terminate_via_plex(session_id, reason):
            log.info("Plex termination fallback succeeded.")
            return

        raise RuntimeError("All termination methods failed for session %s" % session_id)

    def show_message(self, session_id: str, header: str, text: str, timeout_ms: int) -> None:
        log.debug("Plex has no message command; session %s saw the terminate reason instead.", session_id)

    def tautulli_api_call(self, cmd: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Call Tautulli API v2 (best-effort).
        """
        if not self._tautulli_url or not self._tautulli_apikey:
            return None

        api_url = f"{self._tautulli_url.rstrip('/')}/api/v2"
        full_params: Dict[str, Any] = {"apikey": self._tautulli_apikey, "cmd": cmd}
        full_params.update(params)

        try:
            r = self._http.get(api_url, params=full_params, timeout=self._timeout_s)
            r.raise_for_status()
            return r.json()
        except (requests.RequestException, ValueError) as e:
            log.debug("Tautulli API call failed cmd=%s err=%s", cmd, e)
            return None

    def terminate_via_tautulli(self, session_id: str, message: str) -> bool:
        if not self._tautulli_url or not self._tautulli_apikey:
            return False

        data = self.tautulli_api_call("terminate_session", {"session_id": session_id, "message": message})
        ok = bool(data and data.get("response", {}).get("result") == "success")
        if ok:
            log.info("Tautulli terminate_session sent successfully.")
        else:
            log.warning("Tautulli terminate_session returned non-success: %s", data)
        return ok

    def terminate_via_plex(self, session_id: str, reason: str) -> bool:
        """
        1) session.stop(reason=...) on the live plexapi session object
        2) direct /status/sessions/terminate?sessionId=...&reason=...
        """
        if self._plex is not None:
            try:
                for s in self._plex.sessions():
                    if _session_id(s) != session_id:
                        continue
                    stop_fn = getattr(s, "stop", None)
                    if callable(stop_fn):
                        stop_fn(reason=reason)
                        return True
            except Exception as e:
                log.debug("Plex session.stop() failed: %s", e)

        if not self._plex_url or not self._plex_token or not session_id:
            return False

        try:
            url = "%s/status/sessions/terminate" % self._plex_url.rstrip("/")
            params = {"sessionId": session_id, "reason": reason, "X-Plex-Token": self._plex_token}
            r = self._http.get(url, params=params, timeout=self._timeout_s)
            # Plex often returns 200 with an empty body on success.
            if 200 <= r.status_code < 300:
                return True
            log.debug("Direct Plex terminate returned HTTP %s", r.status_code)
        except requests.RequestException as e:
            log.debug("Direct Plex terminate call failed: %s", e)

        return False

    def close(self) -> None:
        self._http.close()
