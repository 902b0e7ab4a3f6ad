"""Remote-control commands for the connected TV.

Keys and text go over the paired websocket. App launches use the TV's REST
API on port 8001, which only needs to know which TV we are paired with.
Deep links try the websocket first and fall back to REST.
"""

import base64
import contextlib
from collections.abc import AsyncIterator
from typing import Any

import httpx
import structlog
import wakeonlan

from devices.connection import ConnectionManager
from devices.errors import NetworkError, NotConnectedError, NotFoundError, TVError, UnknownAppError
from devices.models import Device
from devices.storage import TokenStore

log = structlog.get_logger(__name__)

REST_PORT = 8001
WAKE_PACKETS = 30

APP_IDS: dict[str, str] = {
    "Netflix": "11101200001",
    "YouTube": "111299001912",
    "Disney+": "3201901017640",
    "Hulu": "3201601007625",
    "HBO Max": "3202301029760",
    "Prime Video": "3201512006785",
}

_KEY_CODES = [
    # Power and source
    "KEY_POWER", "KEY_POWEROFF", "KEY_SOURCE", "KEY_HDMI", "KEY_TV",
    # Digits
    "KEY_0", "KEY_1", "KEY_2", "KEY_3", "KEY_4",
    "KEY_5", "KEY_6", "KEY_7", "KEY_8", "KEY_9",
    # Navigation
    "KEY_UP", "KEY_DOWN", "KEY_LEFT", "KEY_RIGHT", "KEY_ENTER",
    "KEY_RETURN", "KEY_EXIT", "KEY_HOME", "KEY_MENU", "KEY_TOOLS",
    "KEY_INFO", "KEY_GUIDE", "KEY_SMART_HUB", "KEY_CONTENTS",
    # Volume and channel
    "KEY_VOLUP", "KEY_VOLDOWN", "KEY_MUTE", "KEY_CHUP", "KEY_CHDOWN",
    "KEY_PRECH", "KEY_CH_LIST",
    # Playback
    "KEY_PLAY", "KEY_PAUSE", "KEY_STOP", "KEY_REWIND", "KEY_FF",
    "KEY_REC", "KEY_PLAY_BACK",
    # Colour buttons
    "KEY_RED", "KEY_GREEN", "KEY_YELLOW", "KEY_CYAN",
    # Picture and misc
    "KEY_PMODE", "KEY_PICTURE_SIZE", "KEY_SLEEP", "KEY_CAPTION", "KEY_AD",
]

KEYS: dict[str, str] = {code: code for code in _KEY_CODES}
KEYS.update(
    {
        "power": "KEY_POWER",
        "up": "KEY_UP",
        "down": "KEY_DOWN",
        "left": "KEY_LEFT",
        "right": "KEY_RIGHT",
        "select": "KEY_ENTER",
        "enter": "KEY_ENTER",
        "ok": "KEY_ENTER",
        "back": "KEY_RETURN",
        "home": "KEY_HOME",
        "menu": "KEY_MENU",
        "volume_up": "KEY_VOLUP",
        "volume_down": "KEY_VOLDOWN",
        "mute": "KEY_MUTE",
        "play": "KEY_PLAY",
        "pause": "KEY_PAUSE",
        "search": "KEY_SMART_HUB",
    }
)


def get_available_keys() -> list[str]:
    return list(KEYS)


def resolve_key(key: str) -> str:
    """Map a symbolic key to its code. Unknown keys pass through as raw codes."""
    return KEYS.get(key, key)


def key_command(code: str) -> dict[str, Any]:
    return {
        "method": "ms.remote.control",
        "params": {
            "Cmd": "Click",
            "DataOfCmd": code,
            "Option": "false",
            "TypeOfRemote": "SendRemoteKey",
        },
    }


def text_command(text: str) -> dict[str, Any]:
    return {
        "method": "ms.remote.control",
        "params": {
            "Cmd": base64.b64encode(text.encode("utf-8")).decode(),
            "DataOfCmd": "base64",
            "TypeOfRemote": "SendInputString",
        },
    }


def deep_link_command(app_id: str, meta_tag: str) -> dict[str, Any]:
    return {
        "method": "ms.channel.emit",
        "params": {
            "event": "ed.apps.launch",
            "to": "host",
            "data": {"appId": app_id, "action_type": "DEEP_LINK", "metaTag": meta_tag},
        },
    }


def _error_message(resp: httpx.Response, default: str) -> str:
    try:
        data = resp.json()
    except ValueError:
        return default
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return default


class TVCommands:
    """Key presses, text input, app launches and deep links."""

    def __init__(
        self,
        manager: ConnectionManager,
        http: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ) -> None:
        self.manager = manager
        self._http = http
        self.timeout = timeout

    @contextlib.asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http is not None:
            yield self._http
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client

    def _require_device(self) -> Device:
        device = self.manager.device
        if device is None:
            raise NotConnectedError()
        return device

    async def send_key(self, key: str) -> None:
        if not self.manager.connected:
            raise NotConnectedError()
        code = resolve_key(key)
        if key not in KEYS:
            log.debug("Sending unlisted key as raw code", key=key)
        await self.manager.send(key_command(code))

    async def send_text(self, text: str) -> None:
        if not self.manager.connected:
            raise NotConnectedError()
        await self.manager.send(text_command(text))

    async def launch_app(self, app_name: str) -> None:
        """Launch an app by known name or numeric Tizen app ID."""
        device = self._require_device()

        app_id = APP_IDS.get(app_name)
        if app_id is None:
            if not (app_name.isascii() and app_name.isdigit()):
                raise UnknownAppError(
                    app_name,
                    f"Unknown app: {app_name}. Use a known app name or a numeric app ID.",
                )
            app_id = app_name

        url = f"http://{device.ip}:{REST_PORT}/api/v2/applications/{app_id}"
        try:
            async with self._client() as client:
                resp = await client.post(url)
        except httpx.HTTPError as e:
            raise NetworkError(f"Failed to launch {app_name}: {e}") from e

        if not resp.is_success:
            raise NetworkError(_error_message(resp, f"Failed to launch {app_name}"))
        log.info("Launched app", app=app_name, app_id=app_id)

    async def cast_to_tv(self, app_name: str, content_id: str, meta_tag: str | None = None) -> None:
        """Open specific content in an app via deep link.

        Only known app names are accepted, raw app IDs are rejected.
        """
        app_id = APP_IDS.get(app_name)
        if app_id is None:
            raise UnknownAppError(app_name)
        if not self.manager.connected:
            raise NotConnectedError()
        device = self._require_device()

        tag = meta_tag or content_id

        try:
            await self.manager.send(deep_link_command(app_id, tag))
            log.info("Cast via websocket", app=app_name, meta_tag=tag)
            return
        except TVError as e:
            log.info("Websocket cast failed, trying REST", app=app_name, error=str(e))

        url = f"http://{device.ip}:{REST_PORT}/api/v2/applications/{app_id}"
        try:
            async with self._client() as client:
                resp = await client.post(url, json={"action_type": "DEEP_LINK", "metaTag": tag})
        except httpx.HTTPError as e:
            raise NetworkError(f"Failed to cast to {app_name}: {e}") from e

        if not resp.is_success:
            raise NetworkError(_error_message(resp, f"Failed to cast to {app_name}"))
        log.info("Cast via REST", app=app_name, meta_tag=tag)


def wake_tv(store: TokenStore) -> None:
    """Send Wake-on-LAN packets to the remembered TV."""
    saved = store.load()
    if saved is None:
        raise NotFoundError("No saved TV to wake. Connect first.")

    try:
        for _ in range(WAKE_PACKETS):
            wakeonlan.send_magic_packet(saved.mac)
    except (ValueError, OSError) as e:
        raise NetworkError(f"Failed to wake TV: {e}") from e
    log.info("Sent wake packets", mac=saved.mac, count=WAKE_PACKETS)
