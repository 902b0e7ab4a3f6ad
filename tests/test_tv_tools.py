"""Tests for the remote-control command channel."""

import base64
import json
from unittest.mock import patch

import httpx
import pytest
from conftest import connected_manager, make_manager
from websockets.exceptions import ConnectionClosedError
from websockets.protocol import State

from devices.errors import NetworkError, NotConnectedError, NotFoundError, UnknownAppError
from devices.models import SavedConnection
from tools.tv_tools import (
    APP_IDS,
    WAKE_PACKETS,
    TVCommands,
    get_available_keys,
    resolve_key,
    wake_tv,
)


class RecordingTransport:
    """Answers every request with a fixed response and keeps the requests."""

    def __init__(self, status_code: int = 200, body: dict | None = None, error: bool = False):
        self.status_code = status_code
        self.body = body or {}
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(self.status_code, json=self.body)


def _commands(manager, transport: RecordingTransport) -> TVCommands:
    client = httpx.AsyncClient(transport=httpx.MockTransport(transport))
    return TVCommands(manager, http=client)


@pytest.mark.parametrize(
    ("key", "expected"),
    [
        ("select", "KEY_ENTER"),
        ("ok", "KEY_ENTER"),
        ("back", "KEY_RETURN"),
        ("volume_up", "KEY_VOLUP"),
        ("search", "KEY_SMART_HUB"),
        ("KEY_HOME", "KEY_HOME"),
        ("KEY_3SPEED", "KEY_3SPEED"),
    ],
)
def test_resolve_key(key: str, expected: str):
    assert resolve_key(key) == expected


def test_available_keys_include_aliases_and_codes():
    keys = get_available_keys()
    assert "power" in keys
    assert "KEY_POWER" in keys
    assert "KEY_SMART_HUB" in keys


# =============================================================================
# Keys and text
# =============================================================================


@pytest.mark.asyncio
async def test_send_key_alias(store):
    """Test a symbolic key is sent as a click of its code."""
    manager, channel = await connected_manager(store)
    await TVCommands(manager).send_key("select")

    assert channel.sent[-1] == {
        "method": "ms.remote.control",
        "params": {
            "Cmd": "Click",
            "DataOfCmd": "KEY_ENTER",
            "Option": "false",
            "TypeOfRemote": "SendRemoteKey",
        },
    }
    await manager.disconnect()


@pytest.mark.asyncio
async def test_send_key_raw_code_passthrough(store):
    manager, channel = await connected_manager(store)
    await TVCommands(manager).send_key("KEY_AMBIENT")
    assert channel.sent[-1]["params"]["DataOfCmd"] == "KEY_AMBIENT"
    await manager.disconnect()


@pytest.mark.asyncio
async def test_send_key_not_connected(store):
    manager, _ = make_manager(store)
    with pytest.raises(NotConnectedError, match="Not connected to any TV"):
        await TVCommands(manager).send_key("up")


@pytest.mark.asyncio
async def test_send_text_is_base64(store):
    manager, channel = await connected_manager(store)
    await TVCommands(manager).send_text("héllo wörld")

    params = channel.sent[-1]["params"]
    assert params["TypeOfRemote"] == "SendInputString"
    assert params["DataOfCmd"] == "base64"
    assert base64.b64decode(params["Cmd"]).decode("utf-8") == "héllo wörld"
    await manager.disconnect()


@pytest.mark.asyncio
async def test_send_text_not_connected(store):
    manager, _ = make_manager(store)
    with pytest.raises(NotConnectedError):
        await TVCommands(manager).send_text("hello")


# =============================================================================
# Launch
# =============================================================================


@pytest.mark.asyncio
async def test_launch_known_app(store):
    """Test a known app is launched over REST on port 8001."""
    manager, channel = await connected_manager(store, ip="192.168.1.60")
    transport = RecordingTransport()

    await _commands(manager, transport).launch_app("Netflix")

    request = transport.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "http://192.168.1.60:8001/api/v2/applications/11101200001"
    # Launch goes over REST only
    assert len(channel.sent) == 0
    await manager.disconnect()


@pytest.mark.asyncio
async def test_launch_needs_only_device(store):
    """Test launch works while the websocket itself is closed."""
    manager, channel = await connected_manager(store)
    channel.state = State.CLOSED
    assert manager.connected is False
    transport = RecordingTransport()

    await _commands(manager, transport).launch_app("YouTube")

    assert transport.requests[0].url.path.endswith("/111299001912")
    await manager.disconnect()


@pytest.mark.asyncio
async def test_launch_numeric_app_id(store):
    manager, _ = await connected_manager(store)
    transport = RecordingTransport()

    await _commands(manager, transport).launch_app("3201907018807")

    assert transport.requests[0].url.path == "/api/v2/applications/3201907018807"
    await manager.disconnect()


@pytest.mark.asyncio
async def test_launch_unknown_app(store):
    manager, _ = await connected_manager(store)
    transport = RecordingTransport()

    with pytest.raises(UnknownAppError) as exc_info:
        await _commands(manager, transport).launch_app("Crunchyroll")

    assert "Unknown app: Crunchyroll" in str(exc_info.value)
    assert transport.requests == []
    await manager.disconnect()


@pytest.mark.asyncio
async def test_launch_without_device(store):
    manager, _ = make_manager(store)
    with pytest.raises(NotConnectedError):
        await TVCommands(manager).launch_app("Netflix")


@pytest.mark.asyncio
async def test_launch_error_uses_tv_message(store):
    manager, _ = await connected_manager(store)
    transport = RecordingTransport(status_code=404, body={"message": "Not found app"})

    with pytest.raises(NetworkError, match="Not found app"):
        await _commands(manager, transport).launch_app("Hulu")
    await manager.disconnect()


@pytest.mark.asyncio
async def test_launch_unreachable(store):
    manager, _ = await connected_manager(store)
    transport = RecordingTransport(error=True)

    with pytest.raises(NetworkError, match="Failed to launch Hulu"):
        await _commands(manager, transport).launch_app("Hulu")
    await manager.disconnect()


# =============================================================================
# Cast
# =============================================================================


@pytest.mark.asyncio
async def test_cast_rejects_unknown_app_before_connection_check(store):
    """Test raw app IDs are refused for deep links even when disconnected."""
    manager, _ = make_manager(store)
    with pytest.raises(UnknownAppError):
        await TVCommands(manager).cast_to_tv("3201907018807", "abc")


@pytest.mark.asyncio
async def test_cast_not_connected(store):
    manager, _ = make_manager(store)
    with pytest.raises(NotConnectedError):
        await TVCommands(manager).cast_to_tv("YouTube", "dQw4w9WgXcQ")


@pytest.mark.asyncio
async def test_cast_over_websocket(store):
    manager, channel = await connected_manager(store)
    transport = RecordingTransport()

    await _commands(manager, transport).cast_to_tv("YouTube", "dQw4w9WgXcQ")

    assert channel.sent[-1] == {
        "method": "ms.channel.emit",
        "params": {
            "event": "ed.apps.launch",
            "to": "host",
            "data": {
                "appId": APP_IDS["YouTube"],
                "action_type": "DEEP_LINK",
                "metaTag": "dQw4w9WgXcQ",
            },
        },
    }
    assert transport.requests == []
    await manager.disconnect()


@pytest.mark.asyncio
async def test_cast_meta_tag_overrides_content_id(store):
    manager, channel = await connected_manager(store)
    await TVCommands(manager).cast_to_tv("Netflix", "80057281", meta_tag="m=80057281")
    assert channel.sent[-1]["params"]["data"]["metaTag"] == "m=80057281"
    await manager.disconnect()


@pytest.mark.asyncio
async def test_cast_falls_back_to_rest(store):
    """Test a failed websocket send retries the deep link over REST."""
    manager, channel = await connected_manager(store, ip="192.168.1.61")
    channel.fail_send = ConnectionClosedError(None, None)
    transport = RecordingTransport()

    await _commands(manager, transport).cast_to_tv("Netflix", "80057281")

    request = transport.requests[0]
    assert str(request.url) == "http://192.168.1.61:8001/api/v2/applications/11101200001"
    assert json.loads(request.content) == {"action_type": "DEEP_LINK", "metaTag": "80057281"}
    await manager.disconnect()


@pytest.mark.asyncio
async def test_cast_fails_when_both_paths_fail(store):
    manager, channel = await connected_manager(store)
    channel.fail_send = ConnectionClosedError(None, None)
    transport = RecordingTransport(status_code=500)

    with pytest.raises(NetworkError, match="Failed to cast to Netflix"):
        await _commands(manager, transport).cast_to_tv("Netflix", "80057281")
    await manager.disconnect()


# =============================================================================
# Wake-on-LAN
# =============================================================================


def test_wake_without_saved_tv(store):
    with pytest.raises(NotFoundError):
        wake_tv(store)


@patch("tools.tv_tools.wakeonlan.send_magic_packet")
def test_wake_sends_packets(mock_send, store):
    """Test wake sends a burst of magic packets to the saved MAC."""
    store.save(SavedConnection(ip="192.168.1.10", mac="aa:bb:cc:dd:ee:ff"))

    wake_tv(store)

    assert mock_send.call_count == WAKE_PACKETS
    mock_send.assert_called_with("aa:bb:cc:dd:ee:ff")


@patch("tools.tv_tools.wakeonlan.send_magic_packet", side_effect=ValueError("bad mac"))
def test_wake_invalid_mac(mock_send, store):
    store.save(SavedConnection(ip="192.168.1.10", mac="nope"))
    with pytest.raises(NetworkError, match="bad mac"):
        wake_tv(store)
