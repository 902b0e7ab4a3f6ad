"""Paired websocket connection to a Samsung TV.

The TV exposes a remote-control channel on two ports: 8001 (plain ws) on
older models and 8002 (wss with a self-signed certificate) on newer ones.
The first connection from a new client shows an "Allow" prompt on the TV; once
approved the TV hands out a token that lets later connections skip the prompt.

A refused prompt is not reported with a proper close code. The TV closes the
socket without a status (1005), which the transport surfaces either as a close
frame with no payload or as a protocol error about the invalid code.
"""

import asyncio
import base64
import contextlib
import json
import ssl
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import structlog
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, ProtocolError
from websockets.frames import CloseCode
from websockets.protocol import State

from .errors import (
    HandshakeRejectedError,
    HandshakeTimeoutError,
    NetworkError,
    NotConnectedError,
    TransportClosedError,
    TVError,
)
from .models import Device, SavedConnection
from .storage import TokenStore

log = structlog.get_logger(__name__)

CHANNEL_PATH = "/api/v2/channels/samsung.remote.control"
CONNECT_EVENT = "ms.channel.connect"
UNAUTHORIZED_EVENT = "ms.channel.unauthorized"
PLAIN_PORT = 8001
SECURE_PORT = 8002

Connector = Callable[..., Awaitable[ClientConnection]]


@dataclass(frozen=True)
class ConnectionProfile:
    """One way of reaching the remote-control channel."""

    port: int
    secure: bool

    @classmethod
    def for_port(cls, port: int) -> "ConnectionProfile":
        return cls(port=port, secure=port != PLAIN_PORT)

    def url(self, ip: str, app_name: str, token: str | None = None) -> str:
        scheme = "wss" if self.secure else "ws"
        params = {"name": base64.b64encode(app_name.encode()).decode()}
        if token:
            params["token"] = token
        return f"{scheme}://{ip}:{self.port}{CHANNEL_PATH}?{urlencode(params)}"


DEFAULT_PROFILES = (
    ConnectionProfile(port=SECURE_PORT, secure=True),
    ConnectionProfile(port=PLAIN_PORT, secure=False),
)


@dataclass
class ConnectionState:
    device: Device
    channel: ClientConnection | None
    token: str | None = None


def _insecure_ssl_context() -> ssl.SSLContext:
    # TVs present a self-signed certificate
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def _mask_token(url: str) -> str:
    head, sep, _ = url.partition("token=")
    return f"{head}{sep}***" if sep else url


def _decode(raw: str | bytes) -> dict[str, Any]:
    try:
        msg = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return msg if isinstance(msg, dict) else {}


def is_pairing_rejection(exc: ConnectionClosed, parser_exc: BaseException | None = None) -> bool:
    """True if the close looks like the TV refusing the pairing prompt.

    The TV may send 1005 inside the close frame. The frame parser rejects that
    code, so the connection fails with 1002 and the original code only shows
    up in the parser error.
    """
    if exc.rcvd is not None and exc.rcvd.code == CloseCode.NO_STATUS_RCVD:
        return True
    code = str(CloseCode.NO_STATUS_RCVD.value)
    return any(
        isinstance(err, ProtocolError) and code in str(err) for err in (parser_exc, exc.__cause__)
    )


class ConnectionManager:
    """Owns the single live connection to a TV.

    Construct one per process and share it with the command and search layers.
    """

    def __init__(
        self,
        store: TokenStore,
        app_name: str = "SamsungWebRemote",
        handshake_timeout: float = 15.0,
        connector: Connector = connect,
    ) -> None:
        self.store = store
        self.app_name = app_name
        self.handshake_timeout = handshake_timeout
        self._connector = connector
        self._state: ConnectionState | None = None
        self._listener: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

    @property
    def device(self) -> Device | None:
        return self._state.device if self._state else None

    @property
    def connected(self) -> bool:
        if self._state is None or self._state.channel is None:
            return False
        return self._state.channel.state is State.OPEN

    def get_status(self) -> dict[str, Any]:
        return {"connected": self.connected, "device": self.device}

    async def connect(
        self,
        ip: str,
        mac: str = "",
        friendly_name: str | None = None,
        port: int | None = None,
    ) -> Device:
        """Pair with the TV at ``ip`` and make it the current connection.

        Raises:
            HandshakeRejectedError: The pairing prompt was refused on the TV.
            HandshakeTimeoutError: The TV did not confirm the channel in time.
            TVError: Any other failure to open the channel.
        """
        async with self._lock:
            await self._disconnect()

            device = Device(ip=ip, mac=mac, friendly_name=friendly_name)
            saved = self.store.load()
            token = saved.token if saved and saved.ip == ip and saved.token else None

            profiles = [ConnectionProfile.for_port(port)] if port else list(DEFAULT_PROFILES)

            channel, token = await self._open_first(profiles, ip, token)
            self._state = ConnectionState(device=device, channel=channel, token=token)

            try:
                self.store.save(SavedConnection.from_device(device, token))
            except OSError as e:
                log.warning("Could not save connection", path=str(self.store.path), error=str(e))

            self._listener = asyncio.create_task(self._listen(channel))

            log.info("Connected to TV", ip=ip, name=friendly_name, paired=token is not None)
            return device

    async def auto_reconnect(self) -> bool:
        """Reconnect to the remembered TV, if there is one."""
        saved = self.store.load()
        if saved is None:
            return False

        try:
            await self.connect(saved.ip, saved.mac, saved.friendly_name)
        except TVError as e:
            log.warning("Auto-reconnect failed", ip=saved.ip, error=str(e))
            return False
        return True

    async def disconnect(self) -> None:
        async with self._lock:
            await self._disconnect()

    async def send(self, command: dict[str, Any]) -> None:
        """Send one JSON command on the live channel. No reply is awaited."""
        if not self.connected:
            raise NotConnectedError()

        channel = self._state.channel
        try:
            await channel.send(json.dumps(command))
        except (ConnectionClosed, OSError) as e:
            log.warning("Send failed, dropping connection", error=str(e))
            self._drop(channel)
            raise TransportClosedError(f"Lost connection to TV: {e}") from e

    async def _disconnect(self) -> None:
        listener, self._listener = self._listener, None
        if listener is not None:
            listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await listener

        state, self._state = self._state, None
        if state is not None and state.channel is not None:
            with contextlib.suppress(ConnectionClosed, OSError):
                await state.channel.close()
            log.info("Disconnected from TV", ip=state.device.ip)

    def _drop(self, channel: ClientConnection) -> None:
        """Forget the connection if it is still the one using ``channel``."""
        if self._state is not None and self._state.channel is channel:
            self._state = None
            listener, self._listener = self._listener, None
            if listener is not None and listener is not asyncio.current_task():
                listener.cancel()

    async def _open_first(
        self, profiles: list[ConnectionProfile], ip: str, token: str | None
    ) -> tuple[ClientConnection, str | None]:
        for profile in profiles[:-1]:
            try:
                return await self._handshake(profile, ip, token)
            except TVError as e:
                log.info(
                    "Handshake failed, trying next port", ip=ip, port=profile.port, error=str(e)
                )
        return await self._handshake(profiles[-1], ip, token)

    async def _handshake(
        self, profile: ConnectionProfile, ip: str, token: str | None
    ) -> tuple[ClientConnection, str | None]:
        url = profile.url(ip, self.app_name, token)
        log.debug("Connecting", url=_mask_token(url))

        try:
            return await asyncio.wait_for(
                self._open_channel(url, profile, token), timeout=self.handshake_timeout
            )
        except TimeoutError as e:
            raise HandshakeTimeoutError() from e
        except ConnectionClosed as e:
            if is_pairing_rejection(e):
                raise HandshakeRejectedError() from e
            raise TransportClosedError() from e
        except (InvalidHandshake, OSError) as e:
            raise NetworkError(f"Could not reach TV at {ip}:{profile.port}: {e}") from e

    async def _open_channel(
        self, url: str, profile: ConnectionProfile, token: str | None
    ) -> tuple[ClientConnection, str | None]:
        ssl_ctx = _insecure_ssl_context() if profile.secure else None
        channel = await self._connector(url, ssl=ssl_ctx, open_timeout=None)
        try:
            while True:
                msg = _decode(await channel.recv())
                event = msg.get("event")
                if event == CONNECT_EVENT:
                    data = msg.get("data") or {}
                    return channel, data.get("token") or token
                if event == UNAUTHORIZED_EVENT:
                    raise HandshakeRejectedError()
                log.debug("Ignoring message during handshake", tv_event=event)
        except ConnectionClosed as e:
            with contextlib.suppress(ConnectionClosed, OSError):
                await channel.close()
            if is_pairing_rejection(e, channel.protocol.parser_exc):
                raise HandshakeRejectedError() from e
            raise
        except BaseException:
            with contextlib.suppress(ConnectionClosed, OSError):
                await channel.close()
            raise

    async def _listen(self, channel: ClientConnection) -> None:
        try:
            async for raw in channel:
                msg = _decode(raw)
                if msg.get("event") != CONNECT_EVENT:
                    log.debug("TV message", message=msg)
        except ConnectionClosed:
            pass
        log.info("TV disconnected")
        self._drop(channel)
