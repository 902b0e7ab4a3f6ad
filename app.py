"""Samsung TV Web Remote - FastAPI Application."""

from typing import Any

import structlog
from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from config import get_config
from devices.connection import ConnectionManager
from devices.discovery import TVDiscovery
from devices.errors import TVError
from devices.models import Device
from devices.storage import TokenStore
from logging_config import setup_logging
from tools.smart_search import SmartSearch, parse_smart_query
from tools.tv_tools import TVCommands, get_available_keys, wake_tv
from tools.youtube import search_youtube

# Configure structured logging
setup_logging()
log = structlog.get_logger(__name__)


# =============================================================================
# Core components (one connection per process)
# =============================================================================

config = get_config()
store = TokenStore(config.token_file)
manager = ConnectionManager(
    store,
    app_name=config.app_name,
    handshake_timeout=config.handshake_timeout,
)
commands = TVCommands(manager)
smart_search = SmartSearch(commands)
discovery = TVDiscovery(probe_timeout=config.probe_timeout)


# =============================================================================
# Request / Response Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Health status")


class DeviceInfo(BaseModel):
    """A TV as shown to the UI."""

    model_config = ConfigDict(populate_by_name=True)

    ip: str
    mac: str = ""
    friendly_name: str | None = Field(default=None, alias="friendlyName")

    @classmethod
    def from_device(cls, device: Device) -> "DeviceInfo":
        return cls(ip=device.ip, mac=device.mac, friendly_name=device.friendly_name)


class DiscoverResponse(BaseModel):
    devices: list[DeviceInfo] = Field(default_factory=list)


class StatusResponse(BaseModel):
    """Connection status."""

    connected: bool = Field(description="Whether a live channel to the TV is open")
    device: DeviceInfo | None = Field(default=None, description="Associated TV, if any")


class CommandResponse(BaseModel):
    """Generic command response."""

    success: bool = Field(description="Whether the command succeeded")
    error: str | None = Field(default=None, description="Error message if failed")


class SmartResponse(BaseModel):
    success: bool
    app: str = ""
    search: str = ""
    method: str | None = Field(default=None, description="deep_link or keyboard")
    error: str | None = None


class VideoInfo(BaseModel):
    id: str
    title: str = ""
    channel: str = ""


class SearchResponse(BaseModel):
    results: list[VideoInfo] = Field(default_factory=list)


class ParseResponse(BaseModel):
    app: str
    search: str


class KeysResponse(BaseModel):
    keys: list[str]


class ConnectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ip: str = ""
    mac: str = ""
    friendly_name: str | None = Field(default=None, alias="friendlyName")
    port: int | None = None


class KeyRequest(BaseModel):
    key: str = ""


class TextRequest(BaseModel):
    text: str = ""


class LaunchRequest(BaseModel):
    app: str = ""


class SmartRequest(BaseModel):
    query: str = ""


class CastRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    app: str = ""
    content_id: str = Field(default="", alias="contentId")
    meta_tag: str | None = Field(default=None, alias="metaTag")


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message})


def _failure(error: TVError, status_code: int = 500) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=CommandResponse(success=False, error=str(error)).model_dump(),
    )


# =============================================================================
# App
# =============================================================================

app = FastAPI(title="Samsung TV Web Remote")


@app.on_event("startup")
async def startup_event() -> None:
    """Validate configuration and reconnect to the last TV."""
    config.log_config_status()

    if await manager.auto_reconnect():
        device = manager.device
        log.info("Auto-reconnected", tv=device.friendly_name or device.ip)
    else:
        log.info("No saved TV connection. Open the UI to discover and connect.")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await manager.disconnect()


@app.get("/api/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok")


# =============================================================================
# Connection
# =============================================================================


@app.get("/api/discover", response_model=DiscoverResponse)
async def discover() -> DiscoverResponse:
    """Find Samsung TVs on the local network."""
    devices = await discovery.discover(timeout=config.discovery_timeout)
    log.info("Discover", count=len(devices))
    return DiscoverResponse(devices=[DeviceInfo.from_device(d) for d in devices])


@app.post("/api/connect", response_model=CommandResponse)
async def connect(req: ConnectRequest = ConnectRequest()) -> Any:
    if not req.ip:
        return _bad_request("ip is required")
    try:
        await manager.connect(req.ip, req.mac, req.friendly_name, req.port)
    except TVError as e:
        log.warning("Connect failed", ip=req.ip, error=str(e))
        return _failure(e)
    return CommandResponse(success=True)


@app.get("/api/status", response_model=StatusResponse)
async def status() -> StatusResponse:
    state = manager.get_status()
    device = state["device"]
    return StatusResponse(
        connected=state["connected"],
        device=DeviceInfo.from_device(device) if device else None,
    )


@app.post("/api/disconnect", response_model=CommandResponse)
async def disconnect() -> CommandResponse:
    await manager.disconnect()
    return CommandResponse(success=True)


@app.post("/api/wake", response_model=CommandResponse)
async def wake() -> Any:
    """Wake-on-LAN the remembered TV."""
    try:
        wake_tv(store)
    except TVError as e:
        return _failure(e)
    return CommandResponse(success=True)


# =============================================================================
# Remote control
# =============================================================================


@app.post("/api/key", response_model=CommandResponse)
async def key(req: KeyRequest = KeyRequest()) -> Any:
    if not req.key:
        return _bad_request("key is required")
    try:
        await commands.send_key(req.key)
    except TVError as e:
        return _failure(e, status_code=400)
    log.info("Remote key", key=req.key)
    return CommandResponse(success=True)


@app.post("/api/text", response_model=CommandResponse)
async def text(req: TextRequest = TextRequest()) -> Any:
    if not req.text:
        return _bad_request("text is required")
    try:
        await commands.send_text(req.text)
    except TVError as e:
        return _failure(e, status_code=400)
    return CommandResponse(success=True)


@app.post("/api/launch", response_model=CommandResponse)
async def launch(req: LaunchRequest = LaunchRequest()) -> Any:
    if not req.app:
        return _bad_request("app is required")
    try:
        await commands.launch_app(req.app)
    except TVError as e:
        return _failure(e)
    log.info("Remote launch", app=req.app)
    return CommandResponse(success=True)


@app.post("/api/cast", response_model=CommandResponse)
async def cast(req: CastRequest = CastRequest()) -> Any:
    """Open specific content in an app via deep link."""
    if not req.app:
        return _bad_request("app is required")
    if not req.content_id and not req.meta_tag:
        return _bad_request("contentId or metaTag is required")
    try:
        await commands.cast_to_tv(req.app, req.content_id, req.meta_tag)
    except TVError as e:
        return _failure(e)
    return CommandResponse(success=True)


@app.get("/api/keys", response_model=KeysResponse)
async def keys() -> KeysResponse:
    return KeysResponse(keys=get_available_keys())


# =============================================================================
# Search
# =============================================================================


@app.post("/api/smart", response_model=SmartResponse)
async def smart(req: SmartRequest = SmartRequest()) -> Any:
    """Play something by name, e.g. "stranger things on netflix"."""
    if not req.query:
        return _bad_request("query is required")
    result = await smart_search.search(req.query)
    if not result.success:
        return JSONResponse(status_code=500, content=SmartResponse(**result.to_dict()).model_dump())
    return SmartResponse(**result.to_dict())


@app.get("/api/search/youtube", response_model=SearchResponse)
async def youtube_search(q: str = Query(default="")) -> Any:
    if not q:
        return _bad_request("q query parameter is required")
    results = await search_youtube(q)
    return SearchResponse(results=[VideoInfo(**r.to_dict()) for r in results])


@app.get("/api/parse", response_model=ParseResponse)
async def parse(q: str = Query(default="")) -> Any:
    """Show how a query would be split into app and search term."""
    if not q:
        return _bad_request("q query parameter is required")
    parsed = parse_smart_query(q)
    return ParseResponse(app=parsed.app, search=parsed.search)


if __name__ == "__main__":
    import uvicorn

    print(f"Starting Samsung TV Web Remote at http://localhost:{config.port}")
    uvicorn.run(app, host=config.host, port=config.port)
