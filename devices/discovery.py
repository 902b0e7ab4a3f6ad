"""Samsung TV discovery via SSDP/mDNS with a subnet probe fallback."""

import asyncio
import logging
import socket
from typing import Any, Protocol
from urllib.parse import urlparse

import httpx
from async_upnp_client.search import async_search
from zeroconf import IPVersion, ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncZeroconf

from .models import Device

log = logging.getLogger("discovery")

CONTROL_PORTS = (8001, 8002)
SSDP_SEARCH_TARGET = "urn:samsung.com:device:RemoteControlReceiver:1"
MDNS_SERVICE_TYPE = "_airplay._tcp.local."
DEFAULT_NAME = "Samsung TV"


def parse_device_info(data: dict[str, Any], ip: str) -> Device | None:
    """Build a Device from the TV's /api/v2/ JSON document."""
    info = data.get("device")
    if not isinstance(info, dict):
        return None
    return Device(
        ip=info.get("ip") or ip,
        mac=info.get("wifiMac") or "",
        friendly_name=info.get("name") or info.get("modelName") or DEFAULT_NAME,
    )


async def probe_tv(
    client: httpx.AsyncClient, ip: str, port: int, timeout: float = 2.0
) -> Device | None:
    """Ask a single host:port for TV info. Returns None on any failure."""
    try:
        resp = await client.get(f"http://{ip}:{port}/api/v2/", timeout=timeout)
        if resp.status_code != 200:
            return None
        return parse_device_info(resp.json(), ip)
    except (httpx.HTTPError, ValueError):
        return None


def merge_devices(devices: list[Device]) -> list[Device]:
    """Deduplicate by ip, keeping arrival order and filling blanks from later entries."""
    merged: dict[str, Device] = {}
    for device in devices:
        existing = merged.get(device.ip)
        if existing is None:
            merged[device.ip] = Device(device.ip, device.mac, device.friendly_name)
            continue
        existing.mac = existing.mac or device.mac
        existing.friendly_name = existing.friendly_name or device.friendly_name
    return list(merged.values())


def detect_local_ip() -> str | None:
    """Return the outbound-facing IPv4 address of this host."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            # UDP connect sends nothing, it only selects a route
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
    except OSError as e:
        log.warning(f"Could not detect local IP: {e}")
        return None


class DiscoveryStrategy(Protocol):
    name: str

    async def find(self, timeout: float) -> list[Device]: ...


class PassiveDiscovery:
    """Listen for TVs announcing themselves over SSDP and mDNS."""

    name = "passive"

    def __init__(
        self, probe_timeout: float = 2.0, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self.probe_timeout = probe_timeout
        self.transport = transport

    async def find(self, timeout: float) -> list[Device]:
        results = await asyncio.gather(
            self._ssdp_hosts(timeout), self._mdns_hosts(timeout), return_exceptions=True
        )

        hosts: dict[str, str | None] = {}
        for result in results:
            if isinstance(result, BaseException):
                log.debug(f"Passive discovery source failed: {result}")
                continue
            for ip, name in result.items():
                hosts.setdefault(ip, name)

        if not hosts:
            return []

        async with httpx.AsyncClient(transport=self.transport) as client:
            enriched = await asyncio.gather(
                *(self._describe(client, ip, name) for ip, name in hosts.items())
            )
        return list(enriched)

    async def _describe(self, client: httpx.AsyncClient, ip: str, name: str | None) -> Device:
        # Both ports share one probe_timeout budget per host
        try:
            async with asyncio.timeout(self.probe_timeout):
                for port in CONTROL_PORTS:
                    device = await probe_tv(client, ip, port, self.probe_timeout)
                    if device:
                        return device
        except TimeoutError:
            log.debug(f"No device info from {ip} within {self.probe_timeout}s")
        return Device(ip=ip, mac="", friendly_name=name or DEFAULT_NAME)

    async def _ssdp_hosts(self, timeout: float) -> dict[str, str | None]:
        hosts: dict[str, str | None] = {}

        async def on_response(headers: Any) -> None:
            location = headers.get("location") or headers.get("LOCATION") or ""
            ip = urlparse(location).hostname or headers.get("_host")
            if ip and ip not in hosts:
                log.info(f"SSDP found device at {ip}")
                hosts[ip] = None

        await async_search(
            async_callback=on_response,
            timeout=max(1, int(timeout)),
            search_target=SSDP_SEARCH_TARGET,
        )
        return hosts

    async def _mdns_hosts(self, timeout: float) -> dict[str, str | None]:
        hosts: dict[str, str | None] = {}
        pending: list[asyncio.Task[None]] = []
        azc = AsyncZeroconf(ip_version=IPVersion.V4Only)

        async def resolve(name: str) -> None:
            info = await azc.async_get_service_info(MDNS_SERVICE_TYPE, name)
            if not info:
                return
            props = info.properties or {}
            manufacturer = (props.get(b"manufacturer") or b"").decode("utf-8", "ignore")
            if not manufacturer.lower().startswith("samsung"):
                return
            for ip in info.parsed_addresses(IPVersion.V4Only):
                log.info(f"mDNS found device: {name} at {ip}")
                hosts.setdefault(ip, name.split(".")[0])

        def on_change(
            zeroconf: Zeroconf,
            service_type: str,
            name: str,
            state_change: ServiceStateChange,
        ) -> None:
            if state_change == ServiceStateChange.Added:
                pending.append(asyncio.create_task(resolve(name)))

        browser = AsyncServiceBrowser(azc.zeroconf, MDNS_SERVICE_TYPE, handlers=[on_change])
        try:
            await asyncio.sleep(timeout)
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        finally:
            for task in pending:
                task.cancel()
            await browser.async_cancel()
            await azc.async_close()
        return hosts


class SubnetProbe:
    """Probe every host of the local /24 on both control ports."""

    name = "subnet"

    def __init__(
        self, probe_timeout: float = 2.0, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self.probe_timeout = probe_timeout
        self.transport = transport

    async def find(self, timeout: float) -> list[Device]:
        local_ip = detect_local_ip()
        if not local_ip:
            return []

        base_ip = local_ip.rsplit(".", 1)[0]
        log.info(f"Scanning subnet {base_ip}.0/24 for TVs...")

        found: list[Device] = []

        async def probe(client: httpx.AsyncClient, ip: str, port: int) -> None:
            device = await probe_tv(client, ip, port, self.probe_timeout)
            if device:
                found.append(device)

        limits = httpx.Limits(max_connections=None, max_keepalive_connections=0)
        async with httpx.AsyncClient(limits=limits, transport=self.transport) as client:
            await asyncio.gather(
                *(
                    probe(client, f"{base_ip}.{i}", port)
                    for i in range(1, 255)
                    for port in CONTROL_PORTS
                ),
                return_exceptions=True,
            )

        log.info(f"Subnet scan complete: {len(found)} responses")
        return found


class TVDiscovery:
    """Runs discovery strategies in order; the first non-empty result wins."""

    def __init__(
        self,
        strategies: list[DiscoveryStrategy] | None = None,
        probe_timeout: float = 2.0,
    ) -> None:
        self.strategies = strategies or [
            PassiveDiscovery(probe_timeout),
            SubnetProbe(probe_timeout),
        ]

    async def discover(self, timeout: float = 2.0) -> list[Device]:
        for strategy in self.strategies:
            try:
                devices = merge_devices(await strategy.find(timeout))
            except Exception as e:
                log.warning(f"Discovery strategy {strategy.name} failed: {e}")
                devices = []
            if devices:
                log.info(f"Discovered {len(devices)} TV(s) via {strategy.name}")
                return devices
            log.debug(f"No TVs found via {strategy.name}")
        return []
