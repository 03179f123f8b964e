"""Pytest configuration and fixtures for homey2matter tests."""

from __future__ import annotations

import asyncio
import copy
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from bridge_manager import BridgeManager
from errors import GatewayStartError, HomeyResponseError
from gateway import CommandCallback, NodeConfig, ProtocolGateway
from homey_client import HomeyClient
from models import AttributeTree, Device, EndpointDescription, GatewayState, InboundCommand
from settings_store import SettingsStore


def raw_device(
    device_id: str,
    name: str | None = None,
    device_class: str = "light",
    setable: bool = True,
    **capabilities: Any,
) -> dict[str, Any]:
    """Build a device as returned by the Homey Web API."""
    return {
        "id": device_id,
        "name": name or f"Device {device_id}",
        "class": device_class,
        "driverId": "homey:app:driver",
        "zone": "zone-living",
        "available": True,
        "capabilities": list(capabilities),
        "capabilitiesObj": {
            cap: {"id": cap, "value": value, "setable": setable}
            for cap, value in capabilities.items()
        },
    }


def create_mock_response(
    status: int = 200,
    json_data: Any = None,
    text_data: str | None = None,
) -> AsyncMock:
    """Create a configured mock aiohttp response usable as an async context manager."""
    response = AsyncMock()
    response.status = status
    response.json.return_value = json_data
    response.text.return_value = text_data or ""
    response.__aenter__.return_value = response
    response.__aexit__.return_value = None
    return response


class FakeHomey(HomeyClient):
    """HomeyClient serving an in-memory catalog instead of HTTP."""

    def __init__(self, raw_devices: list[dict[str, Any]]):
        super().__init__("homey.local", "secret-token")
        self.raw = {raw["id"]: raw for raw in raw_devices}
        self.writes: list[tuple[str, str, Any]] = []
        self.fail_capabilities: set[str] = set()
        self.write_delay = 0.0
        self.zones_raw = {"zone-living": {"id": "zone-living", "name": "Living room"}}
        self.drivers_raw = {
            "homey:app:driver": {
                "id": "homey:app:driver",
                "name": "Driver",
                "iconObj": {"url": "/icons/driver.svg"},
            }
        }

    async def connect(self):
        await self.get_devices()

    async def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> Any:
        if path == "/api/manager/devices/device/":
            return copy.deepcopy(self.raw)
        if path == "/api/manager/devices/driver/":
            return copy.deepcopy(self.drivers_raw)
        if path == "/api/manager/zones/zone/":
            return copy.deepcopy(self.zones_raw)
        if method == "PUT":
            parts = path.strip("/").split("/")
            device_id, capability_id = parts[4], parts[6]
            if self.write_delay:
                await asyncio.sleep(self.write_delay)
            if capability_id in self.fail_capabilities:
                raise HomeyResponseError(500, f"Could not set {capability_id}")
            self.writes.append((device_id, capability_id, payload["value"]))
            self.raw[device_id]["capabilitiesObj"][capability_id]["value"] = payload["value"]
            return None
        raise AssertionError(f"Unexpected request {method} {path}")

    def start_polling(self):
        pass

    async def push_value(self, device_id: str, capability_id: str, value: Any):
        """Change a value at the source and let the client notice it."""
        self.raw[device_id]["capabilitiesObj"][capability_id]["value"] = value
        await self.get_devices()

    async def delete_device(self, device_id: str):
        del self.raw[device_id]
        await self.get_devices()


class FakeGateway(ProtocolGateway):
    """In-memory endpoint tree."""

    def __init__(self):
        self.endpoints: dict[str, EndpointDescription] = {}
        self.patches: list[tuple[str, AttributeTree]] = []
        self.fail_add: set[str] = set()
        self.fail_start = False
        self.remove_gate: asyncio.Event | None = None
        self.config: NodeConfig | None = None
        self.handler: CommandCallback | None = None
        self._started = False
        self._state = GatewayState()

    @property
    def started(self) -> bool:
        return self._started

    @property
    def state(self) -> GatewayState:
        return copy.copy(self._state)

    async def start(self, config: NodeConfig):
        if self.fail_start:
            raise GatewayStartError("port 5540 in use")
        self.config = config
        self._started = True
        self._state = GatewayState(
            ready=True, commissioned=False, qr_pairing_code="MT:Y.K90", manual_pairing_code="34970112332"
        )

    async def stop(self):
        self._started = False

    async def add_endpoint(self, endpoint: EndpointDescription):
        if endpoint.id in self.fail_add:
            raise RuntimeError(f"cannot add {endpoint.id}")
        if endpoint.id in self.endpoints:
            raise ValueError(f"Endpoint {endpoint.id} already exists")
        self.endpoints[endpoint.id] = copy.deepcopy(endpoint)

    async def remove_endpoint(self, endpoint_id: str):
        if self.remove_gate is not None:
            await self.remove_gate.wait()
        self.endpoints.pop(endpoint_id, None)

    async def set_attributes(self, endpoint_id: str, patch: AttributeTree):
        self.patches.append((endpoint_id, patch))
        endpoint = self.endpoints.get(endpoint_id)
        if endpoint is None:
            return
        for cluster, attributes in patch.items():
            endpoint.attributes.setdefault(cluster, {}).update(attributes)

    def set_command_handler(self, handler: CommandCallback):
        self.handler = handler

    async def send(self, command: InboundCommand):
        assert self.handler is not None
        await self.handler(command)


@pytest.fixture
def make_device():
    def _make(device_id: str = "d1", device_class: str = "light", **capabilities: Any) -> Device:
        return Device.from_api(raw_device(device_id, device_class=device_class, **capabilities))
    return _make


@pytest.fixture
def homey() -> FakeHomey:
    return FakeHomey([
        raw_device("d1", name="Kitchen Lamp", onoff=True, dim=0.5),
        raw_device("d2", name="Hall Lamp", onoff=False),
        raw_device("d3", name="Desk Lamp", onoff=True, dim=0.2),
        raw_device("s1", name="Speaker", device_class="speaker", volume_set=0.3),
    ])


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def settings(tmp_path) -> SettingsStore:
    return SettingsStore(str(tmp_path / "settings.json"))


@pytest.fixture
def manager(homey, gateway, settings) -> BridgeManager:
    return BridgeManager(homey, gateway, settings, node_config=NodeConfig(unique_id="test"), timeout=1.0)


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock aiohttp ClientSession."""
    import aiohttp

    return MagicMock(spec=aiohttp.ClientSession)
