"""Homey Web API client."""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiohttp

from constants import DEFAULT_POLL_INTERVAL, HOMEY_REQUEST_TIMEOUT
from errors import HomeyConnectionError, HomeyResponseError
from models import Device, Driver, Zone

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Any], None]
DeviceEventCallback = Callable[[str, Device], None]


class CapabilityInstance:
    """Listener for one capability of one device. destroy() may be called any number of times."""

    def __init__(self, client: "HomeyClient", device_id: str, capability_id: str, on_change: ChangeCallback):
        self.client = client
        self.device_id = device_id
        self.capability_id = capability_id
        self.on_change = on_change
        self.destroyed = False

    def destroy(self):
        if self.destroyed:
            return
        self.destroyed = True
        self.client._remove_instance(self)


class HomeyClient:
    """
    REST client for the Homey local Web API:
      - device, driver and zone catalogs
      - capability writes
      - capability change listeners, fed by polling the device list
    """

    def __init__(
        self,
        address: str,
        token: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        if not address.startswith(("http://", "https://")):
            address = f"http://{address}"
        self.base_url = address.rstrip("/")
        self.token = token
        self.poll_interval = poll_interval
        self.session = session
        self._owns_session = session is None
        self.devices: Optional[Dict[str, Device]] = None
        self._zones: Dict[str, Zone] = {}
        self._instances: Dict[Tuple[str, str], List[CapabilityInstance]] = {}
        self._device_listeners: List[DeviceEventCallback] = []
        self._poll_task: Optional[asyncio.Task] = None
        self.running = False

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    async def connect(self):
        """Open the HTTP session and check that Homey answers."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
        logger.info(f"Connecting to Homey at {self.base_url}")
        try:
            await self.get_devices()
        except Exception as e:
            logger.error(f"Failed to connect to Homey: {e}")
            raise
        logger.info("Homey connection established")

    async def close(self):
        """Stop polling and close the session."""
        await self.stop_polling()
        if self.session and self._owns_session and not self.session.closed:
            await self.session.close()
        self.session = None

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        if self.session is None:
            raise HomeyConnectionError("Homey session not connected")
        url = f"{self.base_url}{path}"
        try:
            async with self.session.request(
                method,
                url,
                json=payload,
                headers=self._headers,
                timeout=aiohttp.ClientTimeout(total=HOMEY_REQUEST_TIMEOUT),
            ) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise HomeyResponseError(resp.status, f"{method} {path} failed with {resp.status}: {text}")
                if resp.status == 204:
                    return None
                return await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise HomeyConnectionError(f"{method} {path} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise HomeyConnectionError(f"{method} {path} timed out") from e

    async def get_devices(self) -> Dict[str, Device]:
        """Fetch the device catalog. Differences to the previous fetch are dispatched to listeners."""
        data = await self._request("GET", "/api/manager/devices/device/") or {}
        devices = {device_id: Device.from_api(raw) for device_id, raw in data.items()}
        previous, self.devices = self.devices, devices
        if previous is not None:
            self._dispatch_changes(previous, devices)
        logger.debug(f"Retrieved {len(devices)} devices from Homey")
        return devices

    async def get_drivers(self) -> Dict[str, Driver]:
        data = await self._request("GET", "/api/manager/devices/driver/") or {}
        return {driver_id: Driver.from_api(raw) for driver_id, raw in data.items()}

    async def get_zones(self) -> Dict[str, Zone]:
        data = await self._request("GET", "/api/manager/zones/zone/") or {}
        self._zones = {
            zone_id: Zone(id=zone_id, name=raw.get("name") or zone_id) for zone_id, raw in data.items()
        }
        return dict(self._zones)

    async def get_zone(self, device: Device) -> Optional[Zone]:
        if not device.zone_id:
            return None
        if device.zone_id not in self._zones:
            await self.get_zones()
        return self._zones.get(device.zone_id)

    async def set_capability_value(self, device_id: str, capability_id: str, value: Any):
        logger.debug(f"Setting {capability_id} of device {device_id} to {value!r}")
        await self._request(
            "PUT",
            f"/api/manager/devices/device/{device_id}/capability/{capability_id}",
            {"value": value},
        )

    def make_capability_instance(self, device_id: str, capability_id: str, on_change: ChangeCallback) -> CapabilityInstance:
        instance = CapabilityInstance(self, device_id, capability_id, on_change)
        self._instances.setdefault((device_id, capability_id), []).append(instance)
        return instance

    def _remove_instance(self, instance: CapabilityInstance):
        key = (instance.device_id, instance.capability_id)
        instances = self._instances.get(key, [])
        if instance in instances:
            instances.remove(instance)
        if not instances:
            self._instances.pop(key, None)

    def listener_count(self, device_id: str) -> int:
        return sum(len(v) for (dev, _), v in self._instances.items() if dev == device_id)

    def on_device_event(self, callback: DeviceEventCallback):
        """Register for ("create" | "delete", device) events."""
        self._device_listeners.append(callback)

    def _dispatch_changes(self, previous: Dict[str, Device], current: Dict[str, Device]):
        for device_id, device in current.items():
            if device_id not in previous:
                self._emit_device_event("create", device)
                continue
            old_values = previous[device_id].capability_values()
            for capability_id, value in device.capability_values().items():
                if capability_id in old_values and old_values[capability_id] == value:
                    continue
                for instance in list(self._instances.get((device_id, capability_id), [])):
                    try:
                        instance.on_change(value)
                    except Exception as e:
                        logger.error(
                            f"[Device:{device_id}] Capability listener for {capability_id} failed: {e}",
                            exc_info=True,
                        )
        for device_id, device in previous.items():
            if device_id not in current:
                self._emit_device_event("delete", device)

    def _emit_device_event(self, event: str, device: Device):
        logger.info(f"Device {event}: {device.id} ({device.name})")
        for callback in list(self._device_listeners):
            try:
                callback(event, device)
            except Exception as e:
                logger.error(f"Device {event} listener failed for {device.id}: {e}", exc_info=True)

    def start_polling(self):
        if self._poll_task is None or self._poll_task.done():
            self.running = True
            self._poll_task = asyncio.create_task(self.periodic_refresh_task(), name="homey_poll")

    async def stop_polling(self):
        self.running = False
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def periodic_refresh_task(self):
        """Periodically refresh the device list so capability listeners fire."""
        while self.running:
            await asyncio.sleep(self.poll_interval)
            if not self.running:
                break
            try:
                await self.get_devices()
            except (HomeyConnectionError, HomeyResponseError) as e:
                logger.warning(f"Homey refresh failed: {e}")
