"""Bridge manager: keeps enabled Homey devices exposed as Matter endpoints."""

import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from functools import partial
from typing import Any, AsyncIterator, Coroutine, Dict, List, Optional, Set

from capability_mappers import DeviceMapping, MapperRegistry, build_default_registry, endpoint_id
from constants import CLUSTER_BRIDGED_BASIC_INFORMATION, DEVICE_COMMAND_TIMEOUT
from device_adapter import CapabilityChangeHandler, CommandHandler, DeviceAdapter
from errors import AlreadyStarted, DeviceNotFound, SynthesisFailure
from gateway import NodeConfig, ProtocolGateway
from homey_client import CapabilityInstance, HomeyClient
from models import (
    Device,
    DeviceListing,
    Driver,
    EndpointDescription,
    EndpointShape,
    EntryState,
    GatewayState,
    InboundCommand,
)
from settings_store import EnabledDeviceSet, SettingsStore
from transforms import truncate

logger = logging.getLogger(__name__)


@dataclass
class BridgeEntry:
    """Per-device bridge state: its endpoints and the subscriptions feeding them."""
    device_id: str
    device: Device
    mapping: DeviceMapping
    adapter: DeviceAdapter
    handler: CommandHandler
    state: EntryState = EntryState.INITIALIZING
    endpoint_ids: Dict[str, str] = field(default_factory=dict)  # shape suffix -> endpoint id

    @property
    def subscriptions(self) -> Dict[str, CapabilityInstance]:
        return self.adapter.subscriptions

    @property
    def accepting_updates(self) -> bool:
        return self.state in (EntryState.INITIALIZING, EntryState.ACTIVE)

    def ensure_subscribed(self, capability_id: str, on_change: CapabilityChangeHandler) -> CapabilityInstance:
        return self.adapter.subscribe(capability_id, on_change)

    def release_all(self):
        self.adapter.release_all()


class BridgeManager:
    """Owns the enabled device set, the bridged endpoints and their subscriptions."""

    def __init__(
        self,
        homey: HomeyClient,
        gateway: ProtocolGateway,
        settings: SettingsStore,
        node_config: Optional[NodeConfig] = None,
        registry: Optional[MapperRegistry] = None,
        timeout: float = DEVICE_COMMAND_TIMEOUT,
    ):
        self.homey = homey
        self.gateway = gateway
        self.node_config = node_config or NodeConfig()
        self.registry = registry or build_default_registry()
        self.timeout = timeout
        self.enabled = EnabledDeviceSet(settings)
        self.drivers: Dict[str, Driver] = {}

        self._entries: Dict[str, BridgeEntry] = {}
        self._endpoint_index: Dict[str, str] = {}  # endpoint id -> device id
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._started = False
        self._starting = False

        self.homey.on_device_event(self._on_device_event)

    @property
    def started(self) -> bool:
        return self._started

    @property
    def devices(self) -> Dict[str, Device]:
        """Cached Homey device catalog."""
        return self.homey.devices or {}

    def entry(self, device_id: str) -> Optional[BridgeEntry]:
        return self._entries.get(device_id)

    def entries(self) -> Dict[str, BridgeEntry]:
        return dict(self._entries)

    @asynccontextmanager
    async def _device_lock(self, device_id: str) -> AsyncIterator[None]:
        """Serialize lifecycle calls for one device.

        The lock is dropped once nobody holds or waits for it and the device is
        neither bridged nor enabled, so unknown ids do not accumulate locks.
        """
        lock = self._locks.get(device_id)
        if lock is None:
            lock = self._locks[device_id] = asyncio.Lock()
        self._lock_users[device_id] = self._lock_users.get(device_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            users = self._lock_users[device_id] - 1
            if users:
                self._lock_users[device_id] = users
            else:
                del self._lock_users[device_id]
                if device_id not in self._entries and device_id not in self.enabled:
                    del self._locks[device_id]

    async def start(self):
        """Start the Matter node, load the Homey catalogs and bridge every enabled device."""
        if self._started or self._starting:
            raise AlreadyStarted("Bridge already started")
        self._starting = True
        try:
            self.gateway.set_command_handler(self._on_command)
            await self.gateway.start(self.node_config)

            try:
                await self.homey.connect()
                await self.homey.get_devices()
                self.drivers = await self.homey.get_drivers()
            except Exception:
                await self.gateway.stop()
                raise
            self._started = True
        finally:
            self._starting = False

        enabled = sorted(self.enabled.ids())
        present = [device_id for device_id in enabled if device_id in self.devices]
        for device_id in enabled:
            if device_id not in self.devices:
                logger.warning(f"Enabled device {device_id} not found in Homey, skipping")

        await asyncio.gather(*(self._restore_device(device_id) for device_id in present))
        self.homey.start_polling()
        logger.info(f"Bridge started with {len(self._entries)} of {len(enabled)} enabled devices")

    async def _restore_device(self, device_id: str):
        """Bridge one enabled device at start. Failures are contained to that device."""
        try:
            async with self._device_lock(device_id):
                if device_id in self._entries:
                    return
                try:
                    await self._initialize(self.devices[device_id])
                except SynthesisFailure as e:
                    logger.error(str(e))
                    await self.enabled.discard(device_id)
        except Exception as e:
            logger.error(f"Error restoring device {device_id}: {e}", exc_info=True)

    async def stop(self):
        """Release every entry. The persisted enabled set is left as it is."""
        if not self._started:
            return
        self._started = False
        await self.homey.stop_polling()
        for device_id in list(self._entries):
            async with self._device_lock(device_id):
                entry = self._entries.get(device_id)
                if entry is not None:
                    await self._uninitialize(entry)
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.gateway.stop()
        logger.info("Bridge stopped")

    async def enable_device(self, device_id: str):
        """Expose a device to Matter. Raises DeviceNotFound or SynthesisFailure."""
        if not self._started or not self.gateway.started:
            logger.warning(f"Bridge not started, ignoring enable of device {device_id}")
            return
        async with self._device_lock(device_id):
            if device_id in self._entries:
                logger.debug(f"Device {device_id} already enabled")
                return
            device = self.devices.get(device_id)
            if device is None:
                raise DeviceNotFound(device_id)
            await self.enabled.add(device_id)
            try:
                await self._initialize(device)
            except SynthesisFailure as e:
                logger.error(str(e))
                await self.enabled.discard(device_id)
                raise

    async def disable_device(self, device_id: str):
        """Stop exposing a device. Raises DeviceNotFound for ids that are neither known nor enabled."""
        async with self._device_lock(device_id):
            entry = self._entries.get(device_id)
            was_enabled = await self.enabled.discard(device_id)
            if entry is None:
                if not was_enabled and device_id not in self.devices:
                    raise DeviceNotFound(device_id)
                logger.debug(f"Device {device_id} not enabled")
                return
            await self._uninitialize(entry)

    async def _initialize(self, device: Device):
        try:
            mapping = self.registry.synthesize(device)
        except Exception as e:
            logger.error(f"Error synthesizing device {device.id} ({device.name}): {e}", exc_info=True)
            raise SynthesisFailure(device.id, str(e) or type(e).__name__) from e
        if mapping is None:
            raise SynthesisFailure(device.id, f"no endpoint mapping for class '{device.effective_class}'")

        adapter = DeviceAdapter(self.homey, device, self.timeout)
        entry = BridgeEntry(
            device_id=device.id,
            device=device,
            mapping=mapping,
            adapter=adapter,
            handler=CommandHandler(adapter, mapping),
        )
        self._entries[device.id] = entry
        try:
            for shape in mapping.shapes:
                description = self.describe_endpoint(device, shape)
                await asyncio.wait_for(self.gateway.add_endpoint(description), timeout=self.timeout)
                entry.endpoint_ids[shape.suffix] = description.id
                self._endpoint_index[description.id] = device.id
            for capability_id in mapping.capabilities:
                entry.ensure_subscribed(capability_id, partial(self._on_capability_change, entry))
        except Exception as e:
            logger.error(f"Error initializing device {device.id} ({device.name}): {e}", exc_info=True)
            await self._teardown(entry)
            raise SynthesisFailure(device.id, str(e) or type(e).__name__) from e

        entry.state = EntryState.ACTIVE
        logger.info(f"Added device {device.id} ({device.name}) as {mapping.rule}")

    async def _uninitialize(self, entry: BridgeEntry):
        entry.state = EntryState.UNINITIALIZING
        await self._teardown(entry)
        logger.info(f"Removed device {entry.device_id} ({entry.device.name})")

    async def _teardown(self, entry: BridgeEntry):
        entry.release_all()
        for eid in list(entry.endpoint_ids.values()):
            self._endpoint_index.pop(eid, None)
            try:
                await asyncio.wait_for(self.gateway.remove_endpoint(eid), timeout=self.timeout)
            except Exception as e:
                logger.error(f"Error removing endpoint {eid}: {e}", exc_info=True)
        entry.endpoint_ids.clear()
        entry.state = EntryState.ABSENT
        if self._entries.get(entry.device_id) is entry:
            del self._entries[entry.device_id]

    @staticmethod
    def describe_endpoint(device: Device, shape: EndpointShape) -> EndpointDescription:
        attributes = copy.deepcopy(shape.attributes)
        attributes[CLUSTER_BRIDGED_BASIC_INFORMATION] = {
            "nodeLabel": truncate(device.name),
            "productName": truncate(device.name),
            "productLabel": truncate(device.name),
            "serialNumber": truncate(device.id),
            "reachable": device.available,
        }
        return EndpointDescription(
            id=endpoint_id(device.id, shape.suffix),
            device_type=shape.device_type,
            clusters=list(shape.clusters) + [CLUSTER_BRIDGED_BASIC_INFORMATION],
            attributes=attributes,
        )

    def _on_capability_change(self, entry: BridgeEntry, capability_id: str, value: Any):
        if not entry.accepting_updates:
            logger.debug(f"[Device:{entry.device_id}] Dropping {capability_id} change, entry {entry.state.value}")
            return
        logger.debug(f"[Device:{entry.device_id}] Capability {capability_id} changed to {value!r}")
        self._spawn(self._forward(entry, capability_id, value), f"forward:{entry.device_id}:{capability_id}")

    async def _forward(self, entry: BridgeEntry, capability_id: str, value: Any):
        patches = entry.mapping.forward_patches(capability_id, value, entry.adapter.values)
        for suffix, patch in patches:
            if not entry.accepting_updates:
                logger.debug(f"[Device:{entry.device_id}] Entry torn down, dropping {capability_id} update")
                return
            eid = entry.endpoint_ids.get(suffix)
            if eid is None:
                continue
            await asyncio.wait_for(self.gateway.set_attributes(eid, patch), timeout=self.timeout)

    async def _on_command(self, command: InboundCommand):
        device_id = self._endpoint_index.get(command.endpoint_id)
        entry = self._entries.get(device_id) if device_id else None
        if entry is None or entry.state is not EntryState.ACTIVE:
            logger.warning(f"Dropping {command.cluster}.{command.command} for inactive endpoint {command.endpoint_id}")
            return
        self._spawn(entry.handler.handle(command), f"command:{command.endpoint_id}:{command.command}")

    def _on_device_event(self, event: str, device: Device):
        if event != "delete" or not self._started:
            return
        if device.id in self._entries or device.id in self.enabled:
            logger.info(f"Device {device.id} was removed from Homey, disabling")
            self._spawn(self.disable_device(device.id), f"delete:{device.id}")

    def _spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Task {task.get_name()} failed: {exc}", exc_info=exc)

    async def drain(self):
        """Wait until all dispatched work has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def get_state(self) -> GatewayState:
        """Commissioning status; not ready until start() has completed."""
        if not self._started or not self.gateway.started:
            return GatewayState()
        return self.gateway.state

    async def get_devices(self) -> List[DeviceListing]:
        listings = []
        for device in sorted(self.devices.values(), key=lambda d: d.name.lower()):
            zone = await self.homey.get_zone(device)
            icon_url = device.icon_url
            if icon_url is None and device.driver_id in self.drivers:
                icon_url = self.drivers[device.driver_id].icon_url
            listings.append(
                DeviceListing(
                    id=device.id,
                    name=device.name,
                    icon_url=icon_url,
                    is_selected=device.id in self.enabled,
                    zone_name=zone.name if zone else None,
                )
            )
        return listings
