"""Narrow read/subscribe/write interface over one Homey device."""

import asyncio
import logging
from typing import Any, Callable, Dict

from capability_mappers import DeviceMapping
from constants import DEVICE_COMMAND_TIMEOUT
from errors import CapabilityWriteFailure, HomeyError, SubscriptionCallbackFailure
from homey_client import CapabilityInstance, HomeyClient
from models import Device, InboundCommand

logger = logging.getLogger(__name__)

CapabilityChangeHandler = Callable[[str, Any], None]


def subscription_key(device_id: str, capability_id: str) -> str:
    return f"{device_id}/{capability_id}"


class DeviceAdapter:
    """Wraps one Homey device: cached values, one subscription per capability, writes that never raise."""

    def __init__(self, homey: HomeyClient, device: Device, write_timeout: float = DEVICE_COMMAND_TIMEOUT):
        self.homey = homey
        self.device = device
        self.device_id = device.id
        self.write_timeout = write_timeout
        self.values: Dict[str, Any] = device.capability_values()
        self._subscriptions: Dict[str, CapabilityInstance] = {}

    @property
    def subscriptions(self) -> Dict[str, CapabilityInstance]:
        return dict(self._subscriptions)

    def read(self, capability_id: str) -> Any:
        return self.values.get(capability_id)

    def is_setable(self, capability_id: str) -> bool:
        capability = self.device.capabilities.get(capability_id)
        return capability is not None and capability.setable

    def subscribe(self, capability_id: str, on_change: CapabilityChangeHandler) -> CapabilityInstance:
        """Listen for changes of one capability. Subscribing again returns the existing handle."""
        key = subscription_key(self.device_id, capability_id)
        existing = self._subscriptions.get(key)
        if existing is not None:
            return existing

        def handler(value: Any):
            self.values[capability_id] = value
            try:
                on_change(capability_id, value)
            except Exception as e:
                failure = SubscriptionCallbackFailure(self.device_id, capability_id, str(e))
                logger.error(str(failure), exc_info=True)

        instance = self.homey.make_capability_instance(self.device_id, capability_id, handler)
        self._subscriptions[key] = instance
        logger.debug(f"Subscribed to {key}")
        return instance

    def unsubscribe(self, capability_id: str):
        """Drop a subscription. Unknown subscriptions and removed devices are not errors."""
        instance = self._subscriptions.pop(subscription_key(self.device_id, capability_id), None)
        if instance is None:
            return
        try:
            instance.destroy()
        except HomeyError as e:
            logger.debug(f"[Device:{self.device_id}] {capability_id} listener already gone: {e}")

    def release_all(self):
        for key in list(self._subscriptions):
            self.unsubscribe(key.rsplit("/", 1)[1])

    async def _write(self, capability_id: str, value: Any):
        try:
            await asyncio.wait_for(
                self.homey.set_capability_value(self.device_id, capability_id, value),
                timeout=self.write_timeout,
            )
        except asyncio.TimeoutError as e:
            raise CapabilityWriteFailure(self.device_id, capability_id, value, "timed out") from e
        except HomeyError as e:
            raise CapabilityWriteFailure(self.device_id, capability_id, value, str(e)) from e
        self.values[capability_id] = value

    async def set_capability_value(self, capability_id: str, value: Any) -> bool:
        """Write one capability. Failures are logged and reported as False."""
        try:
            await self._write(capability_id, value)
        except CapabilityWriteFailure as e:
            logger.error(str(e))
            return False
        return True

    async def set_capability_values(self, writes: Dict[str, Any]) -> bool:
        """Write several capabilities together.

        If any write fails, the ones that went through are restored to their
        previous values so the device does not end up half-updated.
        """
        previous = {capability_id: self.values.get(capability_id) for capability_id in writes}
        results = await asyncio.gather(
            *(self._write(capability_id, value) for capability_id, value in writes.items()),
            return_exceptions=True,
        )
        failed = []
        succeeded = []
        for (capability_id, value), result in zip(writes.items(), results):
            if isinstance(result, CapabilityWriteFailure):
                logger.error(str(result))
                failed.append(capability_id)
            elif isinstance(result, Exception):
                logger.error(
                    f"[Device:{self.device_id}] Error setting {capability_id} to {value!r}: {result}",
                    exc_info=result,
                )
                failed.append(capability_id)
            else:
                succeeded.append(capability_id)
        if not failed:
            return True

        for capability_id in succeeded:
            old_value = previous[capability_id]
            if old_value is None:
                continue
            logger.warning(f"[Device:{self.device_id}] Restoring {capability_id} to {old_value!r}")
            try:
                await self._write(capability_id, old_value)
            except CapabilityWriteFailure as e:
                logger.error(f"Restore failed: {e}")
        return False


class CommandHandler:
    """Translates inbound Matter commands for one device into capability writes."""

    def __init__(self, adapter: DeviceAdapter, mapping: DeviceMapping):
        self.adapter = adapter
        self.mapping = mapping

    async def handle(self, command: InboundCommand) -> bool:
        device_id = self.adapter.device_id
        if not self.mapping.supports(command.cluster, command.command):
            logger.warning(f"[Device:{device_id}] Unsupported command {command.cluster}.{command.command}")
            return False
        try:
            writes = self.mapping.reverse_writes(
                command.cluster, command.command, command.args, self.adapter.values
            )
        except ValueError as e:
            logger.warning(f"[Device:{device_id}] Ignoring {command.cluster}.{command.command}: {e}")
            return False

        writes = self._filter(writes)
        if not writes:
            return False
        logger.debug(f"[Device:{device_id}] {command.cluster}.{command.command} -> {writes}")
        if len(writes) == 1:
            ((capability_id, value),) = writes.items()
            return await self.adapter.set_capability_value(capability_id, value)
        return await self.adapter.set_capability_values(writes)

    def _filter(self, writes: Dict[str, Any]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for capability_id, value in writes.items():
            if value is None:
                continue
            if not self.adapter.is_setable(capability_id):
                logger.warning(f"[Device:{self.adapter.device_id}] {capability_id} is read-only, not writing")
                continue
            result[capability_id] = value
        return result
