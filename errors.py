"""Error types for the Homey2Matter bridge."""

from typing import Any


class BridgeError(Exception):
    """Base error for bridge failures."""


class DeviceNotFound(BridgeError):
    """Device id is not present in the Homey device catalog."""

    def __init__(self, device_id: str):
        super().__init__(f"Device {device_id} not found")
        self.device_id = device_id


class AlreadyStarted(BridgeError):
    """start() was called on a bridge that is already running."""


class SynthesisFailure(BridgeError):
    """An endpoint could not be built or registered for a device."""

    def __init__(self, device_id: str, reason: str):
        super().__init__(f"Could not bridge device {device_id}: {reason}")
        self.device_id = device_id
        self.reason = reason


class CapabilityWriteFailure(BridgeError):
    """Writing a capability value to a Homey device failed."""

    def __init__(self, device_id: str, capability_id: str, value: Any, reason: str):
        super().__init__(
            f"[Device:{device_id}] Error setting {capability_id} to {value!r}: {reason}"
        )
        self.device_id = device_id
        self.capability_id = capability_id
        self.value = value


class SubscriptionCallbackFailure(BridgeError):
    """A capability change handler raised."""

    def __init__(self, device_id: str, capability_id: str, reason: str):
        super().__init__(
            f"[Device:{device_id}] Error handling {capability_id} change: {reason}"
        )
        self.device_id = device_id
        self.capability_id = capability_id


class GatewayStartError(BridgeError):
    """The Matter server node could not be created."""


class HomeyError(Exception):
    """Base error for Homey Web API failures."""


class HomeyConnectionError(HomeyError):
    """Network connection to Homey failed."""


class HomeyResponseError(HomeyError):
    """Homey returned an error response."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
