"""Interface to the Matter server node."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from constants import (
    DEFAULT_DISCRIMINATOR,
    DEFAULT_MATTER_PORT,
    DEFAULT_PASSCODE,
    DEFAULT_PRODUCT_ID,
    DEFAULT_PRODUCT_NAME,
    DEFAULT_UNIQUE_ID,
    DEFAULT_VENDOR_ID,
    DEFAULT_VENDOR_NAME,
    DEVICE_TYPE_AGGREGATOR,
)
from models import AttributeTree, EndpointDescription, GatewayState, InboundCommand
from transforms import truncate

CommandCallback = Callable[[InboundCommand], Awaitable[None]]


@dataclass
class NodeConfig:
    """Identity, network and commissioning settings of the bridge node."""
    unique_id: str = DEFAULT_UNIQUE_ID
    serial_number: Optional[str] = None
    port: int = DEFAULT_MATTER_PORT
    passcode: int = DEFAULT_PASSCODE
    discriminator: int = DEFAULT_DISCRIMINATOR
    vendor_id: int = DEFAULT_VENDOR_ID
    vendor_name: str = DEFAULT_VENDOR_NAME
    product_id: int = DEFAULT_PRODUCT_ID
    product_name: str = DEFAULT_PRODUCT_NAME
    device_name: str = DEFAULT_PRODUCT_NAME

    def to_payload(self) -> Dict[str, Any]:
        """ServerNode configuration; identity strings are cut to the Matter length limit."""
        serial_number = self.serial_number or f"homey-{self.unique_id}"
        return {
            "id": self.unique_id,
            "network": {"port": self.port},
            "commissioning": {"passcode": self.passcode, "discriminator": self.discriminator},
            "productDescription": {
                "name": truncate(self.device_name),
                "deviceType": DEVICE_TYPE_AGGREGATOR,
            },
            "basicInformation": {
                "vendorName": truncate(self.vendor_name),
                "vendorId": self.vendor_id,
                "nodeLabel": truncate(self.product_name),
                "productName": truncate(self.product_name),
                "productLabel": truncate(self.product_name),
                "productId": self.product_id,
                "serialNumber": truncate(serial_number),
                "uniqueId": truncate(self.unique_id),
            },
        }


class ProtocolGateway(ABC):
    """Endpoint tree of a Matter bridge node plus its inbound command stream."""

    @abstractmethod
    async def start(self, config: NodeConfig):
        """Create and start the server node. Raises GatewayStartError on failure."""

    @abstractmethod
    async def stop(self):
        ...

    @abstractmethod
    async def add_endpoint(self, endpoint: EndpointDescription):
        ...

    @abstractmethod
    async def remove_endpoint(self, endpoint_id: str):
        ...

    @abstractmethod
    async def set_attributes(self, endpoint_id: str, patch: AttributeTree):
        """Merge a partial attribute tree into an endpoint."""

    @abstractmethod
    def set_command_handler(self, handler: CommandCallback):
        ...

    @property
    @abstractmethod
    def started(self) -> bool:
        ...

    @property
    @abstractmethod
    def state(self) -> GatewayState:
        ...
