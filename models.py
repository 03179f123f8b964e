"""Data models and dataclasses."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from constants import DEVICE_TYPE_IDS


@dataclass
class Capability:
    """One capability of a Homey device."""
    id: str
    value: Any = None  # None if unknown
    type: Optional[str] = None  # "boolean" | "number" | "enum" | "string"
    setable: bool = True
    min: Optional[float] = None
    max: Optional[float] = None

    @classmethod
    def from_api(cls, capability_id: str, data: Dict[str, Any]) -> "Capability":
        return cls(
            id=capability_id,
            value=data.get("value"),
            type=data.get("type"),
            setable=bool(data.get("setable", True)),
            min=data.get("min"),
            max=data.get("max"),
        )


@dataclass
class Device:
    """A Homey device as seen through the Web API."""
    id: str
    name: str
    device_class: str
    capabilities: Dict[str, Capability] = field(default_factory=dict)
    virtual_class: Optional[str] = None
    driver_id: Optional[str] = None
    zone_id: Optional[str] = None
    icon_url: Optional[str] = None
    available: bool = True

    @property
    def effective_class(self) -> str:
        return self.virtual_class or self.device_class

    @property
    def capability_ids(self) -> FrozenSet[str]:
        return frozenset(self.capabilities)

    def capability_values(self) -> Dict[str, Any]:
        return {cap_id: cap.value for cap_id, cap in self.capabilities.items()}

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Device":
        caps_obj: Dict[str, Any] = data.get("capabilitiesObj") or {}
        capabilities = {
            cap_id: Capability.from_api(cap_id, caps_obj.get(cap_id) or {})
            for cap_id in (data.get("capabilities") or list(caps_obj))
        }
        icon = data.get("iconObj") or {}
        return cls(
            id=str(data["id"]),
            name=data.get("name") or str(data["id"]),
            device_class=data.get("class") or "other",
            capabilities=capabilities,
            virtual_class=data.get("virtualClass"),
            driver_id=data.get("driverId"),
            zone_id=data.get("zone"),
            icon_url=icon.get("url"),
            available=bool(data.get("available", True)),
        )


@dataclass
class Driver:
    """A Homey driver, used for device icons."""
    id: str
    name: str
    icon_url: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Driver":
        icon = data.get("iconObj") or {}
        return cls(id=str(data["id"]), name=data.get("name") or "", icon_url=icon.get("url"))


@dataclass
class Zone:
    """A Homey zone."""
    id: str
    name: str


AttributeTree = Dict[str, Dict[str, Any]]  # cluster -> attribute -> value


@dataclass(frozen=True)
class EndpointShape:
    """What to expose for one endpoint: device type, clusters and initial attributes."""
    device_type: str
    clusters: Tuple[str, ...]
    attributes: AttributeTree = field(default_factory=dict)
    suffix: str = ""  # "" for the device's primary endpoint


@dataclass
class EndpointDescription:
    """An endpoint as handed to the protocol gateway."""
    id: str
    device_type: str
    clusters: List[str]
    attributes: AttributeTree

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "deviceType": self.device_type,
            "deviceTypeId": DEVICE_TYPE_IDS.get(self.device_type),
            "clusters": self.clusters,
            "attributes": self.attributes,
        }


@dataclass
class InboundCommand:
    """Command received from the Matter side for one endpoint."""
    endpoint_id: str
    cluster: str
    command: str  # command name, or "<attribute>$Changed" for attribute writes
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GatewayState:
    """Commissioning status reported by the Matter server node."""
    ready: bool = False
    commissioned: bool = False
    qr_pairing_code: Optional[str] = None
    manual_pairing_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ready": self.ready,
            "commissioned": self.commissioned,
            "qrPairingCode": self.qr_pairing_code,
            "manualPairingCode": self.manual_pairing_code,
        }


@dataclass
class DeviceListing:
    """Device summary for the management surface."""
    id: str
    name: str
    icon_url: Optional[str]
    is_selected: bool
    zone_name: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "iconUrl": self.icon_url,
            "isSelected": self.is_selected,
            "zoneName": self.zone_name,
        }


class EntryState(Enum):
    """Lifecycle of a bridged device."""
    ABSENT = "absent"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    UNINITIALIZING = "uninitializing"
