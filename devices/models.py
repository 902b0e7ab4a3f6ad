"""Data types shared by discovery, connection and command modules."""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


@dataclass
class Device:
    """A Samsung TV on the local network. The ip is the addressable key."""

    ip: str
    mac: str = ""
    friendly_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"ip": self.ip, "mac": self.mac, "friendlyName": self.friendly_name}


class SavedConnection(BaseModel):
    """The single remembered pairing, stored as JSON on disk."""

    model_config = ConfigDict(populate_by_name=True)

    ip: str
    mac: str = ""
    friendly_name: str | None = Field(default=None, alias="friendlyName")
    token: str | None = None

    @classmethod
    def from_device(cls, device: Device, token: str | None) -> "SavedConnection":
        return cls(ip=device.ip, mac=device.mac, friendly_name=device.friendly_name, token=token)

    def to_device(self) -> Device:
        return Device(ip=self.ip, mac=self.mac, friendly_name=self.friendly_name)
