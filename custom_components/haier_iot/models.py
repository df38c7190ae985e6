"""Data models for Haier IoT integration."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class ConnectionStatus(StrEnum):
    """Lifecycle state of the websocket session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"


class ValueRangeType(StrEnum):
    """Kinds of constraint an attribute value can carry."""

    STEP = "STEP"
    LIST = "LIST"
    DATE = "DATE"
    TIME = "TIME"


@dataclass
class TokenInfo:
    """Credential returned by a successful login.

    Attributes:
        account_token: Account level token.
        uhome_access_token: Token sent as ``accessToken`` on every request.
        refresh_token: Refresh token issued with the access token.
        uhome_user_id: User id on the uhome platform.
        uoc_user_id: User id on the account platform.
        token_type: Token type reported by the server.
        expires_in: Validity window in seconds.
        expires_at: Expiry as a millisecond epoch timestamp.

    """

    account_token: str
    uhome_access_token: str
    refresh_token: str
    uhome_user_id: str
    uoc_user_id: str
    token_type: str
    expires_in: int
    expires_at: int

    def is_expired(self, now_ms: int) -> bool:
        """Return True once ``now_ms`` has reached the expiry."""
        return now_ms >= self.expires_at

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenInfo:
        return cls(
            account_token=data["accountToken"],
            uhome_access_token=data["uhomeAccessToken"],
            refresh_token=data["refreshToken"],
            uhome_user_id=data["uhomeUserId"],
            uoc_user_id=data["uocUserId"],
            token_type=data["tokenType"],
            expires_in=data["expiresIn"],
            expires_at=data["expiresAt"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "accountToken": self.account_token,
            "uhomeAccessToken": self.uhome_access_token,
            "refreshToken": self.refresh_token,
            "uhomeUserId": self.uhome_user_id,
            "uocUserId": self.uoc_user_id,
            "tokenType": self.token_type,
            "expiresIn": self.expires_in,
            "expiresAt": self.expires_at,
        }


@dataclass(frozen=True)
class FamilyInfo:
    """A family (home) the account created or joined."""

    family_id: str
    family_name: str


@dataclass(frozen=True)
class DeviceInfo:
    """A device bound to a family.

    Attributes:
        device_id: Unique device identifier.
        device_name: Human-readable device name.
        device_type: Device type code, if reported.
        wifi_type: Wifi module type, if reported.
        family_id: Owning family identifier, if reported.
        online: Online flag, if reported.
        raw: The untouched device record.

    """

    device_id: str
    device_name: str
    device_type: str | None = None
    wifi_type: str | None = None
    family_id: str | None = None
    online: bool | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass
class ValueRange:
    """Constraint on an attribute value."""

    type: ValueRangeType
    data_step: dict[str, Any] | None = None
    data_list: list[dict[str, Any]] | None = None
    data_date: dict[str, Any] | None = None
    data_time: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValueRange:
        return cls(
            type=ValueRangeType(data["type"]),
            data_step=data.get("dataStep"),
            data_list=data.get("dataList"),
            data_date=data.get("dataDate"),
            data_time=data.get("dataTime"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value}
        if self.data_step is not None:
            data["dataStep"] = self.data_step
        if self.data_list is not None:
            data["dataList"] = self.data_list
        if self.data_date is not None:
            data["dataDate"] = self.data_date
        if self.data_time is not None:
            data["dataTime"] = self.data_time
        return data


@dataclass
class Attribute:
    """A single named property of a device digital model."""

    name: str
    description: str
    readable: bool
    writable: bool
    invisible: bool
    value_range: ValueRange
    value: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Attribute:
        return cls(
            name=data["name"],
            description=data.get("desc") or "",
            readable=data["readable"],
            writable=data["writable"],
            invisible=data.get("invisible", False),
            value_range=ValueRange.from_dict(data["valueRange"]),
            value=data.get("value"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "desc": self.description,
            "readable": self.readable,
            "writable": self.writable,
            "invisible": self.invisible,
            "valueRange": self.value_range.to_dict(),
        }
        if self.value is not None:
            data["value"] = self.value
        return data


@dataclass
class DigitalModel:
    """Server-maintained state snapshot of one device."""

    alarms: list[dict[str, Any]] = field(default_factory=list)
    attributes: list[Attribute] = field(default_factory=list)

    def attribute(self, name: str) -> Attribute | None:
        """Return the attribute called ``name``, if the model has one."""
        for attribute in self.attributes:
            if attribute.name == name:
                return attribute
        return None

    def set_value(self, name: str, value: str) -> bool:
        """Set the current value of attribute ``name``.

        Returns:
            True if the attribute exists and was updated, False otherwise.

        """
        attribute = self.attribute(name)
        if attribute is None:
            return False
        attribute.value = value
        return True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DigitalModel:
        return cls(
            alarms=list(data.get("alarms") or []),
            attributes=[Attribute.from_dict(a) for a in data.get("attributes", [])],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "alarms": self.alarms,
            "attributes": [attribute.to_dict() for attribute in self.attributes],
        }


@dataclass
class DigitalModelUpdate:
    """Represents a device digital model update."""

    device_id: str
    model: DigitalModel
