import asyncio
import logging
from enum import IntEnum
from typing import NamedTuple

from dbus_next.aio.message_bus import MessageBus
from dbus_next.constants import BusType
from dbus_next.errors import (
    AuthError,
    DBusError,
    InterfaceNotFoundError,
    InvalidAddressError,
)
from dbus_next.signature import Variant

from errors import ReadError

UPOWER_NAME = "org.freedesktop.UPower"
DISPLAY_DEVICE_PATH = "/org/freedesktop/UPower/devices/DisplayDevice"
DEVICE_IFACE = "org.freedesktop.UPower.Device"
PROPS_IFACE = "org.freedesktop.DBus.Properties"

logger = logging.getLogger(__name__)


class ChargeState(IntEnum):
    CHARGING = 1
    DISCHARGING = 2
    UNKNOWN = 5

    @classmethod
    def from_code(cls, code: int) -> "ChargeState":
        # UPower also reports Empty, Fully Charged, Pending...; we only track two
        if code == cls.CHARGING:
            return cls.CHARGING
        if code == cls.DISCHARGING:
            return cls.DISCHARGING
        return cls.UNKNOWN


class BatteryStatus(NamedTuple):
    percentage: float = 0.0
    state: ChargeState = ChargeState.UNKNOWN


def _expect(value, signature: str, name: str):
    if not isinstance(value, Variant) or value.signature != signature:
        got = value.signature if isinstance(value, Variant) else type(value).__name__
        raise ReadError(f"{name}: expected '{signature}' value, got '{got}'")
    return value.value


class UPowerWrapper:
    """Reads the aggregate battery status from UPower's DisplayDevice.

    Every call opens its own system bus connection and closes it before
    returning, so no connection outlives a single poll.
    """

    def __init__(self, device_path: str = DISPLAY_DEVICE_PATH) -> None:
        self.device_path = device_path

    async def _open_bus(self) -> MessageBus:
        try:
            return await MessageBus(bus_type=BusType.SYSTEM).connect()
        except (OSError, EOFError, AuthError, InvalidAddressError, DBusError) as e:
            raise ReadError(f"System bus connection failed: {e}") from e

    async def connect(self) -> None:
        bus = await self._open_bus()
        bus.disconnect()
        logger.debug("System bus reachable")

    async def get_battery_status(self) -> BatteryStatus:
        bus = await self._open_bus()
        # introspect times out after 30s; a dropped connection fails pending calls
        try:
            introspection = await bus.introspect(UPOWER_NAME, self.device_path)
            proxy = bus.get_proxy_object(UPOWER_NAME, self.device_path, introspection)
            props = proxy.get_interface(PROPS_IFACE)

            percentage = _expect(
                await props.call_get(DEVICE_IFACE, "Percentage"), "d", "Percentage"
            )
            state = _expect(await props.call_get(DEVICE_IFACE, "State"), "u", "State")
        except (
            InterfaceNotFoundError,
            DBusError,
            asyncio.TimeoutError,
            OSError,
            EOFError,
        ) as e:
            raise ReadError(f"UPower property query failed: {e}") from e
        finally:
            bus.disconnect()

        return BatteryStatus(percentage, ChargeState.from_code(state))
