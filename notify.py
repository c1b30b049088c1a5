import asyncio
import logging
from datetime import timedelta

from dbus_next.aio.message_bus import MessageBus
from dbus_next.constants import BusType
from dbus_next.errors import (
    AuthError,
    DBusError,
    InterfaceNotFoundError,
    InvalidAddressError,
)

from errors import NotifyError

NTFY_NAME = "org.freedesktop.Notifications"
NTFY_PATH = "/org/freedesktop/Notifications"

APP_ICON = "battery-full"

INT32_MAX = 2**31 - 1
INT32_MIN = -(2**31)

logger = logging.getLogger(__name__)


def timeout_to_ms(timeout: timedelta) -> int:
    ms = int(timeout / timedelta(milliseconds=1))
    return max(INT32_MIN, min(INT32_MAX, ms))


class Notifier:
    def __init__(self, icon: str = APP_ICON):
        self.icon = icon

    async def send(self, summary: str, body: str, timeout: timedelta) -> int:
        try:
            session_bus = await MessageBus(bus_type=BusType.SESSION).connect()
        except (OSError, EOFError, AuthError, InvalidAddressError, DBusError) as e:
            raise NotifyError(f"Session bus connection failed: {e}") from e

        # introspect times out after 30s; a dropped connection fails pending calls
        try:
            ntfy_introspect = await session_bus.introspect(NTFY_NAME, NTFY_PATH)
            ntfy_proxy = session_bus.get_proxy_object(
                NTFY_NAME, NTFY_PATH, ntfy_introspect
            )
            interface = ntfy_proxy.get_interface(NTFY_NAME)

            # app_name and replaces_id left empty, no actions, no hints
            notification_id = await interface.call_notify(
                "",
                0,
                self.icon,
                summary,
                body,
                [],
                {},
                timeout_to_ms(timeout),
            )
        except (
            InterfaceNotFoundError,
            DBusError,
            asyncio.TimeoutError,
            OSError,
            EOFError,
        ) as e:
            raise NotifyError(f"Failed to send notification '{summary}': {e}") from e
        finally:
            session_bus.disconnect()

        logger.debug(f"Sent notification {notification_id}: {summary} ({body})")
        return notification_id
