import asyncio
import logging
import argparse
import sys
from datetime import timedelta

from errors import MonitorError, ReadError
from upower_api import UPowerWrapper, BatteryStatus, ChargeState
from notify import Notifier

LOW_LEVEL = 10.0
INTERVAL = 1.0

STATE_TIMEOUT = timedelta(seconds=1)
LOW_TIMEOUT = timedelta(hours=1)

LOG_FORMAT = "%(asctime)s %(filename)s:%(lineno)d: %(message)s"

logger = logging.getLogger("battery-monitor")


def positive_float(value):
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive number")
    return number


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Battery Monitor polls UPower over dbus_next and sends notifications on charge state changes and low battery"
    )

    parser.add_argument("--debug", action="store_true", help="Enable debugging mode")
    parser.add_argument(
        "-i",
        "--interval",
        type=positive_float,
        default=INTERVAL,
        help=f"Seconds between battery checks (default: {INTERVAL})",
    )
    parser.add_argument(
        "-ll",
        "--low-level",
        type=float,
        default=LOW_LEVEL,
        help=f"Battery low level (default: {LOW_LEVEL})",
    )
    return parser.parse_args(argv)


def format_percentage(pct: float) -> str:
    return f"{pct:.2f}%"


# --- Main Class ---
class BatteryMonitor:
    def __init__(
        self,
        upower: UPowerWrapper,
        notifier: Notifier,
        low_level: float = LOW_LEVEL,
        interval: float = INTERVAL,
    ) -> None:
        self.upower = upower
        self.notifier = notifier
        self.low_level = low_level
        self.interval = interval

        # --- State Tracking ---
        self.last_status = BatteryStatus()

    async def check_power_levels(self):
        """Poll the battery once and notify about what changed since the last poll.

        Raises ReadError or NotifyError; in both cases ``last_status`` keeps
        the previous reading.
        """
        status = await self.upower.get_battery_status()
        body = format_percentage(status.percentage)

        logger.debug(f"percentage: {status.percentage}")
        logger.debug(f"state: {status.state.name}")

        if status.state != self.last_status.state:
            if status.state == ChargeState.DISCHARGING:
                await self.notifier.send("Battery Discharging", body, STATE_TIMEOUT)
            elif status.state == ChargeState.CHARGING:
                await self.notifier.send("Battery Charging", body, STATE_TIMEOUT)

        # falling edge only
        if (
            self.last_status.percentage >= self.low_level
            and status.percentage < self.low_level
        ):
            await self.notifier.send("Battery Low! Charge now!", body, LOW_TIMEOUT)

        self.last_status = status

    async def tick(self) -> bool:
        try:
            await self.check_power_levels()
        except MonitorError as e:
            logger.warning(f"failed to check power levels: {e}")
            return False
        return True

    async def run(self):
        loop = asyncio.get_running_loop()
        deadline = loop.time()

        while True:
            deadline += self.interval
            await asyncio.sleep(max(0.0, deadline - loop.time()))
            await self.tick()

            # drop firings that elapsed while the tick was running
            now = loop.time()
            if now > deadline + self.interval:
                missed = int((now - deadline) // self.interval)
                deadline += missed * self.interval
                logger.debug(f"Skipped {missed} missed checks")


async def start(args) -> int:
    upower = UPowerWrapper()
    try:
        await upower.connect()
    except ReadError as e:
        logger.critical(f"Monitor setup failed: {e}")
        return 1

    monitor = BatteryMonitor(
        upower, Notifier(), low_level=args.low_level, interval=args.interval
    )
    logger.info(f"Battery Monitor running every {args.interval}s on {upower.device_path}")
    await monitor.run()
    return 0


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level="DEBUG" if args.debug else "INFO", format=LOG_FORMAT
    )

    try:
        sys.exit(asyncio.run(start(args)))
    except KeyboardInterrupt:
        logger.info("Service stopped by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
