#!/usr/bin/env python3
"""Poll field devices on one comm link and report results."""

import argparse
import logging
import signal
import sys
import threading
from enum import IntEnum
from types import FrameType
from typing import Any

import serial

from common.connection import Device, LinkParams
from common.protocol import TRACE
from poller.engine import Poller
from poller.report import LinkReport
from protocols import DRIVERS

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 9600
DEFAULT_INTERVAL_S = 30.0
DEFAULT_COUNT = 1
LINK_NAME = "cli"


class ExitCode(IntEnum):
    """Exit codes for the poller CLI."""

    SUCCESS = 0  # Every poll succeeded
    POLL_FAILED = 1  # At least one poll failed
    LINK_FAILED = 2  # Transport could not be opened
    USAGE = 3


class PrintListener:
    """Print every completed operation."""

    def on_operation_complete(
        self, device: Device, success: bool, derived: dict[str, Any]
    ) -> None:
        if success:
            fields = ", ".join(f"{k}={v}" for k, v in derived.items())
            print(f"{device.name}: OK {fields}")
        else:
            print(f"{device.name}: FAILED ({device.error})")


def run(params: LinkParams, devices: list[Device], interval_s: float, count: int) -> int:
    """Poll devices count times (0 = until Ctrl-C), interval_s apart."""
    stop = threading.Event()

    def handler(_sig: int, _frame: FrameType | None) -> None:
        stop.set()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        return _poll_cycles(params, devices, interval_s, count, stop)
    finally:
        signal.signal(signal.SIGINT, previous)


def _poll_cycles(
    params: LinkParams,
    devices: list[Device],
    interval_s: float,
    count: int,
    stop: threading.Event,
) -> int:
    failed = False
    with Poller(listener=PrintListener()) as poller:
        link = poller.add_link(params)
        for device in devices:
            poller.register_device(device, LINK_NAME)

        cycle = 0
        while not stop.is_set() and (count == 0 or cycle < count):
            cycle += 1
            logger.debug(f"Poll cycle {cycle}")
            for handle in poller.poll_all():
                while not handle.done():
                    if stop.is_set() or link.degraded:
                        handle.cancel()
                        break
                    stop.wait(0.1)
                if handle.done() and not handle.wait().success:
                    failed = True
            if link.degraded:
                logger.error(f"Link {link.name} unreachable, giving up")
                break
            if count == 0 or cycle < count:
                stop.wait(interval_s)

        report = LinkReport(name=link.name, stats=link.stats, degraded=link.degraded)
    report.print()

    if link.stats.exchanges == 0 and link.stats.open_failures:
        return ExitCode.LINK_FAILED
    if failed:
        return ExitCode.POLL_FAILED
    return ExitCode.SUCCESS


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Poll field devices over a serial or socket link",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s loopback                          Poll a simulated detector station
  %(prog)s -d /dev/ttyUSB0 --drop 3          Poll detector drop 3
  %(prog)s -d socket://10.0.0.5:8001 -p dmslite --access "Dial-Modem-1"
""",
    )

    subparsers = parser.add_subparsers(dest="mode")
    subparsers.add_parser("loopback", help="Poll a pty-backed sampling simulator")

    parser.add_argument(
        "-d", "--device", type=str, help="Serial device or URL (socket://host:port)"
    )
    parser.add_argument(
        "-p",
        "--protocol",
        choices=sorted(DRIVERS),
        default="ss105",
        help="Device protocol (default: ss105)",
    )
    parser.add_argument(
        "--drop", type=int, action="append", help="Drop address (repeatable, default: 1)"
    )
    parser.add_argument(
        "--access", type=str, default="", help="Access descriptor, selects the timeout"
    )
    parser.add_argument(
        "-b",
        "--baudrate",
        type=int,
        default=DEFAULT_BAUDRATE,
        help=f"Baud rate (default: {DEFAULT_BAUDRATE})",
    )
    parser.add_argument(
        "-f",
        "--flow-control",
        choices=["none", "ctsrts"],
        default="none",
        help="Flow control (default: none)",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=DEFAULT_INTERVAL_S,
        help=f"Seconds between poll cycles (default: {DEFAULT_INTERVAL_S})",
    )
    parser.add_argument(
        "-n",
        "--count",
        type=int,
        default=DEFAULT_COUNT,
        help=f"Poll cycles, 0 = indefinite (default: {DEFAULT_COUNT})",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="-v for DEBUG, -vv for TRACE"
    )

    args = parser.parse_args()
    level = {0: logging.INFO, 1: logging.DEBUG}.get(args.verbose, TRACE)
    logging.basicConfig(level=level)

    drops = args.drop or [1]

    if args.mode == "loopback":
        from simulator import SamplingSimulator

        sim = SamplingSimulator()
        try:
            params = LinkParams(LINK_NAME, sim.port_name, baudrate=args.baudrate)
            devices = [Device(f"sim-{d}", "ss105", drop=d) for d in drops]
            return run(params, devices, args.interval, args.count)
        finally:
            sim.close()

    if not args.device:
        parser.print_help()
        return ExitCode.USAGE

    params = LinkParams(
        LINK_NAME,
        args.device,
        baudrate=args.baudrate,
        rtscts=args.flow_control == "ctsrts",
    )
    devices = [
        Device(f"{args.protocol}-{d}", args.protocol, drop=d, access=args.access)
        for d in drops
    ]
    try:
        return run(params, devices, args.interval, args.count)
    except serial.SerialException as e:
        logger.error(f"Serial error: {e}")
        return ExitCode.LINK_FAILED


if __name__ == "__main__":
    sys.exit(main())
