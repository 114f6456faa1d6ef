"""Push an image, a clear, or an LED flash to one ESL over BLE.

Usage:
    uv run python examples/push_image.py --address AA:BB:CC:DD:EE:FF --image photo.png
    uv run python examples/push_image.py --address AA:BB:CC:DD:EE:FF --clear
    uv run python examples/push_image.py --address AA:BB:CC:DD:EE:FF --flash "#00FF00"
    uv run python examples/push_image.py --scan
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from esldisplay import (
    CommandKind,
    DeviceCommandQueue,
    DeviceTarget,
    EslDevice,
    EslError,
    EslSettings,
    discover_devices,
    load_image,
)


async def scan(duration: float) -> None:
    """Print advertising ESL peripherals."""
    print(f"Scanning for ESL devices ({duration:.1f}s)...")
    devices = await discover_devices(timeout=duration)
    if not devices:
        print("No ESL devices found")
    for name, device in sorted(devices.items()):
        print(f"  {name}: {device.address}")


async def push(args: argparse.Namespace) -> None:
    """Run one command through the queue, waiting for the outcome."""
    settings = EslSettings(scan_timeout=args.scan_timeout)
    target = DeviceTarget(args.address, width=args.width, height=args.height)

    if args.image:
        image = load_image(Path(args.image).read_bytes())
        kind = CommandKind.SET_IMAGE

        async def task():
            async with EslDevice(target, settings) as device:
                return await device.upload_image(image)
    elif args.flash:
        kind = CommandKind.FLASH

        async def task():
            async with EslDevice(target, settings) as device:
                return await device.flash(args.flash)
    else:
        kind = CommandKind.CLEAR_IMAGE

        async def task():
            async with EslDevice(target, settings) as device:
                return await device.clear()

    async with DeviceCommandQueue(settings) as queue:
        status = await queue.run(args.address, kind, task, timeout=settings.timeout_for(kind))

    print(f"{kind.value} sent to {args.address}: busy={status.busy} errors={', '.join(status.errors) or 'none'}")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Drive a BLE e-ink shelf label.")
    parser.add_argument("--address", help="BLE address or platform id of the ESL")
    action = parser.add_mutually_exclusive_group()
    action.add_argument("--image", help="Image file to display")
    action.add_argument("--clear", action="store_true", help="Clear the display (default)")
    action.add_argument("--flash", metavar="COLOR", help="Flash the LED, e.g. '#FF0000'")
    action.add_argument("--scan", action="store_true", help="List advertising ESL devices")
    parser.add_argument("--width", type=int, default=400, help="Display width. Default: 400")
    parser.add_argument("--height", type=int, default=300, help="Display height. Default: 300")
    parser.add_argument(
        "--scan-timeout",
        type=float,
        default=30.0,
        help="Seconds to scan for the device. Default: 30",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()
    if not args.scan and not args.address:
        parser.error("--address is required unless --scan is given")
    return args


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        if args.scan:
            asyncio.run(scan(args.scan_timeout))
        else:
            asyncio.run(push(args))
    except EslError as err:
        raise SystemExit(f"Error: {err}") from err
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
