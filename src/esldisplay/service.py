"""Command boundary used by the surrounding application layer."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, Union

from .command_queue import CommandHandle, DeviceCommandQueue
from .device import EslDevice, prepare_image
from .encoding import Preview, load_image
from .exceptions import UnknownDeviceError
from .models.capabilities import DeviceTarget
from .models.enums import CommandKind, CommandStatus
from .models.rgb_flash import RgbCommandParams
from .models.settings import EslSettings
from .models.shadow import DeviceShadow

_LOGGER = logging.getLogger(__name__)

DeviceDirectory = Callable[[str], Union[DeviceTarget, None, Awaitable[Union[DeviceTarget, None]]]]
ShadowCallback = Callable[[str, DeviceShadow], Union[None, Awaitable[None]]]
Notifier = Callable[[str, str], Awaitable[None]]
DeviceFactory = Callable[[DeviceTarget, EslSettings], EslDevice]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class EslCommandService:
    """Set image, clear image and flash, keyed by an opaque device id.

    Every command goes through the shared DeviceCommandQueue, so each device
    has at most one BLE session at a time. By default commands run in the
    background and the call returns as soon as the command is accepted; the
    outcome lands in the device shadow and the queue listing.
    """

    def __init__(
            self,
            queue: DeviceCommandQueue,
            directory: DeviceDirectory,
            settings: EslSettings | None = None,
            on_shadow_update: ShadowCallback | None = None,
            notifier: Notifier | None = None,
            device_factory: DeviceFactory = EslDevice,
    ):
        """Initialize service.

        Args:
            queue: Shared per-device command queue
            directory: Resolves a device id to its address and display size
            settings: Timings (default: the queue's settings)
            on_shadow_update: Called with the updated shadow after each outcome
            notifier: Best-effort user notification for background failures
            device_factory: Builds the EslDevice for a target
        """
        self.queue = queue
        self.directory = directory
        self.settings = settings or queue.settings
        self.on_shadow_update = on_shadow_update
        self.notifier = notifier
        self._device_factory = device_factory

        self._shadows: dict[str, DeviceShadow] = {}
        self._observers: set[asyncio.Task] = set()

    def shadow(self, device_id: str) -> DeviceShadow:
        """Current shadow for a device (created on first use)."""
        shadow = self._shadows.get(device_id)
        if shadow is None:
            shadow = DeviceShadow(max_errors=self.settings.error_history)
            self._shadows[device_id] = shadow
        shadow.expire_flash(self._now())
        return shadow

    def queued_messages(self, device_id: str) -> list[dict[str, Any]]:
        """Queue listing for a device, oldest first."""
        return [record.to_dict() for record in self.queue.records_for(device_id)]

    async def close(self) -> None:
        """Stop observing background commands."""
        observers = list(self._observers)
        for task in observers:
            task.cancel()
        await asyncio.gather(*observers, return_exceptions=True)

    async def set_image(self, device_id: str, raw: bytes, *, wait: bool = False) -> bool:
        """Show an uploaded image on the device.

        Raises:
            UnknownDeviceError: If the device id cannot be resolved
            ImageEncodingError: If ``raw`` is not a decodable image
        """
        target = await self._resolve(device_id)
        image = load_image(raw)
        previews: list[Preview] = []

        async def _task() -> None:
            frame, preview = prepare_image(image, target.width, target.height)
            async with self._device_factory(target, self.settings) as device:
                await device.upload_frame(frame)
            previews.append(preview)

        def _on_success(shadow: DeviceShadow, now: datetime) -> None:
            if previews:
                shadow.record_preview(previews[0])

        return await self._dispatch(device_id, CommandKind.SET_IMAGE, _task, _on_success, wait)

    async def clear_image(self, device_id: str, *, wait: bool = False) -> bool:
        """Clear the device's screen."""
        target = await self._resolve(device_id)

        async def _task() -> None:
            async with self._device_factory(target, self.settings) as device:
                await device.clear()

        return await self._dispatch(device_id, CommandKind.CLEAR_IMAGE, _task, None, wait)

    async def flash(self, device_id: str, color: str, *, wait: bool = False) -> bool:
        """Flash the device's LED in ``#RRGGBB`` (red if unparseable)."""
        target = await self._resolve(device_id)
        params = RgbCommandParams.from_hex(
            color,
            on_ms=self.settings.flash_on_ms,
            off_ms=self.settings.flash_off_ms,
            work_ms=self.settings.flash_work_ms,
        )

        async def _task() -> None:
            async with self._device_factory(target, self.settings) as device:
                await device.flash(params)

        def _on_success(shadow: DeviceShadow, now: datetime) -> None:
            shadow.record_flash(now, params.work_ms)

        return await self._dispatch(device_id, CommandKind.FLASH, _task, _on_success, wait)

    async def _resolve(self, device_id: str) -> DeviceTarget:
        target = await _maybe_await(self.directory(device_id))
        if target is None:
            raise UnknownDeviceError(f"Unknown device: {device_id}")
        return target

    async def _dispatch(
            self,
            device_id: str,
            kind: CommandKind,
            task: Callable[[], Awaitable[None]],
            on_success: Callable[[DeviceShadow, datetime], None] | None,
            wait: bool,
    ) -> bool:
        if wait:
            try:
                await self.queue.run(device_id, kind, task)
            except Exception as e:
                await self._record_failure(device_id, kind, str(e) or type(e).__name__, notify=False)
                raise
            await self._record_success(device_id, on_success)
            return True

        handle = self.queue.submit(device_id, kind, task)
        observer = asyncio.get_running_loop().create_task(
            self._observe(handle, on_success)
        )
        self._observers.add(observer)
        observer.add_done_callback(self._observers.discard)
        return True

    async def _observe(
            self,
            handle: CommandHandle,
            on_success: Callable[[DeviceShadow, datetime], None] | None,
    ) -> None:
        record = await handle.wait()
        if record.status == CommandStatus.COMPLETED:
            await self._record_success(record.device_id, on_success)
        else:
            await self._record_failure(
                record.device_id, record.kind, record.error or "Unknown error", notify=True
            )

    async def _record_success(
            self,
            device_id: str,
            on_success: Callable[[DeviceShadow, datetime], None] | None,
    ) -> None:
        now = self._now()
        shadow = self.shadow(device_id)
        shadow.record_success(now)
        if on_success is not None:
            on_success(shadow, now)
        await self._publish(device_id, shadow)

    async def _record_failure(
            self,
            device_id: str,
            kind: CommandKind,
            error: str,
            notify: bool,
    ) -> None:
        shadow = self.shadow(device_id)
        shadow.record_failure(self._now(), error)
        await self._publish(device_id, shadow)

        if notify and self.notifier is not None:
            try:
                await self.notifier(device_id, f"{kind.value} failed: {error}")
            except Exception as e:
                _LOGGER.warning("Failed to notify about %s for %s: %s", kind.value, device_id, e)

    async def _publish(self, device_id: str, shadow: DeviceShadow) -> None:
        if self.on_shadow_update is None:
            return
        try:
            await _maybe_await(self.on_shadow_update(device_id, shadow))
        except Exception as e:
            _LOGGER.warning("Failed to persist shadow for %s: %s", device_id, e)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)
