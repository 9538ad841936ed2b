"""Session-scoped caches of the device registry and interface suggestions."""

from __future__ import annotations

from typing import Protocol

from loguru import logger

from .models import DeviceSummary, InterfaceInfo


class RegistrySource(Protocol):
    async def list_devices(self) -> list[DeviceSummary]: ...

    async def list_interfaces(self, device_id: str) -> list[InterfaceInfo]: ...


class DeviceCatalog:
    """
    Latest device registry snapshot plus per-device interface lists.

    One catalog lives for one dashboard session and is shared by reference with
    the scheduler and the render path. ``clear()`` is the full-reload reset.
    """

    def __init__(self, source: RegistrySource) -> None:
        self._source = source
        self._devices: dict[str, DeviceSummary] | None = None
        self._interfaces: dict[str, list[InterfaceInfo]] = {}

    @property
    def devices(self) -> dict[str, DeviceSummary] | None:
        """Devices by id, or None until the registry has been loaded once."""
        return self._devices

    def device(self, device_id: str) -> DeviceSummary | None:
        if self._devices is None:
            return None
        return self._devices.get(device_id)

    async def refresh_devices(self) -> dict[str, DeviceSummary]:
        """Reload the registry. Errors propagate to the caller."""
        devices = await self._source.list_devices()
        self._devices = {device.id: device for device in devices}
        logger.debug(f"Device registry refreshed: {len(self._devices)} device(s)")
        return self._devices

    async def try_refresh_devices(self) -> bool:
        """Background variant of :meth:`refresh_devices` that never raises."""
        try:
            await self.refresh_devices()
        except Exception as e:
            logger.debug(f"Device registry refresh failed: {e}")
            return False
        return True

    async def interfaces(self, device_id: str, *, refresh: bool = False) -> list[InterfaceInfo]:
        if refresh or device_id not in self._interfaces:
            self._interfaces[device_id] = await self._source.list_interfaces(device_id)
        return self._interfaces[device_id]

    def interface_options(self, device_id: str, query: str = "") -> list[str]:
        """Picker suggestions from the cache: enabled interfaces first, filtered by ``query``."""
        infos = self._interfaces.get(device_id, [])
        needle = query.strip().lower()
        matches = [info for info in infos if needle in info.name.lower()]
        matches.sort(key=lambda info: (info.disabled, not info.running, info.name))
        return [info.name for info in matches]

    def clear(self) -> None:
        self._devices = None
        self._interfaces.clear()
