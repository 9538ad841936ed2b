"""
Persistence for the wallboard config.

Two copies of the same ``PersistedConfig`` are kept: a local JSON file written
synchronously on every mutation, and the shared settings store written through
a debounced flush. The settings store is authoritative; the local file only
lets the board render immediately and keeps working offline.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import math
import os
import tempfile
from pathlib import Path
from typing import Any, Iterator, Protocol

from loguru import logger

from . import metrics
from .exceptions import PersistenceError
from .layout import SlotLayout
from .models import DEFAULT_PRESET, DisplayPreferences, LayoutPreset, PersistedConfig, RotateMode, Slot
from .settings import (
    LEGACY_DEFAULT_INTERFACE,
    POLL_MS_OPTIONS,
    REMOTE_DEBOUNCE_MS,
    ROTATE_MS_OPTIONS,
    SETTINGS_LAYOUT_KEY,
    SETTINGS_SLOTS_KEY,
)

PREFERENCES_KEY = "preferences"


# -------------------------
# Codec
# -------------------------


def _threshold(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def _text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def parse_slot(item: Any) -> Slot | None:
    """Normalize one stored slot; anything unrecognised becomes an empty slot."""
    if isinstance(item, str):
        # legacy format: a bare device id bound to the default interface
        device_id = _text(item)
        return Slot(device_id, LEGACY_DEFAULT_INTERFACE) if device_id else None
    if not isinstance(item, dict):
        return None
    device_id = _text(item.get("routerId"))
    interface_name = _text(item.get("iface"))
    if not device_id or not interface_name:
        return None
    return Slot(
        device_id=device_id,
        interface_name=interface_name,
        warn_below_rx_bps=_threshold(item.get("warnBelowRxBps")),
        warn_below_tx_bps=_threshold(item.get("warnBelowTxBps")),
    )


def parse_slots(raw: str | None) -> list[Slot | None]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.debug("Stored wallboard slots are not valid JSON; starting empty")
        return []
    if not isinstance(data, list):
        return []
    return [parse_slot(item) for item in data]


def parse_layout(raw: str | None) -> LayoutPreset:
    return LayoutPreset.parse(raw) or DEFAULT_PRESET


def slot_to_json(slot: Slot | None) -> dict | None:
    if slot is None:
        return None
    out: dict[str, Any] = {"routerId": slot.device_id, "iface": slot.interface_name}
    if slot.warn_below_rx_bps is not None:
        out["warnBelowRxBps"] = slot.warn_below_rx_bps
    if slot.warn_below_tx_bps is not None:
        out["warnBelowTxBps"] = slot.warn_below_tx_bps
    return out


def serialize_slots(slots: list[Slot | None]) -> str:
    return json.dumps([slot_to_json(slot) for slot in slots], separators=(",", ":"))


def encode_config(config: PersistedConfig) -> tuple[str, str]:
    """Return the (layout, slots) values as stored under the two settings keys."""
    return config.layout.value, serialize_slots(config.slots)


def decode_config(layout_raw: str | None, slots_raw: str | None) -> PersistedConfig:
    return PersistedConfig(layout=parse_layout(layout_raw), slots=parse_slots(slots_raw))


def parse_preferences(raw: Any) -> DisplayPreferences:
    prefs = DisplayPreferences()
    if not isinstance(raw, dict):
        return prefs
    if raw.get("poll_ms") in POLL_MS_OPTIONS:
        prefs.poll_ms = raw["poll_ms"]
    if raw.get("rotate_ms") in ROTATE_MS_OPTIONS:
        prefs.rotate_ms = raw["rotate_ms"]
    if raw.get("rotate_mode") in (RotateMode.MANUAL.value, RotateMode.AUTO.value):
        prefs.rotate_mode = RotateMode(raw["rotate_mode"])
    if isinstance(raw.get("alert_sound"), bool):
        prefs.alert_sound = raw["alert_sound"]
    return prefs


# -------------------------
# Stores
# -------------------------


class RemoteConfigStore(Protocol):
    async def get_config_value(self, key: str) -> str | None: ...

    async def set_config_value(self, key: str, value: str, description: str | None = None) -> None: ...


class LocalConfigStore:
    """JSON file holding the two settings values plus local display preferences."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _read_raw(self) -> dict:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Ignoring unreadable local wallboard config {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_raw(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".wallboard-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp)
            raise

    def read_config(self) -> PersistedConfig | None:
        data = self._read_raw()
        if SETTINGS_LAYOUT_KEY not in data and SETTINGS_SLOTS_KEY not in data:
            return None
        return decode_config(data.get(SETTINGS_LAYOUT_KEY), data.get(SETTINGS_SLOTS_KEY))

    def read_preferences(self) -> DisplayPreferences:
        return parse_preferences(self._read_raw().get(PREFERENCES_KEY))

    def write_config(self, config: PersistedConfig) -> bool:
        layout_value, slots_value = encode_config(config)
        return self._update({SETTINGS_LAYOUT_KEY: layout_value, SETTINGS_SLOTS_KEY: slots_value})

    def write_preferences(self, prefs: DisplayPreferences) -> bool:
        return self._update(
            {
                PREFERENCES_KEY: {
                    "poll_ms": prefs.poll_ms,
                    "rotate_mode": prefs.rotate_mode.value,
                    "rotate_ms": prefs.rotate_ms,
                    "alert_sound": prefs.alert_sound,
                }
            }
        )

    def _update(self, values: dict) -> bool:
        data = self._read_raw()
        data.update(values)
        try:
            self._write_raw(data)
        except OSError as e:
            logger.debug(f"Local wallboard config write failed ({self.path}): {e}")
            return False
        return True


# -------------------------
# Coordinator
# -------------------------


class PersistenceCoordinator:
    """Synchronous local writes plus a debounced, de-duplicated remote flush."""

    def __init__(
        self,
        *,
        local: LocalConfigStore,
        remote: RemoteConfigStore,
        debounce_ms: int = REMOTE_DEBOUNCE_MS,
    ) -> None:
        self._local = local
        self._remote = remote
        self._debounce_ms = debounce_ms
        self._layout: SlotLayout | None = None
        self._pending: asyncio.Task[None] | None = None
        self._last_payload: tuple[str, str] | None = None
        self._dirty = False
        self._suspended = False
        self._remote_ready = True

    @property
    def dirty(self) -> bool:
        """True while a mutation has not yet reached the settings store."""
        return self._dirty

    @property
    def last_payload(self) -> tuple[str, str] | None:
        return self._last_payload

    def attach(self, layout: SlotLayout) -> None:
        self._layout = layout
        layout.add_listener(self.on_layout_changed)

    def detach(self) -> None:
        if self._layout is not None:
            self._layout.remove_listener(self.on_layout_changed)
        self._layout = None

    @contextlib.contextmanager
    def suspended(self) -> Iterator[None]:
        """Ignore layout notifications, e.g. while applying a loaded config."""
        previous, self._suspended = self._suspended, True
        try:
            yield
        finally:
            self._suspended = previous

    def hold_remote_writes(self) -> None:
        """Keep local edits off the settings store until :meth:`load_remote` has resolved."""
        self._remote_ready = False

    def current_config(self) -> PersistedConfig:
        if self._layout is None:
            raise RuntimeError("persistence coordinator is not attached to a layout")
        return PersistedConfig(layout=self._layout.preset, slots=self._layout.slots)

    # --- Loading -----------------------------------------------------------

    def load_local(self) -> PersistedConfig | None:
        return self._local.read_config()

    async def load_remote(self) -> PersistedConfig | None:
        """Fetch the shared config; failures are logged and reported as None."""
        try:
            layout_raw = await self._remote.get_config_value(SETTINGS_LAYOUT_KEY)
            slots_raw = await self._remote.get_config_value(SETTINGS_SLOTS_KEY)
        except Exception as e:
            logger.debug(f"Remote wallboard config unavailable: {e}")
            self._release_remote_writes()
            return None
        if layout_raw is None and slots_raw is None:
            self._release_remote_writes()
            return None
        config = decode_config(layout_raw, slots_raw)
        self._last_payload = encode_config(config)
        self._remote_ready = True
        return config

    def _release_remote_writes(self) -> None:
        # nothing shared to load: edits made meanwhile go out as usual
        self._remote_ready = True
        if self._dirty and self._layout is not None:
            self._schedule_remote()

    def apply(self, config: PersistedConfig) -> None:
        """Load ``config`` into the attached layout without triggering writes back."""
        if self._layout is None:
            raise RuntimeError("persistence coordinator is not attached to a layout")
        with self.suspended():
            self._layout.replace(config.layout, config.slots)

    async def restore(self) -> PersistedConfig | None:
        """Local first, then the remote copy overwrites it once it resolves."""
        local = self.load_local()
        if local is not None:
            self.apply(local)
        remote = await self.load_remote()
        if remote is not None:
            self.apply(remote)
            self._local.write_config(self.current_config())
            return remote
        return local

    # --- Writing -----------------------------------------------------------

    def on_layout_changed(self, layout: SlotLayout) -> None:
        if self._suspended:
            return
        self._dirty = True
        self._local.write_config(self.current_config())
        self._schedule_remote()

    def _schedule_remote(self) -> None:
        self._cancel_pending()
        if not self._remote_ready:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # no loop: the write waits for sync_now() or the next mutation
            return
        self._pending = asyncio.create_task(self._debounced_flush(), name="wallboard-remote-flush")

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def _debounced_flush(self) -> None:
        await asyncio.sleep(self._debounce_ms / 1000)
        await self._flush(raise_errors=False)

    async def _flush(self, *, raise_errors: bool) -> bool:
        payload = encode_config(self.current_config())
        if payload == self._last_payload:
            self._dirty = False
            logger.trace("Remote wallboard config unchanged; skipping write")
            return False
        layout_value, slots_value = payload
        try:
            await self._remote.set_config_value(SETTINGS_LAYOUT_KEY, layout_value, "Wallboard grid layout")
            await self._remote.set_config_value(SETTINGS_SLOTS_KEY, slots_value, "Wallboard tile assignments")
        except Exception as e:
            metrics.REMOTE_WRITE_FAILURES.inc()
            if raise_errors:
                raise PersistenceError(f"Saving wallboard config failed: {e}") from e
            logger.debug(f"Remote wallboard config write failed, will retry on next change: {e}")
            return False
        self._last_payload = payload
        self._dirty = False
        metrics.REMOTE_WRITES.inc()
        logger.debug("Remote wallboard config saved")
        return True

    async def sync_now(self) -> bool:
        """User-initiated save: flush immediately and raise on failure."""
        self._cancel_pending()
        return await self._flush(raise_errors=True)

    async def flush_on_teardown(self) -> None:
        """Best-effort flush so the last edit is not lost to the debounce window."""
        self._cancel_pending()
        if not self._dirty or self._layout is None or not self._remote_ready:
            return
        await self._flush(raise_errors=False)
