"""HTTP client for the device registry, live counters and settings store."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from urllib.parse import quote

from aiohttp import ClientError, ClientSession, ClientTimeout
from loguru import logger

from . import settings
from .exceptions import APIException, RateLimitException
from .models import DeviceSummary, InterfaceCounter, InterfaceInfo

HEADER_REQUEST_ID = "X-Request-Id"
ROUTERS_PATH = "/api/admin/mikrotik/routers"


def _first(raw: dict, *names: str, default: Any = None) -> Any:
    for name in names:
        if raw.get(name) is not None:
            return raw[name]
    return default


def parse_device(raw: dict) -> DeviceSummary:
    return DeviceSummary(
        id=str(raw["id"]),
        name=str(_first(raw, "name", default="")),
        host=str(_first(raw, "host", default="")),
        port=int(_first(raw, "port", default=0)),
        is_online=bool(_first(raw, "is_online", "isOnline", default=False)),
        identity=_first(raw, "identity"),
    )


def parse_counter(raw: dict) -> InterfaceCounter:
    return InterfaceCounter(
        name=str(raw["name"]),
        rx_bytes=int(_first(raw, "rx_byte", "rx_bytes", "rxBytes", default=0)),
        tx_bytes=int(_first(raw, "tx_byte", "tx_bytes", "txBytes", default=0)),
        running=bool(_first(raw, "running", default=True)),
        disabled=bool(_first(raw, "disabled", default=False)),
    )


def parse_interface(raw: dict) -> InterfaceInfo:
    return InterfaceInfo(
        name=str(_first(raw, "name", "interface_name")),
        type=_first(raw, "type", "interface_type"),
        running=bool(_first(raw, "running", default=False)),
        disabled=bool(_first(raw, "disabled", default=False)),
    )


class WallboardAPIClient:
    """Thin async wrapper over the collaborator endpoints the wallboard consumes."""

    def __init__(
        self,
        base_url: str = settings.WALLBOARD_API_URL,
        token: str = settings.WALLBOARD_API_TOKEN,
        timeout: float = settings.CLIENT_REQUEST_TIMEOUT,
        retry_count: int = settings.REQUEST_RETRY_COUNT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = ClientTimeout(total=timeout)
        self._retry_count = max(1, retry_count)
        self._session: ClientSession | None = None

    async def __aenter__(self) -> "WallboardAPIClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Accept": "application/json"}
            if self._token:
                headers["Authorization"] = f"Bearer {self._token}"
            self._session = ClientSession(timeout=self._timeout, headers=headers)
        return self._session

    async def request(
        self, method: str, path: str, *, params: dict | None = None, body: dict | None = None
    ) -> Any:
        """Perform a JSON request, retrying with backoff while rate limited."""
        logger.opt(colors=True).debug(f"<magenta>API request | method: {method} | path: {path}</magenta>")
        session = self._get_session()
        for i in range(self._retry_count):
            if i:
                logger.warning(f"Retrying request to endpoint {path} (attempt {i + 1})")
            try:
                async with session.request(method, f"{self._base_url}{path}", params=params, json=body) as response:
                    request_id = response.headers.get(HEADER_REQUEST_ID, "unknown")
                    with logger.contextualize(request_id=request_id):
                        if response.status == 429:
                            logger.warning(f"Rate limited on request to endpoint {path}")
                            await asyncio.sleep(2**i)
                            continue

                        text = await response.text()
                        if not 200 <= response.status < 300:
                            raise APIException(
                                f"Error making request to endpoint {path}: {response.status} - {text}",
                                status=response.status,
                            )
                        if not text:
                            return None
                        try:
                            return json.loads(text)
                        except json.JSONDecodeError as e:
                            raise APIException(f"Endpoint {path} returned invalid JSON: {e}") from e
            except (ClientError, asyncio.TimeoutError) as e:
                raise APIException(f"Error making request to endpoint {path}: {e!r}") from e

        raise RateLimitException(f"Failed request to {path} after {self._retry_count} attempts: rate limited")

    # --- Device registry ---------------------------------------------------

    async def list_devices(self) -> list[DeviceSummary]:
        rows = await self.request("GET", ROUTERS_PATH) or []
        return [parse_device(row) for row in rows]

    async def fetch_counters(self, device_id: str, interface_names: list[str]) -> list[InterfaceCounter]:
        """Current byte counters for the named interfaces of one device."""
        if not interface_names:
            return []
        rows = await self.request(
            "GET",
            f"{ROUTERS_PATH}/{quote(device_id, safe='')}/interfaces/live",
            params={"names": ",".join(interface_names)},
        )
        return [parse_counter(row) for row in rows or []]

    async def list_interfaces(self, device_id: str) -> list[InterfaceInfo]:
        rows = await self.request("GET", f"{ROUTERS_PATH}/{quote(device_id, safe='')}/interfaces/latest") or []
        return [parse_interface(row) for row in rows]

    # --- Settings store ----------------------------------------------------

    async def get_config_value(self, key: str) -> str | None:
        value = await self.request("GET", f"/api/settings/{quote(key, safe='')}/value")
        return value if isinstance(value, str) else None

    async def set_config_value(self, key: str, value: str, description: str | None = None) -> None:
        await self.request("POST", "/api/settings", body={"key": key, "value": value, "description": description})
