from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

import httpx

from lemobar_scan.core.exceptions import DecodeError, FetchTimeoutError, NetworkError
from lemobar_scan.core.models import AreaRecord, Coordinate
from lemobar_scan.providers.base import AreaSource

logger = logging.getLogger(__name__)

# Substituted with longitude first, then latitude.
API_URL_TEMPLATE = (
    "https://toc.lemobar.com/api-toc/api/area/near?current=1&size=20&longitude=%f&latitude=%f&type=0"
)
REQUEST_TIMEOUT_SECONDS = 8.0
SUCCESS_CODE = 200

DEFAULT_HEADERS: dict[str, str] = {
    "content-type": "application/x-www-form-urlencoded",
    "Cache-Control": "no-cache",
    "p": "202507",
    "lan": "zh-Hans",
    "x-session-id": "31751347839278791807",
    "charset": "utf-8",
    "Referer": "https://servicewechat.com/wxadc480e27684767a/446/page-frame.html",
    "User-Agent": (
        "Mozilla/5.0 (Linux; Android 11; Pixel 3a...) Weixin NetType/WIFI Language/zh_CN "
        "ABI/arm64 MiniProgramEnv/android"
    ),
    "Accept-Encoding": "gzip, deflate, br",
}


def build_area_url(coordinate: Coordinate, template: str = API_URL_TEMPLATE) -> str:
    return template % (coordinate.lng, coordinate.lat)


def _to_float(value: Any, field: str) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"area field '{field}' is not a number: {value!r}") from exc


def _to_int(value: Any, field: str) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"area field '{field}' is not an integer: {value!r}") from exc


def _to_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_area_record(item: Any) -> AreaRecord:
    if not isinstance(item, dict):
        raise DecodeError("area record is not an object")
    if item.get("id") is None:
        raise DecodeError("area record missing field 'id'")
    return AreaRecord(
        area_id=_to_int(item["id"], "id"),
        name=_to_str(item.get("areaName")),
        address=_to_str(item.get("detailAddress")),
        # upstream sends coordinates as strings
        lat=_to_float(item.get("latitude"), "latitude"),
        lng=_to_float(item.get("longitude"), "longitude"),
        total_device_count=_to_int(item.get("totalDeviceNum"), "totalDeviceNum"),
        free_device_count=_to_int(item.get("freeDeviceNum"), "freeDeviceNum"),
        wait_duration_seconds=_to_int(item.get("waitDuration"), "waitDuration"),
    )


def parse_area_response(body: bytes | str) -> list[AreaRecord]:
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise DecodeError("response body is not valid json") from exc
    if not isinstance(payload, dict):
        raise DecodeError("response payload is not a json object")
    code = payload.get("code")
    if code != SUCCESS_CODE:
        raise DecodeError(f"unexpected response code: {code!r}")
    data = payload.get("data") or {}
    if not isinstance(data, dict):
        raise DecodeError("response field 'data' is not an object")
    records = data.get("records") or []
    if not isinstance(records, list):
        raise DecodeError("response field 'data.records' is not a list")
    return [parse_area_record(item) for item in records]


class LemobarAreaClient(AreaSource):
    """Looks up nearby areas, one GET per coordinate, without retries."""

    provider_name = "lemobar"

    def __init__(
        self,
        authorization: str,
        url_template: str = API_URL_TEMPLATE,
        timeout_seconds: float = REQUEST_TIMEOUT_SECONDS,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._authorization = authorization
        self._url_template = url_template
        self._timeout_seconds = timeout_seconds
        self._client_factory = client_factory
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> LemobarAreaClient:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def open(self) -> None:
        if self._client is not None:
            return
        factory = self._client_factory or (lambda: httpx.AsyncClient(timeout=self._timeout_seconds))
        self._client = factory()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_headers(self) -> dict[str, str]:
        return {**DEFAULT_HEADERS, "Authorization": self._authorization}

    async def fetch_areas(self, coordinate: Coordinate) -> list[AreaRecord]:
        if self._client is None:
            raise RuntimeError("area client is not open")
        url = build_area_url(coordinate, self._url_template)
        try:
            # httpx limits each socket operation, not the whole request
            response = await asyncio.wait_for(
                self._client.get(url, headers=self.build_headers()),
                self._timeout_seconds,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise FetchTimeoutError(f"request timed out after {self._timeout_seconds:g}s") from exc
        except httpx.DecodingError as exc:
            raise DecodeError(f"response body could not be decoded: {exc}") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"request failed: {exc}") from exc
        if response.status_code != httpx.codes.OK:
            logger.debug(
                "area_lookup_http_status",
                extra={"status_code": response.status_code, "lat": coordinate.lat, "lng": coordinate.lng},
            )
        return parse_area_response(response.content)
