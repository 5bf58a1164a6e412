from __future__ import annotations

import asyncio
import time

import httpx
import pytest

from lemobar_scan.core.exceptions import DecodeError, FetchTimeoutError, NetworkError
from lemobar_scan.core.models import Coordinate
from lemobar_scan.providers.lemobar import REQUEST_TIMEOUT_SECONDS, LemobarAreaClient, build_area_url


def _area(area_id: int = 1, **overrides) -> dict:
    item = {
        "id": area_id,
        "areaName": "上海静安店",
        "detailAddress": "静安区南京西路1号",
        "latitude": "31.2304",
        "longitude": "121.4737",
        "totalDeviceNum": 6,
        "freeDeviceNum": 2,
        "waitDuration": 120,
    }
    item.update(overrides)
    return item


def _client(handler) -> LemobarAreaClient:
    transport = httpx.MockTransport(handler)
    return LemobarAreaClient(
        "token-123",
        client_factory=lambda: httpx.AsyncClient(transport=transport, timeout=5.0),
    )


def test_build_area_url_puts_longitude_before_latitude() -> None:
    url = build_area_url(Coordinate(lat=31.5, lng=121.25))
    assert "longitude=121.250000&latitude=31.500000" in url
    assert url.startswith("https://toc.lemobar.com/api-toc/api/area/near?current=1&size=20&")
    assert url.endswith("&type=0")


@pytest.mark.asyncio
async def test_client_sends_fixed_headers_and_authorization() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"code": 200, "data": {"records": []}})

    async with _client(handler) as client:
        await client.fetch_areas(Coordinate(lat=31.2304, lng=121.4737))

    assert len(seen) == 1
    request = seen[0]
    assert request.method == "GET"
    assert request.headers["Authorization"] == "token-123"
    assert request.headers["p"] == "202507"
    assert request.headers["lan"] == "zh-Hans"
    assert request.headers["Cache-Control"] == "no-cache"
    assert request.headers["Referer"].startswith("https://servicewechat.com/")
    assert "MiniProgramEnv/android" in request.headers["User-Agent"]
    assert request.url.params["longitude"] == "121.473700"
    assert request.url.params["latitude"] == "31.230400"


@pytest.mark.asyncio
async def test_client_parses_records_with_string_coordinates() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": 200, "data": {"records": [_area(7), _area(8, latitude=31.0)]}})

    async with _client(handler) as client:
        areas = await client.fetch_areas(Coordinate(lat=31.0, lng=121.0))

    assert [area.area_id for area in areas] == [7, 8]
    first = areas[0]
    assert first.name == "上海静安店"
    assert first.address == "静安区南京西路1号"
    assert first.lat == 31.2304
    assert first.lng == 121.4737
    assert first.total_device_count == 6
    assert first.free_device_count == 2
    assert first.wait_duration_seconds == 120
    assert areas[1].lat == 31.0


@pytest.mark.asyncio
async def test_client_returns_empty_list_for_missing_records() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": 200, "data": {"records": None}})

    async with _client(handler) as client:
        assert await client.fetch_areas(Coordinate(lat=0.0, lng=0.0)) == []


@pytest.mark.asyncio
async def test_client_raises_decode_error_on_non_200_code() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": 401, "msg": "token expired"})

    async with _client(handler) as client:
        with pytest.raises(DecodeError):
            await client.fetch_areas(Coordinate(lat=0.0, lng=0.0))


@pytest.mark.asyncio
async def test_client_raises_decode_error_on_invalid_json() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="<html>bad gateway</html>")

    async with _client(handler) as client:
        with pytest.raises(DecodeError):
            await client.fetch_areas(Coordinate(lat=0.0, lng=0.0))


@pytest.mark.asyncio
async def test_client_raises_decode_error_on_malformed_record() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": 200, "data": {"records": [_area(1, latitude="north")]}})

    async with _client(handler) as client:
        with pytest.raises(DecodeError):
            await client.fetch_areas(Coordinate(lat=0.0, lng=0.0))


@pytest.mark.asyncio
async def test_client_maps_timeout_to_fetch_timeout_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with _client(handler) as client:
        with pytest.raises(FetchTimeoutError) as exc_info:
            await client.fetch_areas(Coordinate(lat=0.0, lng=0.0))

    assert isinstance(exc_info.value, NetworkError)


@pytest.mark.asyncio
async def test_client_maps_transport_failure_to_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(NetworkError):
            await client.fetch_areas(Coordinate(lat=0.0, lng=0.0))


@pytest.mark.asyncio
async def test_client_requires_open_before_fetch() -> None:
    client = LemobarAreaClient("token-123")
    with pytest.raises(RuntimeError):
        await client.fetch_areas(Coordinate(lat=0.0, lng=0.0))


@pytest.mark.asyncio
async def test_client_uses_eight_second_timeout_by_default() -> None:
    client = LemobarAreaClient("token-123")
    await client.open()
    try:
        assert client._client is not None
        assert client._client.timeout.read == REQUEST_TIMEOUT_SECONDS
        assert client._client.timeout.connect == REQUEST_TIMEOUT_SECONDS
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_client_times_out_when_body_trickles_past_the_limit() -> None:
    body = b'{"code":200,"data":{"records":[]},"x":1}'
    handlers: list[asyncio.Task] = []

    async def trickle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        handlers.append(asyncio.current_task())
        try:
            await reader.readuntil(b"\r\n\r\n")
            writer.write(
                b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\n"
                + f"Content-Length: {len(body)}\r\n\r\n".encode()
            )
            for index in range(len(body)):
                writer.write(body[index : index + 1])
                await writer.drain()
                await asyncio.sleep(0.1)
        except ConnectionError:
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(trickle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    client = LemobarAreaClient(
        "token-123",
        url_template=f"http://127.0.0.1:{port}/near?longitude=%f&latitude=%f",
        timeout_seconds=0.5,
        client_factory=lambda: httpx.AsyncClient(timeout=0.5, trust_env=False),
    )
    started = time.monotonic()
    try:
        async with client:
            with pytest.raises(FetchTimeoutError):
                await client.fetch_areas(Coordinate(lat=0.0, lng=0.0))
    finally:
        for task in handlers:
            task.cancel()
        await asyncio.gather(*handlers, return_exceptions=True)
        server.close()
        await server.wait_closed()

    assert time.monotonic() - started < 2.0
