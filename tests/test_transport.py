import httpx
import pytest

from optimus_http.monitor import RequestMonitor
from optimus_http.transport import HttpxTransport, TransportResponse, log_error_body
from tests.pipeline_helpers import BASE_URL


def _transport(handler, monitor=None) -> HttpxTransport:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return HttpxTransport(client, monitor=monitor)


@pytest.mark.asyncio
async def test_send_decodes_json_body() -> None:
    seen = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["request"] = request
        return httpx.Response(200, request=request, json={"items": []})

    transport = _transport(handler)
    response = await transport.send(
        "GET", "/articles", headers={"Authorization": "Bearer a"}, params={"page": 2}
    )

    assert response == TransportResponse(200, {"items": []})
    assert seen["request"].url == httpx.URL(f"{BASE_URL}/articles?page=2")
    assert seen["request"].headers["authorization"] == "Bearer a"


@pytest.mark.asyncio
async def test_send_returns_text_for_non_json() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, request=request, text="bad gateway")

    response = await _transport(handler).send("GET", "/articles", headers={})

    assert response.status_code == 502
    assert response.body == "bad gateway"


@pytest.mark.asyncio
async def test_send_empty_body_is_none() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204, request=request)

    response = await _transport(handler).send("DELETE", "/articles/1", headers={})

    assert response.body is None


@pytest.mark.asyncio
async def test_send_records_monitor_entries() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, request=request, json={"id": 7})

    monitor = RequestMonitor()
    await _transport(handler, monitor).send("post", "/articles", headers={}, body={"title": "x"})

    [log] = monitor.recent()
    assert log.method == "POST"
    assert log.status == 201
    assert log.duration_ms is not None


@pytest.mark.asyncio
async def test_send_propagates_transport_errors() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    monitor = RequestMonitor()
    with pytest.raises(httpx.ConnectError):
        await _transport(handler, monitor).send("GET", "/articles", headers={})

    assert monitor.recent()[0].error == "refused"


@pytest.mark.asyncio
async def test_log_error_body_truncates(caplog) -> None:
    response = httpx.Response(
        500,
        request=httpx.Request("GET", f"{BASE_URL}/articles"),
        text="x" * 1500,
    )

    with caplog.at_level("WARNING", logger="optimus.http"):
        await log_error_body(response)

    assert "...<truncated>" in caplog.text
