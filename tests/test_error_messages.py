import httpx
import pytest

from optimus_http.errors import (
    AuthExpiredError,
    ErrorKind,
    ErrorNormalizer,
    NotFoundError,
    Success,
    kind_for_status,
)
from optimus_http.transport import TransportResponse

normalizer = ErrorNormalizer()


@pytest.mark.parametrize(
    ("status", "kind"),
    [
        (400, ErrorKind.VALIDATION),
        (401, ErrorKind.AUTH_EXPIRED),
        (403, ErrorKind.FORBIDDEN),
        (404, ErrorKind.NOT_FOUND),
        (409, ErrorKind.CONFLICT),
        (422, ErrorKind.VALIDATION),
        (429, ErrorKind.CLIENT_ERROR),
        (500, ErrorKind.SERVER_ERROR),
        (503, ErrorKind.SERVER_ERROR),
    ],
)
def test_status_mapping(status: int, kind: ErrorKind) -> None:
    assert kind_for_status(status) is kind


def test_success_passthrough() -> None:
    result = normalizer.from_response(TransportResponse(200, {"ok": True}))

    assert result == Success({"ok": True}, status=200)
    assert result.unwrap() == {"ok": True}


def test_message_from_body() -> None:
    result = normalizer.from_response(TransportResponse(409, {"message": "Name already taken"}))

    assert result.kind is ErrorKind.CONFLICT
    assert result.message == "Name already taken"
    assert result.status == 409
    assert result.body == {"message": "Name already taken"}


def test_msg_field_is_accepted() -> None:
    result = normalizer.from_response(TransportResponse(400, {"msg": "page must be positive"}))

    assert result.message == "page must be positive"


def test_default_message_when_body_is_text() -> None:
    result = normalizer.from_response(TransportResponse(500, "upstream unavailable"))

    assert result.kind is ErrorKind.SERVER_ERROR
    assert result.message == "The server is experiencing issues. Please try again later."
    assert result.body == "upstream unavailable"


def test_unlisted_status_message() -> None:
    result = normalizer.from_response(TransportResponse(405, None))

    assert result.kind is ErrorKind.CLIENT_ERROR
    assert result.message == "Request failed with status 405."


def test_timeout_maps_to_network_failure() -> None:
    error = httpx.ReadTimeout("read timed out", request=httpx.Request("GET", "https://api.example.com"))

    result = normalizer.from_exception(error)

    assert result.kind is ErrorKind.NETWORK_FAILURE
    assert result.message == "Request timed out."
    assert result.status is None


def test_connect_error_keeps_transport_message() -> None:
    result = normalizer.from_exception(httpx.ConnectError("connection refused"))

    assert result.message == "connection refused"


def test_unwrap_raises_matching_exception() -> None:
    failure = normalizer.from_response(TransportResponse(404, {"message": "gone"}))

    with pytest.raises(NotFoundError, match="gone") as excinfo:
        failure.unwrap()

    assert excinfo.value.status_code == 404
    assert excinfo.value.kind is ErrorKind.NOT_FOUND


def test_auth_expired_without_response() -> None:
    failure = normalizer.auth_expired()

    assert failure.kind is ErrorKind.AUTH_EXPIRED
    assert failure.status is None
    assert isinstance(failure.to_exception(), AuthExpiredError)
