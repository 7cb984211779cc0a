from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar, Union

import httpx

from .constants import LOGGER

if TYPE_CHECKING:
    from .transport import TransportResponse

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    AUTH_EXPIRED = "auth_expired"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    SERVER_ERROR = "server_error"
    NETWORK_FAILURE = "network_failure"
    CLIENT_ERROR = "client_error"


class PipelineError(RuntimeError):
    kind = ErrorKind.CLIENT_ERROR

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class AuthExpiredError(PipelineError):
    kind = ErrorKind.AUTH_EXPIRED


class ForbiddenError(PipelineError):
    kind = ErrorKind.FORBIDDEN


class NotFoundError(PipelineError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(PipelineError):
    kind = ErrorKind.CONFLICT


class ValidationError(PipelineError):
    kind = ErrorKind.VALIDATION


class ServerError(PipelineError):
    kind = ErrorKind.SERVER_ERROR


class NetworkFailureError(PipelineError):
    kind = ErrorKind.NETWORK_FAILURE


class ClientError(PipelineError):
    kind = ErrorKind.CLIENT_ERROR


_ERROR_CLASSES: dict[ErrorKind, type[PipelineError]] = {
    cls.kind: cls
    for cls in (
        AuthExpiredError,
        ForbiddenError,
        NotFoundError,
        ConflictError,
        ValidationError,
        ServerError,
        NetworkFailureError,
        ClientError,
    )
}


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T
    status: int = 200

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    message: str
    status: int | None = None
    body: Any = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        return False

    def to_exception(self) -> PipelineError:
        return _ERROR_CLASSES[self.kind](self.message, status_code=self.status, body=self.body)

    def unwrap(self) -> Any:
        raise self.to_exception()


Result = Union[Success[Any], Failure]


def kind_for_status(status_code: int) -> ErrorKind:
    if status_code == 401:
        return ErrorKind.AUTH_EXPIRED
    if status_code == 403:
        return ErrorKind.FORBIDDEN
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code == 409:
        return ErrorKind.CONFLICT
    if status_code in (400, 422):
        return ErrorKind.VALIDATION
    if status_code >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.CLIENT_ERROR


def _friendly_error_message(kind: ErrorKind, status_code: int | None = None) -> str:
    if kind is ErrorKind.AUTH_EXPIRED:
        return "Your session has expired. Please sign in again."
    if kind is ErrorKind.FORBIDDEN:
        return "You don't have permission to perform this action."
    if kind is ErrorKind.NOT_FOUND:
        return "The requested resource was not found."
    if kind is ErrorKind.CONFLICT:
        return "The request conflicts with existing data."
    if kind is ErrorKind.VALIDATION:
        return "The request parameters are invalid."
    if kind is ErrorKind.SERVER_ERROR:
        return "The server is experiencing issues. Please try again later."
    if kind is ErrorKind.NETWORK_FAILURE:
        return "Network request failed."
    return f"Request failed with status {status_code}."


def _body_message(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    for key in ("message", "msg"):
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value
        if isinstance(value, list) and value and isinstance(value[0], str):
            return value[0]
    return None


class ErrorNormalizer:
    """Turns transport outcomes into ``Success`` or ``Failure`` values.

    None of the mapping methods raise.
    """

    def from_response(self, response: "TransportResponse") -> Result:
        if response.status_code < 400:
            return Success(response.body, status=response.status_code)
        return self.failure_for_status(response.status_code, response.body)

    def failure_for_status(self, status_code: int, body: Any = None) -> Failure:
        kind = kind_for_status(status_code)
        message = _body_message(body) or _friendly_error_message(kind, status_code)
        failure = Failure(kind=kind, message=message, status=status_code, body=body)
        LOGGER.warning("Request failed kind=%s status=%s message=%s", kind.value, status_code, message)
        return failure

    def auth_expired(self, response: "TransportResponse | None" = None) -> Failure:
        status = None if response is None else response.status_code
        body = None if response is None else response.body
        message = _body_message(body) or _friendly_error_message(ErrorKind.AUTH_EXPIRED)
        return Failure(kind=ErrorKind.AUTH_EXPIRED, message=message, status=status, body=body)

    def from_exception(self, error: BaseException) -> Failure:
        if isinstance(error, httpx.TimeoutException):
            message = "Request timed out."
        else:
            message = str(error) or _friendly_error_message(ErrorKind.NETWORK_FAILURE)
        LOGGER.warning("Transport failure %s: %s", type(error).__name__, message)
        return Failure(kind=ErrorKind.NETWORK_FAILURE, message=message)
