from typing import Optional

import httpx
from pydantic import ValidationError


class ForumError(Exception):
    """Base class for every error the forum engine raises to its callers."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NetworkFailure(ForumError):
    """The transport could not complete the exchange."""


class ServerFailure(ForumError):
    """The store answered with a non-success status.

    Validation rejections of caller input arrive here too: the store is
    authoritative over what a valid post or reply is.
    """

    def __init__(self, status_code: int, detail: str = ""):
        super().__init__(f"HTTP {status_code}: {detail}" if detail else f"HTTP {status_code}")
        self.status_code = status_code
        self.detail = detail


class AuthFailure(ServerFailure):
    """Credentials were rejected or the action is forbidden."""


class PendingConfirmationError(ForumError):
    """The entity has no durable identifier yet, so the store cannot address it."""


class ReconciliationError(ForumError):
    """The store accepted a mutation but its response could not be applied locally."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


AUTH_STATUSES = (httpx.codes.UNAUTHORIZED, httpx.codes.FORBIDDEN)


def failure_for_status(status_code: int, detail: str = "") -> ServerFailure:
    if status_code in AUTH_STATUSES:
        return AuthFailure(status_code, detail)
    return ServerFailure(status_code, detail)


def validation_summary(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"])
        problems.append(f"{field}: {error['msg']}" if field else error["msg"])
    return "; ".join(problems)


def normalize_error(exc: BaseException) -> ForumError:
    """Map anything raised around a remote call, or by payload validation, onto the forum taxonomy."""
    if isinstance(exc, ForumError):
        return exc
    if isinstance(exc, ValidationError):
        return ServerFailure(int(httpx.codes.UNPROCESSABLE_ENTITY), validation_summary(exc))
    if isinstance(exc, httpx.HTTPStatusError):
        return failure_for_status(exc.response.status_code, exc.response.text)
    if isinstance(exc, httpx.HTTPError):
        return NetworkFailure(f"Network error: {exc}")
    return NetworkFailure(str(exc) or exc.__class__.__name__)
