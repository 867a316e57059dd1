"""Error taxonomy shared by the domain services and the HTTP routes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass(eq=False)
class ServiceError(Exception):
    """Base class for failures surfaced to API callers."""

    message: str
    code: str = "service_error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


@dataclass(eq=False)
class InvalidInput(ServiceError):
    """Malformed dog, pricing or plan parameters."""

    code: str = "invalid_input"
    status_code: int = 422


@dataclass(eq=False)
class NotFound(ServiceError):
    code: str = "not_found"
    status_code: int = status.HTTP_404_NOT_FOUND


@dataclass(eq=False)
class Unauthorized(ServiceError):
    code: str = "unauthorized"
    status_code: int = status.HTTP_401_UNAUTHORIZED


@dataclass(eq=False)
class Forbidden(ServiceError):
    code: str = "forbidden"
    status_code: int = status.HTTP_403_FORBIDDEN


@dataclass(eq=False)
class UpstreamFailure(ServiceError):
    """The payment provider or the datastore call failed."""

    code: str = "upstream_failure"
    status_code: int = status.HTTP_502_BAD_GATEWAY


__all__ = [
    "Forbidden",
    "InvalidInput",
    "NotFound",
    "ServiceError",
    "Unauthorized",
    "UpstreamFailure",
]
