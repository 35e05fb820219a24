from __future__ import annotations

import re
from typing import Any


_ERROR_CODE_RE = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)*$")


class YardlineError(Exception):
    """Base typed error for Yardline.

    Goals:
    - Stable `code` for programmatic handling (batch summaries, metrics labels).
    - Human-readable `message` for chat replies.
    - Optional `meta` payload for debugging (safe-to-expose only).
    """

    def __init__(
        self,
        *,
        code: str,
        message: str,
        meta: dict[str, Any] | None = None,
    ) -> None:
        if not _ERROR_CODE_RE.fullmatch(code):
            raise ValueError(
                "Invalid Yardline error code. Expected dot-separated lowercase tokens, "
                f"got: {code!r}"
            )
        super().__init__(message)
        self.code = code
        self.message = message
        self.meta = dict(meta or {})

    def to_public_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "detail": self.message,
            "code": self.code,
        }
        if self.meta:
            payload["meta"] = self.meta
        return payload


class NotFoundError(YardlineError):
    def __init__(self, *, message: str = "Not found", code: str = "resource.not_found", meta: dict[str, Any] | None = None):
        super().__init__(code=code, message=message, meta=meta)


class ValidationError(YardlineError):
    def __init__(
        self,
        *,
        message: str = "Validation error",
        code: str = "request.validation_error",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, meta=meta)


class InsufficientIdentificationError(ValidationError):
    """Raised when a vehicle lookup has neither a rego nor make+model to work with."""

    def __init__(
        self,
        *,
        message: str = "Insufficient info: need rego or make+model",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code="vehicle.insufficient_identification", message=message, meta=meta)


class VehicleIdentificationError(YardlineError):
    """The resolver could not bind an action to a vehicle without a human."""

    def __init__(self, *, message: str, meta: dict[str, Any] | None = None):
        super().__init__(code="vehicle.identification_failed", message=message, meta=meta)


class DuplicateVehicleError(YardlineError):
    """A vehicle with the same normalized rego already exists."""

    def __init__(self, *, rego: str, meta: dict[str, Any] | None = None):
        super().__init__(
            code="vehicle.duplicate",
            message=f"Vehicle {rego} already exists",
            meta={"rego": rego, **(meta or {})},
        )
        self.rego = rego


class StoreTimeoutError(YardlineError):
    """A vehicle store call did not answer within the store timeout."""

    def __init__(self, *, operation: str, timeout: float, meta: dict[str, Any] | None = None):
        super().__init__(
            code="store.timeout",
            message=f"Store {operation} timed out after {timeout:g}s",
            meta={"operation": operation, "timeout": timeout, **(meta or {})},
        )
