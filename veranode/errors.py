from __future__ import annotations

"""
Error taxonomy for VeraNode.

Every failure the engine raises is a VeraError carrying a stable `code`
(what clients switch on) and an HTTP `status` (what the API layer maps it
to). The engine never returns error dicts; it raises, and the single
exception handler in veranode.vera_api turns the exception into a response.
"""

from typing import Any, Dict, Optional


class VeraError(RuntimeError):
    status: int = 400
    default_code: str = "ERROR"

    def __init__(self, code: Optional[str] = None, message: str = "", **details: Any) -> None:
        self.code = code or self.default_code
        self.message = message or self.code
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"ok": False, "error": self.code, "message": self.message}
        if self.details:
            out["details"] = self.details
        return out


class ValidationFailed(VeraError):
    status = 400
    default_code = "VALIDATION_FAILED"


class Unauthorized(VeraError):
    status = 401
    default_code = "INVALID_CREDENTIALS"


class KeyExpired(VeraError):
    # Same status as Unauthorized, distinct code so clients can offer recovery.
    status = 401
    default_code = "KEY_EXPIRED"


class Forbidden(VeraError):
    status = 403
    default_code = "FORBIDDEN"


class NotFound(VeraError):
    status = 404
    default_code = "NOT_FOUND"


class Conflict(VeraError):
    status = 409
    default_code = "CONFLICT"


class PolicyRejected(VeraError):
    status = 422
    default_code = "INVALID_RUMOR"


class IntegrityViolation(VeraError):
    status = 500
    default_code = "CHAIN_TAMPERED"


class ValidatorUnavailable(VeraError):
    status = 503
    default_code = "VALIDATOR_UNAVAILABLE"
