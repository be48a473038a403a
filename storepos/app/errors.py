from typing import Dict, Optional

from fastapi import HTTPException

from .messages import localized


class PosError(HTTPException):
    """
    Base for domain errors raised by POS services.

    Subclasses fix the HTTP status; `code` is a stable identifier clients can
    switch on, `messages` optionally carries the zh/es operator texts.
    """

    status = 500
    default_code = "ERROR"

    def __init__(
        self,
        detail: str,
        *,
        code: Optional[str] = None,
        messages: Optional[Dict[str, str]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(status_code=status_code or self.status, detail=detail)
        self.code = code or self.default_code
        self.messages = messages

    def to_content(self) -> dict:
        content = {"status": "error", "code": self.code, "detail": self.detail}
        if self.messages:
            content["messages"] = self.messages
        return content


class ValidationError(PosError):
    status = 400
    default_code = "VALIDATION_ERROR"


class NotFound(PosError):
    status = 404
    default_code = "NOT_FOUND"


class Conflict(PosError):
    status = 409
    default_code = "CONFLICT"


class BusinessRuleViolation(PosError):
    status = 422
    default_code = "BUSINESS_RULE_VIOLATION"

    @classmethod
    def localized(cls, code: str, detail: str, *, status_code: Optional[int] = None) -> "BusinessRuleViolation":
        return cls(detail, code=code, messages=localized(code), status_code=status_code)


class InternalError(PosError):
    status = 500
    default_code = "INTERNAL_ERROR"
