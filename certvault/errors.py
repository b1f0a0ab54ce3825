# certvault/errors.py
from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Optional, Sequence

INVALID_FORMAT = "InvalidFormat"
PASSWORD_REQUIRED = "PasswordRequired"


class CertVaultError(Exception):
    """Base class for every failure the engine reports to its callers."""

    code = "CertVaultError"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code

    def as_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message}


class ParseError(CertVaultError):
    code = "ParseError"

    def __init__(self, message: str = "", reason: str = INVALID_FORMAT, slot: Optional[str] = None) -> None:
        super().__init__(message or reason)
        self.reason = reason
        self.slot = slot

    def as_dict(self) -> Dict[str, Any]:
        out = super().as_dict()
        out["reason"] = self.reason
        if self.slot:
            out["slot"] = self.slot
        return out


class SynthesisError(CertVaultError):
    code = "SynthesisError"


class MismatchError(SynthesisError):
    code = "MismatchError"


class ExpiredCertificateError(SynthesisError):
    code = "ExpiredCertificateError"

    def __init__(self, not_after: dt.datetime) -> None:
        super().__init__(f"certificate expired on {not_after.date().isoformat()}")
        self.not_after = not_after


class MissingRequiredInputError(CertVaultError):
    """A required field is blank and nothing could fill it.

    `causes` holds the upload failures that left it blank, if any.
    """

    code = "MissingRequiredInputError"

    def __init__(self, field: str, causes: Sequence[CertVaultError] = ()) -> None:
        super().__init__(f"missing required input: {field}")
        self.field = field
        self.causes = list(causes)

    def as_dict(self) -> Dict[str, Any]:
        out = {**super().as_dict(), "field": self.field}
        if self.causes:
            out["causes"] = [c.as_dict() for c in self.causes]
        return out


class PersistenceError(CertVaultError):
    code = "PersistenceError"
