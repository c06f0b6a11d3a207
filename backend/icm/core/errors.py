# backend/icm/core/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class ICMError(Exception):
    """Base class for every error the scheme core raises."""

    code = "icm_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"error": self.code, "detail": self.message}
        if self.details:
            out["details"] = self.details
        return out


class NotFound(ICMError):
    """Missing scheme id, scheme version or KPI mapping."""

    code = "not_found"


class ValidationError(ICMError):
    """Malformed ladder, rule, status value or operand. Raised before any write."""

    code = "validation_error"


class ConflictError(ICMError):
    """Uniqueness violation: duplicate (schemeId, version), schemeId or KPI name."""

    code = "conflict"


class UpstreamUnavailable(ICMError):
    """The persistence collaborator is unreachable or running as a fallback."""

    code = "upstream_unavailable"
