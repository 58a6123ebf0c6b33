"""
Exceptions raised by the visitation engine.

Core operations raise these and never swallow them; the HTTP layer in
main.py maps each one to a status code and a JSON body built by to_dict().

Usage:
    from .exceptions import ConflictError, PersonNotFoundError

    if active:
        raise ConflictError("Visitor 001 already has an active visit timer")
"""

from typing import Any, Dict, Optional


class VisitationError(Exception):
    """Base exception for all visitation engine errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Input errors (422)
# ============================================

class FormatError(VisitationError):
    """Malformed time string"""

    status_code = 422

    def __init__(self, value: Any, expected: str = 'HH:MM AM/PM (e.g. "09:00 AM")'):
        super().__init__(
            f"Invalid time '{value}', expected {expected}",
            code="INVALID_TIME_FORMAT",
            details={"value": value, "expected": expected}
        )


class ValidationError(VisitationError):
    """Input is well-formed but breaks a rule (bounds, ordering, enum)"""

    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None, **details):
        if field:
            details["field"] = field
        super().__init__(message, code="VALIDATION_ERROR", details=details)


# ============================================
# State errors
# ============================================

class ConflictError(VisitationError):
    """Operation collides with current state, e.g. a second active timer"""

    status_code = 409

    def __init__(self, message: str, **details):
        super().__init__(message, code="CONFLICT", details=details)


class PersonBannedError(VisitationError):
    """Person is effectively banned and cannot start a visit"""

    status_code = 403

    def __init__(self, person_id: str, person_type: str, reason: Optional[str] = None):
        super().__init__(
            f"{person_type.capitalize()} {person_id} is currently banned",
            code="PERSON_BANNED",
            details={"person_id": person_id, "person_type": person_type, "ban_reason": reason}
        )


# ============================================
# Resource errors (404)
# ============================================

class NotFoundError(VisitationError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: Any, message: Optional[str] = None):
        super().__init__(
            message or f"{resource_type} with ID '{resource_id}' not found",
            code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": str(resource_id)}
        )


class PersonNotFoundError(NotFoundError):
    """Visitor or guest not found"""

    def __init__(self, person_id: str, person_type: str):
        super().__init__(person_type.capitalize(), person_id)


class VisitLogNotFoundError(NotFoundError):
    """Visit log missing, or not in progress when an active one is required"""

    def __init__(self, visit_log_id: Any, message: Optional[str] = None):
        super().__init__("Visit log", visit_log_id, message)
