# File: hidesync_scheduler/core/exceptions.py

from typing import Dict, Any, List, Optional
from datetime import date, datetime


class HideSyncException(Exception):
    """Base exception for all HideSync errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize a HideSync exception.

        Args:
            message: Human-readable error message
            code: Optional machine-processable error code
            details: Additional error details
        """
        self.message = message
        self.code = code or "GENERIC_ERROR"
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for API responses.

        Returns:
            Dictionary representation of the exception
        """
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "timestamp": datetime.now().isoformat(),
        }


# Domain-specific exceptions
class DomainException(HideSyncException):
    """Base exception for domain-related errors."""

    CODE_PREFIX = "DOMAIN_"


class EntityNotFoundException(DomainException):
    """Raised when a requested entity does not exist."""

    def __init__(self, entity_type: str, entity_id: Any):
        super().__init__(
            f"{entity_type} with ID {entity_id} not found",
            f"{self.CODE_PREFIX}001",
            {"entity_type": entity_type, "entity_id": entity_id},
        )


# Validation exceptions
class ValidationException(HideSyncException):
    """Raised when input validation fails."""

    def __init__(
        self, message: str, validation_errors: Optional[Dict[str, List[str]]] = None
    ):
        super().__init__(
            message, "VALIDATION_001", {"validation_errors": validation_errors or {}}
        )


# Business rule exceptions
class BusinessRuleException(HideSyncException):
    """Raised when a business rule or constraint is violated."""

    CODE_PREFIX = "BUSINESS_"

    def __init__(
        self,
        message: str,
        rule_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if rule_name:
            error_details["rule_name"] = rule_name
        super().__init__(message, f"{self.CODE_PREFIX}001", error_details)


# Concurrent operation exceptions
class ConcurrentOperationException(HideSyncException):
    """Raised when a concurrent operation fails."""

    CODE_PREFIX = "CONCURRENT_"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if operation:
            error_details["operation"] = operation
        super().__init__(message, f"{self.CODE_PREFIX}001", error_details)


# Scheduler exceptions
class SchedulerException(HideSyncException):
    """Base exception for recurring project scheduling errors."""

    CODE_PREFIX = "SCHEDULER_"


class ConfigurationError(SchedulerException):
    """
    Raised when a recurrence pattern is structurally invalid.

    Not retryable: the pattern itself has to be fixed. Never recorded in the
    generated project ledger since there is no occurrence to retry.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(message, f"{self.CODE_PREFIX}001", error_details)


class GenerationFailure(SchedulerException):
    """
    Raised when materializing or persisting a valid occurrence failed.

    Retryable: the occurrence stays current and is attempted again on the
    next tick.
    """

    def __init__(
        self,
        recurring_project_id: str,
        occurrence_number: int,
        scheduled_date: Optional[date] = None,
        original_error: Optional[str] = None,
    ):
        details: Dict[str, Any] = {
            "recurring_project_id": recurring_project_id,
            "occurrence_number": occurrence_number,
        }
        if scheduled_date is not None:
            details["scheduled_date"] = scheduled_date.isoformat()
        if original_error:
            details["original_error"] = original_error
        super().__init__(
            f"Failed to generate occurrence {occurrence_number} of recurring project "
            f"{recurring_project_id}"
            + (f": {original_error}" if original_error else ""),
            f"{self.CODE_PREFIX}002",
            details,
        )
        self.recurring_project_id = recurring_project_id
        self.occurrence_number = occurrence_number
