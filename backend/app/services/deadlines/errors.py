"""
Deadline service errors.

Kept in their own module so routers, services and the ORM audit guards
share one set of exception classes.
"""


class DeadlineServiceError(Exception):
    """Base class for deadline automation failures."""
    pass


class ValidationError(DeadlineServiceError):
    """Missing or invalid input. Raised before any side effect."""
    pass


class NotFoundError(DeadlineServiceError):
    """Referenced jurisdiction, template or deadline does not exist."""
    pass


class CalculationError(DeadlineServiceError):
    """The date engine cannot compute a due date for the given parameters."""
    pass


class UnsupportedMethodError(CalculationError):
    """CUSTOM method with no strategy registered under that name."""
    pass


class PersistenceError(DeadlineServiceError):
    """Storage failure for a deadline record. Callers may retry."""
    pass


class AuditIntegrityError(DeadlineServiceError):
    """
    Audit snapshot could not be written, or an attempt was made to
    rewrite one. The deadline it would have backed must not exist.
    """
    pass
