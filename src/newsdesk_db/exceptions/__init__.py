"""Common exceptions for the newsdesk database layer.

All exceptions include structured error information:
- code: Machine-readable error identifier
- message: Human-readable error description
- details: Additional context for debugging/recovery

Usage:
    from newsdesk_db.exceptions import (
        NewsdeskError,
        ValidationError,
        ResourceNotFoundError,
        ConfigurationError,
    )
"""

from newsdesk_db.exceptions.base import (
    ConfigurationError,
    NewsdeskError,
    ResourceNotFoundError,
    ValidationError,
)

__all__ = [
    "NewsdeskError",
    "ValidationError",
    "ResourceNotFoundError",
    "ConfigurationError",
]
