# anchorstore/core/errors.py
"""
Error taxonomy shared by every component.

Client faults (never retried): ValidationError, PermissionDeniedError,
NotFoundError, InvalidParametersError.
Infrastructure faults (caller may retry the whole operation): UnavailableError.
"""

from typing import List, Optional


class AnchorStoreError(Exception):
    """Base class for all anchorstore errors."""


class ValidationError(AnchorStoreError):
    """Malformed or structurally invalid input."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors) if errors else [message]


class PermissionDeniedError(AnchorStoreError):
    """Authorization failure. Unknown accounts and missing permissions look the same."""


class NotFoundError(AnchorStoreError):
    """Referenced resource is absent (or hidden by access level)."""


class InvalidParametersError(AnchorStoreError):
    """Semantically invalid cross-reference, e.g. an event pointing at a missing asset."""


class UnavailableError(AnchorStoreError):
    """Repository or ledger could not be reached / timed out."""


class ConfigurationError(AnchorStoreError):
    """Missing or malformed settings."""
