from __future__ import annotations

from typing import Any, Dict, Optional


class VariantLensError(Exception):
    """Base class for failures that abort a variant request."""


class VariantValidationError(VariantLensError, ValueError):
    """Malformed caller input. Raised before any remote call is made."""

    def __init__(self, message: str, code: str = "PARSE_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class UnknownSubjectError(VariantLensError):
    """The gene could not be resolved to any protein entry."""

    def __init__(self, gene: str):
        super().__init__(f"Could not resolve gene {gene!r} to a UniProt entry")
        self.gene = gene


class SubjectUnavailableError(VariantLensError):
    """The required protein source could not be reached."""

    def __init__(self, dependency: str, reason: str, detail: Optional[str] = None):
        super().__init__(f"{dependency} unavailable: {reason}")
        self.dependency = dependency
        self.reason = reason
        self.detail = detail
