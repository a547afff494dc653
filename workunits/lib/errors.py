"""Structured exception hierarchy for work-unit discovery.

Provides specific exception types for the failure modes of a discovery
run, with rich context for debugging and troubleshooting. None of these
are recovered inside a run: any of them aborts the whole walk.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from workunits.lib.units import UnitDescriptor

__all__ = [
    "DiscoveryError",
    "CatalogError",
    "ProviderError",
    "ConfigurationError",
    "SerializationError",
]


class DiscoveryError(Exception):
    """Base exception for all discovery errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        system: Optional[str] = None,
        entity: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.system = system
        self.entity = entity
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if system or entity:
            context = f"{system or '?'}.{entity or '?'}"
            parts.insert(0, f"[{context}]")

        if details:
            detail_lines = [f"  {k}: {v}" for k, v in details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "system": self.system,
            "entity": self.entity,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class CatalogError(DiscoveryError):
    """The catalog could not enumerate a dataset or its units.

    Raised when the underlying storage or metadata source is unreachable
    or returns something that cannot be turned into a dataset.
    """

    def __init__(
        self,
        message: str,
        *,
        location: Optional[str] = None,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.location = location
        self.cause = cause

        details = kwargs.pop("details", {})
        if location:
            details["location"] = location
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class ProviderError(DiscoveryError):
    """An update-time provider or the watermark store failed for a unit.

    A misbehaving provider is a systemic fault: the run is aborted rather
    than the unit being skipped.
    """

    def __init__(
        self,
        message: str,
        *,
        unit: Optional["UnitDescriptor"] = None,
        provider: Optional[str] = None,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.unit = unit
        self.provider = provider
        self.cause = cause

        details = kwargs.pop("details", {})
        if unit is not None:
            details["unit"] = unit.complete_name
        if provider:
            details["provider"] = provider
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        system = kwargs.pop("system", None)
        entity = kwargs.pop("entity", None)
        if unit is not None:
            system, entity = unit.database, unit.table

        super().__init__(
            message, system=system, entity=entity, details=details, **kwargs
        )


class ConfigurationError(DiscoveryError):
    """Error in discovery configuration.

    Raised before any unit is processed when collaborators cannot be
    constructed from the configuration.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)


class SerializationError(DiscoveryError):
    """A serialized unit payload could not be decoded."""

    def __init__(
        self,
        message: str,
        *,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.cause = cause

        details = kwargs.pop("details", {})
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "The payload must be produced by serialize_unit(). "
                "Re-run discovery to regenerate the work units."
            )

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)
