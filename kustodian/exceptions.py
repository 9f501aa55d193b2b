"""Exceptions related to kustodian."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .enablement import DisabledDependencyError
    from .graph import Cycle, GraphError

__all__ = [
    "KustodianException",
    "InputException",
    "ConfigurationException",
    "DependencyGraphException",
    "DependencyCycleException",
    "EnablementException",
    "SubstitutionResolutionException",
    "HookException",
    "OutputException",
]


class KustodianException(Exception):
    """Generic base exception used for this library."""


class InputException(KustodianException):
    """Raised when the input files or values are not formatted as expected."""


class ConfigurationException(KustodianException):
    """Raised when a cluster configuration cannot be used for generation."""


class DependencyValidationException(KustodianException):
    """Base class for failures validating the kustomization dependency graph."""


class DependencyGraphException(DependencyValidationException):
    """Raised when dependency references are malformed or point nowhere.

    All errors found across the template set are reported at once.
    """

    def __init__(self, errors: list["GraphError"]) -> None:
        self.errors = errors
        lines = "\n".join(f"  - {error.message}" for error in errors)
        super().__init__(f"Dependency validation failed:\n{lines}")


class DependencyCycleException(DependencyValidationException):
    """Raised when the kustomization dependency graph contains cycles."""

    def __init__(self, cycles: list["Cycle"]) -> None:
        self.cycles = cycles
        lines = "\n".join(f"  - {cycle.message}" for cycle in cycles)
        super().__init__(f"Dependency cycles detected:\n{lines}")


class EnablementException(KustodianException):
    """Raised when an enabled kustomization depends on a disabled one."""

    def __init__(self, errors: list["DisabledDependencyError"]) -> None:
        self.errors = errors
        super().__init__("\n".join(error.message for error in errors))


class SubstitutionResolutionException(KustodianException):
    """Raised when a substitution provider fails to resolve its values."""

    def __init__(self, provider_type: str, message: str) -> None:
        super().__init__(
            f"Failed to resolve '{provider_type}' substitutions: {message}"
        )
        self.provider_type = provider_type


class HookException(KustodianException):
    """Raised when a hook handler fails while processing an event."""

    def __init__(self, event: str, message: str) -> None:
        super().__init__(f"Hook for event '{event}' failed: {message}")
        self.event = event


class OutputException(KustodianException):
    """Raised when generated output cannot be written."""
