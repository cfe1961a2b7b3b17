from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable


class ContainerRequestError(Exception):
    """
    Base class for every rejected container request mutation.

    ``errors`` maps field name -> list of messages and holds every violation
    found for the attempt, not only the one that gave the exception its class.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.field = field
        if errors is None:
            errors = {field or "base": [message]}
        self.errors = errors
        self.violations: list[Violation] = []

    @classmethod
    def from_violations(cls, violations: Iterable["Violation"]) -> "ContainerRequestError":
        """Build one exception for a list of violations.

        The exception class is the one of the first violation (pipeline order),
        ``errors`` carries all of them grouped by field.
        """
        violations = list(violations)
        if not violations:
            raise ValueError("from_violations() needs at least one violation")

        grouped: dict[str, list[str]] = defaultdict(list)
        for v in violations:
            grouped[v.field].append(v.message)

        first = violations[0]
        summary = "; ".join(f"{v.field} {v.message}" for v in violations)
        exc = first.error(summary, field=first.field, errors=dict(grouped))
        exc.violations = violations
        return exc

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "errors": self.errors}


class ValidationError(ContainerRequestError):
    """Datatype or shape violation."""


class StateTransitionError(ContainerRequestError):
    """Illegal move in the state table."""


class FieldPermissionError(ContainerRequestError):
    """Field not mutable for this transition / actor."""


class ConflictError(ContainerRequestError):
    """Mount key overlap, container_count mismatch, lost compare-and-set."""


class ArtifactNameConflict(ConflictError):
    """Artifact name already taken for this owner."""


class ResolutionError(ContainerRequestError):
    """Commit without a resolvable execution unit."""


class CredentialError(ContainerRequestError):
    """Malformed or invalid runtime token."""


class ConfigurationError(ContainerRequestError):
    """Request asks for something the deployment does not offer."""


class NotFoundError(ContainerRequestError):
    pass


@dataclass(frozen=True)
class Violation:
    field: str
    message: str
    error: type[ContainerRequestError] = ValidationError
