from __future__ import annotations

from dataclasses import dataclass, field

from control_plane.domain.actor import Actor
from control_plane.domain.container_request import REQUEST_FIELDS, ContainerRequest, State
from control_plane.domain.errors import Violation


@dataclass
class Mutation:
    """One create or update attempt as it moves through the pipeline.

    ``baseline`` is the persisted snapshot for an update, or a defaults-filled
    blank record for a create; ``proposed`` is what would be persisted.
    Stages read and adjust ``proposed`` and append to ``violations``.
    """
    actor: Actor
    baseline: ContainerRequest
    proposed: ContainerRequest
    is_new: bool
    supplied: frozenset[str] = frozenset()
    violations: list[Violation] = field(default_factory=list)

    @property
    def previous_state(self) -> State | None:
        return None if self.is_new else self.baseline.state

    @property
    def target_state(self) -> State:
        return self.proposed.state

    @property
    def state_changed(self) -> bool:
        return self.is_new or self.proposed.state != self.baseline.state

    @property
    def entering_committed(self) -> bool:
        return self.state_changed and self.target_state == State.COMMITTED

    def changed(self, name: str) -> bool:
        return getattr(self.proposed, name) != getattr(self.baseline, name)

    def changed_fields(self) -> list[str]:
        return [name for name in REQUEST_FIELDS if self.changed(name)]

    def reject(self, field_name: str, message: str, error) -> None:
        self.violations.append(Violation(field_name, message, error))
