"""
State table and per-transition field whitelist for container requests.

A request moves ``Uncommitted -> Committed -> Final`` (or is created directly
in Committed). What a caller may change depends on the state it is leaving,
the state it is entering and whether the actor is privileged:

* always: owner_uuid, state, name, description, properties, expires_at
* while new or leaving Uncommitted: the whole request specification
* entering/staying Committed: priority, container_count_max, container_uuid
  (plus log_uuid for privileged actors); container_count only through binding
* Committed -> Final: priority (plus output_uuid, log_uuid for privileged actors)
"""
from typing import List

from control_plane.core.config import Settings
from control_plane.core.logging import get_logger
from control_plane.domain.container_request import State
from control_plane.domain.errors import (
    ConflictError,
    FieldPermissionError,
    ResolutionError,
    StateTransitionError,
    Violation,
)
from control_plane.domain.ports import ExecutionUnitService
from control_plane.services.mutation import Mutation
from control_plane.services.secret_scrubber import redacted_repr

logger = get_logger(__name__)

STATE_TRANSITIONS = {
    None: (State.UNCOMMITTED, State.COMMITTED),
    State.UNCOMMITTED: (State.COMMITTED,),
    State.COMMITTED: (State.FINAL,),
}

ATTRS_PERMITTED_ALWAYS = frozenset({
    "owner_uuid", "state", "name", "description", "properties", "expires_at",
})

ATTRS_PERMITTED_BEFORE_COMMIT = frozenset({
    "command", "container_count_max", "container_image", "cwd", "environment",
    "filters", "mounts", "output_path", "priority", "runtime_token",
    "runtime_constraints", "state", "container_uuid", "use_existing",
    "scheduling_parameters", "secret_mounts", "output_name", "output_ttl",
})

# Checked by dedicated rules rather than the whitelist.
_BINDING_FIELDS = frozenset({"container_count", "requesting_container_uuid"})


class RequestStateMachine:
    def __init__(self, execution_units: ExecutionUnitService, settings: Settings):
        self.execution_units = execution_units
        self.settings = settings

    # -------------------------------
    # Side-effect free checks
    # -------------------------------
    def check_transition(self, mutation: Mutation) -> List[Violation]:
        if not mutation.state_changed:
            return []
        allowed = STATE_TRANSITIONS.get(mutation.previous_state, ())
        if mutation.target_state not in allowed:
            previous = mutation.previous_state.value if mutation.previous_state else "nil"
            return [Violation(
                "state",
                f"cannot change from {previous} to {mutation.target_state.value}",
                StateTransitionError,
            )]
        return []

    def permitted_fields(self, mutation: Mutation) -> frozenset:
        permitted = set(ATTRS_PERMITTED_ALWAYS)
        privileged = mutation.actor.privileged

        if mutation.is_new or mutation.previous_state == State.UNCOMMITTED:
            # create-and-commit is a single operation
            permitted |= ATTRS_PERMITTED_BEFORE_COMMIT

        if mutation.target_state == State.COMMITTED:
            permitted |= {"priority", "container_count_max", "container_uuid"}
            if privileged:
                permitted.add("log_uuid")
        elif mutation.target_state == State.FINAL and mutation.previous_state == State.COMMITTED:
            # cancelling means priority=0 while still Committed
            permitted.add("priority")
            if privileged:
                permitted |= {"output_uuid", "log_uuid"}

        return frozenset(permitted)

    def check_whitelist(self, mutation: Mutation) -> List[Violation]:
        permitted = self.permitted_fields(mutation)
        out = []
        for name in mutation.changed_fields():
            if name in _BINDING_FIELDS or name in permitted:
                continue
            out.append(Violation(
                name,
                f"cannot be modified in state '{mutation.target_state.value}' "
                f"({redacted_repr(name, getattr(mutation.baseline, name))}, "
                f"{redacted_repr(name, getattr(mutation.proposed, name))})",
                FieldPermissionError,
            ))
        return out

    def check_direct_binding_changes(self, mutation: Mutation) -> List[Violation]:
        """Rules for fields a caller may not steer freely."""
        out = []
        if "container_uuid" in mutation.supplied and mutation.changed("container_uuid"):
            if not mutation.actor.privileged:
                out.append(Violation(
                    "container_uuid", "can only be changed by a privileged actor", FieldPermissionError
                ))
        if "container_count" in mutation.supplied and mutation.changed("container_count"):
            out.append(Violation("container_count", "cannot be updated directly", ConflictError))
        if not mutation.is_new and mutation.changed("requesting_container_uuid"):
            out.append(Violation(
                "requesting_container_uuid", "cannot be changed after creation", FieldPermissionError
            ))
        return out

    # -------------------------------
    # Commit resolution and binding
    # -------------------------------
    async def bind(self, mutation: Mutation) -> List[Violation]:
        """Resolve an execution unit on commit and keep container_count in step.

        Only called once every side-effect free check has passed.
        """
        cr = mutation.proposed

        if mutation.target_state == State.COMMITTED and cr.container_uuid is None:
            cr.container_uuid = await self.execution_units.resolve(cr, actor=mutation.actor)
            logger.info(
                "container_request.resolved",
                uuid=cr.uuid,
                container_uuid=cr.container_uuid,
            )

        out = []
        if cr.container_uuid is not None and mutation.changed("container_uuid"):
            cr.container_count = mutation.baseline.container_count + 1
            if mutation.target_state != State.COMMITTED:
                out.append(Violation(
                    "container_count",
                    f"cannot be modified in state '{mutation.target_state.value}'",
                    ConflictError,
                ))
            elif cr.container_count_max is not None and cr.container_count > cr.container_count_max:
                out.append(Violation(
                    "container_count",
                    f"would exceed container_count_max ({cr.container_count_max})",
                    ConflictError,
                ))

        if mutation.target_state == State.COMMITTED and cr.container_uuid is None:
            out.append(Violation(
                "container_uuid", "has not been resolved to a container.", ResolutionError
            ))
        return out
