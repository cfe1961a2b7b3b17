"""
Create / update / destroy for container requests.

Every mutation runs the same ordered pipeline inside one repository
transaction:

1. build   - merge the caller's attributes over the stored record (or the
             defaults for a new one); reject unknown or system-managed keys
2. default - preemptible scheduling default for child work entering Committed
3. check   - state transition, binding rules, field validation, whitelist;
             all violations are collected, then raised together
4. bind    - resolve an execution unit on commit, bump container_count
5. prepare - seed priority from the requesting unit (create only), scrub
             secrets when Final, stamp modification
6. persist - compare-and-set on container_count for updates
7. notify  - recompute priority of the old and new execution units

After the transaction commits, finalization is attempted; its failures are
logged and retried on the next mutation instead of failing the caller.
"""
from copy import deepcopy
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Tuple
from uuid import uuid4

from control_plane.core.config import Settings
from control_plane.core.logging import get_logger
from control_plane.domain.actor import Actor
from control_plane.domain.container_request import (
    REQUEST_FIELDS,
    SYSTEM_MANAGED_FIELDS,
    ContainerRequest,
    State,
)
from control_plane.domain.errors import (
    ContainerRequestError,
    FieldPermissionError,
    NotFoundError,
    StateTransitionError,
    Violation,
)
from control_plane.domain.ports import (
    CollectionStore,
    ContainerRequestRepository,
    CredentialService,
    ExecutionUnitService,
)
from control_plane.services.collection_publisher import CollectionPublisher, utcnow
from control_plane.services.field_validator import FieldValidator
from control_plane.services.finalization import FinalizationService
from control_plane.services.mutation import Mutation
from control_plane.services.priority import PriorityPropagator
from control_plane.services.secret_scrubber import SecretScrubber
from control_plane.services.state_machine import RequestStateMachine

logger = get_logger(__name__)


class ContainerRequestService:
    def __init__(
        self,
        requests: ContainerRequestRepository,
        execution_units: ExecutionUnitService,
        collections: CollectionStore,
        credentials: CredentialService,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.requests = requests
        self.settings = settings
        self.clock = clock

        self.validator = FieldValidator(credentials, settings)
        self.state_machine = RequestStateMachine(execution_units, settings)
        self.priority = PriorityPropagator(requests, execution_units, settings)
        self.scrubber = SecretScrubber()
        self.finalizer = FinalizationService(
            requests,
            execution_units,
            CollectionPublisher(collections, settings, clock),
            apply_update=self._apply_update,
        )

    # -------------------------------
    # Queries
    # -------------------------------
    async def get(self, uuid: str) -> ContainerRequest:
        request = await self.requests.get(uuid)
        if request is None:
            raise NotFoundError(f"container request {uuid} not found", field="uuid")
        return request

    async def list(
        self,
        *,
        state: State | None = None,
        container_uuid: str | None = None,
    ) -> List[ContainerRequest]:
        return await self.requests.list(state=state, container_uuid=container_uuid)

    # -------------------------------
    # Mutations
    # -------------------------------
    async def create(self, actor: Actor, attrs: Mapping[str, Any]) -> ContainerRequest:
        _, created = await self._mutate(actor, None, attrs)
        return await self._finalize_quietly(created)

    async def update(self, actor: Actor, uuid: str, attrs: Mapping[str, Any]) -> ContainerRequest:
        _, updated = await self._mutate(actor, uuid, attrs)
        return await self._finalize_quietly(updated)

    async def destroy(self, actor: Actor, uuid: str) -> None:
        async with self.requests.transaction():
            request = await self.get(uuid)
            if request.state != State.FINAL:
                # let the execution unit drop this request's priority first
                await self._mutate(actor, uuid, {"priority": 0})
            await self.requests.delete(uuid)
        logger.info("container_request.destroyed", uuid=uuid, actor=actor.uuid)

    async def finalize_if_needed(self, uuid: str) -> ContainerRequest:
        """Re-check a request after its execution unit changed status."""
        return await self.finalizer.finalize_if_needed(await self.get(uuid))

    # -------------------------------
    # Pipeline
    # -------------------------------
    async def _apply_update(
        self, actor: Actor, uuid: str, attrs: Dict[str, Any]
    ) -> ContainerRequest:
        _, updated = await self._mutate(actor, uuid, attrs)
        return updated

    async def _mutate(
        self,
        actor: Actor,
        uuid: str | None,
        attrs: Mapping[str, Any],
    ) -> Tuple[ContainerRequest | None, ContainerRequest]:
        async with self.requests.transaction():
            previous = None
            if uuid is not None:
                previous = await self.get(uuid)

            mutation = self._build(actor, previous, attrs)
            request = mutation.proposed

            self.priority.apply_preemptible_default(mutation)

            mutation.violations += self.state_machine.check_transition(mutation)
            mutation.violations += self.state_machine.check_direct_binding_changes(mutation)
            mutation.violations += await self.validator.validate(mutation)
            mutation.violations += self.state_machine.check_whitelist(mutation)
            self._raise_if_rejected(mutation)

            mutation.violations += await self.state_machine.bind(mutation)
            self._raise_if_rejected(mutation)

            if mutation.is_new:
                await self.priority.seed_priority(request)
            self.scrubber.scrub(request)
            request.modified_at = self.clock()
            request.modified_by_uuid = actor.uuid

            if previous is None:
                await self.requests.create(request)
            else:
                await self.requests.update(
                    request, expected_container_count=previous.container_count
                )

            await self.priority.propagate(previous, request)

        logger.info(
            "container_request.created" if previous is None else "container_request.updated",
            uuid=request.uuid,
            state=request.state.value,
            previous_state=previous.state.value if previous else None,
            priority=request.priority,
            container_uuid=request.container_uuid,
            actor=actor.uuid,
            system=actor.is_system,
        )
        return previous, request

    def _build(
        self,
        actor: Actor,
        previous: ContainerRequest | None,
        attrs: Mapping[str, Any],
    ) -> Mutation:
        violations: List[Violation] = []
        values: Dict[str, Any] = {}

        for key, value in attrs.items():
            if key in SYSTEM_MANAGED_FIELDS:
                violations.append(Violation(key, "is maintained by the control plane", FieldPermissionError))
            elif key not in REQUEST_FIELDS:
                violations.append(Violation(key, "is not a container request attribute"))
            else:
                values[key] = deepcopy(value)

        if "state" in values:
            try:
                values["state"] = State(values["state"])
            except (ValueError, TypeError):
                violations.append(Violation(
                    "state", f"{values.pop('state')!r} is not a valid state", StateTransitionError
                ))

        if previous is None:
            baseline = ContainerRequest(
                uuid=str(uuid4()),
                owner_uuid=actor.uuid,
                container_count_max=self.settings.CONTAINER_COUNT_MAX,
                created_at=self.clock(),
            )
            values.setdefault("requesting_container_uuid", actor.container_uuid)
        else:
            baseline = previous

        return Mutation(
            actor=actor,
            baseline=baseline,
            proposed=replace(deepcopy(baseline), **values),
            is_new=previous is None,
            supplied=frozenset(values),
            violations=violations,
        )

    def _raise_if_rejected(self, mutation: Mutation) -> None:
        if not mutation.violations:
            return
        exc = ContainerRequestError.from_violations(mutation.violations)
        logger.info(
            "container_request.rejected",
            uuid=mutation.baseline.uuid,
            error=type(exc).__name__,
            fields=sorted(exc.errors),
            actor=mutation.actor.uuid,
        )
        raise exc

    async def _finalize_quietly(self, request: ContainerRequest) -> ContainerRequest:
        try:
            return await self.finalizer.finalize_if_needed(request)
        except Exception:
            logger.exception("container_request.finalize_failed", uuid=request.uuid)
            return request
