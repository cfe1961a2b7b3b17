from typing import Any, Awaitable, Callable, Dict

from control_plane.core.logging import get_logger
from control_plane.domain.actor import SYSTEM_ACTOR, Actor
from control_plane.domain.container_request import ContainerRequest, State
from control_plane.domain.ports import ContainerRequestRepository, ExecutionUnitService
from control_plane.services.collection_publisher import CollectionPublisher

logger = get_logger(__name__)

ApplyUpdate = Callable[[Actor, str, Dict[str, Any]], Awaitable[ContainerRequest]]


class FinalizationService:
    """
    Moves a Committed request to Final once its execution unit is done.

    This is a check, not a loop: it runs after each mutation and whenever the
    caller learns that a unit changed status. Calling it for a request that is
    already Final does nothing.
    """

    def __init__(
        self,
        requests: ContainerRequestRepository,
        execution_units: ExecutionUnitService,
        publisher: CollectionPublisher,
        apply_update: ApplyUpdate,
    ):
        self.requests = requests
        self.execution_units = execution_units
        self.publisher = publisher
        self.apply_update = apply_update

    async def finalize_if_needed(self, request: ContainerRequest) -> ContainerRequest:
        if request.state != State.COMMITTED or request.container_uuid is None:
            return request

        unit = await self.execution_units.lookup(request.container_uuid, actor=SYSTEM_ACTOR)
        if unit is None or not unit.is_final:
            return request

        async with self.requests.transaction():
            fresh = await self.requests.get(request.uuid)
            if fresh is None or fresh.state != State.COMMITTED or fresh.container_uuid != unit.uuid:
                return fresh or request

            updates = await self.publisher.publish(fresh, unit)
            finalized = await self.apply_update(
                SYSTEM_ACTOR, fresh.uuid, {**updates, "state": State.FINAL}
            )

        logger.info(
            "container_request.finalized",
            uuid=finalized.uuid,
            container_uuid=unit.uuid,
            container_state=unit.state.value,
            output_uuid=finalized.output_uuid,
            log_uuid=finalized.log_uuid,
        )
        return finalized
