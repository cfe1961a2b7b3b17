from control_plane.core.config import Settings
from control_plane.core.logging import get_logger
from control_plane.domain.actor import SYSTEM_ACTOR
from control_plane.domain.container_request import ContainerRequest
from control_plane.domain.ports import ContainerRequestRepository, ExecutionUnitService
from control_plane.services.mutation import Mutation

logger = get_logger(__name__)


class PriorityPropagator:
    """
    Keeps execution unit priorities in line with the requests bound to them.

    Also owns the two priority-related defaults applied while a request is
    being created or committed: the seed inherited from the requesting unit
    and the preemptible scheduling default for child work.
    """

    def __init__(
        self,
        requests: ContainerRequestRepository,
        execution_units: ExecutionUnitService,
        settings: Settings,
    ):
        self.requests = requests
        self.execution_units = execution_units
        self.settings = settings

    def apply_preemptible_default(self, mutation: Mutation) -> None:
        cr = mutation.proposed
        if not (
            mutation.entering_committed
            and self.settings.PREEMPTIBLE_INSTANCES
            and cr.requesting_container_uuid is not None
            and isinstance(cr.scheduling_parameters, dict)
        ):
            return
        if cr.scheduling_parameters.get("preemptible") is None:
            cr.scheduling_parameters = {**cr.scheduling_parameters, "preemptible": True}

    async def seed_priority(self, request: ContainerRequest) -> None:
        """Start child work at the highest priority already given to its parent."""
        if request.requesting_container_uuid is None:
            return
        highest = await self.requests.max_priority_for_container(request.requesting_container_uuid)
        request.priority = highest or 0

    async def propagate(self, previous: ContainerRequest | None, current: ContainerRequest) -> None:
        if previous is not None and (
            previous.state == current.state
            and previous.priority == current.priority
            and previous.container_uuid == current.container_uuid
        ):
            return

        candidates = [previous.container_uuid if previous else None, current.container_uuid]
        for container_uuid in dict.fromkeys(c for c in candidates if c is not None):
            await self.execution_units.recompute_priority(container_uuid, actor=SYSTEM_ACTOR)
            logger.debug(
                "container.priority_recomputed",
                container_uuid=container_uuid,
                container_request=current.uuid,
            )
