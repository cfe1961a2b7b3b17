from sqlalchemy import delete, func, insert, select, update

from control_plane.core.database import database
from control_plane.domain.container_request import ContainerRequest, State
from control_plane.domain.errors import ConflictError
from control_plane.domain.ports import ContainerRequestRepository
from control_plane.models.db import ContainerRequestDB

_COLUMNS = (
    "uuid", "owner_uuid", "priority", "container_uuid", "requesting_container_uuid",
    "container_count", "container_count_max", "use_existing", "command",
    "container_image", "cwd", "output_path", "environment", "mounts",
    "secret_mounts", "runtime_constraints", "scheduling_parameters",
    "runtime_token", "output_name", "output_ttl", "output_uuid", "log_uuid",
    "expires_at", "filters", "description", "name", "properties",
    "created_at", "modified_at", "modified_by_uuid",
)


def _to_row(request: ContainerRequest) -> dict:
    values = {c: getattr(request, c) for c in _COLUMNS}
    values["state"] = request.state.value
    return values


def _from_row(row) -> ContainerRequest:
    return ContainerRequest(
        **{c: row[c] for c in _COLUMNS},
        state=State(row["state"]),
    )


class SQLContainerRequestRepository(ContainerRequestRepository):
    def transaction(self):
        return database.transaction()

    async def create(self, request: ContainerRequest) -> None:
        await database.execute(insert(ContainerRequestDB).values(**_to_row(request)))

    async def get(self, uuid: str) -> ContainerRequest | None:
        row = await database.fetch_one(
            select(ContainerRequestDB).where(ContainerRequestDB.uuid == uuid)
        )
        if not row:
            return None
        return _from_row(row)

    async def list(
        self,
        *,
        state: State | None = None,
        container_uuid: str | None = None,
    ) -> list[ContainerRequest]:
        query = select(ContainerRequestDB).order_by(ContainerRequestDB.created_at)
        if state is not None:
            query = query.where(ContainerRequestDB.state == State(state).value)
        if container_uuid is not None:
            query = query.where(ContainerRequestDB.container_uuid == container_uuid)
        rows = await database.fetch_all(query)
        return [_from_row(r) for r in rows]

    async def update(self, request: ContainerRequest, *, expected_container_count: int) -> None:
        # compare-and-set: a concurrent bind moved container_count under us
        row = await database.fetch_one(
            update(ContainerRequestDB)
            .where(ContainerRequestDB.uuid == request.uuid)
            .where(ContainerRequestDB.container_count == expected_container_count)
            .values(**_to_row(request))
            .returning(ContainerRequestDB.uuid)
        )
        if row is None:
            raise ConflictError(
                f"container request {request.uuid} was modified concurrently",
                field="container_count",
            )

    async def delete(self, uuid: str) -> None:
        await database.execute(
            delete(ContainerRequestDB).where(ContainerRequestDB.uuid == uuid)
        )

    async def max_priority_for_container(self, container_uuid: str) -> int | None:
        return await database.fetch_val(
            select(func.max(ContainerRequestDB.priority))
            .where(ContainerRequestDB.container_uuid == container_uuid)
        )
