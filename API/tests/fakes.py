from contextlib import asynccontextmanager
from copy import deepcopy
from datetime import datetime, timezone

from control_plane.domain.actor import Actor
from control_plane.domain.collection import Collection
from control_plane.domain.container_request import ContainerRequest, State
from control_plane.domain.errors import ArtifactNameConflict, ConflictError
from control_plane.domain.execution_unit import ExecutionUnit, UnitState


class InMemoryContainerRequestRepository:
    """Dict-backed repository with the same transaction / compare-and-set contract as the SQL one."""

    def __init__(self):
        self.rows: dict[str, ContainerRequest] = {}

    @asynccontextmanager
    async def transaction(self):
        snapshot = deepcopy(self.rows)
        try:
            yield
        except BaseException:
            self.rows = snapshot
            raise

    async def create(self, request: ContainerRequest) -> None:
        self.rows[request.uuid] = deepcopy(request)

    async def get(self, uuid: str) -> ContainerRequest | None:
        row = self.rows.get(uuid)
        return deepcopy(row) if row else None

    async def list(self, *, state=None, container_uuid=None) -> list[ContainerRequest]:
        return [
            deepcopy(r) for r in self.rows.values()
            if (state is None or r.state == state)
            and (container_uuid is None or r.container_uuid == container_uuid)
        ]

    async def update(self, request: ContainerRequest, *, expected_container_count: int) -> None:
        stored = self.rows.get(request.uuid)
        if stored is None or stored.container_count != expected_container_count:
            raise ConflictError("modified concurrently", field="container_count")
        self.rows[request.uuid] = deepcopy(request)

    async def delete(self, uuid: str) -> None:
        self.rows.pop(uuid, None)

    async def max_priority_for_container(self, container_uuid: str) -> int | None:
        priorities = [r.priority for r in self.rows.values() if r.container_uuid == container_uuid]
        return max(priorities) if priorities else None


class FakeExecutionUnits:
    def __init__(self):
        self.units: dict[str, ExecutionUnit] = {}
        self.resolved: list[str] = []
        self.recomputed: list[tuple] = []

    async def resolve(self, request: ContainerRequest, *, actor) -> str:
        uuid = f"ctr-{len(self.units) + 1}"
        self.units[uuid] = ExecutionUnit(uuid=uuid, state=UnitState.QUEUED)
        self.resolved.append(request.uuid)
        return uuid

    async def lookup(self, uuid: str, *, actor) -> ExecutionUnit | None:
        return self.units.get(uuid)

    async def recompute_priority(self, uuid: str, *, actor) -> None:
        self.recomputed.append((uuid, actor))

    def finish(self, uuid: str, *, output=None, log=None, state=UnitState.COMPLETE) -> None:
        unit = self.units[uuid]
        unit.state = state
        unit.output = output
        unit.log = log


class FakeCollectionStore:
    def __init__(self, manifests: dict[str, str] | None = None):
        self.manifests = dict(manifests or {})
        self.collections: dict[str, Collection] = {}
        self.saves = 0

    async def manifest_for(self, portable_data_hash: str) -> str | None:
        return self.manifests.get(portable_data_hash)

    async def get(self, uuid: str) -> Collection | None:
        found = self.collections.get(uuid)
        return deepcopy(found) if found else None

    async def save(self, collection: Collection) -> Collection:
        self.saves += 1
        for other in self.collections.values():
            if (
                other.uuid != collection.uuid
                and other.owner_uuid == collection.owner_uuid
                and other.name == collection.name
            ):
                raise ArtifactNameConflict(f"name {collection.name!r} taken", field="name")
        self.collections[collection.uuid] = deepcopy(collection)
        return collection


def stored_request(uuid: str, **overrides) -> ContainerRequest:
    """A persisted-looking committed request, for seeding the repository directly."""
    values = dict(
        uuid=uuid,
        owner_uuid="user-1",
        state=State.COMMITTED,
        priority=1,
        command=["echo"],
        container_image="img",
        output_path="/out",
        runtime_constraints={"vcpus": 1, "ram": 128},
    )
    values.update(overrides)
    return ContainerRequest(**values)


NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

USER = Actor(uuid="user-1")
ADMIN = Actor(uuid="admin-1", is_admin=True)


def committable(**overrides) -> dict:
    """Attributes of a request that passes every commit-time check."""
    attrs = dict(
        command=["echo", "hello"],
        container_image="ubuntu:22.04",
        cwd="/tmp",
        output_path="/out",
        runtime_constraints={"vcpus": 2, "ram": 1024},
        mounts={"/out": {"kind": "tmp", "capacity": 1000000}},
    )
    attrs.update(overrides)
    return attrs
