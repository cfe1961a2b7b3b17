from dataclasses import dataclass
from datetime import datetime
from typing import AsyncContextManager, List, Protocol

from control_plane.domain.actor import Actor
from control_plane.domain.collection import Collection
from control_plane.domain.container_request import ContainerRequest, State
from control_plane.domain.execution_unit import ExecutionUnit


class ContainerRequestRepository(Protocol):
    def transaction(self) -> AsyncContextManager:
        """All-or-nothing scope for one mutation."""
        ...

    async def create(self, request: ContainerRequest) -> None: ...

    async def get(self, uuid: str) -> ContainerRequest | None: ...

    async def list(
        self,
        *,
        state: State | None = None,
        container_uuid: str | None = None,
    ) -> List[ContainerRequest]: ...

    async def update(self, request: ContainerRequest, *, expected_container_count: int) -> None:
        """Persist ``request`` if the stored container_count still equals
        ``expected_container_count``; raise ConflictError otherwise."""
        ...

    async def delete(self, uuid: str) -> None: ...

    async def max_priority_for_container(self, container_uuid: str) -> int | None:
        """Highest priority among requests bound to ``container_uuid``."""
        ...


class ExecutionUnitService(Protocol):
    async def resolve(self, request: ContainerRequest, *, actor: Actor) -> str:
        """Reuse or create an execution unit for ``request``. Returns its uuid."""
        ...

    async def lookup(self, uuid: str, *, actor: Actor) -> ExecutionUnit | None: ...

    async def recompute_priority(self, uuid: str, *, actor: Actor) -> None:
        """Derive the unit's priority from every request bound to it. Idempotent."""
        ...


class CollectionStore(Protocol):
    async def manifest_for(self, portable_data_hash: str) -> str | None: ...

    async def get(self, uuid: str) -> Collection | None: ...

    async def save(self, collection: Collection) -> Collection:
        """Insert or update. Raises ArtifactNameConflict when the name is taken."""
        ...


@dataclass(frozen=True)
class Authorization:
    uuid: str
    owner_uuid: str
    is_admin: bool = False
    container_uuid: str | None = None
    expires_at: datetime | None = None


class CredentialService(Protocol):
    async def validate(self, token: str) -> Authorization | None:
        """Return the authorization behind ``token`` or None if it is not valid."""
        ...


class ImageResolver(Protocol):
    async def pin(self, image: str) -> str:
        """Resolve an image reference to a concrete image id."""
        ...
