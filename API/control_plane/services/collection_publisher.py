from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict

from control_plane.core.config import Settings
from control_plane.core.logging import get_logger
from control_plane.domain.collection import Collection
from control_plane.domain.container_request import ContainerRequest
from control_plane.domain.errors import ArtifactNameConflict, ConflictError, NotFoundError
from control_plane.domain.execution_unit import ExecutionUnit
from control_plane.domain.ports import CollectionStore

logger = get_logger(__name__)

ARTIFACT_SLOTS = ("log", "output")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CollectionPublisher:
    """
    Materializes an execution unit's log and output as collections owned by
    the request's owner, and reports the resulting uuids per slot.
    """

    def __init__(
        self,
        store: CollectionStore,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.settings = settings
        self.clock = clock

    async def publish(self, request: ContainerRequest, unit: ExecutionUnit) -> Dict[str, str]:
        """Returns ``{"log_uuid": ..., "output_uuid": ...}`` for the slots that produced content."""
        updates = {}
        for slot in ARTIFACT_SLOTS:
            pdh = unit.handle_for(slot)
            if pdh is None:
                continue
            collection = await self._publish_slot(request, slot, pdh)
            updates[f"{slot}_uuid"] = collection.uuid
        return updates

    async def _publish_slot(self, request: ContainerRequest, slot: str, pdh: str) -> Collection:
        name = f"Container {slot} for request {request.uuid}"
        trash_at = None
        if slot == "output":
            if request.output_name:
                name = request.output_name
            if request.output_ttl and request.output_ttl > 0:
                trash_at = self.clock() + timedelta(seconds=request.output_ttl)

        manifest = await self.store.manifest_for(pdh)
        if manifest is None:
            raise NotFoundError(f"no manifest stored for {pdh}", field=f"{slot}_uuid")

        existing_uuid = getattr(request, f"{slot}_uuid")
        collection = await self.store.get(existing_uuid) if existing_uuid else None
        if collection is None:
            collection = Collection(
                owner_uuid=request.owner_uuid,
                name=name,
                properties={"type": slot, "container_request": request.uuid},
            )

        collection.portable_data_hash = pdh
        collection.manifest_text = manifest
        collection.trash_at = trash_at
        collection.delete_at = trash_at

        saved = await self._save_with_unique_name(collection)
        logger.info(
            "collection.published",
            slot=slot,
            collection_uuid=saved.uuid,
            container_request=request.uuid,
            portable_data_hash=pdh,
        )
        return saved

    async def _save_with_unique_name(self, collection: Collection) -> Collection:
        """Save, renaming on name conflicts, at most ARTIFACT_NAME_RETRIES renames."""
        base_name = collection.name
        stamp = self.clock().strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        candidate = collection

        for attempt in range(self.settings.ARTIFACT_NAME_RETRIES + 1):
            try:
                return await self.store.save(candidate)
            except ArtifactNameConflict:
                suffix = stamp if attempt == 0 else f"{stamp} {attempt + 1}"
                candidate = replace(collection, name=f"{base_name} ({suffix})")
                logger.debug("collection.name_conflict", name=base_name, retry_name=candidate.name)

        raise ConflictError(
            f"could not find a free name for {base_name!r} after "
            f"{self.settings.ARTIFACT_NAME_RETRIES} attempts",
            field="name",
        )
