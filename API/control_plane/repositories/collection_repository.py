from sqlalchemy import insert, select, update

from control_plane.core.database import database
from control_plane.domain.collection import Collection
from control_plane.domain.errors import ArtifactNameConflict
from control_plane.domain.ports import CollectionStore
from control_plane.models.db import CollectionDB


class SQLCollectionStore(CollectionStore):
    async def manifest_for(self, portable_data_hash: str) -> str | None:
        return await database.fetch_val(
            select(CollectionDB.manifest_text)
            .where(CollectionDB.portable_data_hash == portable_data_hash)
            .limit(1)
        )

    async def get(self, uuid: str) -> Collection | None:
        row = await database.fetch_one(
            select(CollectionDB).where(CollectionDB.uuid == uuid)
        )
        if not row:
            return None
        return Collection(
            uuid=row["uuid"],
            owner_uuid=row["owner_uuid"],
            name=row["name"],
            portable_data_hash=row["portable_data_hash"],
            manifest_text=row["manifest_text"],
            properties=row["properties"],
            trash_at=row["trash_at"],
            delete_at=row["delete_at"],
            created_at=row["created_at"],
        )

    async def save(self, collection: Collection) -> Collection:
        taken = await database.fetch_val(
            select(CollectionDB.uuid)
            .where(CollectionDB.owner_uuid == collection.owner_uuid)
            .where(CollectionDB.name == collection.name)
            .where(CollectionDB.uuid != collection.uuid)
        )
        if taken is not None:
            raise ArtifactNameConflict(
                f"name {collection.name!r} already used by {taken}", field="name"
            )

        values = dict(
            owner_uuid=collection.owner_uuid,
            name=collection.name,
            portable_data_hash=collection.portable_data_hash,
            manifest_text=collection.manifest_text,
            properties=collection.properties,
            trash_at=collection.trash_at,
            delete_at=collection.delete_at,
        )
        if await self.get(collection.uuid) is None:
            await database.execute(
                insert(CollectionDB).values(uuid=collection.uuid, created_at=collection.created_at, **values)
            )
        else:
            await database.execute(
                update(CollectionDB).where(CollectionDB.uuid == collection.uuid).values(**values)
            )
        return collection
