from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4


@dataclass
class Collection:
    """Artifact record: a named, owned pointer to stored content."""
    owner_uuid: str
    name: str
    uuid: str = field(default_factory=lambda: str(uuid4()))
    portable_data_hash: str | None = None
    manifest_text: str = ""
    properties: dict = field(default_factory=dict)
    trash_at: datetime | None = None
    delete_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
