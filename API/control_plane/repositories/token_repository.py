import hmac
from datetime import datetime, timezone

from sqlalchemy import select

from control_plane.core.database import database
from control_plane.domain.ports import Authorization, CredentialService
from control_plane.models.db import ApiClientAuthorizationDB


def parse_v2_token(token: str) -> tuple[str, str] | None:
    """Split ``v2/<authorization uuid>/<secret>``; None if the shape is wrong."""
    parts = token.split("/")
    if len(parts) != 3 or parts[0] != "v2" or not parts[1] or not parts[2]:
        return None
    return parts[1], parts[2]


def _aware(value: datetime | None) -> datetime | None:
    # sqlite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SQLCredentialService(CredentialService):
    async def validate(self, token: str) -> Authorization | None:
        parsed = parse_v2_token(token)
        if parsed is None:
            return None
        uuid, secret = parsed

        row = await database.fetch_one(
            select(ApiClientAuthorizationDB).where(ApiClientAuthorizationDB.uuid == uuid)
        )
        if not row or not hmac.compare_digest(row["secret"], secret):
            return None

        expires_at = _aware(row["expires_at"])
        if expires_at is not None and expires_at <= datetime.now(timezone.utc):
            return None

        return Authorization(
            uuid=row["uuid"],
            owner_uuid=row["owner_uuid"],
            is_admin=row["is_admin"],
            container_uuid=row["container_uuid"],
            expires_at=expires_at,
        )
