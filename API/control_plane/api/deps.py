from fastapi import Depends, Header, HTTPException, Request

from control_plane.domain.actor import Actor
from control_plane.domain.ports import CredentialService
from control_plane.services.container_request_service import ContainerRequestService


def get_container_request_service(request: Request) -> ContainerRequestService:
    return request.app.state.container_request_service


def get_credentials(request: Request) -> CredentialService:
    return request.app.state.credentials


async def get_actor(
    authorization: str | None = Header(None),
    credentials: CredentialService = Depends(get_credentials),
) -> Actor:
    """Turn the bearer token into the actor every mutation is attributed to."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(401, "Missing bearer token")

    auth = await credentials.validate(authorization[len("Bearer "):].strip())
    if auth is None:
        raise HTTPException(401, "Invalid or expired token")

    return Actor(
        uuid=auth.owner_uuid,
        is_admin=auth.is_admin,
        container_uuid=auth.container_uuid,
    )
