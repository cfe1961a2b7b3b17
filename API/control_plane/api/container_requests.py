from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import NoReturn

from control_plane.api.deps import get_actor, get_container_request_service
from control_plane.domain.actor import Actor
from control_plane.domain.container_request import State
from control_plane.domain.errors import ContainerRequestError, NotFoundError
from control_plane.schemas.container_request import (
    ContainerRequestAttributes,
    ContainerRequestResponse,
)
from control_plane.services.container_request_service import ContainerRequestService

router = APIRouter(prefix="/container_requests", tags=["container_requests"])


def _http_error(exc: ContainerRequestError) -> NoReturn:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=404, detail=exc.to_dict())
    raise HTTPException(status_code=422, detail=exc.to_dict())


@router.post("", response_model=ContainerRequestResponse, status_code=201)
async def create_container_request(
    payload: ContainerRequestAttributes,
    actor: Actor = Depends(get_actor),
    service: ContainerRequestService = Depends(get_container_request_service),
):
    try:
        return await service.create(actor, payload.model_dump(exclude_unset=True))
    except ContainerRequestError as e:
        _http_error(e)


@router.get("", response_model=list[ContainerRequestResponse])
async def list_container_requests(
    state: State | None = Query(None, description="Only requests in this state"),
    container_uuid: str | None = Query(None, description="Only requests bound to this container"),
    actor: Actor = Depends(get_actor),
    service: ContainerRequestService = Depends(get_container_request_service),
):
    return await service.list(state=state, container_uuid=container_uuid)


@router.get("/{uuid}", response_model=ContainerRequestResponse)
async def get_container_request(
    uuid: str,
    actor: Actor = Depends(get_actor),
    service: ContainerRequestService = Depends(get_container_request_service),
):
    try:
        return await service.get(uuid)
    except ContainerRequestError as e:
        _http_error(e)


@router.patch("/{uuid}", response_model=ContainerRequestResponse)
async def update_container_request(
    uuid: str,
    payload: ContainerRequestAttributes,
    actor: Actor = Depends(get_actor),
    service: ContainerRequestService = Depends(get_container_request_service),
):
    try:
        return await service.update(actor, uuid, payload.model_dump(exclude_unset=True))
    except ContainerRequestError as e:
        _http_error(e)


@router.post("/{uuid}/finalize", response_model=ContainerRequestResponse,
             summary="Re-check a request after its container changed status")
async def finalize_container_request(
    uuid: str,
    actor: Actor = Depends(get_actor),
    service: ContainerRequestService = Depends(get_container_request_service),
):
    try:
        return await service.finalize_if_needed(uuid)
    except ContainerRequestError as e:
        _http_error(e)


@router.delete("/{uuid}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_container_request(
    uuid: str,
    actor: Actor = Depends(get_actor),
    service: ContainerRequestService = Depends(get_container_request_service),
):
    try:
        await service.destroy(actor, uuid)
    except ContainerRequestError as e:
        _http_error(e)
