import pytest
from unittest.mock import AsyncMock

from control_plane.core.config import Settings
from control_plane.domain.ports import Authorization
from control_plane.services.container_request_service import ContainerRequestService

from fakes import NOW, FakeCollectionStore, FakeExecutionUnits, InMemoryContainerRequestRepository


@pytest.fixture
def settings():
    return Settings(CONTAINER_COUNT_MAX=3, PREEMPTIBLE_INSTANCES=False, ARTIFACT_NAME_RETRIES=3)


@pytest.fixture
def repo():
    return InMemoryContainerRequestRepository()


@pytest.fixture
def units():
    return FakeExecutionUnits()


@pytest.fixture
def store():
    return FakeCollectionStore(manifests={
        "fa7aeb5140e2848d39b416daeef4ffc5+45": ". 37b51d194a7513e45b56f6524f2d51f2+3 0:3:bar\n",
        "d41d8cd98f00b204e9800998ecf8427e+0": "",
    })


@pytest.fixture
def credentials():
    credentials = AsyncMock()
    credentials.validate = AsyncMock(
        return_value=Authorization(uuid="auth-1", owner_uuid="user-1")
    )
    return credentials


@pytest.fixture
def service(repo, units, store, credentials, settings):
    return ContainerRequestService(repo, units, store, credentials, settings, clock=lambda: NOW)
