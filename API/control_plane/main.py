from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from control_plane.api import container_requests
from control_plane.core.config import settings
from control_plane.core.database import create_tables, database
from control_plane.core.logging import configure_logging, get_logger

from control_plane.repositories.collection_repository import SQLCollectionStore
from control_plane.repositories.container_request_repository import SQLContainerRequestRepository
from control_plane.repositories.execution_unit_repository import SQLExecutionUnitService
from control_plane.repositories.token_repository import SQLCredentialService

from control_plane.services.container_request_service import ContainerRequestService
from control_plane.services.docker_images import DockerImageResolver

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(
        level=settings.LOG_LEVEL,
        json_format=settings.LOG_JSON,
        service=settings.SERVICE_NAME,
    )
    create_tables(settings.DATABASE_URL)
    await database.connect()

    credentials = SQLCredentialService()
    app.state.credentials = credentials
    app.state.container_request_service = ContainerRequestService(
        SQLContainerRequestRepository(),
        SQLExecutionUnitService(DockerImageResolver()),
        SQLCollectionStore(),
        credentials,
        settings,
    )
    logger.info("control_plane.started", database=settings.DATABASE_URL.split("://")[0])
    yield
    await database.disconnect()


app = FastAPI(title="Mini AWS – Container Request Control Plane", lifespan=lifespan)

origins = [
    "http://localhost:5173"
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,  # can also be ["*"] for development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(container_requests.router)
