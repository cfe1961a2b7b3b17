import asyncio

from docker import DockerClient, from_env
from docker.errors import APIError, ImageNotFound

from control_plane.domain.errors import ResolutionError
from control_plane.domain.ports import ImageResolver


class DockerImageResolver(ImageResolver):
    """Pins image references (``nginx:latest``) to the image id the local daemon holds."""

    def __init__(self, docker_client: DockerClient | None = None):
        self._docker_client = docker_client

    @property
    def docker_client(self) -> DockerClient:
        if self._docker_client is None:
            self._docker_client = from_env()
        return self._docker_client

    async def pin(self, image: str) -> str:
        try:
            docker_image = await asyncio.to_thread(self.docker_client.images.get, image)
        except ImageNotFound:
            raise ResolutionError(f"image {image!r} not found", field="container_image")
        except APIError as e:
            raise RuntimeError(f"Docker image lookup failed: {e}")
        return docker_image.id
