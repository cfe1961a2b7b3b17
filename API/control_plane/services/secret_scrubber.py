from typing import Any

from control_plane.domain.container_request import SECRET_FIELDS, ContainerRequest, State


def redacted_repr(name: str, value: Any) -> str:
    """repr() of a field value for error messages; secret fields stay hidden."""
    return "[redacted]" if name in SECRET_FIELDS else repr(value)


class SecretScrubber:
    """Drops secrets once a request is Final, whatever they held before."""

    def scrub(self, request: ContainerRequest) -> None:
        if request.state == State.FINAL:
            request.secret_mounts = {}
            request.runtime_token = None
