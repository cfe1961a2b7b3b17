from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Any, Optional

from control_plane.domain.container_request import State


class ContainerRequestAttributes(BaseModel):
    """
    Attributes a client may send on create or update.

    Values are deliberately loose: datatype problems are reported by the
    control plane per field instead of being rejected here.
    """
    model_config = ConfigDict(extra="forbid")

    owner_uuid: Optional[str] = None
    state: Any = Field(None, description="Uncommitted, Committed or Final")
    priority: Any = Field(None, description="0 (cancel) to 1000")
    name: Optional[str] = None
    description: Optional[str] = None
    properties: Any = None
    expires_at: Optional[datetime] = None
    filters: Optional[str] = None

    command: Any = None
    container_image: Any = None
    cwd: Any = None
    output_path: Any = None
    environment: Any = None
    mounts: Any = None
    secret_mounts: Any = None
    runtime_constraints: Any = None
    scheduling_parameters: Any = None
    runtime_token: Any = None
    use_existing: Optional[bool] = None

    output_name: Optional[str] = None
    output_ttl: Any = Field(None, description="Seconds the output is kept, 0 = forever")

    container_uuid: Optional[str] = None
    container_count: Any = None
    container_count_max: Any = None
    requesting_container_uuid: Optional[str] = None
    output_uuid: Optional[str] = None
    log_uuid: Optional[str] = None


class ContainerRequestResponse(BaseModel):
    uuid: str
    owner_uuid: str
    state: State
    priority: Optional[int]
    name: Optional[str]
    description: Optional[str]
    properties: dict[str, Any]
    expires_at: Optional[datetime]
    filters: Optional[str]

    command: list[Any]
    container_image: Optional[str]
    cwd: Optional[str]
    output_path: Optional[str]
    environment: dict[str, Any]
    mounts: dict[str, Any]
    runtime_constraints: dict[str, Any]
    scheduling_parameters: dict[str, Any]
    use_existing: bool

    output_name: Optional[str]
    output_ttl: Optional[int]
    output_uuid: Optional[str]
    log_uuid: Optional[str]

    container_uuid: Optional[str]
    container_count: int
    container_count_max: Optional[int]
    requesting_container_uuid: Optional[str]

    created_at: datetime
    modified_at: Optional[datetime]
    modified_by_uuid: Optional[str]
