from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from uuid import uuid4

Base = declarative_base()

def gen_uuid():
    return str(uuid4())

class ContainerRequestDB(Base):
    __tablename__ = "container_requests"

    uuid = Column(String, primary_key=True, default=gen_uuid)
    owner_uuid = Column(String, nullable=False, index=True)
    state = Column(String, nullable=False, default="Uncommitted")  # Uncommitted / Committed / Final
    priority = Column(Integer, nullable=False, default=0)

    container_uuid = Column(String, nullable=True, index=True)
    requesting_container_uuid = Column(String, nullable=True, index=True)
    container_count = Column(Integer, nullable=False, default=0)
    container_count_max = Column(Integer, nullable=True)
    use_existing = Column(Boolean, nullable=False, default=True)

    command = Column(JSON, nullable=False, default=list)
    container_image = Column(String, nullable=True)
    cwd = Column(String, nullable=True)
    output_path = Column(String, nullable=True)
    environment = Column(JSON, nullable=False, default=dict)
    mounts = Column(JSON, nullable=False, default=dict)
    secret_mounts = Column(JSON, nullable=False, default=dict)
    runtime_constraints = Column(JSON, nullable=False, default=dict)
    scheduling_parameters = Column(JSON, nullable=False, default=dict)
    runtime_token = Column(String, nullable=True)

    output_name = Column(String, nullable=True)
    output_ttl = Column(Integer, nullable=False, default=0)
    output_uuid = Column(String, nullable=True)
    log_uuid = Column(String, nullable=True)

    expires_at = Column(DateTime(timezone=True), nullable=True)
    filters = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    name = Column(String, nullable=True)
    properties = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    modified_at = Column(DateTime(timezone=True), nullable=True)
    modified_by_uuid = Column(String, nullable=True)

class ContainerDB(Base):
    """Execution units the requests are bound to."""
    __tablename__ = "containers"

    uuid = Column(String, primary_key=True, default=gen_uuid)
    state = Column(String, nullable=False, default="Queued")  # Queued / Locked / Running / Complete / Cancelled
    priority = Column(Integer, nullable=False, default=0)
    fingerprint = Column(String, nullable=False, index=True)  # sha256 over the reuse-relevant spec

    container_image = Column(String, nullable=False)
    image_id = Column(String, nullable=False)  # sha256:...
    command = Column(JSON, nullable=False)
    cwd = Column(String, nullable=False)
    output_path = Column(String, nullable=False)
    environment = Column(JSON, nullable=False, default=dict)
    mounts = Column(JSON, nullable=False, default=dict)
    secret_mounts = Column(JSON, nullable=False, default=dict)
    runtime_constraints = Column(JSON, nullable=False, default=dict)
    scheduling_parameters = Column(JSON, nullable=False, default=dict)
    runtime_token = Column(String, nullable=True)

    log = Column(String, nullable=True)     # portable data hash
    output = Column(String, nullable=True)  # portable data hash
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class CollectionDB(Base):
    __tablename__ = "collections"
    __table_args__ = (UniqueConstraint("owner_uuid", "name", name="uq_collections_owner_name"),)

    uuid = Column(String, primary_key=True, default=gen_uuid)
    owner_uuid = Column(String, nullable=False)
    name = Column(String, nullable=False)
    portable_data_hash = Column(String, nullable=True, index=True)
    manifest_text = Column(Text, nullable=False, default="")
    properties = Column(JSON, nullable=False, default=dict)
    trash_at = Column(DateTime(timezone=True), nullable=True)
    delete_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class ApiClientAuthorizationDB(Base):
    __tablename__ = "api_client_authorizations"

    uuid = Column(String, primary_key=True, default=gen_uuid)
    secret = Column(String, nullable=False)
    owner_uuid = Column(String, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    container_uuid = Column(String, nullable=True)  # set for tokens handed to a running container
    expires_at = Column(DateTime(timezone=True), nullable=True)
