from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping


class State(str, Enum):
    UNCOMMITTED = "Uncommitted"
    COMMITTED = "Committed"
    FINAL = "Final"


# Wire keys with a fixed type inside a mount spec.
MOUNT_STRING_FIELDS = (
    "kind", "portable_data_hash", "uuid", "device_type",
    "path", "commit", "repository_name", "git_url",
)
MOUNT_INTEGER_FIELDS = ("capacity",)
MOUNT_BOOLEAN_FIELDS = ("writable", "exclude_from_output")


def _split(data: Mapping[str, Any], known: tuple[str, ...]) -> tuple[dict, dict]:
    typed = {k: data.get(k) for k in known}
    extra = {k: v for k, v in data.items() if k not in known}
    return typed, extra


def _compact(values: dict[str, Any], extra: Mapping[str, Any]) -> dict[str, Any]:
    out = {k: v for k, v in values.items() if v is not None}
    out.update(extra)
    return out


@dataclass(frozen=True)
class Mount:
    """Typed view of one mounts / secret_mounts entry.

    Keys without a fixed type (``content`` of json mounts, for instance) are
    kept in ``extra`` so ``to_wire`` gives back what the client sent.
    """
    kind: str
    portable_data_hash: str | None = None
    uuid: str | None = None
    device_type: str | None = None
    path: str | None = None
    commit: str | None = None
    repository_name: str | None = None
    git_url: str | None = None
    capacity: int | None = None
    writable: bool | None = None
    exclude_from_output: bool | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "Mount":
        typed, extra = _split(
            data, MOUNT_STRING_FIELDS + MOUNT_INTEGER_FIELDS + MOUNT_BOOLEAN_FIELDS
        )
        return cls(**typed, extra=extra)

    def to_wire(self) -> dict[str, Any]:
        values = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "extra"}
        return _compact(values, self.extra)


@dataclass(frozen=True)
class RuntimeConstraints:
    vcpus: int
    ram: int
    keep_cache_ram: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "RuntimeConstraints":
        typed, extra = _split(data, ("vcpus", "ram", "keep_cache_ram"))
        return cls(**typed, extra=extra)

    def to_wire(self) -> dict[str, Any]:
        return _compact(
            {"vcpus": self.vcpus, "ram": self.ram, "keep_cache_ram": self.keep_cache_ram},
            self.extra,
        )


@dataclass(frozen=True)
class SchedulingParameters:
    partitions: tuple[str, ...] | None = None
    preemptible: bool | None = None
    max_run_time: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "SchedulingParameters":
        typed, extra = _split(data, ("partitions", "preemptible", "max_run_time"))
        if typed["partitions"] is not None:
            typed["partitions"] = tuple(typed["partitions"])
        return cls(**typed, extra=extra)

    def to_wire(self) -> dict[str, Any]:
        return _compact(
            {
                "partitions": list(self.partitions) if self.partitions is not None else None,
                "preemptible": self.preemptible,
                "max_run_time": self.max_run_time,
            },
            self.extra,
        )


@dataclass
class ContainerRequest:
    uuid: str
    owner_uuid: str
    state: State = State.UNCOMMITTED
    priority: int | None = 0

    container_uuid: str | None = None
    requesting_container_uuid: str | None = None
    container_count: int = 0
    container_count_max: int | None = None
    use_existing: bool = True

    command: list[Any] = field(default_factory=list)
    container_image: str | None = None
    cwd: str | None = "."
    output_path: str | None = None
    environment: dict[str, Any] = field(default_factory=dict)
    mounts: dict[str, Any] = field(default_factory=dict)
    secret_mounts: dict[str, Any] = field(default_factory=dict)
    runtime_constraints: dict[str, Any] = field(default_factory=dict)
    scheduling_parameters: dict[str, Any] = field(default_factory=dict)
    runtime_token: str | None = None

    output_name: str | None = None
    output_ttl: int | None = 0
    output_uuid: str | None = None
    log_uuid: str | None = None

    expires_at: datetime | None = None
    filters: str | None = None
    description: str | None = None
    name: str | None = None
    properties: dict[str, Any] = field(default_factory=dict)

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    modified_at: datetime | None = None
    modified_by_uuid: str | None = None

    def typed_mounts(self) -> dict[str, Mount]:
        return {k: Mount.from_wire(v) for k, v in self.mounts.items()}

    def typed_secret_mounts(self) -> dict[str, Mount]:
        return {k: Mount.from_wire(v) for k, v in self.secret_mounts.items()}

    def typed_runtime_constraints(self) -> RuntimeConstraints:
        return RuntimeConstraints.from_wire(self.runtime_constraints)

    def typed_scheduling_parameters(self) -> SchedulingParameters:
        return SchedulingParameters.from_wire(self.scheduling_parameters)


# Maintained by the control plane itself, never accepted from a caller.
SYSTEM_MANAGED_FIELDS = frozenset({"uuid", "created_at", "modified_at", "modified_by_uuid"})

# Every other attribute of ContainerRequest.
REQUEST_FIELDS = tuple(
    f.name for f in fields(ContainerRequest) if f.name not in SYSTEM_MANAGED_FIELDS
)

# Never echoed back to callers or written to logs.
SECRET_FIELDS = frozenset({"secret_mounts", "runtime_token"})
