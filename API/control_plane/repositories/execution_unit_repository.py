import hashlib
import json
from uuid import uuid4

from sqlalchemy import func, insert, select, update

from control_plane.core.database import database
from control_plane.core.logging import get_logger
from control_plane.domain.actor import Actor
from control_plane.domain.container_request import ContainerRequest, State
from control_plane.domain.execution_unit import ExecutionUnit, UnitState
from control_plane.domain.ports import ExecutionUnitService, ImageResolver
from control_plane.models.db import ContainerDB, ContainerRequestDB

logger = get_logger(__name__)

# Reuse preference: finished work first, then whatever is furthest along.
REUSE_ORDER = (UnitState.COMPLETE, UnitState.RUNNING, UnitState.LOCKED, UnitState.QUEUED)


def reuse_spec(request: ContainerRequest, image_id: str) -> dict:
    """The parts of a request that decide whether two requests can share a unit."""
    return {
        "command": request.command,
        "cwd": request.cwd,
        "environment": request.environment,
        "image_id": image_id,
        "mounts": {k: m.to_wire() for k, m in request.typed_mounts().items()},
        "output_path": request.output_path,
        "runtime_constraints": request.typed_runtime_constraints().to_wire(),
        "scheduling_parameters": request.typed_scheduling_parameters().to_wire(),
    }


def fingerprint(spec: dict) -> str:
    canonical = json.dumps(spec, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()


def _unit_from_row(row) -> ExecutionUnit:
    return ExecutionUnit(
        uuid=row["uuid"],
        state=UnitState(row["state"]),
        priority=row["priority"],
        log=row["log"],
        output=row["output"],
    )


class SQLExecutionUnitService(ExecutionUnitService):
    def __init__(self, image_resolver: ImageResolver):
        self.image_resolver = image_resolver

    async def resolve(self, request: ContainerRequest, *, actor: Actor) -> str:
        image_id = await self.image_resolver.pin(request.container_image)
        spec = reuse_spec(request, image_id)
        key = fingerprint(spec)

        if request.use_existing:
            reused = await self._find_reusable(key)
            if reused is not None:
                logger.info("container.reused", container_uuid=reused.uuid, state=reused.state.value)
                return reused.uuid

        container_uuid = str(uuid4())
        await database.execute(
            insert(ContainerDB).values(
                uuid=container_uuid,
                state=UnitState.QUEUED.value,
                priority=0,
                fingerprint=key,
                container_image=request.container_image,
                image_id=image_id,
                command=spec["command"],
                cwd=spec["cwd"],
                output_path=spec["output_path"],
                environment=spec["environment"],
                mounts=spec["mounts"],
                secret_mounts={k: m.to_wire() for k, m in request.typed_secret_mounts().items()},
                runtime_constraints=spec["runtime_constraints"],
                scheduling_parameters=spec["scheduling_parameters"],
                runtime_token=request.runtime_token,
            )
        )
        logger.info("container.created", container_uuid=container_uuid, actor=actor.uuid)
        return container_uuid

    async def _find_reusable(self, key: str) -> ExecutionUnit | None:
        rows = await database.fetch_all(
            select(ContainerDB)
            .where(ContainerDB.fingerprint == key)
            .where(ContainerDB.state != UnitState.CANCELLED.value)
            .order_by(ContainerDB.created_at)
        )
        units = [_unit_from_row(r) for r in rows]
        for state in REUSE_ORDER:
            for unit in units:
                if unit.state != state:
                    continue
                if state == UnitState.COMPLETE and unit.output is None:
                    continue
                return unit
        return None

    async def lookup(self, uuid: str, *, actor: Actor) -> ExecutionUnit | None:
        row = await database.fetch_one(select(ContainerDB).where(ContainerDB.uuid == uuid))
        if not row:
            return None
        return _unit_from_row(row)

    async def recompute_priority(self, uuid: str, *, actor: Actor) -> None:
        unit = await self.lookup(uuid, actor=actor)
        if unit is None or unit.is_final:
            return

        priority = await database.fetch_val(
            select(func.max(ContainerRequestDB.priority))
            .where(ContainerRequestDB.container_uuid == uuid)
            .where(ContainerRequestDB.state == State.COMMITTED.value)
        )
        await database.execute(
            update(ContainerDB)
            .where(ContainerDB.uuid == uuid)
            .values(priority=priority or 0)
        )
