# tests/test_execution_units.py
import pytest
from unittest.mock import AsyncMock, MagicMock

from docker.errors import ImageNotFound

from control_plane.domain.errors import ResolutionError
from control_plane.domain.execution_unit import UnitState
from control_plane.repositories import execution_unit_repository
from control_plane.repositories.execution_unit_repository import (
    SQLExecutionUnitService,
    fingerprint,
    reuse_spec,
)
from control_plane.repositories.token_repository import parse_v2_token
from control_plane.services.docker_images import DockerImageResolver

from fakes import stored_request


def test_fingerprint_ignores_key_order_and_unset_typed_fields():
    a = stored_request(
        "cr-a",
        mounts={"/out": {"kind": "tmp", "capacity": 10}},
        runtime_constraints={"ram": 128, "vcpus": 1},
    )
    b = stored_request(
        "cr-b",
        mounts={"/out": {"capacity": 10, "kind": "tmp", "writable": None}},
        runtime_constraints={"vcpus": 1, "ram": 128, "keep_cache_ram": None},
        name="different name",
        priority=500,
    )

    assert fingerprint(reuse_spec(a, "sha256:1")) == fingerprint(reuse_spec(b, "sha256:1"))


def test_fingerprint_depends_on_pinned_image():
    cr = stored_request("cr-a")
    assert fingerprint(reuse_spec(cr, "sha256:1")) != fingerprint(reuse_spec(cr, "sha256:2"))


def test_untyped_mount_keys_survive_the_typed_view():
    cr = stored_request("cr-a", mounts={"/cfg": {"kind": "json", "content": {"a": 1}}})
    assert reuse_spec(cr, "sha256:1")["mounts"] == {"/cfg": {"kind": "json", "content": {"a": 1}}}


@pytest.mark.parametrize("token,expected", [
    ("v2/auth-1/secret", ("auth-1", "secret")),
    ("v2/auth-1", None),
    ("v1/auth-1/secret", None),
    ("v2//secret", None),
    ("v2/auth-1/secret/extra", None),
])
def test_parse_v2_token(token, expected):
    assert parse_v2_token(token) == expected


def _row(uuid, state, output=None):
    return {"uuid": uuid, "state": state.value, "priority": 0, "log": None, "output": output}


@pytest.mark.asyncio
async def test_resolve_prefers_completed_unit(monkeypatch):
    db = AsyncMock()
    db.fetch_all = AsyncMock(return_value=[
        _row("ctr-queued", UnitState.QUEUED),
        _row("ctr-running", UnitState.RUNNING),
        _row("ctr-done-no-output", UnitState.COMPLETE),
        _row("ctr-done", UnitState.COMPLETE, output="abc+1"),
    ])
    monkeypatch.setattr(execution_unit_repository, "database", db)
    images = AsyncMock()
    images.pin = AsyncMock(return_value="sha256:1")

    uuid = await SQLExecutionUnitService(images).resolve(stored_request("cr-1"), actor=None)

    assert uuid == "ctr-done"
    db.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_resolve_creates_unit_when_reuse_disabled(monkeypatch):
    db = AsyncMock()
    monkeypatch.setattr(execution_unit_repository, "database", db)
    images = AsyncMock()
    images.pin = AsyncMock(return_value="sha256:1")
    actor = MagicMock(uuid="user-1")

    uuid = await SQLExecutionUnitService(images).resolve(
        stored_request("cr-1", use_existing=False), actor=actor
    )

    assert uuid
    db.fetch_all.assert_not_awaited()
    db.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_unknown_image_is_a_resolution_error():
    client = MagicMock()
    client.images.get.side_effect = ImageNotFound("no such image")

    with pytest.raises(ResolutionError) as exc:
        await DockerImageResolver(client).pin("missing:latest")

    assert exc.value.field == "container_image"


@pytest.mark.asyncio
async def test_image_is_pinned_to_its_id():
    client = MagicMock()
    client.images.get.return_value = MagicMock(id="sha256:abc")

    assert await DockerImageResolver(client).pin("nginx:latest") == "sha256:abc"
    client.images.get.assert_called_once_with("nginx:latest")
