# tests/test_finalization.py
from datetime import timedelta

import pytest

from control_plane.domain.actor import SYSTEM_ACTOR
from control_plane.domain.container_request import State
from control_plane.domain.execution_unit import ExecutionUnit, UnitState

from fakes import NOW, USER, committable

OUTPUT_PDH = "fa7aeb5140e2848d39b416daeef4ffc5+45"
LOG_PDH = "d41d8cd98f00b204e9800998ecf8427e+0"


@pytest.mark.asyncio
async def test_finalize_publishes_output_only(service, units, store):
    cr = await service.create(USER, committable(state="Committed"))
    units.finish("ctr-1", output=OUTPUT_PDH)

    final = await service.finalize_if_needed(cr.uuid)

    assert final.state == State.FINAL
    assert final.log_uuid is None
    assert list(store.collections) == [final.output_uuid]

    output = store.collections[final.output_uuid]
    assert output.properties == {"type": "output", "container_request": cr.uuid}
    assert output.owner_uuid == "user-1"
    assert output.name == f"Container output for request {cr.uuid}"
    assert output.portable_data_hash == OUTPUT_PDH
    assert output.manifest_text == store.manifests[OUTPUT_PDH]
    assert output.trash_at is None


@pytest.mark.asyncio
async def test_finalize_publishes_log_and_output(service, units, store):
    cr = await service.create(USER, committable(state="Committed"))
    units.finish("ctr-1", output=OUTPUT_PDH, log=LOG_PDH)

    final = await service.finalize_if_needed(cr.uuid)

    log = store.collections[final.log_uuid]
    assert log.name == f"Container log for request {cr.uuid}"
    assert log.properties == {"type": "log", "container_request": cr.uuid}
    assert len(store.collections) == 2


@pytest.mark.asyncio
async def test_finalize_is_attributed_to_system(service, units):
    cr = await service.create(USER, committable(state="Committed"))
    units.finish("ctr-1", output=OUTPUT_PDH)

    final = await service.finalize_if_needed(cr.uuid)

    assert final.modified_by_uuid == SYSTEM_ACTOR.uuid
    assert units.recomputed[-1] == ("ctr-1", SYSTEM_ACTOR)


@pytest.mark.asyncio
async def test_output_ttl_sets_expiry(service, units, store):
    cr = await service.create(USER, committable(state="Committed", output_ttl=3600))
    units.finish("ctr-1", output=OUTPUT_PDH)

    final = await service.finalize_if_needed(cr.uuid)

    output = store.collections[final.output_uuid]
    assert output.trash_at == NOW + timedelta(seconds=3600)
    assert output.delete_at == NOW + timedelta(seconds=3600)


@pytest.mark.asyncio
async def test_finalize_scrubs_secrets(service, units, repo):
    cr = await service.create(USER, committable(
        state="Committed",
        secret_mounts={"/secret": {"kind": "text", "content": "hunter2"}},
        runtime_token="v2/auth-1/secret",
    ))
    assert cr.secret_mounts and cr.runtime_token

    units.finish("ctr-1", state=UnitState.CANCELLED)
    final = await service.finalize_if_needed(cr.uuid)

    stored = await repo.get(cr.uuid)
    for request in (final, stored):
        assert request.state == State.FINAL
        assert request.secret_mounts == {}
        assert request.runtime_token is None


@pytest.mark.asyncio
async def test_finalize_twice_is_a_noop(service, units, store):
    cr = await service.create(USER, committable(state="Committed"))
    units.finish("ctr-1", output=OUTPUT_PDH)

    first = await service.finalize_if_needed(cr.uuid)
    saves = store.saves
    second = await service.finalize_if_needed(cr.uuid)

    assert second.state == State.FINAL
    assert second.output_uuid == first.output_uuid
    assert store.saves == saves
    assert len(store.collections) == 1


@pytest.mark.asyncio
async def test_finalize_waits_for_unit(service, units, store):
    cr = await service.create(USER, committable(state="Committed"))
    units.units["ctr-1"].state = UnitState.RUNNING

    still = await service.finalize_if_needed(cr.uuid)

    assert still.state == State.COMMITTED
    assert store.collections == {}


@pytest.mark.asyncio
async def test_any_mutation_triggers_finalization(service, units):
    cr = await service.create(USER, committable(state="Committed", priority=1))
    units.finish("ctr-1", output=OUTPUT_PDH)

    # cancelling through priority=0 after the unit is done
    updated = await service.update(USER, cr.uuid, {"priority": 0})

    assert updated.state == State.FINAL
    assert updated.priority == 0
    assert updated.output_uuid is not None


@pytest.mark.asyncio
async def test_finalization_failure_does_not_fail_the_caller(service, units, store, repo):
    cr = await service.create(USER, committable(state="Committed", priority=1))
    units.finish("ctr-1", output="0123456789abcdef0123456789abcdef+99")

    updated = await service.update(USER, cr.uuid, {"priority": 2})

    assert updated.state == State.COMMITTED
    assert updated.priority == 2
    assert (await repo.get(cr.uuid)).state == State.COMMITTED
    assert store.collections == {}

    # once the manifest shows up, the next attempt goes through
    store.manifests["0123456789abcdef0123456789abcdef+99"] = ". 0:0:empty\n"
    final = await service.finalize_if_needed(cr.uuid)
    assert final.state == State.FINAL


@pytest.mark.asyncio
async def test_reusing_a_finished_unit_finalizes_on_commit(service, units, store):
    async def resolve_finished(request, *, actor):
        return "ctr-done"

    units.units["ctr-done"] = ExecutionUnit(uuid="ctr-done", state=UnitState.COMPLETE, output=OUTPUT_PDH)
    units.resolve = resolve_finished

    cr = await service.create(USER, committable(state="Committed", output_name="results"))

    assert cr.state == State.FINAL
    assert store.collections[cr.output_uuid].name == "results"
