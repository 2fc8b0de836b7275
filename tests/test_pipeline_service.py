"""
Tests for pipeline moves against the (mocked) tenant database.
"""

import pytest
from pymongo.errors import PyMongoError

from conftest import TENANT_ID
from crm_core.clients.db_service import ClientDBService
from crm_core.clients.models import ClientCreate
from crm_core.pipeline.db_service import StageDBService
from crm_core.pipeline.service import ClientNotOnBoardError, PipelineService


@pytest.fixture
async def seeded(tenant_db):
    stages = await StageDBService(tenant_db).seed_default_stages(TENANT_ID)
    client_service = ClientDBService(tenant_db)
    ana = await client_service.create_client(TENANT_ID, ClientCreate(name="Ana", phone="(48) 99876-0001"))
    bia = await client_service.create_client(
        TENANT_ID, ClientCreate(name="Bia", phone="(48) 99876-0002", stage_id=stages[2].stage_id)
    )
    return {"stages": stages, "ana": ana, "bia": bia}


async def test_new_clients_start_in_first_stage(seeded):
    assert seeded["ana"].stage_id == seeded["stages"][0].stage_id


async def test_move_to_stage_persists(tenant_db, seeded):
    target = seeded["stages"][1].stage_id
    service = PipelineService(tenant_db, TENANT_ID)

    result = await service.move_client(seeded["ana"].client_id, target)

    assert result.moved
    assert result.from_stage_id == seeded["stages"][0].stage_id
    assert result.to_stage_id == target
    stored = await ClientDBService(tenant_db).get_client(seeded["ana"].client_id, TENANT_ID)
    assert stored.stage_id == target


async def test_drop_on_client_uses_its_stage(tenant_db, seeded):
    service = PipelineService(tenant_db, TENANT_ID)

    result = await service.move_client(seeded["ana"].client_id, seeded["bia"].client_id)

    assert result.moved
    assert result.to_stage_id == seeded["stages"][2].stage_id
    assert [c.client_id for c in result.board.columns[result.to_stage_id]] == [
        seeded["bia"].client_id,
        seeded["ana"].client_id,
    ]


async def test_same_stage_or_unknown_target_is_a_noop(tenant_db, seeded, mocker):
    service = PipelineService(tenant_db, TENANT_ID)
    update_stage = mocker.spy(service.client_service, "update_stage")

    same = await service.move_client(seeded["ana"].client_id, seeded["stages"][0].stage_id)
    unknown = await service.move_client(seeded["ana"].client_id, "nowhere")

    assert not same.moved
    assert not unknown.moved
    update_stage.assert_not_called()


async def test_unknown_client_raises(tenant_db, seeded):
    service = PipelineService(tenant_db, TENANT_ID)

    with pytest.raises(ClientNotOnBoardError):
        await service.move_client("cli_missing", seeded["stages"][1].stage_id)


async def test_failed_write_reloads_board(tenant_db, seeded, mocker):
    service = PipelineService(tenant_db, TENANT_ID)
    await service.load_board()
    mocker.patch.object(
        service.client_service,
        "update_stage",
        side_effect=PyMongoError("connection reset"),
    )

    with pytest.raises(PyMongoError):
        await service.move_client(seeded["ana"].client_id, seeded["stages"][3].stage_id)

    first, fourth = seeded["stages"][0].stage_id, seeded["stages"][3].stage_id
    assert [c.client_id for c in service.board.columns[first]] == [seeded["ana"].client_id]
    assert service.board.columns[fourth] == []


async def test_client_deleted_meanwhile_reloads_board(tenant_db, seeded):
    service = PipelineService(tenant_db, TENANT_ID)
    await service.load_board()
    await ClientDBService(tenant_db).soft_delete(seeded["ana"].client_id, TENANT_ID)

    with pytest.raises(ClientNotOnBoardError):
        await service.move_client(seeded["ana"].client_id, seeded["stages"][1].stage_id)

    assert service.board.find_client(seeded["ana"].client_id) is None
