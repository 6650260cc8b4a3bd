import asyncio
import json
import pytest
import httpx
import respx
from app.services import transaction_record_service as records
from app.services.order_sync_service import OrderSyncService, OrderSyncState
from app.services.order_translator import OrderTranslator
from app.services.recovery_service import RecoveryService
from app.utils.exceptions import PosAuthError, PosLogicalError, PosTransportError

POS_HOST = "http://pos.test"
TRX_NO = "SW04W2301000500"

CONFIRMED = {"Data": 1, "Error": None}
DUPLICATE = {"Data": None, "Error": {"ErrCode": -1, "ErrMsg": f"SAL: Trx. no. exists:{TRX_NO}"}}
REJECTED = {"Data": None, "Error": {"ErrCode": 12, "ErrMsg": "Item code not found"}}


@pytest.fixture
def sync_service(pos_client, empty_catalog, db_sessionmaker):
    return OrderSyncService(client=pos_client, translator=OrderTranslator(catalog=empty_catalog))


@pytest.fixture
def pos_api():
    with respx.mock(base_url=POS_HOST, assert_all_called=False) as respx_mock:
        respx_mock.post("/api/Login", name="login").mock(
            return_value=httpx.Response(200, json={"Data": True, "Error": None, "WarningMsg": ["LOGIN-1"]})
        )
        respx_mock.post("/api/LockProcess", name="lock").mock(
            return_value=httpx.Response(200, json={"Data": "PROC-9", "Error": None})
        )
        respx_mock.post("/api/ExecuteFunction", name="execute").mock(
            return_value=httpx.Response(200, json=CONFIRMED)
        )
        respx_mock.post("/api/UnlockProcess", name="unlock").mock(
            return_value=httpx.Response(200, json={"Data": True, "Error": None})
        )
        respx_mock.post("/api/logout", name="logout").mock(
            return_value=httpx.Response(200, json={"Data": True, "Error": None})
        )
        yield respx_mock


@pytest.mark.asyncio
async def test_confirmed_order_walks_every_state(sync_service, pos_api, sample_order):
    attempt = await sync_service.sync_order(sample_order)

    assert attempt.trx_no == TRX_NO
    assert attempt.states == [
        OrderSyncState.START,
        OrderSyncState.RECORD_PERSISTED,
        OrderSyncState.SESSION_OPENED,
        OrderSyncState.LOCK_ACQUIRED,
        OrderSyncState.TRANSLATED,
        OrderSyncState.SUBMITTED,
        OrderSyncState.CONFIRMED,
        OrderSyncState.RELEASED,
        OrderSyncState.CLOSED,
        OrderSyncState.RECORD_FINALIZED,
    ]
    assert attempt.placed

    record = await records.get_record(TRX_NO)
    assert record.order_placed is True
    assert record.order_body["order_number"] == 500

    audit = await records.get_request_record(TRX_NO)
    assert audit.confirmation == "confirmed"
    assert audit.header["trx_no"] == TRX_NO


@pytest.mark.asyncio
async def test_submitted_document_is_json_of_translation(sync_service, pos_api, sample_order):
    attempt = await sync_service.sync_order(sample_order)

    request = pos_api["execute"].calls.last.request
    envelope = json.loads(json.loads(request.content.decode("utf-8")))
    data = {p["Name"]: p["Value"] for p in envelope["stringParms"]}
    assert data["window__action"] == "update__window_data"
    assert data["window__action_target"] == "SAL"
    assert json.loads(data["data"]) == attempt.document


@pytest.mark.asyncio
async def test_duplicate_is_absorbed_as_placed(sync_service, pos_api, sample_order):
    pos_api["execute"].mock(return_value=httpx.Response(200, json=DUPLICATE))

    attempt = await sync_service.sync_order(sample_order)

    assert OrderSyncState.DUPLICATE_CONFIRMED in attempt.states
    assert attempt.state is OrderSyncState.RECORD_FINALIZED
    assert (await records.get_record(TRX_NO)).order_placed is True
    assert (await records.get_request_record(TRX_NO)).confirmation == "duplicate"


@pytest.mark.asyncio
async def test_logical_failure_leaves_record_unplaced(sync_service, pos_api, sample_order):
    pos_api["execute"].mock(return_value=httpx.Response(200, json=REJECTED))

    with pytest.raises(PosLogicalError) as exc_info:
        await sync_service.sync_order(sample_order)

    assert exc_info.value.trx_no == TRX_NO
    assert exc_info.value.err_code == 12
    assert pos_api["unlock"].call_count == 1
    assert pos_api["logout"].call_count == 1
    assert (await records.get_record(TRX_NO)).order_placed is False
    assert await records.get_request_record(TRX_NO) is None


@pytest.mark.asyncio
async def test_submit_failure_still_releases_and_closes_once(sync_service, pos_api, sample_order):
    pos_api["execute"].mock(return_value=httpx.Response(500))

    with pytest.raises(PosTransportError):
        await sync_service.sync_order(sample_order)

    assert pos_api["unlock"].call_count == 1
    assert pos_api["logout"].call_count == 1
    assert (await records.get_record(TRX_NO)).order_placed is False


@pytest.mark.asyncio
async def test_login_failure_never_locks(sync_service, pos_api, sample_order):
    pos_api["login"].mock(return_value=httpx.Response(200, json={"Data": False, "Error": None}))

    with pytest.raises(PosAuthError):
        await sync_service.sync_order(sample_order)

    assert pos_api["lock"].call_count == 0
    assert pos_api["unlock"].call_count == 0
    assert pos_api["logout"].call_count == 0
    assert (await records.get_record(TRX_NO)).order_placed is False


@pytest.mark.asyncio
async def test_redelivered_order_is_not_resubmitted(sync_service, pos_api, sample_order):
    await sync_service.sync_order(sample_order)
    assert pos_api["login"].call_count == 1

    attempt = await sync_service.sync_order(sample_order)

    assert attempt.states == [OrderSyncState.START, OrderSyncState.ALREADY_PLACED]
    assert attempt.placed
    assert pos_api["login"].call_count == 1


@pytest.mark.asyncio
async def test_recovery_places_order_after_failed_webhook_attempt(sync_service, pos_api, sample_order):
    await records.upsert_record("SW04W2301000400", {**sample_order, "order_number": 400})
    await records.mark_placed("SW04W2301000400")

    pos_api["execute"].mock(return_value=httpx.Response(500))
    with pytest.raises(PosTransportError):
        await sync_service.sync_order(sample_order)

    incomplete = await records.find_incomplete_records()
    assert [r.trx_no for r in incomplete] == [TRX_NO]

    pos_api["execute"].mock(return_value=httpx.Response(200, json=CONFIRMED))
    result = await RecoveryService(sync_service=sync_service).run_incomplete_order_recovery()

    assert result == {"recoveredCount": 1, "total": 1, "failed": []}
    assert pos_api["execute"].call_count == 2
    assert (await records.get_record(TRX_NO)).order_placed is True
    assert (await records.get_record("SW04W2301000400")).order_placed is True
    assert await records.find_incomplete_records() == []


@pytest.mark.asyncio
async def test_recovery_continues_past_failing_record(sync_service, pos_api, sample_order):
    await records.upsert_record("SW04W2301000499", {**sample_order, "order_number": 499})
    await records.upsert_record(TRX_NO, sample_order)

    def execute(request):
        envelope = json.loads(json.loads(request.content.decode("utf-8")))
        data = {p["Name"]: p["Value"] for p in envelope["stringParms"]}["data"]
        if json.loads(data)["hdr"]["trx_no"] == "SW04W2301000499":
            return httpx.Response(200, json=REJECTED)
        return httpx.Response(200, json=CONFIRMED)

    pos_api["execute"].mock(side_effect=execute)
    result = await RecoveryService(sync_service=sync_service).run_incomplete_order_recovery()

    assert result["total"] == 2
    assert result["recoveredCount"] == 1
    assert result["failed"] == ["SW04W2301000499"]
    assert (await records.get_record(TRX_NO)).order_placed is True
    assert (await records.get_record("SW04W2301000499")).order_placed is False


@pytest.mark.asyncio
async def test_concurrent_recovery_passes_submit_once(sync_service, pos_api, sample_order):
    await records.upsert_record(TRX_NO, sample_order)

    async def slow_execute(request):
        await asyncio.sleep(0.05)
        return httpx.Response(200, json=CONFIRMED)

    pos_api["execute"].mock(side_effect=slow_execute)
    recovery = RecoveryService(sync_service=sync_service)

    first, second = await asyncio.gather(
        recovery.run_incomplete_order_recovery(),
        recovery.run_incomplete_order_recovery(),
    )

    assert pos_api["login"].call_count == 1
    assert pos_api["execute"].call_count == 1
    assert first == {"recoveredCount": 1, "total": 1, "failed": []}
    assert second == {"recoveredCount": 0, "total": 0, "failed": []}
