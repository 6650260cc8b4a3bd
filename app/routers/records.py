"""
Records Router: read-only views of transaction records and accepted POS documents.
"""
from fastapi import APIRouter, HTTPException
from app.services import transaction_record_service as records

router = APIRouter()


@router.get("/transaction-records")
async def get_all_records():
    return [record.to_dict() for record in await records.list_records()]


@router.get("/transaction-records/find/incomplete-orders")
async def get_incomplete_orders():
    return [record.to_dict() for record in await records.find_incomplete_records()]


@router.get("/transaction-records/{trx_no}")
async def get_record(trx_no: str):
    record = await records.get_record(trx_no)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No transaction record {trx_no}")
    return record.to_dict()


def _request_record_dict(record) -> dict:
    return {
        "trx_no": record.trx_no,
        "window_action": record.window_action,
        "window_action_target": record.window_action_target,
        "confirmation": record.confirmation,
        "hdr": record.header,
        "dat": record.lines,
        "pay": record.payments,
        "created_at": record.created_at,
    }


@router.get("/pos-request-records")
async def get_all_request_records():
    rows = await records.list_request_records()
    return {"records": [_request_record_dict(r) for r in rows], "count": len(rows)}


@router.get("/pos-request-records/{trx_no}")
async def get_request_record(trx_no: str):
    record = await records.get_request_record(trx_no)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No POS request record {trx_no}")
    return _request_record_dict(record)
