"""
Transaction Record Service: durable record of every order sync attempt.

A record is written before the POS is contacted and flipped to placed only
after the POS confirms (or reports a duplicate). Unplaced records are never
deleted; the recovery loop replays them.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update

from app.models.db_models import PosRequestRecord, TransactionRecord
from app.services.db_service import AsyncSessionLocal, upsert_statement
import logging

logger = logging.getLogger(__name__)


async def upsert_record(trx_no: str, order_body: Dict[str, Any]) -> TransactionRecord:
    """
    Create the record for ``trx_no`` or refresh its stored order body.

    The placed flag of an existing record is never touched here.
    """
    async with AsyncSessionLocal() as session:
        try:
            stmt = upsert_statement(session, TransactionRecord).values(
                trx_no=trx_no, order_body=order_body, order_placed=False
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[TransactionRecord.trx_no],
                set_={"order_body": stmt.excluded.order_body},
            )
            await session.execute(stmt)
            await session.commit()
            record = await session.get(TransactionRecord, trx_no, populate_existing=True)
            logger.info(f"Transaction record saved: {trx_no} (placed={record.order_placed})")
            return record
        except Exception as e:
            await session.rollback()
            logger.error(f"Failed to save transaction record {trx_no}: {e}", exc_info=True)
            raise


async def mark_placed(trx_no: str) -> None:
    async with AsyncSessionLocal() as session:
        try:
            await session.execute(
                update(TransactionRecord)
                .where(TransactionRecord.trx_no == trx_no)
                .values(order_placed=True)
            )
            await session.commit()
            logger.info(f"Transaction record {trx_no} marked as placed")
        except Exception as e:
            await session.rollback()
            logger.error(f"Failed to mark {trx_no} as placed: {e}", exc_info=True)
            raise


async def get_record(trx_no: str) -> Optional[TransactionRecord]:
    async with AsyncSessionLocal() as session:
        return await session.get(TransactionRecord, trx_no)


async def list_records() -> List[TransactionRecord]:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(TransactionRecord)
            .where(TransactionRecord.deleted_at.is_(None))
            .order_by(TransactionRecord.created_at)
        )
        return list(result.scalars().all())


async def find_incomplete_records() -> List[TransactionRecord]:
    """Every live record the POS has not yet confirmed."""
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(TransactionRecord)
            .where(
                TransactionRecord.order_placed.is_(False),
                TransactionRecord.deleted_at.is_(None),
            )
            .order_by(TransactionRecord.created_at)
        )
        return list(result.scalars().all())


async def save_request_record(
    document: Dict[str, Any],
    window_action: str,
    target: str,
    confirmation: str,
) -> None:
    """Keep an audit copy of a POS document the POS accepted."""
    trx_no = document["hdr"]["trx_no"]
    values = {
        "window_action": window_action,
        "window_action_target": target,
        "header": document["hdr"],
        "lines": document["dat"],
        "payments": document["pay"],
        "confirmation": confirmation,
    }
    async with AsyncSessionLocal() as session:
        try:
            stmt = upsert_statement(session, PosRequestRecord).values(trx_no=trx_no, **values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[PosRequestRecord.trx_no],
                set_={key: stmt.excluded[key] for key in values},
            )
            await session.execute(stmt)
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Failed to save POS request record {trx_no}: {e}", exc_info=True)
            raise


async def get_request_record(trx_no: str) -> Optional[PosRequestRecord]:
    async with AsyncSessionLocal() as session:
        return await session.get(PosRequestRecord, trx_no)


async def list_request_records() -> List[PosRequestRecord]:
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(PosRequestRecord).order_by(PosRequestRecord.created_at))
        return list(result.scalars().all())
