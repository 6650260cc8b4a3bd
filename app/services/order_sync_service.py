"""
Order Sync Service: one full attempt at placing a storefront order in the POS.

    START -> RECORD_PERSISTED -> SESSION_OPENED -> LOCK_ACQUIRED -> TRANSLATED
          -> SUBMITTED -> CONFIRMED | DUPLICATE_CONFIRMED | LOGICAL_FAILURE
          -> RELEASED -> CLOSED -> RECORD_FINALIZED

Release and logout run on every path once the session is open. Any failure
other than a duplicate leaves the transaction record unplaced and is
re-raised; the recovery loop retries it later.
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from app.models.pos_schemas import SubmitOutcome
from app.services import transaction_record_service as records
from app.services.order_translator import OrderTranslator, trx_no_for_order
from app.services.pos_client import IMPORT_WINDOW_ACTION, PosClient, pos_client
from app.utils.exceptions import PosLogicalError
from app.utils.structured_logging import get_logger

logger = get_logger(__name__)

SALES_TARGET = "SAL"


class OrderSyncState(str, Enum):
    START = "start"
    ALREADY_PLACED = "already_placed"
    RECORD_PERSISTED = "record_persisted"
    SESSION_OPENED = "session_opened"
    LOCK_ACQUIRED = "lock_acquired"
    TRANSLATED = "translated"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    DUPLICATE_CONFIRMED = "duplicate_confirmed"
    LOGICAL_FAILURE = "logical_failure"
    RELEASED = "released"
    CLOSED = "closed"
    RECORD_FINALIZED = "record_finalized"


OUTCOME_STATES = {
    SubmitOutcome.CONFIRMED: OrderSyncState.CONFIRMED,
    SubmitOutcome.DUPLICATE: OrderSyncState.DUPLICATE_CONFIRMED,
    SubmitOutcome.LOGICAL_FAILURE: OrderSyncState.LOGICAL_FAILURE,
}


@dataclass
class OrderSyncAttempt:
    """Trace of one attempt; ``states`` lists every state entered, in order."""
    trx_no: str
    states: List[OrderSyncState] = field(default_factory=lambda: [OrderSyncState.START])
    document: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def state(self) -> OrderSyncState:
        return self.states[-1]

    @property
    def placed(self) -> bool:
        return self.state in (OrderSyncState.RECORD_FINALIZED, OrderSyncState.ALREADY_PLACED)

    def advance(self, state: OrderSyncState) -> None:
        self.states.append(state)


class OrderSyncService:

    def __init__(self, client: Optional[PosClient] = None, translator: Optional[OrderTranslator] = None):
        self.client = client or pos_client
        self.translator = translator or OrderTranslator()

    async def sync_order(self, order: Dict[str, Any], trx_no: Optional[str] = None) -> OrderSyncAttempt:
        """Run one attempt. ``trx_no`` pins the transaction number of a stored record."""
        trx_no = trx_no or trx_no_for_order(order)
        attempt = OrderSyncAttempt(trx_no=trx_no)
        log = logger.bind(trx_no=trx_no, order_number=order.get("order_number"))

        record = await records.upsert_record(trx_no, order)
        if record.order_placed:
            log.info("Order already placed in POS, skipping")
            attempt.advance(OrderSyncState.ALREADY_PLACED)
            return attempt
        attempt.advance(OrderSyncState.RECORD_PERSISTED)

        pos_session = self.client.new_session()
        outcome = None
        response = None
        try:
            await pos_session.open()
            attempt.advance(OrderSyncState.SESSION_OPENED)
            await pos_session.lock()
            attempt.advance(OrderSyncState.LOCK_ACQUIRED)

            attempt.document = await self.translator.translate(order, trx_no=trx_no)
            attempt.advance(OrderSyncState.TRANSLATED)

            response = await pos_session.submit(IMPORT_WINDOW_ACTION, SALES_TARGET, json.dumps(attempt.document))
            attempt.advance(OrderSyncState.SUBMITTED)

            outcome = response.outcome(SALES_TARGET, trx_no)
            attempt.advance(OUTCOME_STATES[outcome])
        except Exception as e:
            attempt.error = str(e)
            log.error(f"Order sync failed: {e}")
            raise
        finally:
            await pos_session.aclose()
            if pos_session.released:
                attempt.advance(OrderSyncState.RELEASED)
            if pos_session.closed:
                attempt.advance(OrderSyncState.CLOSED)

        if outcome is SubmitOutcome.LOGICAL_FAILURE:
            attempt.error = response.error_message
            log.error(f"Update POS database failed: {response.error_message}")
            raise PosLogicalError(
                response.error_message,
                trx_no=trx_no,
                err_code=response.error.err_code if response.error else None,
            )

        if outcome is SubmitOutcome.DUPLICATE:
            log.info("POS already holds this transaction, treating as placed")

        await records.mark_placed(trx_no)
        attempt.advance(OrderSyncState.RECORD_FINALIZED)
        log.info(f"Order placed in POS ({outcome.value})")

        try:
            await records.save_request_record(attempt.document, IMPORT_WINDOW_ACTION, SALES_TARGET, outcome.value)
        except Exception as e:
            log.warning(f"Audit copy of POS document not saved: {e}")

        return attempt


order_sync_service = OrderSyncService()
