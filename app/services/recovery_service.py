"""
Recovery Service: replays every order the POS has not confirmed yet.

Runs on a timer and on demand; passes are serialized so a second caller waits
for the running one and then only sees the records it left unplaced.
"""
import asyncio
from typing import Any, Dict

from app.services import transaction_record_service as records
from app.services.order_sync_service import OrderSyncService, order_sync_service
import logging

logger = logging.getLogger(__name__)


class RecoveryService:

    def __init__(self, sync_service: OrderSyncService = None):
        self.sync_service = sync_service or order_sync_service
        self._pass_lock = asyncio.Lock()

    async def run_incomplete_order_recovery(self) -> Dict[str, Any]:
        if self._pass_lock.locked():
            logger.info("Order recovery already running, waiting for it to finish")
        async with self._pass_lock:
            return await self._recover()

    async def _recover(self) -> Dict[str, Any]:
        """
        Re-drive the order sync for each unplaced record.

        Records are independent: one failure is logged and the batch goes on.
        """
        incomplete = await records.find_incomplete_records()
        logger.info(f"Recovering {len(incomplete)} incomplete order(s)")

        recovered = 0
        failed = []
        for record in incomplete:
            try:
                attempt = await self.sync_service.sync_order(record.order_body, trx_no=record.trx_no)
                if attempt.placed:
                    recovered += 1
            except Exception as e:
                failed.append(record.trx_no)
                logger.error(f"Recovery of {record.trx_no} failed: {e}", extra={"trx_no": record.trx_no})

        logger.info(f"Updated incomplete orders: {recovered}/{len(incomplete)} recovered")
        return {"recoveredCount": recovered, "total": len(incomplete), "failed": failed}


recovery_service = RecoveryService()
