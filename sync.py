"""
Append-only change log waiting to be pushed to the cloud.

Services append inside the transaction of the change they describe; an
external sync process reads the oldest items and deletes them once pushed.
Rows are never updated.
"""
import json
import logging
from typing import Any, List, Optional, Sequence, Union

from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError

from database import Database, SyncQueueItem, Transaction
from models import SyncItem, SyncOperation
from schema import ensure_table

logger = logging.getLogger(__name__)

PENDING_LIMIT = 50

_DELETE_ITEMS = text("DELETE FROM sync_queue WHERE id IN :ids").bindparams(bindparam("ids", expanding=True))


def enqueue(
        tx: Transaction,
        table_name: str,
        record_id: str,
        operation: Union[SyncOperation, str],
        payload: Optional[Any] = None,
) -> None:
    operation = SyncOperation(operation)
    if ensure_table(tx, SyncQueueItem.__table__):
        logger.warning("sync_queue table was missing and has been recreated")

    tx.run(
        """
        INSERT INTO sync_queue (table_name, record_id, operation, payload, created_at)
        VALUES (:table_name, :record_id, :operation, :payload, CURRENT_TIMESTAMP)
        """,
        {
            "table_name": table_name,
            "record_id": record_id,
            "operation": operation.value,
            "payload": json.dumps(payload, ensure_ascii=False, default=str) if payload is not None else None,
        },
    )


def get_pending(db: Database, limit: int = PENDING_LIMIT) -> List[SyncItem]:
    try:
        rows = db.query_all(
            "SELECT * FROM sync_queue ORDER BY created_at ASC, id ASC LIMIT :limit",
            {"limit": limit},
        )
    except SQLAlchemyError:
        logger.exception("Get pending sync items error")
        return []
    return [SyncItem.model_validate(row) for row in rows]


def remove(db: Database, ids: Sequence[int]) -> bool:
    if not ids:
        return True
    try:
        db.run_statement(_DELETE_ITEMS, {"ids": list(ids)})
    except SQLAlchemyError:
        logger.exception("Remove sync items error")
        return False
    return True
