"""
Whole-collection persistence for the ledger and the request list.

Both collections are replaced together inside one transaction on every save;
the last write wins. There is no partial or streaming write.
"""

from typing import List, Sequence

from sqlalchemy import delete, func, select

from trust_desk.core.logging_config import get_logger
from trust_desk.db.database import Database
from trust_desk.db.models import LedgerEntryRecord, TrustRequestRecord
from trust_desk.domain.models import LedgerEntry, TrustRequest

logger = get_logger("repository")


class TrustDataRepository:
    def __init__(self, database: Database):
        self._db = database
        self._db.create_tables()

    def is_empty(self) -> bool:
        with self._db.transaction() as session:
            ledger_rows = session.scalar(select(func.count()).select_from(LedgerEntryRecord))
            request_rows = session.scalar(select(func.count()).select_from(TrustRequestRecord))
        return not ledger_rows and not request_rows

    def load_ledger(self) -> List[LedgerEntry]:
        with self._db.transaction() as session:
            rows = session.scalars(select(LedgerEntryRecord).order_by(LedgerEntryRecord.seq)).all()
            return [row.to_entry() for row in rows]

    def load_requests(self) -> List[TrustRequest]:
        with self._db.transaction() as session:
            rows = session.scalars(
                select(TrustRequestRecord).order_by(TrustRequestRecord.position)
            ).all()
            return [row.to_request() for row in rows]

    def save(self, entries: Sequence[LedgerEntry], requests: Sequence[TrustRequest]) -> None:
        with self._db.transaction() as session:
            session.execute(delete(LedgerEntryRecord))
            session.execute(delete(TrustRequestRecord))
            session.add_all(LedgerEntryRecord(seq, entry) for seq, entry in enumerate(entries))
            session.add_all(TrustRequestRecord(pos, request) for pos, request in enumerate(requests))
        logger.debug("collections_saved", extra={"entries": len(entries), "requests": len(requests)})

    def close(self) -> None:
        self._db.dispose()
