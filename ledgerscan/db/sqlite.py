"""SQLite database operations for LedgerScan."""

import asyncio
import logging
import sqlite3
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path

from ledgerscan.config import Settings
from ledgerscan.errors import PersistenceError
from ledgerscan.models import (
    ReceiptRecord,
    ReceiptUpdate,
    StoredReceipt,
    StoredTransaction,
    TransactionRecord,
    TransactionType,
)

logger = logging.getLogger(__name__)

# SQL schema. Amounts are stored as text so Decimal values round-trip exactly.
SCHEMA = """
CREATE TABLE IF NOT EXISTS receipts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    date TEXT NOT NULL,
    merchant_name TEXT NOT NULL,
    total_amount TEXT NOT NULL,
    description TEXT,
    category TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_receipts_date ON receipts(date);

CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    batch_id TEXT NOT NULL,
    date TEXT NOT NULL,
    type TEXT NOT NULL,
    description TEXT NOT NULL,
    amount TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date);
CREATE INDEX IF NOT EXISTS idx_transactions_batch ON transactions(batch_id);
"""

RECEIPT_COLUMNS = "id, date, merchant_name, total_amount, description, category, created_at"
TRANSACTION_COLUMNS = "id, batch_id, date, type, description, amount, created_at"


class Database:
    """SQLite database manager."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)
            conn.commit()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # ==================== RECEIPTS ====================

    def add_receipt(self, receipt: ReceiptRecord) -> int:
        """Insert a complete receipt. Returns the new row id."""
        if not receipt.is_complete:
            raise PersistenceError(f"Receipt is missing required fields: {', '.join(receipt.missing_fields)}")

        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO receipts (date, merchant_name, total_amount, description, category)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        receipt.date,
                        receipt.merchant_name,
                        str(receipt.total_amount),
                        receipt.description,
                        receipt.category,
                    ),
                )
                conn.commit()
                return cursor.lastrowid
        except sqlite3.Error as e:
            logger.error(f"Failed to save receipt: {e}")
            raise PersistenceError(f"Error saving receipt: {e}", errors=[e])

    def get_receipts(self, limit: int = 100) -> list[StoredReceipt]:
        """Get receipts, most recent date first."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"SELECT {RECEIPT_COLUMNS} FROM receipts ORDER BY date DESC, id DESC LIMIT ?",
                (limit,),
            )
            return [self._row_to_receipt(row) for row in cursor.fetchall()]

    def get_receipt(self, receipt_id: int) -> StoredReceipt | None:
        """Get a single receipt by ID."""
        with self._get_connection() as conn:
            cursor = conn.execute(f"SELECT {RECEIPT_COLUMNS} FROM receipts WHERE id = ?", (receipt_id,))
            row = cursor.fetchone()
            return self._row_to_receipt(row) if row else None

    def update_receipt(self, receipt_id: int, update: ReceiptUpdate) -> StoredReceipt | None:
        """Apply the fields set on ``update``. Returns the updated receipt, or None if it does not exist."""
        changes = update.model_dump(exclude_unset=True)
        if "total_amount" in changes and changes["total_amount"] is not None:
            changes["total_amount"] = str(changes["total_amount"])

        if changes:
            assignments = ", ".join(f"{column} = ?" for column in changes)
            try:
                with self._get_connection() as conn:
                    cursor = conn.execute(
                        f"UPDATE receipts SET {assignments} WHERE id = ?",
                        [*changes.values(), receipt_id],
                    )
                    conn.commit()
                    if cursor.rowcount == 0:
                        return None
            except sqlite3.Error as e:
                logger.error(f"Failed to update receipt {receipt_id}: {e}")
                raise PersistenceError(f"Error updating receipt: {e}", errors=[e])

        return self.get_receipt(receipt_id)

    def delete_receipt(self, receipt_id: int) -> bool:
        """Delete a receipt. Returns True if a row was removed."""
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM receipts WHERE id = ?", (receipt_id,))
            conn.commit()
            return cursor.rowcount > 0

    # ==================== TRANSACTIONS ====================

    def add_transaction(self, transaction: TransactionRecord, batch_id: str) -> int:
        """Insert one complete transaction. Returns the new row id."""
        if not transaction.is_complete:
            raise PersistenceError(
                f"Transaction is missing required fields: {', '.join(transaction.missing_fields)}"
            )

        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO transactions (batch_id, date, type, description, amount)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        batch_id,
                        transaction.date,
                        transaction.type.value,
                        transaction.description,
                        str(transaction.amount),
                    ),
                )
                conn.commit()
                return cursor.lastrowid
        except sqlite3.Error as e:
            raise PersistenceError(f"Error saving transaction: {e}", errors=[e])

    async def add_transactions_batch(self, transactions: list[TransactionRecord]) -> str:
        """
        Insert all transactions of one statement concurrently, all or nothing.

        Every insert runs in its own worker thread and connection. The batch
        waits for all of them; if any failed, rows already written for the
        batch are deleted and a single PersistenceError carries every failure.

        Returns:
            The batch id shared by the inserted rows
        """
        batch_id = uuid.uuid4().hex
        if not transactions:
            return batch_id

        results = await asyncio.gather(
            *[asyncio.to_thread(self.add_transaction, txn, batch_id) for txn in transactions],
            return_exceptions=True,
        )
        errors = [result for result in results if isinstance(result, BaseException)]

        if errors:
            message = f"Error saving transactions: {len(errors)} of {len(transactions)} inserts failed ({errors[0]})"
            try:
                removed = await asyncio.to_thread(self.delete_batch, batch_id)
            except (PersistenceError, sqlite3.Error) as e:
                rollback_errors = e.errors if isinstance(e, PersistenceError) else [e]
                logger.error(f"Batch {batch_id[:8]}: rollback failed, rows may remain: {e}")
                raise PersistenceError(f"{message}; rollback failed ({e})", errors=[*errors, *rollback_errors])

            logger.error(
                f"Batch {batch_id[:8]}: {len(errors)}/{len(transactions)} inserts failed, "
                f"rolled back {removed} rows"
            )
            raise PersistenceError(message, errors=list(errors))

        logger.info(f"Batch {batch_id[:8]}: {len(transactions)} transactions saved")
        return batch_id

    def delete_batch(self, batch_id: str) -> int:
        """Delete every transaction of a batch. Returns the number of rows removed."""
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("DELETE FROM transactions WHERE batch_id = ?", (batch_id,))
                conn.commit()
                return cursor.rowcount
        except sqlite3.Error as e:
            raise PersistenceError(f"Error deleting batch {batch_id}: {e}", errors=[e])

    def get_transactions(
        self,
        txn_type: TransactionType | None = None,
        batch_id: str | None = None,
        limit: int = 1000,
    ) -> list[StoredTransaction]:
        """Get transactions with optional filters."""
        query = f"SELECT {TRANSACTION_COLUMNS} FROM transactions WHERE 1=1"
        params: list = []

        if txn_type:
            query += " AND type = ?"
            params.append(txn_type.value)
        if batch_id:
            query += " AND batch_id = ?"
            params.append(batch_id)

        query += " ORDER BY date DESC, id DESC LIMIT ?"
        params.append(limit)

        with self._get_connection() as conn:
            cursor = conn.execute(query, params)
            return [self._row_to_transaction(row) for row in cursor.fetchall()]

    def get_counts(self) -> dict[str, int]:
        """Get row counts per table."""
        with self._get_connection() as conn:
            receipts = conn.execute("SELECT COUNT(*) AS count FROM receipts").fetchone()["count"]
            transactions = conn.execute("SELECT COUNT(*) AS count FROM transactions").fetchone()["count"]
        return {"receipts": receipts, "transactions": transactions}

    def _row_to_receipt(self, row: sqlite3.Row) -> StoredReceipt:
        """Convert a database row to a StoredReceipt model."""
        return StoredReceipt(
            id=row["id"],
            date=row["date"],
            merchant_name=row["merchant_name"],
            total_amount=Decimal(row["total_amount"]),
            description=row["description"],
            category=row["category"],
            created_at=row["created_at"],
        )

    def _row_to_transaction(self, row: sqlite3.Row) -> StoredTransaction:
        """Convert a database row to a StoredTransaction model."""
        return StoredTransaction(
            id=row["id"],
            batch_id=row["batch_id"],
            date=row["date"],
            type=TransactionType(row["type"]),
            description=row["description"],
            amount=Decimal(row["amount"]),
            created_at=row["created_at"],
        )


def get_database(settings: Settings) -> Database | None:
    """Open the configured database, or return None when storage is disabled."""
    if not settings.storage_enabled:
        logger.info("Database path not configured, storage disabled")
        return None
    return Database(settings.database_path)
