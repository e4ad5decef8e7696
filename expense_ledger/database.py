import logging
import sqlite3
import threading
from contextlib import closing
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Dict, List

from expense_ledger.core.models import Category, Transaction
from expense_ledger.errors import PersistenceError

logger = logging.getLogger(__name__)


def _init_db(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS transactions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            date TEXT NOT NULL,
            description TEXT NOT NULL,
            category TEXT NOT NULL,
            amount TEXT NOT NULL
        )
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions (date)"
    )
    conn.commit()


@dataclass(frozen=True)
class StoredTransaction:
    """A transaction together with its store-assigned identifier."""

    id: int
    transaction: Transaction


def _row_to_transaction(row) -> Transaction:
    return Transaction(
        date=date.fromisoformat(row[0]),
        description=row[1],
        category=Category(row[2]),
        amount=Decimal(row[3]),
    )


class TransactionStore:
    """Append-only SQLite store of transactions.

    Writers are serialized by a lock and every write is a single SQLite
    transaction, so readers never see a half-written record. Reads return
    the most recent date first; records sharing a date keep insertion order.
    """

    _SELECT = "SELECT date, description, category, amount FROM transactions"
    _ORDER = " ORDER BY date DESC, id ASC"

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self._write_lock = threading.Lock()
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, timeout=30)
            if not self._initialized:
                _init_db(conn)
                self._initialized = True
            return conn
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceError(f"Cannot open store {self.db_path}: {exc}") from exc

    def save(self, tx: Transaction) -> StoredTransaction:
        """Append *tx* and return it with its new identifier."""
        with self._write_lock:
            conn = self._connect()
            try:
                with conn:
                    cur = conn.execute(
                        """
                        INSERT INTO transactions (date, description, category, amount)
                        VALUES (?, ?, ?, ?)
                        """,
                        (
                            tx.date.isoformat(),
                            tx.description,
                            tx.category.value,
                            str(tx.amount),
                        ),
                    )
                stored = StoredTransaction(id=cur.lastrowid, transaction=tx)
            except sqlite3.Error as exc:
                raise PersistenceError(f"Could not save transaction: {exc}") from exc
            finally:
                conn.close()
        logger.debug("Saved transaction %d: %s", stored.id, tx)
        return stored

    def _query(self, sql: str, params=()) -> list:
        conn = self._connect()
        try:
            # A single SELECT reads one consistent snapshot.
            with closing(conn.execute(sql, params)) as cur:
                return cur.fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not read {self.db_path}: {exc}") from exc
        finally:
            conn.close()

    def load_all(self) -> List[Transaction]:
        rows = self._query(self._SELECT + self._ORDER)
        return [_row_to_transaction(r) for r in rows]

    def load_all_stored(self) -> List[StoredTransaction]:
        rows = self._query(
            "SELECT date, description, category, amount, id FROM transactions"
            + self._ORDER
        )
        return [StoredTransaction(id=r[4], transaction=_row_to_transaction(r)) for r in rows]

    def recent(self, limit: int = 10) -> List[Transaction]:
        """Return the *limit* most recent transactions."""
        rows = self._query(self._SELECT + self._ORDER + " LIMIT ?", (int(limit),))
        return [_row_to_transaction(r) for r in rows]

    def exists(self, tx: Transaction) -> bool:
        """Whether a record with the same date, description and amount is stored."""
        rows = self._query(
            """
            SELECT amount FROM transactions
            WHERE date = ? AND description = ?
            """,
            (tx.date.isoformat(), tx.description),
        )
        return any(Decimal(r[0]) == tx.amount for r in rows)

    def summarize_by_category(self) -> List[Dict[str, object]]:
        """Aggregate spend totals grouped by category, largest first."""
        rows = self._query("SELECT category, amount FROM transactions")
        totals: Dict[str, Decimal] = {}
        counts: Dict[str, int] = {}
        for category, amount in rows:
            totals[category] = totals.get(category, Decimal(0)) + Decimal(amount)
            counts[category] = counts.get(category, 0) + 1
        summary = [
            {"category": cat, "total": total, "transactions": counts[cat]}
            for cat, total in totals.items()
        ]
        summary.sort(key=lambda r: (-r["total"], r["category"]))
        return summary
