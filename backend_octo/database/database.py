"""
Database abstraction layer for processed donation signatures and vitality state.

MVP uses SQLite; designed so the backend can be swapped via a different
DonationStore implementation. mark_processed is the per-signature
compare-and-set: INSERT OR IGNORE decides the winner, and the optional
vitality snapshot is written in the same transaction.
"""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Iterator

from backend_octo.core.exceptions import StoreUnavailable
from backend_octo.database.models import ProcessedSignatureRecord
from backend_octo.octo_logging import get_logger
from backend_octo.vitality.machine import Phase, VitalitySnapshot

logger = get_logger(__name__)

# -----------------------------------------------------------------------------
# Schema (SQLite)
# -----------------------------------------------------------------------------

SCHEMA_PROCESSED_SIGNATURES = """
CREATE TABLE IF NOT EXISTS processed_signatures (
    signature TEXT PRIMARY KEY,
    amount_sol TEXT NOT NULL,
    amount_lamports INTEGER NOT NULL,
    credit_amount INTEGER NOT NULL,
    counterparty TEXT NOT NULL,
    observed_at INTEGER NOT NULL,
    credited_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS ix_processed_signatures_credited ON processed_signatures(credited_at);
"""

SCHEMA_VITALITY_STATE = """
CREATE TABLE IF NOT EXISTS vitality_state (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    resource INTEGER NOT NULL,
    phase TEXT NOT NULL,
    updated_at REAL NOT NULL,
    last_tick_at REAL
);
"""

_UPSERT_VITALITY = """
INSERT INTO vitality_state (id, resource, phase, updated_at, last_tick_at)
VALUES (1, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    resource = excluded.resource,
    phase = excluded.phase,
    updated_at = excluded.updated_at,
    last_tick_at = excluded.last_tick_at
"""


# -----------------------------------------------------------------------------
# Abstract backend
# -----------------------------------------------------------------------------


class DonationStore(ABC):
    """Durable ledger storage; every method raises StoreUnavailable on backend failure."""

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        ...

    @abstractmethod
    def has_processed(self, signature: str) -> bool:
        """True if a processed record exists for signature."""
        ...

    @abstractmethod
    def mark_processed(
        self,
        record: ProcessedSignatureRecord,
        snapshot: VitalitySnapshot | None = None,
    ) -> bool:
        """
        Insert the record if the signature is new, and the vitality snapshot with it,
        atomically. Returns False (writing nothing) if the signature already exists.
        """
        ...

    @abstractmethod
    def save_vitality(self, snapshot: VitalitySnapshot) -> None:
        ...

    @abstractmethod
    def load_vitality(self) -> VitalitySnapshot | None:
        ...

    @abstractmethod
    def list_processed(self, *, limit: int = 50) -> list[ProcessedSignatureRecord]:
        """Processed records, most recently credited first."""
        ...

    @abstractmethod
    def count_processed(self) -> int:
        ...

    @abstractmethod
    def total_credited(self) -> int:
        """Sum of credit_amount over all records."""
        ...


# -----------------------------------------------------------------------------
# SQLite backend
# -----------------------------------------------------------------------------


def _row_to_record(row: sqlite3.Row) -> ProcessedSignatureRecord:
    return ProcessedSignatureRecord(
        signature=row["signature"],
        amount_sol=Decimal(row["amount_sol"]),
        amount_lamports=row["amount_lamports"],
        credit_amount=row["credit_amount"],
        counterparty=row["counterparty"],
        observed_at=row["observed_at"],
        credited_at=row["credited_at"],
    )


def _vitality_params(snapshot: VitalitySnapshot) -> tuple[int, str, float, float | None]:
    return (snapshot.resource, snapshot.phase.value, snapshot.updated_at, snapshot.last_tick_at)


class SQLiteDonationStore(DonationStore):
    """SQLite implementation; single file, one connection per operation."""

    def __init__(self, path: str | Path, *, timeout_sec: float = 5.0) -> None:
        self._path = Path(path)
        self._timeout_sec = timeout_sec

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self._path), timeout=self._timeout_sec)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = FULL")
        return conn

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        try:
            conn = self._connect()
        except (sqlite3.Error, OSError) as e:
            raise StoreUnavailable(f"cannot open {self._path}: {e}") from e
        try:
            cur = conn.cursor()
            yield cur
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreUnavailable(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        with self._cursor() as cur:
            for stmt in (SCHEMA_PROCESSED_SIGNATURES, SCHEMA_VITALITY_STATE):
                cur.executescript(stmt)
            # databases created before last_tick_at existed
            cur.execute("PRAGMA table_info(vitality_state)")
            columns = {row["name"] for row in cur.fetchall()}
            if "last_tick_at" not in columns:
                cur.execute("ALTER TABLE vitality_state ADD COLUMN last_tick_at REAL")

    def has_processed(self, signature: str) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "SELECT 1 FROM processed_signatures WHERE signature = ?",
                (signature,),
            )
            return cur.fetchone() is not None

    def mark_processed(
        self,
        record: ProcessedSignatureRecord,
        snapshot: VitalitySnapshot | None = None,
    ) -> bool:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT OR IGNORE INTO processed_signatures
                    (signature, amount_sol, amount_lamports, credit_amount,
                     counterparty, observed_at, credited_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.signature,
                    str(record.amount_sol),
                    record.amount_lamports,
                    record.credit_amount,
                    record.counterparty,
                    record.observed_at,
                    record.credited_at,
                ),
            )
            if cur.rowcount == 0:
                return False
            if snapshot is not None:
                cur.execute(
                    _UPSERT_VITALITY,
                    _vitality_params(snapshot),
                )
            return True

    def save_vitality(self, snapshot: VitalitySnapshot) -> None:
        with self._cursor() as cur:
            cur.execute(
                _UPSERT_VITALITY,
                _vitality_params(snapshot),
            )

    def load_vitality(self) -> VitalitySnapshot | None:
        with self._cursor() as cur:
            cur.execute("SELECT resource, phase, updated_at, last_tick_at FROM vitality_state WHERE id = 1")
            row = cur.fetchone()
        if row is None:
            return None
        return VitalitySnapshot(
            resource=int(row["resource"]),
            phase=Phase(row["phase"]),
            updated_at=float(row["updated_at"]),
            last_tick_at=float(row["last_tick_at"]) if row["last_tick_at"] is not None else None,
        )

    def list_processed(self, *, limit: int = 50) -> list[ProcessedSignatureRecord]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT * FROM processed_signatures
                ORDER BY credited_at DESC, rowid DESC
                LIMIT ?
                """,
                (max(0, limit),),
            )
            return [_row_to_record(r) for r in cur.fetchall()]

    def count_processed(self) -> int:
        with self._cursor() as cur:
            cur.execute("SELECT COUNT(*) FROM processed_signatures")
            return int(cur.fetchone()[0])

    def total_credited(self) -> int:
        with self._cursor() as cur:
            cur.execute("SELECT COALESCE(SUM(credit_amount), 0) FROM processed_signatures")
            return int(cur.fetchone()[0])


def get_database(path: str | Path) -> SQLiteDonationStore:
    """Return a SQLite store for the given path with schema ensured."""
    store = SQLiteDonationStore(path)
    store.ensure_schema()
    logger.debug("database_ready", path=str(path))
    return store
