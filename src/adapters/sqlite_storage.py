"""SQLite storage adapter.

Implements the core LedgerPort and HistoryPort using a simple SQLite database.
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from core.models import Direction, Transaction, TxStatus

_TX_COLUMNS = (
    "driver_phone",
    "entidad",
    "agente_phone",
    "cupon",
    "dni",
    "fecha",
    "monto",
    "estado",
    "respuesta",
    "sn",
)


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the LedgerPort and HistoryPort contracts."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        # Serializes read-then-write sequences (upsert) across threads.
        self._write_lock = threading.Lock()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - transactions: voucher ledger, never deleted (audit trail)
        - messages: durable inbound/outbound message history
        """

        with self._connect() as conn:
            # transactions holds one row per relayed coupon request.
            # Fields:
            # - driver_phone: number that submitted the coupon
            # - entidad: number of the validating entity the request went to
            # - agente_phone: agent the driver belongs to
            # - fecha: creation timestamp (ISO 8601), newest wins on ties
            # - estado: PENDING | DELIVERED | FAILED | USED
            # - respuesta: entity description or raw rejection text
            # - sn: optional partner code
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    driver_phone TEXT NOT NULL,
                    entidad TEXT NOT NULL,
                    agente_phone TEXT,
                    cupon TEXT NOT NULL,
                    dni TEXT NOT NULL,
                    fecha TIMESTAMP NOT NULL,
                    monto REAL,
                    estado TEXT NOT NULL,
                    respuesta TEXT,
                    sn TEXT
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tx_cupon_dni ON transactions (cupon, dni, estado)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tx_estado_entidad ON transactions (estado, entidad)"
            )
            # messages is an append-only log of every SMS in and out.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    direction TEXT NOT NULL,
                    address TEXT NOT NULL,
                    body TEXT NOT NULL,
                    fecha TIMESTAMP NOT NULL
                )
                """
            )

    @staticmethod
    def _to_row(transaction: Transaction) -> tuple:
        return (
            transaction.driver_phone,
            transaction.entidad,
            transaction.agente_phone,
            transaction.cupon,
            transaction.dni,
            transaction.fecha.isoformat(),
            transaction.monto,
            TxStatus(transaction.estado).value,
            transaction.respuesta,
            transaction.sn,
        )

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=int(row["id"]),
            driver_phone=row["driver_phone"],
            entidad=row["entidad"],
            agente_phone=row["agente_phone"] or "",
            cupon=row["cupon"],
            dni=row["dni"],
            fecha=datetime.fromisoformat(row["fecha"]),
            monto=row["monto"],
            estado=TxStatus(row["estado"]),
            respuesta=row["respuesta"],
            sn=row["sn"],
        )

    def _fetch_one(self, query: str, params: tuple) -> Optional[Transaction]:
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
        return self._from_row(row) if row else None

    def upsert(self, transaction: Transaction) -> int:
        """Insert a transaction or replace the row with the same identity.

        Identity is the id when set; otherwise the current PENDING row of the
        same (cupon, dni), so redelivered requests do not stack PENDING rows.
        """

        values = self._to_row(transaction)
        with self._write_lock, self._connect() as conn:
            target_id = transaction.id
            if target_id is None and transaction.estado == TxStatus.PENDING:
                row = conn.execute(
                    """
                    SELECT id FROM transactions
                    WHERE cupon = ? AND dni = ? AND estado = 'PENDING'
                    ORDER BY fecha DESC, id DESC
                    LIMIT 1
                    """,
                    (transaction.cupon, transaction.dni),
                ).fetchone()
                target_id = int(row["id"]) if row else None

            placeholders = ", ".join("?" for _ in _TX_COLUMNS)
            if target_id is None:
                cur = conn.execute(
                    f"INSERT INTO transactions ({', '.join(_TX_COLUMNS)}) VALUES ({placeholders})",
                    values,
                )
                target_id = int(cur.lastrowid)
            else:
                conn.execute(
                    f"INSERT OR REPLACE INTO transactions (id, {', '.join(_TX_COLUMNS)}) "
                    f"VALUES (?, {placeholders})",
                    (target_id, *values),
                )
        transaction.id = target_id
        return target_id

    def update_status(
        self,
        cupon: str,
        dni: str,
        estado: TxStatus,
        monto: Optional[float] = None,
        respuesta: Optional[str] = None,
    ) -> int:
        """Move the PENDING rows of (cupon, dni) to a new state.

        Update-only: nothing is inserted when no row matches. A None amount or
        response keeps the stored value.
        """

        with self._write_lock, self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE transactions
                SET estado = ?,
                    monto = COALESCE(?, monto),
                    respuesta = COALESCE(?, respuesta)
                WHERE cupon = ? AND dni = ? AND estado = 'PENDING'
                """,
                (TxStatus(estado).value, monto, respuesta, cupon, dni),
            )
            return cur.rowcount

    def find_pending(self, cupon: str, dni: str) -> Optional[Transaction]:
        """Return the newest PENDING row for an exact (cupon, dni) match."""

        return self._fetch_one(
            """
            SELECT * FROM transactions
            WHERE cupon = ? AND dni = ? AND estado = 'PENDING'
            ORDER BY fecha DESC, id DESC
            LIMIT 1
            """,
            (cupon, dni),
        )

    def find_pending_by_coupon(self, cupon: str) -> Optional[Transaction]:
        """Fallback lookup by coupon alone.

        Two drivers submitting the same coupon value are not told apart here;
        the newest PENDING row wins.
        """

        return self._fetch_one(
            """
            SELECT * FROM transactions
            WHERE cupon = ? AND estado = 'PENDING'
            ORDER BY fecha DESC, id DESC
            LIMIT 1
            """,
            (cupon,),
        )

    def find_pending_by_entity(self, entity_suffix: str) -> Optional[Transaction]:
        """Return the newest PENDING row whose entity number ends with the suffix."""

        if not entity_suffix or not entity_suffix.isdigit():
            return None
        return self._fetch_one(
            """
            SELECT * FROM transactions
            WHERE estado = 'PENDING' AND entidad LIKE ?
            ORDER BY fecha DESC, id DESC
            LIMIT 1
            """,
            (f"%{entity_suffix}",),
        )

    def find_latest_by_coupon(self, cupon: str) -> Optional[Transaction]:
        return self._fetch_one(
            """
            SELECT * FROM transactions
            WHERE cupon = ?
            ORDER BY fecha DESC, id DESC
            LIMIT 1
            """,
            (cupon,),
        )

    def recent_transactions(self, limit: int = 20) -> list[Transaction]:
        """Return the newest rows in any state, for diagnostics."""

        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM transactions ORDER BY fecha DESC, id DESC LIMIT ?",
                (max(0, int(limit)),),
            ).fetchall()
        return [self._from_row(row) for row in rows]

    def append(self, direction: Direction, address: str, body: str, timestamp: datetime) -> None:
        """Append one message to the history log."""

        with self._connect() as conn:
            conn.execute(
                "INSERT INTO messages (direction, address, body, fecha) VALUES (?, ?, ?, ?)",
                (Direction(direction).value, address, body, timestamp.isoformat()),
            )

    def recent_messages(self, limit: int = 20) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT direction, address, body, fecha FROM messages ORDER BY id DESC LIMIT ?",
                (max(0, int(limit)),),
            ).fetchall()
        return [dict(row) for row in rows]
