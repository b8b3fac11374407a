"""
Persistence store for watched domains and their history.

A single SQLite database holds four tables: the watched domains, the
append-only check history, purchase attempts and the system log. Callers
receive dataclass snapshots; only this module mutates rows. Every write is
a single-row transaction.
"""

import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Union

from .enums import CheckStatus, DomainStatus, LogLevel, PurchaseStatus
from .exceptions import NotFoundError, PersistenceError, UniqueViolation
from .models import (
    AnalyticsRow,
    DomainCheck,
    ExpirationInfo,
    Purchase,
    SystemLogEntry,
    WatchedDomain,
)


SCHEMA = """
CREATE TABLE IF NOT EXISTS domains (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    domain TEXT UNIQUE NOT NULL,
    monitoring_enabled INTEGER NOT NULL DEFAULT 1,
    auto_purchase_enabled INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'pending',
    expiry_date TEXT,
    estimated_release_date TEXT,
    days_until_expiry INTEGER,
    registrar TEXT,
    last_check TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS domain_checks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    domain_id INTEGER NOT NULL,
    status TEXT NOT NULL,
    available INTEGER NOT NULL,
    check_date TEXT NOT NULL,
    notes TEXT
);
CREATE INDEX IF NOT EXISTS idx_checks_domain ON domain_checks(domain_id);
CREATE INDEX IF NOT EXISTS idx_checks_date ON domain_checks(check_date);

CREATE TABLE IF NOT EXISTS purchases (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    domain_id INTEGER,
    domain_name TEXT NOT NULL,
    order_id TEXT,
    purchase_date TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    price REAL,
    notes TEXT
);

CREATE TABLE IF NOT EXISTS system_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    level TEXT NOT NULL,
    message TEXT NOT NULL,
    domain TEXT,
    created_at TEXT NOT NULL
);
"""

# Same layout as SQLite's CURRENT_TIMESTAMP so DATE() works on it
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Store:
    """
    SQLite-backed store.

    The connection may be shared with the HTTP API's worker threads, so all
    access goes through one lock.
    """

    def __init__(
        self,
        database_path: Union[str, Path] = ":memory:",
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """
        Open (and create if needed) the database.

        Args:
            database_path: File path, or ``:memory:`` for a throwaway database
            clock: Source of the current UTC time for row timestamps

        Raises:
            PersistenceError: If the database cannot be opened
        """
        self._path = str(database_path)
        self._clock = clock
        self._lock = threading.RLock()
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self._path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(
                code="open_failed",
                message=f"Failed to open database: {e}",
                details={"database_path": self._path},
            ) from e

    @property
    def database_path(self) -> str:
        return self._path

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def _now(self) -> str:
        return self._clock().strftime(TIMESTAMP_FORMAT)

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                cursor = self._conn.execute(sql, params)
                self._conn.commit()
                return cursor
            except sqlite3.IntegrityError as e:
                self._conn.rollback()
                if str(e).startswith("UNIQUE constraint failed"):
                    raise UniqueViolation(
                        code="unique_violation",
                        message=str(e),
                    ) from e
                raise PersistenceError(
                    code="constraint_failed",
                    message=f"Database constraint failed: {e}",
                ) from e
            except sqlite3.Error as e:
                self._conn.rollback()
                raise PersistenceError(
                    code="query_failed",
                    message=f"Database error: {e}",
                ) from e

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise PersistenceError(
                    code="query_failed",
                    message=f"Database error: {e}",
                ) from e

    # ------------------------------------------------------------------
    # Watched domains
    # ------------------------------------------------------------------

    @staticmethod
    def _to_domain(row: sqlite3.Row) -> WatchedDomain:
        return WatchedDomain(
            id=row["id"],
            name=row["domain"],
            monitoring_enabled=bool(row["monitoring_enabled"]),
            auto_purchase_enabled=bool(row["auto_purchase_enabled"]),
            status=DomainStatus(row["status"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            expiry_date=row["expiry_date"],
            estimated_release_date=row["estimated_release_date"],
            days_until_expiry=row["days_until_expiry"],
            registrar=row["registrar"],
            last_checked_at=row["last_check"],
        )

    def add_domain(
        self,
        name: str,
        monitoring_enabled: bool = True,
        auto_purchase_enabled: bool = False,
    ) -> WatchedDomain:
        """
        Insert a watched domain in PENDING status.

        Args:
            name: Canonical domain name

        Raises:
            UniqueViolation: If the name is already watched
        """
        now = self._now()
        try:
            cursor = self._execute(
                "INSERT INTO domains (domain, monitoring_enabled, auto_purchase_enabled, "
                "status, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    name,
                    int(monitoring_enabled),
                    int(auto_purchase_enabled),
                    DomainStatus.PENDING.value,
                    now,
                    now,
                ),
            )
        except UniqueViolation as e:
            raise UniqueViolation(
                code="duplicate_domain",
                message=f"Domain already watched: {name}",
                details={"domain": name},
            ) from e
        return self.get_domain(cursor.lastrowid)

    def get_domain(self, domain_id: int) -> WatchedDomain:
        """
        Fetch one domain.

        Raises:
            NotFoundError: If no domain has this id
        """
        rows = self._query("SELECT * FROM domains WHERE id = ?", (domain_id,))
        if not rows:
            raise NotFoundError(
                code="domain_not_found",
                message=f"No domain with id {domain_id}",
                details={"domain_id": domain_id},
            )
        return self._to_domain(rows[0])

    def get_domain_by_name(self, name: str) -> Optional[WatchedDomain]:
        rows = self._query("SELECT * FROM domains WHERE domain = ?", (name,))
        return self._to_domain(rows[0]) if rows else None

    def list_domains(self) -> list[WatchedDomain]:
        """All watched domains, newest first."""
        rows = self._query("SELECT * FROM domains ORDER BY created_at DESC, id DESC")
        return [self._to_domain(row) for row in rows]

    def list_active_domains(self) -> list[WatchedDomain]:
        """Domains the monitor should probe: monitoring on and not yet purchased."""
        rows = self._query(
            "SELECT * FROM domains WHERE monitoring_enabled = 1 AND status != ? ORDER BY id",
            (DomainStatus.PURCHASED.value,),
        )
        return [self._to_domain(row) for row in rows]

    def update_domain_settings(
        self,
        domain_id: int,
        monitoring_enabled: Optional[bool] = None,
        auto_purchase_enabled: Optional[bool] = None,
    ) -> WatchedDomain:
        """
        Change the monitoring / auto-purchase flags; ``None`` leaves a flag as is.

        Raises:
            NotFoundError: If no domain has this id
        """
        current = self.get_domain(domain_id)
        monitoring = current.monitoring_enabled if monitoring_enabled is None else monitoring_enabled
        auto = current.auto_purchase_enabled if auto_purchase_enabled is None else auto_purchase_enabled
        self._execute(
            "UPDATE domains SET monitoring_enabled = ?, auto_purchase_enabled = ?, "
            "updated_at = ? WHERE id = ?",
            (int(monitoring), int(auto), self._now(), domain_id),
        )
        return self.get_domain(domain_id)

    def update_domain_status(
        self, domain_id: int, status: DomainStatus, checked: bool = True
    ) -> WatchedDomain:
        """
        Set the domain status; ``checked`` also stamps the last check time.

        Raises:
            NotFoundError: If no domain has this id
        """
        now = self._now()
        if checked:
            cursor = self._execute(
                "UPDATE domains SET status = ?, last_check = ?, updated_at = ? WHERE id = ?",
                (status.value, now, now, domain_id),
            )
        else:
            cursor = self._execute(
                "UPDATE domains SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, now, domain_id),
            )
        if cursor.rowcount == 0:
            raise NotFoundError(
                code="domain_not_found",
                message=f"No domain with id {domain_id}",
                details={"domain_id": domain_id},
            )
        return self.get_domain(domain_id)

    def update_expiration_info(self, domain_id: int, info: ExpirationInfo) -> WatchedDomain:
        """
        Store the informational expiry fields.

        Raises:
            NotFoundError: If no domain has this id
        """
        cursor = self._execute(
            "UPDATE domains SET expiry_date = ?, estimated_release_date = ?, "
            "days_until_expiry = ?, registrar = ?, updated_at = ? WHERE id = ?",
            (
                info.expiry_date,
                info.estimated_release_date,
                info.days_until_expiry,
                info.registrar,
                self._now(),
                domain_id,
            ),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(
                code="domain_not_found",
                message=f"No domain with id {domain_id}",
                details={"domain_id": domain_id},
            )
        return self.get_domain(domain_id)

    def delete_domain(self, domain_id: int) -> None:
        """
        Remove a watched domain. Its checks and purchases are kept.

        Raises:
            NotFoundError: If no domain has this id
        """
        cursor = self._execute("DELETE FROM domains WHERE id = ?", (domain_id,))
        if cursor.rowcount == 0:
            raise NotFoundError(
                code="domain_not_found",
                message=f"No domain with id {domain_id}",
                details={"domain_id": domain_id},
            )

    # ------------------------------------------------------------------
    # Check history
    # ------------------------------------------------------------------

    def add_check(
        self,
        domain_id: int,
        status: CheckStatus,
        notes: Optional[str] = None,
    ) -> DomainCheck:
        """Append one check row; ``available`` is derived from the status."""
        now = self._now()
        available = status == CheckStatus.AVAILABLE
        cursor = self._execute(
            "INSERT INTO domain_checks (domain_id, status, available, check_date, notes) "
            "VALUES (?, ?, ?, ?, ?)",
            (domain_id, status.value, int(available), now, notes),
        )
        return DomainCheck(
            id=cursor.lastrowid,
            domain_id=domain_id,
            status=status,
            available=available,
            checked_at=now,
            notes=notes,
        )

    def list_checks(self, domain_id: int, limit: Optional[int] = None) -> list[DomainCheck]:
        """Checks for one domain, newest first."""
        sql = "SELECT * FROM domain_checks WHERE domain_id = ? ORDER BY id DESC"
        params: tuple = (domain_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params += (limit,)
        return [
            DomainCheck(
                id=row["id"],
                domain_id=row["domain_id"],
                status=CheckStatus(row["status"]),
                available=bool(row["available"]),
                checked_at=row["check_date"],
                notes=row["notes"],
            )
            for row in self._query(sql, params)
        ]

    def get_analytics(self, start_date: str, end_date: str) -> list[AnalyticsRow]:
        """
        Per-day check counts between two ``YYYY-MM-DD`` dates (inclusive), newest first.
        """
        rows = self._query(
            "SELECT DATE(check_date) AS day, COUNT(*) AS total_checks, "
            "SUM(CASE WHEN available = 1 THEN 1 ELSE 0 END) AS available_count, "
            "SUM(CASE WHEN status = ? THEN 1 ELSE 0 END) AS error_count "
            "FROM domain_checks WHERE DATE(check_date) BETWEEN ? AND ? "
            "GROUP BY DATE(check_date) ORDER BY day DESC",
            (CheckStatus.ERROR.value, start_date, end_date),
        )
        return [
            AnalyticsRow(
                date=row["day"],
                total_checks=row["total_checks"],
                available_count=row["available_count"],
                error_count=row["error_count"],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Purchases
    # ------------------------------------------------------------------

    @staticmethod
    def _to_purchase(row: sqlite3.Row) -> Purchase:
        return Purchase(
            id=row["id"],
            domain_id=row["domain_id"],
            domain_name=row["domain_name"],
            purchase_date=row["purchase_date"],
            status=PurchaseStatus(row["status"]),
            order_id=row["order_id"],
            price=row["price"],
            notes=row["notes"],
        )

    def create_purchase(self, domain_id: Optional[int], domain_name: str) -> Purchase:
        """Open a purchase attempt in PENDING status."""
        cursor = self._execute(
            "INSERT INTO purchases (domain_id, domain_name, purchase_date, status) "
            "VALUES (?, ?, ?, ?)",
            (domain_id, domain_name, self._now(), PurchaseStatus.PENDING.value),
        )
        return self.get_purchase(cursor.lastrowid)

    def get_purchase(self, purchase_id: int) -> Purchase:
        """
        Raises:
            NotFoundError: If no purchase has this id
        """
        rows = self._query("SELECT * FROM purchases WHERE id = ?", (purchase_id,))
        if not rows:
            raise NotFoundError(
                code="purchase_not_found",
                message=f"No purchase with id {purchase_id}",
                details={"purchase_id": purchase_id},
            )
        return self._to_purchase(rows[0])

    def resolve_purchase(
        self,
        purchase_id: int,
        status: PurchaseStatus,
        order_id: Optional[str] = None,
        price: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> Purchase:
        """
        Move a pending purchase to its terminal status. Happens exactly once.

        Raises:
            PersistenceError: If the status is not terminal or the row is already resolved
            NotFoundError: If no purchase has this id
        """
        if status == PurchaseStatus.PENDING:
            raise PersistenceError(
                code="invalid_transition",
                message="A purchase can only be resolved to completed or failed",
                details={"purchase_id": purchase_id},
            )

        cursor = self._execute(
            "UPDATE purchases SET status = ?, order_id = ?, price = ?, notes = ? "
            "WHERE id = ? AND status = ?",
            (status.value, order_id, price, notes, purchase_id, PurchaseStatus.PENDING.value),
        )
        if cursor.rowcount == 0:
            existing = self.get_purchase(purchase_id)
            raise PersistenceError(
                code="already_resolved",
                message=f"Purchase {purchase_id} is already {existing.status.value}",
                details={"purchase_id": purchase_id, "status": existing.status.value},
            )
        return self.get_purchase(purchase_id)

    def list_purchases(self) -> list[Purchase]:
        """All purchase attempts, newest first."""
        rows = self._query("SELECT * FROM purchases ORDER BY purchase_date DESC, id DESC")
        return [self._to_purchase(row) for row in rows]

    # ------------------------------------------------------------------
    # System log
    # ------------------------------------------------------------------

    def add_log(self, level: LogLevel, message: str, domain: Optional[str] = None) -> SystemLogEntry:
        """Append one audit trail entry."""
        now = self._now()
        cursor = self._execute(
            "INSERT INTO system_logs (level, message, domain, created_at) VALUES (?, ?, ?, ?)",
            (level.value, message, domain, now),
        )
        return SystemLogEntry(
            id=cursor.lastrowid, level=level, message=message, created_at=now, domain=domain
        )

    def recent_logs(self, limit: int = 100) -> list[SystemLogEntry]:
        """Most recent audit entries, newest first."""
        rows = self._query("SELECT * FROM system_logs ORDER BY id DESC LIMIT ?", (limit,))
        return [
            SystemLogEntry(
                id=row["id"],
                level=LogLevel(row["level"]),
                message=row["message"],
                created_at=row["created_at"],
                domain=row["domain"],
            )
            for row in rows
        ]
