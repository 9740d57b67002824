"""
Durable Store module for the uptime cache.

This module persists upstream snapshots, the per-monitor-per-day aggregate
counters and a small metadata map in SQLite through SQLAlchemy Core.

Every write runs inside a single transaction; on failure the transaction
is rolled back and a StoreError is raised, so prior contents stay intact.
The daily aggregate merge is a single ``INSERT ... ON CONFLICT DO UPDATE``
statement, which makes each per-key read-modify-write atomic inside the
database regardless of how many callers merge concurrently.
"""

from collections.abc import Iterable, Sequence
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional, Union

from sqlalchemy import (
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    case,
    create_engine,
    delete,
    event,
    func,
    literal_column,
    select,
)
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from .enums import Collection, MonitorStatus
from .exceptions import StoreError
from .models import DailyAggregate, Observation, SerializedSnapshot


LAST_UPDATED_KEY = "lastUpdated"

_metadata = MetaData()


def _snapshot_table(name: str) -> Table:
    return Table(
        name,
        _metadata,
        Column("id", String, primary_key=True),
        Column("data", Text, nullable=False),
        Column("updated_at", String, nullable=False),
    )


monitors_table = _snapshot_table(Collection.MONITORS.value)
incidents_table = _snapshot_table(Collection.INCIDENTS.value)
status_changes_table = _snapshot_table(Collection.STATUS_CHANGES.value)

metadata_table = Table(
    "metadata",
    _metadata,
    Column("key", String, primary_key=True),
    Column("value", Text, nullable=False),
)

daily_status_table = Table(
    "daily_status",
    _metadata,
    Column("monitor_id", String, primary_key=True),
    Column("date", String, primary_key=True),
    Column("status", String, nullable=False),
    Column("downtime_minutes", Integer, nullable=False, default=0),
    Column("checks_total", Integer, nullable=False, default=0),
    Column("checks_failed", Integer, nullable=False, default=0),
    Column("updated_at", String, nullable=False),
    Index("idx_daily_status_date", "date"),
)

_TABLES = {
    Collection.MONITORS: monitors_table,
    Collection.INCIDENTS: incidents_table,
    Collection.STATUS_CHANGES: status_changes_table,
}

_DOWN = MonitorStatus.DOWN.value


def _now_iso(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).isoformat()


class Store:
    """
    Transactional snapshot and aggregate store backed by SQLite.

    Snapshot collections hold opaque upstream objects keyed by their ``id``,
    each wrapped in a versioned SerializedSnapshot envelope.
    """

    def __init__(self, database_path: Union[Path, str]) -> None:
        """
        Open (and create if needed) the store.

        Args:
            database_path: SQLite file path, or ":memory:" for a private
                in-process database
        """
        if str(database_path) == ":memory:":
            url = "sqlite://"
        else:
            path = Path(database_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            url = f"sqlite:///{path}"

        self._database_path = database_path
        self._engine: Engine = create_engine(url)
        event.listen(self._engine, "connect", _enable_wal)

        try:
            _metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise StoreError(
                code="init_error",
                message=f"Failed to initialize store: {e}",
                details={"database_path": str(database_path)},
            ) from e

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def database_path(self) -> Union[Path, str]:
        return self._database_path

    def close(self) -> None:
        self._engine.dispose()

    # ------------------------------------------------------------------
    # Snapshot collections
    # ------------------------------------------------------------------

    def upsert_many(
        self,
        collection: Collection,
        items: Iterable[dict],
        now: Optional[datetime] = None,
    ) -> int:
        """
        Insert or replace items by id, leaving other rows untouched.

        Returns:
            Number of items written
        """
        rows = self._snapshot_rows(collection, items, now)
        if not rows:
            return 0
        with self._transaction("upsert_many", collection=collection.value) as conn:
            self._upsert_rows(conn, collection, rows)
        return len(rows)

    def replace_all(
        self,
        collection: Collection,
        items: Iterable[dict],
        now: Optional[datetime] = None,
    ) -> int:
        """
        Atomically clear a collection and insert ``items``.

        If any part fails the previous contents are kept.

        Returns:
            Number of items written
        """
        rows = self._snapshot_rows(collection, items, now)
        table = _TABLES[collection]
        with self._transaction("replace_all", collection=collection.value) as conn:
            conn.execute(delete(table))
            if rows:
                self._upsert_rows(conn, collection, rows)
        return len(rows)

    def get_all(self, collection: Collection) -> list[dict]:
        """Return the decoded upstream objects of a collection in insertion order."""
        table = _TABLES[collection]
        # upserts keep a row's rowid, so this is first-seen upstream order
        query = select(table.c.data).order_by(literal_column("rowid"))
        try:
            with self._engine.connect() as conn:
                payloads = conn.execute(query).scalars().all()
        except SQLAlchemyError as e:
            raise StoreError(
                code="read_error",
                message=f"Failed to read {collection.value}: {e}",
                details={"collection": collection.value},
            ) from e
        return [SerializedSnapshot.decode(p, collection.value).data for p in payloads]

    def save_monitors(self, monitors: Iterable[dict], now: Optional[datetime] = None) -> int:
        """
        Upsert monitors and stamp ``lastUpdated`` in one transaction.

        Returns:
            Number of monitors written
        """
        stamp = _now_iso(now)
        rows = self._snapshot_rows(Collection.MONITORS, monitors, now)
        with self._transaction("save_monitors") as conn:
            if rows:
                self._upsert_rows(conn, Collection.MONITORS, rows)
            self._set_metadata(conn, LAST_UPDATED_KEY, stamp)
        return len(rows)

    def has_data(self) -> bool:
        """True when at least one monitor snapshot is stored."""
        try:
            with self._engine.connect() as conn:
                count = conn.execute(select(func.count()).select_from(monitors_table)).scalar_one()
        except SQLAlchemyError as e:
            raise StoreError(code="read_error", message=f"Failed to count monitors: {e}") from e
        return count > 0

    def clear_all(self) -> None:
        """Clear every snapshot collection (aggregates and metadata are kept)."""
        with self._transaction("clear_all") as conn:
            for table in _TABLES.values():
                conn.execute(delete(table))

    # ------------------------------------------------------------------
    # Daily aggregates
    # ------------------------------------------------------------------

    def merge_daily_aggregate(
        self,
        monitor_id: str,
        day: date,
        status: str,
        is_failed: bool,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Add one observation to the (monitor, day) counters.

        Counters are incremented, never overwritten; a "down" status is
        sticky for the rest of the day.
        """
        observation = Observation(monitor_id=monitor_id, day=day, status=status, is_failed=is_failed)
        self.merge_daily_aggregates([observation], now=now)

    def merge_daily_aggregates(
        self,
        observations: Sequence[Observation],
        now: Optional[datetime] = None,
    ) -> int:
        """
        Merge a batch of observations in one transaction.

        Returns:
            Number of observations merged
        """
        if not observations:
            return 0
        stamp = _now_iso(now)
        with self._transaction("merge_daily_aggregates", count=len(observations)) as conn:
            for obs in observations:
                conn.execute(_merge_statement(obs, stamp))
        return len(observations)

    def initialize_daily_aggregate(
        self,
        monitor_id: str,
        day: date,
        status: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Create a zero-counter row for (monitor, day) unless one exists.

        Returns:
            True if a row was created
        """
        return self.initialize_daily_aggregates([(monitor_id, status)], day, now=now) == 1

    def initialize_daily_aggregates(
        self,
        monitors: Sequence[tuple[str, str]],
        day: date,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Create zero-counter rows for ``(monitor_id, status)`` pairs lacking one.

        Returns:
            Number of rows created
        """
        if not monitors:
            return 0
        stamp = _now_iso(now)
        created = 0
        with self._transaction("initialize_daily_aggregates", count=len(monitors)) as conn:
            for monitor_id, status in monitors:
                stmt = (
                    sqlite_insert(daily_status_table)
                    .values(
                        monitor_id=monitor_id,
                        date=day.isoformat(),
                        status=status,
                        downtime_minutes=0,
                        checks_total=0,
                        checks_failed=0,
                        updated_at=stamp,
                    )
                    .on_conflict_do_nothing(
                        index_elements=[daily_status_table.c.monitor_id, daily_status_table.c.date],
                    )
                )
                created += conn.execute(stmt).rowcount
        return created

    def get_daily_aggregate(self, monitor_id: str, day: date) -> Optional[DailyAggregate]:
        stmt = select(daily_status_table).where(
            daily_status_table.c.monitor_id == monitor_id,
            daily_status_table.c.date == day.isoformat(),
        )
        try:
            with self._engine.connect() as conn:
                row = conn.execute(stmt).mappings().first()
        except SQLAlchemyError as e:
            raise StoreError(code="read_error", message=f"Failed to read aggregate: {e}") from e
        return _to_aggregate(row) if row is not None else None

    def get_daily_aggregates(self, since: date) -> dict[str, list[DailyAggregate]]:
        """
        Read every aggregate on or after ``since``.

        Returns:
            Mapping of monitor id to its aggregates, oldest day first
        """
        stmt = (
            select(daily_status_table)
            .where(daily_status_table.c.date >= since.isoformat())
            .order_by(daily_status_table.c.monitor_id, daily_status_table.c.date)
        )
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        except SQLAlchemyError as e:
            raise StoreError(
                code="read_error",
                message=f"Failed to read daily aggregates: {e}",
                details={"since": since.isoformat()},
            ) from e

        grouped: dict[str, list[DailyAggregate]] = {}
        for row in rows:
            grouped.setdefault(row["monitor_id"], []).append(_to_aggregate(row))
        return grouped

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def get_metadata(self, key: str) -> Optional[str]:
        try:
            with self._engine.connect() as conn:
                return conn.execute(
                    select(metadata_table.c.value).where(metadata_table.c.key == key)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(code="read_error", message=f"Failed to read metadata: {e}") from e

    def set_metadata(self, key: str, value: str) -> None:
        with self._transaction("set_metadata", key=key) as conn:
            self._set_metadata(conn, key, value)

    def get_last_updated(self) -> Optional[str]:
        return self.get_metadata(LAST_UPDATED_KEY)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transaction(self, operation: str, **details):
        return _Transaction(self._engine, operation, details)

    def _snapshot_rows(
        self,
        collection: Collection,
        items: Iterable[dict],
        now: Optional[datetime],
    ) -> list[dict]:
        stamp = _now_iso(now)
        rows = []
        for item in items:
            if not isinstance(item, dict) or item.get("id") is None:
                raise StoreError(
                    code="missing_id",
                    message=f"Cannot store {collection.value} item without an id",
                    details={"collection": collection.value},
                )
            snapshot = SerializedSnapshot(kind=collection.value, data=item)
            rows.append({"id": str(item["id"]), "data": snapshot.encode(), "updated_at": stamp})
        return rows

    def _upsert_rows(self, conn: Connection, collection: Collection, rows: list[dict]) -> None:
        table = _TABLES[collection]
        stmt = sqlite_insert(table)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.id],
            set_={"data": stmt.excluded.data, "updated_at": stmt.excluded.updated_at},
        )
        conn.execute(stmt, rows)

    def _set_metadata(self, conn: Connection, key: str, value: str) -> None:
        stmt = sqlite_insert(metadata_table).values(key=key, value=value)
        stmt = stmt.on_conflict_do_update(
            index_elements=[metadata_table.c.key],
            set_={"value": stmt.excluded.value},
        )
        conn.execute(stmt)


class _Transaction:
    """Context manager around ``engine.begin()`` translating driver errors."""

    def __init__(self, engine: Engine, operation: str, details: dict) -> None:
        self._engine = engine
        self._operation = operation
        self._details = details
        self._context = None

    def __enter__(self) -> Connection:
        try:
            self._context = self._engine.begin()
            return self._context.__enter__()
        except SQLAlchemyError as e:
            raise StoreError(
                code="transaction_error",
                message=f"{self._operation} could not start: {e}",
                details=dict(self._details),
            ) from e

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        # engine.begin() rolls back when an exception is passed in
        try:
            self._context.__exit__(exc_type, exc_val, exc_tb)
        except SQLAlchemyError as e:
            raise StoreError(
                code="transaction_error",
                message=f"{self._operation} failed: {e}",
                details=dict(self._details),
            ) from e
        if isinstance(exc_val, SQLAlchemyError):
            raise StoreError(
                code="transaction_error",
                message=f"{self._operation} failed: {exc_val}",
                details=dict(self._details),
            ) from exc_val
        return False


def _merge_statement(obs: Observation, stamp: str):
    failed = 1 if obs.is_failed else 0
    stmt = sqlite_insert(daily_status_table).values(
        monitor_id=obs.monitor_id,
        date=obs.day.isoformat(),
        status=obs.status,
        downtime_minutes=failed,
        checks_total=1,
        checks_failed=failed,
        updated_at=stamp,
    )
    existing = daily_status_table.c
    incoming = stmt.excluded
    return stmt.on_conflict_do_update(
        index_elements=[existing.monitor_id, existing.date],
        set_={
            "status": case(
                (incoming.status == _DOWN, _DOWN),
                (existing.status == _DOWN, _DOWN),
                else_=incoming.status,
            ),
            "downtime_minutes": existing.downtime_minutes + incoming.downtime_minutes,
            "checks_total": existing.checks_total + incoming.checks_total,
            "checks_failed": existing.checks_failed + incoming.checks_failed,
            "updated_at": incoming.updated_at,
        },
    )


def _to_aggregate(row) -> DailyAggregate:
    return DailyAggregate(
        monitor_id=row["monitor_id"],
        day=date.fromisoformat(row["date"]),
        status=row["status"],
        downtime_minutes=row["downtime_minutes"],
        checks_total=row["checks_total"],
        checks_failed=row["checks_failed"],
        updated_at=row["updated_at"],
    )


def _enable_wal(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()
