"""
Repository pattern for data access.

Handles the usage ledger, user tiers, in-flight usage reservations and the
email log used for alert cooldowns.
"""

import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

from edu_guard.core.categories import GenerationKind
from edu_guard.core.tiers import Tier, parse_tier

from .db import DEFAULT_DB_PATH, get_connection
from .models import EmailLogEntry, UsageEvent

logger = logging.getLogger(__name__)

# Reservations older than this belong to crashed requests and stop counting
RESERVATION_TTL = timedelta(minutes=15)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        tier TEXT NOT NULL DEFAULT 'free'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS usage_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        generation_type TEXT NOT NULL,
        tier TEXT NOT NULL,
        success INTEGER NOT NULL DEFAULT 1,
        metadata TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_usage_logs_user_type_created
    ON usage_logs (user_id, generation_type, created_at)
    """,
    """
    CREATE TABLE IF NOT EXISTS usage_reservations (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        generation_type TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS email_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        template_id TEXT NOT NULL,
        status TEXT NOT NULL CHECK (status IN ('sent', 'failed', 'bounced', 'delivered', 'opened', 'clicked')),
        message_id TEXT,
        sent_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_email_logs_user_template_sent
    ON email_logs (user_id, template_id, sent_at)
    """,
)


def _to_db_time(value: datetime) -> str:
    """Fixed-width UTC ISO string so that text comparison orders by time."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db_time(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _kind_values(kinds: Iterable[GenerationKind]) -> List[str]:
    values = [kind.value for kind in kinds]
    if not values:
        raise ValueError("At least one generation kind is required")
    return values


class UsageRepository:
    """Repository for the usage ledger and related tables.

    The usage_logs table is append-only: no UPDATE or DELETE is ever issued
    against it. Monthly counts come from the created_at window.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def initialize_schema(self) -> None:
        """Create all tables and indexes if they don't exist."""
        conn = get_connection(self.db_path)
        try:
            for statement in SCHEMA:
                conn.execute(statement)
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def get_tier(self, user_id: str) -> Tier:
        """Tier of a user; users without a profile are on the free tier."""
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("SELECT tier FROM profiles WHERE id = ?", (user_id,)).fetchone()
            return parse_tier(row[0] if row else None)
        finally:
            conn.close()

    def set_tier(self, user_id: str, tier: Tier) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                """
                INSERT INTO profiles (id, tier) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET tier = excluded.tier
                """,
                (user_id, tier.value),
            )
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Usage ledger
    # ------------------------------------------------------------------

    def count_usage(
        self,
        user_id: str,
        kinds: Iterable[GenerationKind],
        since: datetime,
        until: Optional[datetime] = None,
    ) -> int:
        """Count successful usage events for a user in [since, until).

        Args:
            user_id: User to count for
            kinds: Generation kinds making up the category
            since: Window start (inclusive)
            until: Window end (exclusive), unbounded when None

        Returns:
            Number of successful events
        """
        conn = get_connection(self.db_path)
        try:
            return self._count_events(conn, user_id, _kind_values(kinds), since, until)
        finally:
            conn.close()

    def insert_usage_event(self, event: UsageEvent) -> None:
        """Append a single usage event to the ledger."""
        conn = get_connection(self.db_path)
        try:
            self._insert_event(conn, event)
        finally:
            conn.close()

    def fetch_usage_events(
        self,
        user_id: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[UsageEvent]:
        """Fetch usage events, newest first."""
        conn = get_connection(self.db_path)
        try:
            query = """
                SELECT user_id, generation_type, tier, created_at, success, metadata
                FROM usage_logs
            """
            params: list = []
            conditions = []
            if user_id:
                conditions.append("user_id = ?")
                params.append(user_id)
            if since is not None:
                conditions.append("created_at >= ?")
                params.append(_to_db_time(since))
            if conditions:
                query += " WHERE " + " AND ".join(conditions)
            query += " ORDER BY created_at DESC, id DESC LIMIT ?"
            params.append(limit)

            events = []
            for row in conn.execute(query, params).fetchall():
                events.append(UsageEvent(
                    user_id=row[0],
                    generation_kind=GenerationKind(row[1]),
                    tier=parse_tier(row[2]),
                    timestamp=_from_db_time(row[3]),
                    success=bool(row[4]),
                    metadata=json.loads(row[5] or "{}"),
                ))
            return events
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Reservations: atomic check-and-reserve for finite limits
    # ------------------------------------------------------------------

    def reserve_usage(
        self,
        user_id: str,
        kind: GenerationKind,
        kinds: Iterable[GenerationKind],
        since: datetime,
        limit: int,
        now: Optional[datetime] = None,
    ) -> Tuple[Optional[str], int]:
        """Count usage and reserve a slot in one write transaction.

        Recorded events and live reservations both count toward the limit,
        so two concurrent requests cannot both take the last slot. Expired
        reservations are deleted in the same transaction.

        Returns:
            (reservation_id, current_usage); reservation_id is None when
            current_usage has already reached the limit
        """
        now = now or datetime.now(timezone.utc)
        kind_values = _kind_values(kinds)
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(
                    "DELETE FROM usage_reservations WHERE created_at < ?",
                    (_to_db_time(now - RESERVATION_TTL),),
                )
                used = self._count_events(conn, user_id, kind_values, since, None)
                placeholders = ",".join("?" for _ in kind_values)
                in_flight = conn.execute(
                    f"""
                    SELECT COUNT(*) FROM usage_reservations
                    WHERE user_id = ? AND generation_type IN ({placeholders})
                    """,
                    [user_id, *kind_values],
                ).fetchone()[0]
                current = used + in_flight
                reservation_id = None
                if current < limit:
                    reservation_id = uuid.uuid4().hex
                    conn.execute(
                        """
                        INSERT INTO usage_reservations (id, user_id, generation_type, created_at)
                        VALUES (?, ?, ?, ?)
                        """,
                        (reservation_id, user_id, kind.value, _to_db_time(now)),
                    )
                conn.execute("COMMIT")
                return reservation_id, current
            except Exception:
                conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()

    def commit_reservation(self, reservation_id: str, event: UsageEvent) -> None:
        """Record the usage event and drop its reservation atomically."""
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                self._insert_event(conn, event)
                conn.execute("DELETE FROM usage_reservations WHERE id = ?", (reservation_id,))
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()

    def release_reservation(self, reservation_id: str) -> None:
        """Drop a reservation whose operation failed; nothing is recorded."""
        conn = get_connection(self.db_path)
        try:
            conn.execute("DELETE FROM usage_reservations WHERE id = ?", (reservation_id,))
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Email log
    # ------------------------------------------------------------------

    def last_email_sent_at(
        self, user_id: str, template_id: str, since: datetime
    ) -> Optional[datetime]:
        """Most recent successful send of a template to a user since a time."""
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                """
                SELECT sent_at FROM email_logs
                WHERE user_id = ? AND template_id = ? AND status = 'sent' AND sent_at >= ?
                ORDER BY sent_at DESC LIMIT 1
                """,
                (user_id, template_id, _to_db_time(since)),
            ).fetchone()
            return _from_db_time(row[0]) if row else None
        finally:
            conn.close()

    def log_email(self, entry: EmailLogEntry) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                """
                INSERT INTO email_logs (user_id, template_id, status, message_id, sent_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (entry.user_id, entry.template_id, entry.status, entry.message_id,
                 _to_db_time(entry.sent_at)),
            )
        finally:
            conn.close()

    # ------------------------------------------------------------------

    @staticmethod
    def _count_events(conn, user_id, kind_values, since, until) -> int:
        placeholders = ",".join("?" for _ in kind_values)
        query = f"""
            SELECT COUNT(*) FROM usage_logs
            WHERE user_id = ? AND success = 1
              AND generation_type IN ({placeholders})
              AND created_at >= ?
        """
        params = [user_id, *kind_values, _to_db_time(since)]
        if until is not None:
            query += " AND created_at < ?"
            params.append(_to_db_time(until))
        return conn.execute(query, params).fetchone()[0]

    @staticmethod
    def _insert_event(conn, event: UsageEvent) -> None:
        conn.execute(
            """
            INSERT INTO usage_logs (user_id, generation_type, tier, success, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                event.user_id,
                event.generation_kind.value,
                event.tier.value,
                1 if event.success else 0,
                json.dumps(event.metadata, default=str),
                _to_db_time(event.timestamp),
            ),
        )


# Global repository instance
_default_repository: Optional[UsageRepository] = None


def get_repository(db_path: str = DEFAULT_DB_PATH) -> UsageRepository:
    """Get the shared repository instance.

    Args:
        db_path: Path to SQLite database file

    Returns:
        An instance of UsageRepository
    """
    global _default_repository
    if _default_repository is None or _default_repository.db_path != db_path:
        _default_repository = UsageRepository(db_path)
    return _default_repository
