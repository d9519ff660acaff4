"""Database connection and access layer."""

import itertools
import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

from vaultbets.common.logging import get_logger
from vaultbets.common.time_utils import parse_iso, utc_now
from vaultbets.storage.models import (
    ConfigEntry,
    Fixture,
    JobStateRecord,
    OddsSnapshot,
    RunRecord,
    RunStatus,
    Tip,
    TipAnalysis,
    TipStatus,
)
from vaultbets.storage.schema import MIGRATIONS, SCHEMA_VERSION

logger = get_logger(__name__)


class SandboxRollback(Exception):
    """Raised internally to discard a sandbox transaction."""


def _ts(dt: datetime) -> str:
    """Normalize a datetime to a sortable UTC ISO string."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat()


def _ts_or_none(dt: datetime | None) -> str | None:
    return _ts(dt) if dt is not None else None


def _parse_or_none(value: str | None) -> datetime | None:
    return parse_iso(value) if value else None


class Database:
    """SQLite database connection and operations.

    The connection runs in autocommit mode; multi-statement writes go through
    :meth:`transaction`, which uses savepoints so that it nests inside
    :meth:`sandbox`.
    """

    def __init__(self, db_path: str | Path):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file.
        """
        self.db_path = Path(db_path)
        self._connection: sqlite3.Connection | None = None
        self._savepoint_ids = itertools.count(1)

    def connect(self) -> None:
        """Open database connection."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = sqlite3.connect(str(self.db_path), isolation_level=None)
        self._connection.row_factory = sqlite3.Row
        self._connection.execute("PRAGMA foreign_keys = ON")
        self._connection.execute("PRAGMA journal_mode = WAL")

        logger.info("database_connected", path=str(self.db_path))

    def close(self) -> None:
        """Close database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None
            logger.info("database_closed", path=str(self.db_path))

    @property
    def connection(self) -> sqlite3.Connection:
        """Get active connection, raising if not connected."""
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    def migrate(self) -> None:
        """Apply database migrations."""
        conn = self.connection
        cursor = conn.cursor()

        current_version = self.get_schema_version()

        for version in sorted(MIGRATIONS.keys()):
            if version > current_version:
                logger.info("applying_migration", version=version)
                cursor.executescript(MIGRATIONS[version])
                cursor.execute(
                    "INSERT INTO schema_version (version) VALUES (?)",
                    (version,),
                )
                logger.info("migration_applied", version=version)

        logger.info(
            "migrations_complete",
            from_version=current_version,
            to_version=SCHEMA_VERSION,
        )

    def ping(self) -> bool:
        """Check that the connection answers a trivial query."""
        try:
            self.connection.execute("SELECT 1").fetchone()
        except (sqlite3.Error, RuntimeError) as e:
            logger.warning("database_ping_failed", path=str(self.db_path), error=str(e))
            return False
        return True

    def get_schema_version(self) -> int:
        """Get current schema version."""
        cursor = self.connection.cursor()
        cursor.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
        )
        if cursor.fetchone() is None:
            return 0
        cursor.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        """Execute raw SQL.

        Args:
            sql: SQL statement.
            params: Query parameters.

        Returns:
            Cursor with results.
        """
        return self.connection.execute(sql, params)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """Run a block atomically, rolling back on any exception."""
        name = f"sp_{next(self._savepoint_ids)}"
        cursor = self.connection.cursor()
        cursor.execute(f"SAVEPOINT {name}")
        try:
            yield cursor
        except BaseException:
            cursor.execute(f"ROLLBACK TO SAVEPOINT {name}")
            cursor.execute(f"RELEASE SAVEPOINT {name}")
            raise
        cursor.execute(f"RELEASE SAVEPOINT {name}")

    @contextmanager
    def sandbox(self) -> Iterator[None]:
        """Run a block whose writes are always discarded."""
        try:
            with self.transaction():
                yield
                raise SandboxRollback()
        except SandboxRollback:
            logger.debug("sandbox_rolled_back")

    # --- Config operations ---

    def get_config_entry(self, key: str) -> ConfigEntry | None:
        """Get a configuration entry by key.

        Args:
            key: Configuration key.

        Returns:
            ConfigEntry or None if the key has never been set.
        """
        cursor = self.connection.cursor()
        cursor.execute("SELECT * FROM system_config WHERE key = ?", (key,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_config_entry(row)

    def set_config(self, key: str, value: str, description: str | None = None) -> None:
        """Insert or update a configuration entry.

        Args:
            key: Configuration key.
            value: String value.
            description: Description; the existing one is kept when None.
        """
        self.connection.execute(
            """
            INSERT INTO system_config (key, value, description, updated_at)
            VALUES (?, ?, COALESCE(?, ''), ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                description = COALESCE(?, system_config.description),
                updated_at = excluded.updated_at
            """,
            (key, value, description, _ts(utc_now()), description),
        )
        logger.debug("config_set", key=key)

    def insert_config_default(self, key: str, value: str, description: str = "") -> bool:
        """Insert a configuration entry only if the key is missing.

        Returns:
            True if the entry was created.
        """
        cursor = self.connection.execute(
            """
            INSERT INTO system_config (key, value, description, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(key) DO NOTHING
            """,
            (key, value, description, _ts(utc_now())),
        )
        return cursor.rowcount > 0

    def list_config(self, keys: list[str] | None = None) -> list[ConfigEntry]:
        """List configuration entries, optionally restricted to some keys."""
        query = "SELECT * FROM system_config"
        params: list[Any] = []
        if keys is not None:
            if not keys:
                return []
            query += f" WHERE key IN ({', '.join('?' for _ in keys)})"
            params.extend(keys)
        query += " ORDER BY key"
        cursor = self.connection.execute(query, params)
        return [self._row_to_config_entry(row) for row in cursor.fetchall()]

    def _row_to_config_entry(self, row: sqlite3.Row) -> ConfigEntry:
        return ConfigEntry(
            key=row["key"],
            value=row["value"],
            description=row["description"],
            updated_at=parse_iso(row["updated_at"]),
        )

    # --- Fixture operations ---

    def upsert_fixture(self, fixture: Fixture) -> None:
        """Insert or update a fixture record.

        Args:
            fixture: Fixture to store.
        """
        now = _ts(utc_now())
        self.connection.execute(
            """
            INSERT INTO fixtures
            (fixture_id, league_id, home_team_id, away_team_id, home_team_name,
             away_team_name, kickoff_utc, venue, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(fixture_id) DO UPDATE SET
                league_id = excluded.league_id,
                home_team_id = excluded.home_team_id,
                away_team_id = excluded.away_team_id,
                home_team_name = excluded.home_team_name,
                away_team_name = excluded.away_team_name,
                kickoff_utc = excluded.kickoff_utc,
                venue = excluded.venue,
                updated_at = excluded.updated_at
            """,
            (
                fixture.fixture_id,
                fixture.league_id,
                fixture.home_team_id,
                fixture.away_team_id,
                fixture.home_team_name,
                fixture.away_team_name,
                _ts(fixture.kickoff_utc),
                fixture.venue,
                now,
                now,
            ),
        )

    def get_fixture(self, fixture_id: int) -> Fixture | None:
        """Get a fixture by its external ID."""
        cursor = self.connection.execute(
            "SELECT * FROM fixtures WHERE fixture_id = ?", (fixture_id,)
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return Fixture(
            fixture_id=row["fixture_id"],
            league_id=row["league_id"],
            home_team_id=row["home_team_id"],
            away_team_id=row["away_team_id"],
            home_team_name=row["home_team_name"],
            away_team_name=row["away_team_name"],
            kickoff_utc=parse_iso(row["kickoff_utc"]),
            venue=row["venue"],
        )

    # --- Tip operations ---

    def create_tip(self, tip: Tip, analysis: TipAnalysis | None = None) -> int:
        """Create a draft tip and its analysis atomically.

        Args:
            tip: Tip to insert. Its fixture must already be stored.
            analysis: Optional supporting analysis.

        Returns:
            ID of created tip.

        Raises:
            sqlite3.IntegrityError: On duplicate fixture or constraint violation;
                nothing is written in that case.
        """
        with self.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO tips
                (fixture_id, bet_type, recommended_odds, confidence_score,
                 explanation, is_premium, status, published_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    tip.fixture_id,
                    tip.bet_type,
                    tip.recommended_odds,
                    tip.confidence_score,
                    tip.explanation,
                    int(tip.is_premium),
                    tip.status.value,
                    _ts_or_none(tip.published_at),
                    _ts(tip.created_at),
                ),
            )
            tip_id = cursor.lastrowid
            assert tip_id is not None

            if analysis is not None:
                cursor.execute(
                    """
                    INSERT INTO tip_analysis
                    (tip_id, value_rating, implied_probability, model_probability,
                     risk_factors, weather_impact, venue_advantage_pct,
                     market_movement, betting_volume, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        tip_id,
                        analysis.value_rating,
                        analysis.implied_probability,
                        analysis.model_probability,
                        json.dumps(analysis.risk_factors),
                        analysis.weather_impact,
                        analysis.venue_advantage_pct,
                        analysis.market_movement,
                        analysis.betting_volume,
                        _ts(analysis.created_at),
                    ),
                )

        logger.info(
            "tip_created",
            tip_id=tip_id,
            fixture_id=tip.fixture_id,
            bet_type=tip.bet_type,
            with_analysis=analysis is not None,
        )
        return tip_id

    def tip_exists_for_fixture(self, fixture_id: int) -> bool:
        """Check whether a tip already exists for a fixture."""
        cursor = self.connection.execute(
            "SELECT 1 FROM tips WHERE fixture_id = ? LIMIT 1", (fixture_id,)
        )
        return cursor.fetchone() is not None

    def get_tip(self, tip_id: int) -> Tip | None:
        """Get a tip by ID."""
        cursor = self.connection.execute("SELECT * FROM tips WHERE id = ?", (tip_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_tip(row)

    def get_tip_analysis(self, tip_id: int) -> TipAnalysis | None:
        """Get the analysis attached to a tip, if any."""
        cursor = self.connection.execute(
            "SELECT * FROM tip_analysis WHERE tip_id = ?", (tip_id,)
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return TipAnalysis(
            id=row["id"],
            tip_id=row["tip_id"],
            value_rating=row["value_rating"],
            implied_probability=row["implied_probability"],
            model_probability=row["model_probability"],
            risk_factors=json.loads(row["risk_factors"]) if row["risk_factors"] else [],
            weather_impact=row["weather_impact"],
            venue_advantage_pct=row["venue_advantage_pct"],
            market_movement=row["market_movement"],
            betting_volume=row["betting_volume"],
            created_at=parse_iso(row["created_at"]),
        )

    def query_tips(
        self,
        status: TipStatus | None = None,
        fixture_id: int | None = None,
        created_since: datetime | None = None,
        kickoff_after: datetime | None = None,
        kickoff_before: datetime | None = None,
        limit: int = 100,
    ) -> list[Tip]:
        """Query tips, optionally filtered.

        Args:
            status: Filter by publish state.
            fixture_id: Filter by fixture.
            created_since: Only tips created at or after this time.
            kickoff_after: Only tips whose fixture kicks off after this time.
            kickoff_before: Only tips whose fixture kicks off before this time.
            limit: Maximum number of tips to return.

        Returns:
            Tips ordered by creation time, oldest first.
        """
        query = "SELECT t.* FROM tips t JOIN fixtures f ON f.fixture_id = t.fixture_id WHERE 1=1"
        params: list[Any] = []

        if status is not None:
            query += " AND t.status = ?"
            params.append(status.value)
        if fixture_id is not None:
            query += " AND t.fixture_id = ?"
            params.append(fixture_id)
        if created_since is not None:
            query += " AND t.created_at >= ?"
            params.append(_ts(created_since))
        if kickoff_after is not None:
            query += " AND f.kickoff_utc > ?"
            params.append(_ts(kickoff_after))
        if kickoff_before is not None:
            query += " AND f.kickoff_utc < ?"
            params.append(_ts(kickoff_before))

        query += " ORDER BY t.created_at, t.id LIMIT ?"
        params.append(limit)

        cursor = self.connection.execute(query, params)
        return [self._row_to_tip(row) for row in cursor.fetchall()]

    def publish_tips(self, tip_ids: list[int], published_at: datetime) -> int:
        """Publish draft tips in one batch.

        Args:
            tip_ids: Tips to publish.
            published_at: Publish timestamp stamped on every tip in the batch.

        Returns:
            Number of tips transitioned from draft to published.
        """
        if not tip_ids:
            return 0
        stamp = _ts(published_at)
        published = 0
        with self.transaction() as cursor:
            for tip_id in tip_ids:
                cursor.execute(
                    """
                    UPDATE tips SET status = 'published', published_at = ?
                    WHERE id = ? AND status = 'draft'
                    """,
                    (stamp, tip_id),
                )
                published += cursor.rowcount
        logger.info("tips_published", count=published, published_at=stamp)
        return published

    def unpublish_tip(self, tip_id: int) -> bool:
        """Return a published tip to draft (operator override).

        Returns:
            True if the tip was published and is now a draft.
        """
        cursor = self.connection.execute(
            """
            UPDATE tips SET status = 'draft', published_at = NULL
            WHERE id = ? AND status = 'published'
            """,
            (tip_id,),
        )
        return cursor.rowcount > 0

    def set_tip_premium(self, tip_id: int, is_premium: bool) -> None:
        """Set the premium flag of a tip."""
        self.connection.execute(
            "UPDATE tips SET is_premium = ? WHERE id = ?", (int(is_premium), tip_id)
        )

    def update_tip_odds(
        self,
        tip_id: int,
        odds: float,
        updated_at: datetime,
        market_movement: str,
        bookmaker: str = "",
    ) -> None:
        """Refresh the odds of a tip and record the observation.

        Only the odds and market fields are touched: the tip's odds and
        refresh time, the analysis implied probability and market movement,
        and a new odds snapshot row.
        """
        with self.transaction() as cursor:
            cursor.execute(
                "SELECT bet_type FROM tips WHERE id = ?", (tip_id,)
            )
            row = cursor.fetchone()
            if row is None:
                raise ValueError(f"Tip not found: {tip_id}")

            cursor.execute(
                "UPDATE tips SET recommended_odds = ?, odds_updated_at = ? WHERE id = ?",
                (odds, _ts(updated_at), tip_id),
            )
            cursor.execute(
                """
                UPDATE tip_analysis
                SET implied_probability = ?, market_movement = ?
                WHERE tip_id = ?
                """,
                (round(100.0 / odds, 2), market_movement, tip_id),
            )
            cursor.execute(
                """
                INSERT INTO odds_snapshots (tip_id, bet_type, odds, bookmaker, captured_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (tip_id, row["bet_type"], odds, bookmaker, _ts(updated_at)),
            )

    def get_odds_snapshots(self, tip_id: int) -> list[OddsSnapshot]:
        """Get odds history for a tip, oldest first."""
        cursor = self.connection.execute(
            "SELECT * FROM odds_snapshots WHERE tip_id = ? ORDER BY captured_at, id",
            (tip_id,),
        )
        return [
            OddsSnapshot(
                id=row["id"],
                tip_id=row["tip_id"],
                bet_type=row["bet_type"],
                odds=row["odds"],
                bookmaker=row["bookmaker"],
                captured_at=parse_iso(row["captured_at"]),
            )
            for row in cursor.fetchall()
        ]

    def tip_stats(self, since: datetime) -> dict[str, Any]:
        """Aggregate tip counts for tips created since a point in time."""
        cursor = self.connection.execute(
            """
            SELECT
                COUNT(*) AS total_tips,
                COALESCE(SUM(CASE WHEN status = 'published' THEN 1 ELSE 0 END), 0)
                    AS published_tips,
                COALESCE(SUM(is_premium), 0) AS premium_tips,
                AVG(confidence_score) AS avg_confidence
            FROM tips
            WHERE created_at >= ?
            """,
            (_ts(since),),
        )
        row = cursor.fetchone()
        avg = row["avg_confidence"]
        return {
            "total_tips": row["total_tips"],
            "published_tips": row["published_tips"],
            "premium_tips": row["premium_tips"],
            "avg_confidence": round(avg, 1) if avg is not None else None,
        }

    def _row_to_tip(self, row: sqlite3.Row) -> Tip:
        """Convert database row to Tip object."""
        return Tip(
            id=row["id"],
            fixture_id=row["fixture_id"],
            bet_type=row["bet_type"],
            recommended_odds=row["recommended_odds"],
            confidence_score=row["confidence_score"],
            explanation=row["explanation"],
            is_premium=bool(row["is_premium"]),
            status=TipStatus(row["status"]),
            published_at=parse_iso(row["published_at"]) if row["published_at"] else None,
            created_at=parse_iso(row["created_at"]),
            odds_updated_at=(
                parse_iso(row["odds_updated_at"]) if row["odds_updated_at"] else None
            ),
        )

    # --- Activity log operations ---

    def append_run_record(self, record: RunRecord) -> int:
        """Append a run record to the activity log.

        Returns:
            ID of the appended record.
        """
        cursor = self.connection.execute(
            """
            INSERT INTO activity_log
            (run_type, status, duration_ms, error_message, details, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                record.run_type,
                record.status.value,
                record.duration_ms,
                record.error_message,
                json.dumps(record.details, default=str),
                _ts(record.created_at),
            ),
        )
        record_id = cursor.lastrowid
        assert record_id is not None
        logger.info(
            "run_record_appended",
            record_id=record_id,
            run_type=record.run_type,
            status=record.status.value,
        )
        return record_id

    def recent_run_records(
        self,
        run_type_prefix: str | None = None,
        status: RunStatus | None = None,
        limit: int = 20,
    ) -> list[RunRecord]:
        """Get the most recent run records, newest first.

        Args:
            run_type_prefix: Only records whose run type starts with this.
            status: Only records with this status.
            limit: Maximum number of records.
        """
        query = "SELECT * FROM activity_log WHERE 1=1"
        params: list[Any] = []
        if run_type_prefix:
            query += " AND substr(run_type, 1, ?) = ?"
            params.extend([len(run_type_prefix), run_type_prefix])
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        cursor = self.connection.execute(query, params)
        return [self._row_to_run_record(row) for row in cursor.fetchall()]

    def _row_to_run_record(self, row: sqlite3.Row) -> RunRecord:
        return RunRecord(
            id=row["id"],
            run_type=row["run_type"],
            status=RunStatus(row["status"]),
            duration_ms=row["duration_ms"],
            error_message=row["error_message"],
            details=json.loads(row["details"]) if row["details"] else {},
            created_at=parse_iso(row["created_at"]),
        )

    # --- Job state operations ---

    def claim_job_run(
        self, job_name: str, owner: str, now: datetime, stale_before: datetime
    ) -> bool:
        """Atomically mark a job as running for an owner.

        The claim fails while another claim on the job is live. Claims started
        before ``stale_before`` are treated as abandoned and taken over.

        Returns:
            True if the claim was taken.
        """
        cursor = self.connection.execute(
            """
            INSERT INTO job_state (job_name, run_owner, run_started_at, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(job_name) DO UPDATE SET
                run_owner = excluded.run_owner,
                run_started_at = excluded.run_started_at,
                updated_at = excluded.updated_at
            WHERE job_state.run_owner IS NULL OR job_state.run_started_at < ?
            """,
            (job_name, owner, _ts(now), _ts(now), _ts(stale_before)),
        )
        return cursor.rowcount > 0

    def release_job_run(self, job_name: str, owner: str) -> bool:
        """Drop a run claim held by an owner.

        Returns:
            True if the owner held the claim.
        """
        cursor = self.connection.execute(
            """
            UPDATE job_state SET run_owner = NULL, run_started_at = NULL, updated_at = ?
            WHERE job_name = ? AND run_owner = ?
            """,
            (_ts(utc_now()), job_name, owner),
        )
        return cursor.rowcount > 0

    def save_job_schedule(
        self, job_name: str, state: str, next_fire_at: datetime | None, owner: str
    ) -> None:
        """Record whether a job is scheduled, when it fires next and by whom."""
        self.connection.execute(
            """
            INSERT INTO job_state (job_name, state, next_fire_at, schedule_owner, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(job_name) DO UPDATE SET
                state = excluded.state,
                next_fire_at = excluded.next_fire_at,
                schedule_owner = excluded.schedule_owner,
                updated_at = excluded.updated_at
            """,
            (job_name, state, _ts_or_none(next_fire_at), owner, _ts(utc_now())),
        )

    def save_job_result(
        self,
        job_name: str,
        started_at: datetime | None,
        status: str | None,
        error: str | None,
    ) -> None:
        """Record the outcome of a job's latest run."""
        self.connection.execute(
            """
            INSERT INTO job_state
            (job_name, last_started_at, last_status, last_error, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(job_name) DO UPDATE SET
                last_started_at = excluded.last_started_at,
                last_status = excluded.last_status,
                last_error = excluded.last_error,
                updated_at = excluded.updated_at
            """,
            (job_name, _ts_or_none(started_at), status, error, _ts(utc_now())),
        )

    def list_job_states(self) -> list[JobStateRecord]:
        """Get every stored job state."""
        cursor = self.connection.execute("SELECT * FROM job_state ORDER BY job_name")
        return [self._row_to_job_state(row) for row in cursor.fetchall()]

    def _row_to_job_state(self, row: sqlite3.Row) -> JobStateRecord:
        return JobStateRecord(
            job_name=row["job_name"],
            state=row["state"],
            next_fire_at=_parse_or_none(row["next_fire_at"]),
            schedule_owner=row["schedule_owner"],
            last_started_at=_parse_or_none(row["last_started_at"]),
            last_status=row["last_status"],
            last_error=row["last_error"],
            run_owner=row["run_owner"],
            run_started_at=_parse_or_none(row["run_started_at"]),
            updated_at=parse_iso(row["updated_at"]),
        )

    # --- API usage operations ---

    def record_api_usage(
        self,
        provider: str,
        endpoint: str,
        requests: int = 1,
        cost: float = 0.0,
        day: date | None = None,
    ) -> None:
        """Count requests against a provider endpoint for a day."""
        day = day or utc_now().date()
        self.connection.execute(
            """
            INSERT INTO api_usage (provider, endpoint, date, requests_made, cost_estimate)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(provider, endpoint, date) DO UPDATE SET
                requests_made = api_usage.requests_made + excluded.requests_made,
                cost_estimate = api_usage.cost_estimate + excluded.cost_estimate
            """,
            (provider, endpoint, day.isoformat(), requests, cost),
        )

    def api_usage_summary(self, since: date) -> list[dict[str, Any]]:
        """Total requests and cost per provider since a day, busiest first."""
        cursor = self.connection.execute(
            """
            SELECT provider,
                   SUM(requests_made) AS total_requests,
                   SUM(cost_estimate) AS total_cost
            FROM api_usage
            WHERE date >= ?
            GROUP BY provider
            ORDER BY total_requests DESC
            """,
            (since.isoformat(),),
        )
        return [
            {
                "provider": row["provider"],
                "total_requests": row["total_requests"],
                "total_cost": round(row["total_cost"], 4),
            }
            for row in cursor.fetchall()
        ]
