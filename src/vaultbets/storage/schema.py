"""SQLite database schema definitions."""

SCHEMA_VERSION = 3

SCHEMA_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Operator-editable key/value configuration
CREATE TABLE IF NOT EXISTS system_config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Fixtures referenced by tips
CREATE TABLE IF NOT EXISTS fixtures (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    fixture_id INTEGER UNIQUE NOT NULL,
    league_id INTEGER NOT NULL,
    home_team_id INTEGER NOT NULL,
    away_team_id INTEGER NOT NULL,
    home_team_name TEXT NOT NULL DEFAULT '',
    away_team_name TEXT NOT NULL DEFAULT '',
    kickoff_utc TEXT NOT NULL,
    venue TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_fixtures_kickoff ON fixtures(kickoff_utc);

-- Generated tips, at most one per fixture
CREATE TABLE IF NOT EXISTS tips (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    fixture_id INTEGER NOT NULL UNIQUE REFERENCES fixtures(fixture_id),
    bet_type TEXT NOT NULL,
    recommended_odds REAL NOT NULL CHECK (recommended_odds >= 1.0),
    confidence_score INTEGER NOT NULL CHECK (confidence_score BETWEEN 0 AND 100),
    explanation TEXT NOT NULL DEFAULT '',
    is_premium INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'draft' CHECK (status IN ('draft', 'published')),
    published_at TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    CHECK ((status = 'published') = (published_at IS NOT NULL))
);

CREATE INDEX IF NOT EXISTS idx_tips_status ON tips(status);
CREATE INDEX IF NOT EXISTS idx_tips_created_at ON tips(created_at);

-- Supporting analysis, created in the same transaction as its tip
CREATE TABLE IF NOT EXISTS tip_analysis (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tip_id INTEGER NOT NULL UNIQUE REFERENCES tips(id) ON DELETE CASCADE,
    value_rating INTEGER NOT NULL CHECK (value_rating BETWEEN 0 AND 10),
    implied_probability REAL NOT NULL,
    model_probability REAL NOT NULL,
    risk_factors TEXT NOT NULL DEFAULT '[]',
    weather_impact TEXT NOT NULL DEFAULT '',
    venue_advantage_pct REAL,
    market_movement TEXT NOT NULL DEFAULT '',
    betting_volume TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Append-only record of runs and admin actions
CREATE TABLE IF NOT EXISTS activity_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_type TEXT NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('success', 'failed', 'skipped')),
    duration_ms INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    details TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_activity_log_created_at ON activity_log(created_at);
CREATE INDEX IF NOT EXISTS idx_activity_log_run_type ON activity_log(run_type);

-- Outbound API usage per provider, endpoint and day
CREATE TABLE IF NOT EXISTS api_usage (
    provider TEXT NOT NULL,
    endpoint TEXT NOT NULL,
    date TEXT NOT NULL,
    requests_made INTEGER NOT NULL DEFAULT 0,
    cost_estimate REAL NOT NULL DEFAULT 0.0,
    PRIMARY KEY (provider, endpoint, date)
);
"""

MIGRATION_2_ODDS_TRACKING = """
-- Odds refresh tracking for published tips
ALTER TABLE tips ADD COLUMN odds_updated_at TEXT;

CREATE TABLE IF NOT EXISTS odds_snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tip_id INTEGER NOT NULL REFERENCES tips(id) ON DELETE CASCADE,
    bet_type TEXT NOT NULL,
    odds REAL NOT NULL,
    bookmaker TEXT NOT NULL DEFAULT '',
    captured_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_odds_snapshots_tip_id ON odds_snapshots(tip_id);
"""

MIGRATION_3_JOB_STATE = """
-- Scheduler job state shared by every process using the database
CREATE TABLE IF NOT EXISTS job_state (
    job_name TEXT PRIMARY KEY,
    state TEXT NOT NULL DEFAULT 'stopped' CHECK (state IN ('stopped', 'scheduled')),
    next_fire_at TEXT,
    schedule_owner TEXT NOT NULL DEFAULT '',
    last_started_at TEXT,
    last_status TEXT,
    last_error TEXT,
    run_owner TEXT,
    run_started_at TEXT,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""

MIGRATIONS: dict[int, str] = {
    1: SCHEMA_SQL,
    2: MIGRATION_2_ODDS_TRACKING,
    3: MIGRATION_3_JOB_STATE,
}
