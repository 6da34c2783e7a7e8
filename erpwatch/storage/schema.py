"""
PostgreSQL schema for the ERP alert engine.

Statements are idempotent (``IF NOT EXISTS``) and are applied in order by
``PostgresClient.ensure_schema``.

Tables:
    - metric_samples: Samples received from collectors
    - metric_baselines: Append-only baselines per metric key
    - alert_correlations: Incidents
    - alerts: Alert records with lifecycle fields
    - escalation_rules: Operator escalation policies
    - alert_escalations: Append-only escalation audit trail
"""

from typing import List

SCHEMA_STATEMENTS: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS metric_samples (
        id BIGSERIAL PRIMARY KEY,
        metric_name TEXT NOT NULL,
        metric_type TEXT NOT NULL,
        metric_class TEXT,
        environment TEXT NOT NULL,
        value DOUBLE PRECISION NOT NULL,
        sampled_at TIMESTAMPTZ NOT NULL,
        tags JSONB NOT NULL DEFAULT '{}'::jsonb
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_metric_samples_key_time
        ON metric_samples (metric_name, metric_type, environment, sampled_at)
    """,
    """
    CREATE TABLE IF NOT EXISTS metric_baselines (
        id BIGSERIAL PRIMARY KEY,
        metric_name TEXT NOT NULL,
        metric_type TEXT NOT NULL,
        metric_class TEXT,
        environment TEXT NOT NULL,
        percentile_50 DOUBLE PRECISION NOT NULL,
        percentile_95 DOUBLE PRECISION NOT NULL,
        percentile_99 DOUBLE PRECISION NOT NULL,
        mean DOUBLE PRECISION NOT NULL,
        standard_deviation DOUBLE PRECISION NOT NULL,
        sample_count INTEGER NOT NULL,
        window_start TIMESTAMPTZ NOT NULL,
        window_end TIMESTAMPTZ NOT NULL,
        computed_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_metric_baselines_key_computed
        ON metric_baselines (metric_name, metric_type, environment, computed_at DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS alert_correlations (
        correlation_id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        severity TEXT NOT NULL,
        status TEXT NOT NULL,
        first_detected_at TIMESTAMPTZ NOT NULL,
        alert_count INTEGER NOT NULL DEFAULT 0,
        confidence_score INTEGER NOT NULL DEFAULT 0,
        correlation_reason TEXT NOT NULL DEFAULT '',
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ,
        resolved_at TIMESTAMPTZ
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS alerts (
        alert_id TEXT PRIMARY KEY,
        alert_type TEXT NOT NULL,
        severity TEXT NOT NULL,
        message TEXT NOT NULL DEFAULT '',
        metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
        metric_key TEXT,
        status TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL,
        acknowledged_at TIMESTAMPTZ,
        acknowledged_by TEXT,
        resolved_at TIMESTAMPTZ,
        correlation_id TEXT REFERENCES alert_correlations (correlation_id)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_alerts_status_created
        ON alerts (status, created_at DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_alerts_dedup
        ON alerts (alert_type, metric_key, created_at DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_alerts_correlation
        ON alerts (correlation_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS escalation_rules (
        rule_id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        alert_type TEXT,
        min_severity TEXT NOT NULL,
        first_escalation_minutes INTEGER NOT NULL,
        first_escalation_recipients TEXT[] NOT NULL,
        second_escalation_minutes INTEGER,
        second_escalation_recipients TEXT[] NOT NULL DEFAULT '{}',
        final_escalation_minutes INTEGER,
        final_escalation_recipients TEXT[] NOT NULL DEFAULT '{}',
        escalate_via_email BOOLEAN NOT NULL DEFAULT TRUE,
        escalate_via_chat BOOLEAN NOT NULL DEFAULT TRUE,
        enabled BOOLEAN NOT NULL DEFAULT TRUE,
        created_by TEXT NOT NULL DEFAULT '',
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS alert_escalations (
        escalation_id TEXT PRIMARY KEY,
        alert_id TEXT NOT NULL REFERENCES alerts (alert_id) ON DELETE CASCADE,
        rule_id INTEGER NOT NULL,
        level INTEGER NOT NULL,
        recipients TEXT[] NOT NULL DEFAULT '{}',
        escalated_at TIMESTAMPTZ NOT NULL,
        minutes_since_alert INTEGER NOT NULL,
        sent_via_email BOOLEAN NOT NULL DEFAULT FALSE,
        sent_via_chat BOOLEAN NOT NULL DEFAULT FALSE,
        error_message TEXT,
        UNIQUE (alert_id, rule_id, level)
    )
    """,
]
