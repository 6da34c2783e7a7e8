"""
ERP monitoring alert engine.

Turns ERP metric samples into an auditable alert lifecycle: rolling
baselines, deviation classification, deduplicated alerts, incident
correlation, tiered escalation and retention.

This package provides:
- Data models for alerts, baselines, correlations and escalation rules
- Abstract storage interfaces and PostgreSQL, Redis and in-memory clients
- Detection engines and notification channels
- Configuration management and shared service infrastructure
"""

__version__ = "0.1.0"
