"""
Service entry points for the ERP alert engine.

Services:
    alert-engine: Sample intake plus the periodic baseline, correlation,
        escalation and archiving cycles
    api: REST surface for alerts, escalation rules, correlations and baselines
"""
