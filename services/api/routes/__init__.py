"""
API routers, mounted under /api.

Routers:
    alerts: Alert listing and lifecycle transitions
    escalation: Escalation rule CRUD, history and manual cycles
    correlations: Incident listing, resolution and manual cycles
    baselines: Baseline listing and recalculation
    health: Service and dependency health
"""
