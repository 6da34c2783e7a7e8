"""
REST API service for the ERP alert engine.

Modules:
    app: FastAPI application factory and shared state
    main: Uvicorn entry point
    routes/: Routers for alerts, escalation, correlations, baselines and health
"""
