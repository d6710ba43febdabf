"""Shared marker store service (FastAPI + SQLite).

Use :func:`~webhook_gate.marker_service.app.create_app` to build the app and
:func:`~webhook_gate.marker_service.app.start_server` to serve it.
"""
