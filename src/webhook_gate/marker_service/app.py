"""
FastAPI shared marker store.

Runs as a small service reachable from every CI runner and gives the
idempotency gate an atomic create-if-absent primitive:

- ``GET  /health``        liveness plus marker count
- ``GET  /markers/{key}`` 200 with the marker, 404 if absent
- ``PUT  /markers/{key}`` create; with ``If-None-Match: *`` an existing key
  answers 412, without it the call is idempotent and answers 200

Markers are never updated or deleted through the API. When a token is
configured every ``/markers`` request must carry ``Authorization: Bearer``.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from pathlib import Path

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from webhook_gate import __version__
from webhook_gate.marker_service import db

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9._-]{1,200}$")

router = APIRouter()


class MarkerBody(BaseModel):
    """Request body for ``PUT /markers/{key}``."""

    value: str


def _db_path(request: Request) -> Path:
    return request.app.state.db_path


def require_token(request: Request, authorization: str | None = Header(default=None)) -> None:
    """Reject the request unless it carries the configured bearer token."""
    token = request.app.state.token
    if token and authorization != f"Bearer {token}":
        raise HTTPException(status_code=401, detail="Invalid or missing marker store token")


def _validate_key(key: str) -> str:
    if not _KEY_RE.match(key):
        raise HTTPException(status_code=400, detail="Invalid marker key")
    return key


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    try:
        count = db.count_markers(_db_path(request))
    except sqlite3.Error as exc:
        logger.error("marker store: health query failed: %s", exc)
        raise HTTPException(status_code=503, detail="Marker database unavailable") from exc
    return {"status": "ok", "markers": count, "version": __version__}


@router.get("/markers/{key}", dependencies=[Depends(require_token)])
def read_marker(key: str, request: Request):
    """Return the marker for ``key`` or 404."""
    _validate_key(key)
    try:
        value = db.get_marker(_db_path(request), key)
    except sqlite3.Error as exc:
        logger.error("marker store: read %s failed: %s", key, exc)
        raise HTTPException(status_code=503, detail="Marker database unavailable") from exc
    if value is None:
        raise HTTPException(status_code=404, detail="Marker not found")
    return {"key": key, "value": value}


@router.put("/markers/{key}", dependencies=[Depends(require_token)])
def create_marker(
    key: str,
    body: MarkerBody,
    request: Request,
    if_none_match: str | None = Header(default=None),
):
    """Create the marker if absent."""
    _validate_key(key)
    try:
        created = db.create_marker(_db_path(request), key, body.value)
    except sqlite3.Error as exc:
        logger.error("marker store: create %s failed: %s", key, exc)
        raise HTTPException(status_code=503, detail="Marker database unavailable") from exc

    if created:
        logger.info("marker store: created %s", key)
        return JSONResponse(status_code=201, content={"key": key, "created": True})
    if if_none_match == "*":
        return JSONResponse(status_code=412, content={"key": key, "created": False})
    return JSONResponse(status_code=200, content={"key": key, "created": False})


def create_app(db_path: Path | str, token: str | None = None) -> FastAPI:
    """Build the marker store application backed by ``db_path``."""
    db_path = Path(db_path)
    db.init_db(db_path)

    app = FastAPI(title="Webhook Gate Marker Store", version=__version__)
    app.state.db_path = db_path
    app.state.token = token
    app.include_router(router)
    return app


def start_server(host: str, port: int, db_path: Path | str, token: str | None = None) -> None:
    """Run the marker store under uvicorn until interrupted."""
    import uvicorn

    app = create_app(db_path, token=token)
    logger.info("marker store: listening on %s:%d (db=%s)", host, port, db_path)
    uvicorn.run(app, host=host, port=port)
