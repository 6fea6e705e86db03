# neuralmirror – Permission-aware neural search mirror for content repositories
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Web backend (FastAPI) – permission-filtered search plus status.

The caller identity is the HTTP Basic username; credentials are expected
to have been verified by the gateway in front of this service. Requests
without credentials search as "guest".

All state (gateway, indexer, health) is injected via create_web_app().
"""
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .config import Config
from .errors import TransientUpstreamError
from .health import HealthTracker
from .indexer import DocumentIndexer
from .search import SearchGateway

GUEST = "guest"


def create_web_app(
    config: Config,
    gateway: SearchGateway,
    indexer: DocumentIndexer,
    health: HealthTracker | None = None,
) -> FastAPI:
    """Factory: returns a FastAPI app sharing state with the scheduler."""
    from . import __version__

    app = FastAPI(
        title="neuralmirror",
        description="Permission-aware neural search over repository content",
        version=__version__,
    )
    security = HTTPBasic(auto_error=False)

    def caller_identity(
        credentials: Optional[HTTPBasicCredentials] = Depends(security),
    ) -> str:
        if credentials is None or not credentials.username:
            return GUEST
        return credentials.username

    # ── Health (no auth, used by container healthcheck) ──

    @app.get("/health")
    def health_check():
        index_ok = indexer.health_check()
        if health:
            health.record_index_health(index_ok)
        status = health.status if health else {}
        healthy = index_ok and (not health or health.is_healthy)
        return {
            "status": "ok" if healthy else "degraded",
            "version": __version__,
            "index_healthy": index_ok,
            "cursor": status.get("cursor"),
            "last_batch_at": status.get("last_batch_at"),
            "last_batch_ok": status.get("last_batch_ok"),
        }

    @app.get("/api/status")
    def status_detail():
        return {
            "health": health.status if health else {},
            "config": config.to_safe_dict(),
        }

    # ── Search ───────────────────────────────────

    @app.get("/search")
    def search(
        query: str,
        search_type: str = Query("neural", alias="searchType"),
        caller: str = Depends(caller_identity),
    ):
        try:
            results = gateway.search(query, search_type, caller)
        except TransientUpstreamError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        return [r.to_dict() for r in results]

    return app
