from __future__ import annotations

from pathlib import Path
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from landlease.factory import open_registry

_DEFAULT_EVENTS_LIMIT = 50


def _load_project_env(root: Path) -> None:
    """Load .env from the repository root ancestors so backend selection env vars apply."""
    from dotenv import load_dotenv

    for parent in (root, *root.resolve().parents):
        candidate = parent / ".env"
        if candidate.is_file():
            load_dotenv(candidate, override=False)
            return


def create_app(root: Path) -> FastAPI:
    root = Path(root)
    _load_project_env(root)
    registry = open_registry(root)
    app = FastAPI(title="Land-Lease Registry Dashboard", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.get("/api/registry", response_model=None)
    def get_registry() -> Any:
        try:
            return registry.summary()
        except Exception as exc:  # pragma: no cover - boundary guard
            return _error_response(exc)

    @app.get("/api/leases", response_model=None)
    def get_leases(active_only: bool = False) -> Any:
        try:
            return [
                {"lease_id": lease_id, **lease.to_dict()}
                for lease_id, lease in registry.list_leases(active_only=active_only)
            ]
        except Exception as exc:  # pragma: no cover - boundary guard
            return _error_response(exc)

    @app.get("/api/leases/{lease_id}", response_model=None)
    def get_lease(lease_id: int) -> Any:
        try:
            lease = registry.get_lease(lease_id)
            if lease is None:
                return JSONResponse({"error": f"lease {lease_id} not found"}, status_code=404)
            return {"lease_id": lease_id, **lease.to_dict()}
        except Exception as exc:  # pragma: no cover - boundary guard
            return _error_response(exc)

    @app.get("/api/leases/{lease_id}/update", response_model=None)
    def get_lease_update(lease_id: int) -> Any:
        try:
            update = registry.get_lease_update(lease_id)
            if update is None:
                return JSONResponse({"error": f"lease {lease_id} has no update"}, status_code=404)
            return {"lease_id": lease_id, **update.to_dict()}
        except Exception as exc:  # pragma: no cover - boundary guard
            return _error_response(exc)

    @app.get("/api/lands/{land_id}", response_model=None)
    def get_land(land_id: int) -> Any:
        try:
            active = registry.check_lease_existence(land_id)
            lease_id = None
            if active:
                lease_id = next(
                    (
                        candidate_id
                        for candidate_id, lease in registry.list_leases(active_only=True)
                        if lease.land_id == land_id
                    ),
                    None,
                )
            return {"land_id": land_id, "active_lease": active, "lease_id": lease_id}
        except Exception as exc:  # pragma: no cover - boundary guard
            return _error_response(exc)

    @app.get("/api/events", response_model=None)
    def get_events(limit: int = _DEFAULT_EVENTS_LIMIT) -> Any:
        try:
            events = registry.backend.list_events(limit=max(limit, 1))
            return list(reversed(events))
        except Exception as exc:  # pragma: no cover - boundary guard
            return _error_response(exc)

    return app


def _error_response(exc: Exception) -> JSONResponse:
    return JSONResponse(
        content={"error": str(exc)},
        status_code=500,
    )
