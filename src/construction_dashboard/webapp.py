"""FastAPI JSON API for the construction dashboard.

Objective:
    Expose the record store, dashboard aggregates, Microsoft 365 operations
    and the email workflow over HTTP for the browser dashboard. This module
    keeps business logic in the store, the content engine and the
    orchestrator and only handles HTTP request parsing and response shaping.

High-level call tree:
    - :func:`create_app`:
        - wires collaborators onto ``app.state``:
            - :class:`construction_dashboard.store.RecordStore`
            - :class:`construction_dashboard.microsoft365.Microsoft365Service`
            - :class:`construction_dashboard.orchestrator.DailyEmailOrchestrator`
        - registers error handlers (unknown collection -> 400, compose
          validation -> 422, unresolved reference -> 404)
        - defines routes:
            - health, settings, dashboard, backup/restore
            - ``/api/microsoft365/*``
            - ``/api/emails/*``
            - ``/api/communications/{id}/duplicate|complete``
            - generic CRUD ``/api/{collection}`` (registered last)
        - lifespan: Microsoft 365 authentication and the background
          :class:`construction_dashboard.scheduler.DashboardScheduler`
    - :func:`get_store` / :func:`get_orchestrator` / :func:`get_microsoft365`:
        - FastAPI dependencies reading ``app.state``

Operational notes:
    - Run with ``uvicorn --factory construction_dashboard.webapp:create_app``
      or ``construction-dashboard serve``.
    - For tests, pass collaborators to :func:`create_app` or override the
      dependencies via ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional

from fastapi import Body, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .config import Settings, get_settings
from .errors import (
    ComposeValidationError,
    ResolutionError,
    StoreCorruptedError,
    TransportError,
    UnknownCollectionError,
)
from .microsoft365 import Microsoft365Service
from .models import CalendarEventRequest, ComposeOptions, SendEmailRequest
from .orchestrator import DailyEmailOrchestrator
from .scheduler import DashboardScheduler
from .store import RecordStore

logger = logging.getLogger(__name__)

NOT_FOUND = {"error": "Item not found"}


def get_store(request: Request) -> RecordStore:
    """Return the app's record store."""
    return request.app.state.store


def get_orchestrator(request: Request) -> DailyEmailOrchestrator:
    """Return the app's email orchestrator.

    Tests can override this dependency with a stub implementing the
    orchestrator methods used by the ``/api/emails`` routes.
    """
    return request.app.state.orchestrator


def get_microsoft365(request: Request) -> Microsoft365Service:
    """Return the app's Microsoft 365 adapter."""
    return request.app.state.microsoft365


def _dump(items: list[Any]) -> list[dict[str, Any]]:
    return [item.model_dump(mode="json", by_alias=True) for item in items]


def create_app(
    store: Optional[RecordStore] = None,
    orchestrator: Optional[DailyEmailOrchestrator] = None,
    settings: Optional[Settings] = None,
    microsoft365: Optional[Microsoft365Service] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators not supplied are built from settings. An empty data
    directory is seeded with sample data when ``SEED_SAMPLE_DATA`` is set.

    Args:
        store: Record store.
        orchestrator: Email orchestrator.
        settings: Application settings (loads from env if None).
        microsoft365: Microsoft 365 adapter.

    Returns:
        FastAPI: FastAPI app.
    """
    settings = settings or get_settings()
    store = store or RecordStore(settings.data_dir)
    microsoft365 = microsoft365 or Microsoft365Service(settings)
    orchestrator = orchestrator or DailyEmailOrchestrator(store, microsoft365, settings)

    if settings.seed_sample_data:
        store.initialize_sample_data()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        microsoft365.initialize()
        scheduler: Optional[DashboardScheduler] = None
        if settings.enable_scheduler:
            scheduler = DashboardScheduler(store, orchestrator, microsoft365, settings)
            scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown()

    app = FastAPI(title="Construction Dashboard", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.microsoft365 = microsoft365
    app.state.orchestrator = orchestrator

    @app.exception_handler(UnknownCollectionError)
    async def unknown_collection(request: Request, exc: UnknownCollectionError) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(ComposeValidationError)
    async def compose_invalid(request: Request, exc: ComposeValidationError) -> JSONResponse:
        return JSONResponse(
            {"error": "validation_error", "message": str(exc)}, status_code=422
        )

    @app.exception_handler(ResolutionError)
    async def unresolved(request: Request, exc: ResolutionError) -> JSONResponse:
        return JSONResponse({"error": "not_found", "message": str(exc)}, status_code=404)

    @app.exception_handler(StoreCorruptedError)
    async def store_corrupted(request: Request, exc: StoreCorruptedError) -> JSONResponse:
        logger.error(f"{exc}")
        return JSONResponse({"error": "store_corrupted", "message": str(exc)}, status_code=500)

    @app.exception_handler(ValidationError)
    async def invalid_record(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            {"error": "validation_error", "message": str(exc)}, status_code=422
        )

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @app.get("/health")
    def health() -> dict[str, str]:
        """Health check endpoint.

        This is intentionally simple and should not perform external calls.
        """
        return {"status": "ok"}

    @app.get("/api/health")
    def api_health(store: RecordStore = Depends(get_store)) -> dict[str, str]:
        return {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "dataDir": str(store.data_dir),
        }

    # ------------------------------------------------------------------
    # Settings, dashboard, backup
    # ------------------------------------------------------------------

    @app.get("/api/settings")
    def read_settings(store: RecordStore = Depends(get_store)) -> dict[str, Any]:
        return store.get_settings().to_json()

    @app.put("/api/settings")
    def write_settings(
        payload: dict[str, Any] = Body(...),
        store: RecordStore = Depends(get_store),
    ) -> dict[str, Any]:
        return store.save_settings(payload).to_json()

    @app.get("/api/dashboard/stats")
    def dashboard_stats(store: RecordStore = Depends(get_store)) -> dict[str, Any]:
        return store.dashboard_stats().model_dump(by_alias=True)

    @app.get("/api/dashboard/alerts")
    def dashboard_alerts(store: RecordStore = Depends(get_store)) -> list[dict[str, Any]]:
        return [
            alert.model_dump(mode="json", by_alias=True, exclude_none=True)
            for alert in store.critical_alerts()
        ]

    @app.get("/api/dashboard/deadlines")
    def dashboard_deadlines(store: RecordStore = Depends(get_store)) -> list[dict[str, Any]]:
        return _dump(store.upcoming_deadlines())

    @app.get("/api/backup")
    def backup(store: RecordStore = Depends(get_store)) -> JSONResponse:
        return JSONResponse(
            store.backup(),
            headers={"Content-Disposition": "attachment; filename=dashboard-backup.json"},
        )

    @app.post("/api/restore")
    def restore(
        payload: dict[str, Any] = Body(...),
        store: RecordStore = Depends(get_store),
    ) -> dict[str, Any]:
        restored = store.restore(payload)
        return {"success": True, "message": "Data restored successfully", "restored": restored}

    # ------------------------------------------------------------------
    # Microsoft 365
    # ------------------------------------------------------------------

    @app.get("/api/microsoft365/status")
    def microsoft365_status(
        service: Microsoft365Service = Depends(get_microsoft365),
    ) -> dict[str, Any]:
        return service.get_configuration()

    @app.post("/api/microsoft365/test")
    def microsoft365_test(
        service: Microsoft365Service = Depends(get_microsoft365),
    ) -> dict[str, Any]:
        return service.test_connection()

    @app.post("/api/microsoft365/backup")
    def microsoft365_backup(
        service: Microsoft365Service = Depends(get_microsoft365),
        store: RecordStore = Depends(get_store),
    ) -> Any:
        summary = service.backup_to_onedrive(store.data_dir)
        if summary is None:
            return JSONResponse(
                {"error": "OneDrive backup failed or not configured"}, status_code=400
            )
        return {"success": True, "backup": summary.model_dump(mode="json", by_alias=True)}

    @app.get("/api/microsoft365/backups")
    def microsoft365_backups(
        service: Microsoft365Service = Depends(get_microsoft365),
    ) -> list[dict[str, Any]]:
        return _dump(service.list_onedrive_backups())

    @app.post("/api/microsoft365/send-email")
    def microsoft365_send_email(
        request: SendEmailRequest,
        service: Microsoft365Service = Depends(get_microsoft365),
    ) -> Any:
        try:
            sent = service.send_email(request)
        except TransportError as e:
            logger.error(f"Outlook send failed: {e}")
            return JSONResponse({"error": "Failed to send email"}, status_code=502)
        if not sent:
            return JSONResponse({"error": "Failed to send email via Outlook"}, status_code=400)
        return {"success": True, "message": "Email sent successfully"}

    @app.post("/api/microsoft365/calendar-event")
    def microsoft365_calendar_event(
        request: CalendarEventRequest,
        service: Microsoft365Service = Depends(get_microsoft365),
    ) -> Any:
        event = service.create_calendar_event(request)
        if event is None:
            return JSONResponse({"error": "Failed to create calendar event"}, status_code=400)
        return {"success": True, "event": event}

    # ------------------------------------------------------------------
    # Emails
    # ------------------------------------------------------------------

    @app.post("/api/emails/daily")
    def send_daily_emails(
        orchestrator: DailyEmailOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, Any]:
        """Generate and deliver every recipient's daily email."""
        result = orchestrator.generate_all_daily_emails()
        return {
            "sent": [r.model_dump(mode="json") for r in result.sent],
            "failed": [f.model_dump(mode="json") for f in result.failed],
            "summary": result.summary,
        }

    @app.get("/api/emails/preview/{recipient_id}")
    def preview_email(
        recipient_id: str,
        orchestrator: DailyEmailOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, Any]:
        return orchestrator.preview(recipient_id).model_dump(mode="json")

    @app.get("/api/emails/weekly/{recipient_id}")
    def weekly_summary(
        recipient_id: str,
        orchestrator: DailyEmailOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, Any]:
        return orchestrator.weekly_summary(recipient_id).model_dump(mode="json")

    @app.post("/api/emails/test/{recipient_id}")
    def send_test_email(
        recipient_id: str,
        orchestrator: DailyEmailOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, Any]:
        return orchestrator.send_test_email(recipient_id).model_dump(mode="json")

    @app.post("/api/emails/compose")
    def compose_emails(
        options: ComposeOptions,
        deliver: bool = True,
        orchestrator: DailyEmailOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, Any]:
        """Compose emails for an explicit selection.

        With ``?deliver=false`` the emails are only rendered and returned.
        """
        if not deliver:
            emails = orchestrator.compose(options)
            return {"emails": [e.model_dump(mode="json") for e in emails]}

        result = orchestrator.send_composed_emails(options)
        return {
            "sent": [r.model_dump(mode="json") for r in result.sent],
            "failed": [f.model_dump(mode="json") for f in result.failed],
            "summary": result.summary,
        }

    @app.get("/api/emails/templates")
    def email_templates(
        orchestrator: DailyEmailOrchestrator = Depends(get_orchestrator),
    ) -> list[dict[str, Any]]:
        return _dump(orchestrator.export_email_templates())

    # ------------------------------------------------------------------
    # Communication helpers
    # ------------------------------------------------------------------

    @app.post("/api/communications/{record_id}/duplicate")
    def duplicate_communication(record_id: str, store: RecordStore = Depends(get_store)) -> Any:
        copy = store.duplicate_communication(record_id)
        if copy is None:
            return JSONResponse(NOT_FOUND, status_code=404)
        return copy.to_json()

    @app.post("/api/communications/{record_id}/complete")
    def complete_communication(record_id: str, store: RecordStore = Depends(get_store)) -> Any:
        record = store.complete_communication(record_id)
        if record is None:
            return JSONResponse(NOT_FOUND, status_code=404)
        return record.to_json()

    # ------------------------------------------------------------------
    # Generic CRUD (must stay last: the path parameter matches anything)
    # ------------------------------------------------------------------

    @app.get("/api/{collection}")
    def list_records(
        collection: str, store: RecordStore = Depends(get_store)
    ) -> list[dict[str, Any]]:
        return [record.to_json() for record in store.list(collection)]

    @app.post("/api/{collection}")
    def create_record(
        collection: str,
        payload: dict[str, Any] = Body(...),
        store: RecordStore = Depends(get_store),
    ) -> dict[str, Any]:
        return store.create(collection, payload).to_json()

    @app.put("/api/{collection}/{record_id}")
    def update_record(
        collection: str,
        record_id: str,
        payload: dict[str, Any] = Body(...),
        store: RecordStore = Depends(get_store),
    ) -> Any:
        record = store.update(collection, record_id, payload)
        if record is None:
            return JSONResponse(NOT_FOUND, status_code=404)
        return record.to_json()

    @app.delete("/api/{collection}/{record_id}")
    def delete_record(
        collection: str,
        record_id: str,
        store: RecordStore = Depends(get_store),
    ) -> Any:
        if collection == "projects":
            removed = store.delete_project_cascade(record_id)
            if removed is None:
                return JSONResponse(NOT_FOUND, status_code=404)
            return {"success": True, "communicationsRemoved": removed}

        if collection == "emailRecipients":
            deleted = store.delete_email_recipient(record_id)
        else:
            deleted = store.delete(collection, record_id)
        if not deleted:
            return JSONResponse(NOT_FOUND, status_code=404)
        return {"success": True}

    return app
