from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Request, status

from . import __version__
from .admin import config as admin_config
from .admin import health as admin_health
from .admin import sweeps as admin_sweeps
from .bids import BidFinalizationSweep, SweepHistory, SweepSelectionError, run_on_interval
from .config import ServerConfig, get_server_config
from .mail import build_mailer
from .orders import OrderNotificationService
from .reports import ReportEmailService, ReportRequestError
from .storage import build_storage
from .validation import SchemaRegistry, ValidationError, get_schema_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    server_config = get_server_config()
    logging.getLogger("market_notify").setLevel(server_config.log_level)
    schema_registry = get_schema_registry()
    storage = build_storage(server_config)
    mailer = build_mailer(server_config.mail)
    sweep = BidFinalizationSweep.from_config(server_config, storage, mailer)
    sweep_history = SweepHistory(server_config.sweep.history_size)
    order_service = OrderNotificationService.from_config(
        server_config, storage, mailer, schema_registry
    )
    report_service = ReportEmailService(
        mailer=mailer,
        sender=server_config.mail.sender,
        schemas=schema_registry,
    )

    app.state.server_config = server_config
    app.state.schema_registry = schema_registry
    app.state.storage = storage
    app.state.mailer = mailer
    app.state.sweep = sweep
    app.state.sweep_history = sweep_history
    app.state.order_service = order_service
    app.state.report_service = report_service
    app.state.start_time = datetime.now(timezone.utc)

    scheduler_task = None
    if server_config.sweep.scheduler_enabled:
        logger.info(
            "Scheduling bid finalization every %ss", server_config.sweep.interval_seconds
        )
        scheduler_task = asyncio.create_task(
            run_on_interval(sweep, sweep_history, server_config.sweep.interval_seconds)
        )
    app.state.scheduler_task = scheduler_task

    yield

    if scheduler_task is not None:
        scheduler_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await scheduler_task
    await mailer.close()
    await storage.close()


app = FastAPI(
    title="Marketplace Notifications",
    version=__version__,
    docs_url="/docs",
    lifespan=lifespan,
)

app.include_router(admin_health.router)
app.include_router(admin_config.router)
app.include_router(admin_sweeps.router)


# Dependency helpers ---------------------------------------------------------


def get_server_settings(request: Request) -> ServerConfig:
    return request.app.state.server_config


def get_schema_service(request: Request) -> SchemaRegistry:
    return request.app.state.schema_registry


def get_sweep(request: Request) -> BidFinalizationSweep:
    return request.app.state.sweep


def get_sweep_history(request: Request) -> SweepHistory:
    return request.app.state.sweep_history


def get_order_service(request: Request) -> OrderNotificationService:
    return request.app.state.order_service


def get_report_service(request: Request) -> ReportEmailService:
    return request.app.state.report_service


# Routes ---------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root(settings: ServerConfig = Depends(get_server_settings)) -> dict[str, Any]:
    return {
        "service": "market-notify",
        "version": app.version,
        "storage_backend": settings.storage.backend,
        "mail_backend": settings.mail.backend,
        "sweep_interval_seconds": settings.sweep.interval_seconds,
    }


@app.post("/jobs/finalize-bids", tags=["jobs"])
async def finalize_bids(
    sweep: BidFinalizationSweep = Depends(get_sweep),
    history: SweepHistory = Depends(get_sweep_history),
) -> dict[str, Any]:
    """Scheduled entry point (every 24 hours) for the bid finalization sweep."""
    try:
        summary = await history.run(sweep)
    except SweepSelectionError as exc:
        raise HTTPException(
            status_code=500,
            detail={"error": str(exc), "summary": exc.summary.to_dict()},
        ) from exc
    return summary.to_dict()


@app.post("/jobs/process-orders", tags=["jobs"])
async def process_orders(
    service: OrderNotificationService = Depends(get_order_service),
) -> dict[str, Any]:
    try:
        results = await service.process_pending()
    except Exception as exc:
        logger.error("Error processing orders: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail="Error processing orders.") from exc
    return {
        "processed": len(results),
        "notified": sum(1 for result in results if result.notified),
        "results": [result.to_dict() for result in results],
    }


@app.post("/triggers/orders/created", tags=["triggers"])
async def order_created(
    payload: dict[str, Any] = Body(...),
    schemas: SchemaRegistry = Depends(get_schema_service),
    service: OrderNotificationService = Depends(get_order_service),
) -> dict[str, Any]:
    try:
        schemas.validate("order_created", payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc.message)) from exc
    result = await service.handle_created(payload["orderId"], payload.get("order"))
    return result.to_dict()


@app.post("/reports/email", tags=["reports"], status_code=status.HTTP_200_OK)
async def send_report_email(
    payload: Any = Body(None),
    service: ReportEmailService = Depends(get_report_service),
) -> dict[str, Any]:
    try:
        await service.send(payload)
    except ReportRequestError as exc:
        raise HTTPException(
            status_code=400,
            detail={"error": str(exc), "missing_fields": list(exc.missing_fields)},
        ) from exc
    except Exception as exc:
        logger.error("Error sending email: %s", exc, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to send email", "details": str(exc)},
        ) from exc
    return {"success": True}
