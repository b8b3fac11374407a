"""
HTTP control surface for the domain sniper.

A thin FastAPI layer over SniperService: domain CRUD, monitoring control,
analytics, purchase history, the audit log and registrar diagnostics.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .exceptions import (
    NotFoundError,
    NotInitializedError,
    SniperError,
    UniqueViolation,
    ValidationError,
)
from .models import CycleResult
from .service import SniperService


# Most specific first
ERROR_STATUS = (
    (ValidationError, 400),
    (UniqueViolation, 400),
    (NotFoundError, 404),
    (NotInitializedError, 503),
)

DEFAULT_ANALYTICS_DAYS = 30


class DomainCreate(BaseModel):
    domain: str = Field(..., min_length=1, max_length=253)
    monitoring_enabled: bool = True
    auto_purchase_enabled: bool = False


class DomainUpdate(BaseModel):
    monitoring_enabled: Optional[bool] = None
    auto_purchase_enabled: Optional[bool] = None


def status_for(error: SniperError) -> int:
    """HTTP status for a domain error; unknown errors are 500."""
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def cycle_summary(result: CycleResult) -> dict:
    return {
        "skipped": result.skipped,
        "stopped_early": result.stopped_early,
        "started_at": result.started_at,
        "finished_at": result.finished_at,
        "checked": result.checked,
        "available": result.available,
        "purchased": result.purchased,
        "errors": [
            {"domain": o.domain, "error": o.error} for o in result.outcomes if o.error
        ],
    }


def _parse_date(value: str, name: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(
            code="invalid_date",
            message=f"{name} must be YYYY-MM-DD, got {value!r}",
        ) from e


def create_app(service: SniperService) -> FastAPI:
    """Build the FastAPI application around an existing service."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await service.shutdown()

    app = FastAPI(
        title="Domain Sniper",
        description="Registrar polling and automatic domain purchase",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service

    @app.exception_handler(SniperError)
    async def sniper_error_handler(request: Request, exc: SniperError) -> JSONResponse:
        status = status_for(exc)
        if status == 500:
            service.logger.log_error("api", f"{request.method} {request.url.path} failed", error=exc)
        return JSONResponse(status_code=status, content={"error": exc.message, "code": exc.code})

    @app.get("/api/dashboard")
    async def dashboard():
        return await service.dashboard()

    @app.get("/api/domains")
    async def list_domains():
        return [d.to_dict() for d in service.store.list_domains()]

    @app.post("/api/domains", status_code=201)
    async def add_domain(body: DomainCreate):
        domain = service.add_domain(
            body.domain,
            monitoring_enabled=body.monitoring_enabled,
            auto_purchase_enabled=body.auto_purchase_enabled,
        )
        return domain.to_dict()

    @app.put("/api/domains/{domain_id}")
    async def update_domain(domain_id: int, body: DomainUpdate):
        domain = service.update_domain(
            domain_id,
            monitoring_enabled=body.monitoring_enabled,
            auto_purchase_enabled=body.auto_purchase_enabled,
        )
        return domain.to_dict()

    @app.delete("/api/domains/{domain_id}")
    async def delete_domain(domain_id: int):
        domain = service.remove_domain(domain_id)
        return {"message": f"Domain removed: {domain.name}", "id": domain_id}

    @app.get("/api/domains/{domain_id}/checks")
    async def domain_checks(domain_id: int, limit: Optional[int] = Query(None, ge=1)):
        service.store.get_domain(domain_id)
        return [c.to_dict() for c in service.store.list_checks(domain_id, limit)]

    @app.post("/api/monitoring/start")
    async def start_monitoring():
        scheduler = service.require_scheduler()
        started = scheduler.start()
        return {
            "message": "Monitoring started" if started else "Monitoring already running",
            "running": True,
        }

    @app.post("/api/monitoring/stop")
    async def stop_monitoring():
        stopped = service.scheduler is not None and service.scheduler.stop()
        return {
            "message": "Monitoring stopped" if stopped else "Monitoring is not running",
            "running": False,
        }

    @app.post("/api/monitoring/check")
    async def check_now():
        scheduler = service.require_scheduler()
        return cycle_summary(await scheduler.trigger_once())

    @app.get("/api/monitoring/status")
    async def monitoring_status():
        scheduler = service.scheduler
        last = service.monitor.last_cycle if service.monitor else None
        return {
            "registrar_configured": service.registrar_ready,
            "state": scheduler.state.value if scheduler else "idle",
            "running": bool(scheduler and scheduler.is_running()),
            "cycle_in_progress": bool(service.monitor and service.monitor.cycle_in_progress),
            "interval_seconds": service.config.monitor.interval_seconds,
            "last_cycle": cycle_summary(last) if last else None,
        }

    @app.get("/api/analytics")
    async def analytics(
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ):
        end = _parse_date(end_date, "end_date") if end_date else datetime.now(timezone.utc).date()
        start = (
            _parse_date(start_date, "start_date") if start_date
            else end - timedelta(days=DEFAULT_ANALYTICS_DAYS)
        )
        rows = service.store.get_analytics(start.isoformat(), end.isoformat())
        return {
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "days": [vars(row) for row in rows],
        }

    @app.get("/api/purchases")
    async def purchases():
        return [p.to_dict() for p in service.store.list_purchases()]

    @app.get("/api/logs")
    async def logs(limit: int = Query(100, ge=1, le=1000)):
        return [entry.to_dict() for entry in service.store.recent_logs(limit)]

    @app.get("/api/registrar/test")
    async def registrar_test():
        registrar = service.require_registrar()
        connection = await registrar.test_connection()
        balance = await registrar.get_account_balance()
        return {
            "success": connection.success,
            "account": connection.account,
            "error": connection.error,
            "balance": balance.balance,
            "currency": balance.currency,
            "balance_error": balance.error,
        }

    return app
