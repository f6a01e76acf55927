"""FastAPI gateway exposing automation control, status and logs."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from autoconnect.core.controller import AutomationController
from autoconnect.core.errors import AlreadyRunningError, ConfigurationError
from autoconnect.core.log_bus import LOG_LEVELS, BusLogger, LogBus
from autoconnect.gateway.sse import log_event_stream
from autoconnect.utils import AutomationConfig, log

ConfigFactory = Callable[[], AutomationConfig]

router = APIRouter(prefix="/api")


def get_controller(request: Request) -> AutomationController:
    return request.app.state.controller


def get_log_bus(request: Request) -> LogBus:
    return request.app.state.log_bus


def get_run_config(request: Request) -> AutomationConfig:
    return request.app.state.config_factory()


@router.get("/automation/status")
async def read_status(controller: AutomationController = Depends(get_controller)) -> Dict[str, Any]:
    return controller.get_status().to_dict()


@router.post("/automation/start", status_code=status.HTTP_202_ACCEPTED)
async def start_automation(
    request: Request,
    controller: AutomationController = Depends(get_controller),
    run_config: AutomationConfig = Depends(get_run_config),
) -> Dict[str, Any]:
    """Validate the configuration and launch a run in the background."""
    errors = run_config.validate_settings()
    if errors:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            detail={"error": "Configuration validation failed", "details": errors},
        )
    if controller.is_running:
        raise HTTPException(status.HTTP_409_CONFLICT, detail="Automation is already running")

    task = asyncio.create_task(_run_in_background(controller, run_config))
    request.app.state.run_task = task
    # Let the run reach its first await so the returned status is no longer idle
    await asyncio.sleep(0)

    return {
        "message": "Automation started successfully",
        "status": controller.get_status().to_dict(),
    }


async def _run_in_background(controller: AutomationController, run_config: AutomationConfig):
    try:
        result = await controller.start(run_config)
    except (AlreadyRunningError, ConfigurationError) as e:
        log.warning(f"Background run not started: {e}")
        return
    if not result.success:
        log.warning(f"Background run ended in error: {result.error}")


@router.post("/automation/stop")
async def stop_automation(controller: AutomationController = Depends(get_controller)) -> Dict[str, Any]:
    was_running = controller.is_running
    await controller.stop()
    return {
        "message": "Automation stopped" if was_running else "Automation was not running",
        "status": controller.get_status().to_dict(),
    }


@router.post("/automation/reset")
async def reset_automation(controller: AutomationController = Depends(get_controller)) -> Dict[str, Any]:
    try:
        controller.reset()
    except AlreadyRunningError as e:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=e.message) from e
    return {"message": "Automation reset", "status": controller.get_status().to_dict()}


@router.get("/automation/logs")
async def read_logs(
    limit: int = Query(100, ge=1, le=1000),
    level: Optional[str] = Query(None),
    bus: LogBus = Depends(get_log_bus),
) -> Dict[str, Any]:
    """Buffered log entries, oldest first, filtered by level."""
    if level is not None and level not in LOG_LEVELS:
        raise HTTPException(
            422,
            detail=f"level must be one of: {', '.join(LOG_LEVELS)}",
        )
    matching = bus.snapshot(level=level)
    entries = matching[-limit:]
    return {
        "logs": [entry.to_dict() for entry in entries],
        "total": len(matching),
        "limit": limit,
    }


@router.get("/automation/logs/stream")
async def stream_logs(bus: LogBus = Depends(get_log_bus)) -> EventSourceResponse:
    return EventSourceResponse(
        log_event_stream(bus),
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
        ping=15,
    )


@router.get("/automation/metrics")
async def read_metrics(controller: AutomationController = Depends(get_controller)) -> Dict[str, Any]:
    state = controller.get_status()
    progress = state.progress
    return {
        "status": state.to_dict(),
        "performance": {
            "success_rate": round(progress.success_rate, 1),
            "remaining_connections": progress.remaining,
            "progress_percentage": round(progress.percent_complete, 1),
        },
        "timing": {
            "started_at": state.started_at.isoformat() if state.started_at else None,
            "finished_at": state.finished_at.isoformat() if state.finished_at else None,
            "duration_seconds": state.duration_seconds(),
        },
    }


@router.get("/automation/config")
async def read_config(run_config: AutomationConfig = Depends(get_run_config)) -> Dict[str, Any]:
    return {"config": run_config.redacted()}


@router.post("/automation/config/validate")
async def validate_config(run_config: AutomationConfig = Depends(get_run_config)):
    errors = run_config.validate_settings()
    if errors:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"valid": False, "errors": errors})
    return {"valid": True, "errors": [], "message": "Configuration is valid"}


@router.get("/health")
async def health(request: Request):
    """Named checks; 503 when any of them fails."""
    checks = []

    try:
        errors = request.app.state.config_factory().validate_settings()
        checks.append({
            "name": "Configuration",
            "status": "fail" if errors else "pass",
            "message": "; ".join(errors) if errors else "All configuration values are valid",
        })
    except Exception as e:
        checks.append({"name": "Configuration", "status": "fail", "message": f"Configuration error: {e}"})

    try:
        BusLogger(request.app.state.log_bus, "gateway").debug("Health check: log bus operational")
        checks.append({"name": "Logging", "status": "pass", "message": "Log bus is operational"})
    except Exception as e:
        checks.append({"name": "Logging", "status": "fail", "message": f"Log bus error: {e}"})

    healthy = all(check["status"] == "pass" for check in checks)
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return JSONResponse(status_code=200 if healthy else 503, content=body)


def create_app(
    controller: AutomationController,
    log_bus: LogBus,
    config_factory: ConfigFactory
) -> FastAPI:
    """
    Build the dashboard API around one process-wide controller.

    Args:
        controller: Controller that owns the single automation run
        log_bus: Bus the controller publishes to
        config_factory: Produces the run configuration on each request
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("Dashboard API starting")
        yield
        if controller.is_running:
            log.info("Stopping automation run before shutdown")
            await controller.stop()

    app = FastAPI(title="autoconnect", lifespan=lifespan)
    app.state.controller = controller
    app.state.log_bus = log_bus
    app.state.config_factory = config_factory
    app.state.run_task = None
    app.include_router(router)
    return app
