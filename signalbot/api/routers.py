"""Internal API — /health, /status, /instruments, /signals, /events endpoints.

No business logic.  Reads go through the orchestrator's repos; execution
and failure acknowledgements are published on the event bus so the
lifecycle handlers own every status change.
"""

import logging
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request

from signalbot.events.bus import EventType
from signalbot.models.signal import SignalStatus

logger = logging.getLogger("signalbot.api")
router = APIRouter()

_SOURCE = "api"


def create_app(orchestrator) -> FastAPI:
    """Build the FastAPI app bound to *orchestrator*."""
    app = FastAPI(title="SignalBot Internal API", version="0.1.0")
    app.state.orchestrator = orchestrator
    app.include_router(router)
    return app


def _orchestrator(request: Request):
    return request.app.state.orchestrator


def _signal_or_404(orchestrator, signal_id: str):
    signal = orchestrator.signal_repo.find_by_id(signal_id)
    if signal is None:
        raise HTTPException(status_code=404, detail=f"Unknown signal: {signal_id}")
    return signal


def _signal_view(signal) -> dict:
    return {
        **signal.to_record(),
        "failure_reason": signal.failure_reason,
        "sent_at": signal.sent_at.isoformat() if signal.sent_at else None,
        "executed_at": signal.executed_at.isoformat() if signal.executed_at else None,
        "risk_reward": signal.risk_reward(),
        "strength": signal.strength(),
    }


# ── Health / status ──────────────────────────────────────────────────────


@router.get("/health")
async def health(request: Request):
    """Liveness plus exchange and event-bus health."""
    return _orchestrator(request).health()


@router.get("/status")
async def get_status(request: Request):
    return _orchestrator(request).get_status()


# ── Instruments ──────────────────────────────────────────────────────────


@router.get("/instruments")
async def get_instruments(request: Request):
    engine = _orchestrator(request).engine
    if engine is None:
        return {"instruments": []}
    return {"instruments": [i.to_dict() for i in engine.instruments]}


@router.post("/instruments/pause")
async def pause_instrument(request: Request, body: dict):
    """Stop polling one instrument.  Body: ``{"exchange", "symbol"}``."""
    return _set_active(_orchestrator(request), body, active=False)


@router.post("/instruments/resume")
async def resume_instrument(request: Request, body: dict):
    """Resume polling one instrument.  Body: ``{"exchange", "symbol"}``."""
    return _set_active(_orchestrator(request), body, active=True)


def _set_active(orchestrator, body: dict, active: bool) -> dict:
    exchange = str(body.get("exchange", "")).lower()
    symbol = str(body.get("symbol", "")).upper()
    key = f"{exchange}:{symbol}"
    engine = orchestrator.engine
    if engine is None or key not in {i.key for i in engine.instruments}:
        raise HTTPException(status_code=404, detail=f"Unknown instrument: {key}")

    if active:
        engine.activate(key)
    else:
        engine.deactivate(key)
    orchestrator.instrument_repo.update_instrument(exchange, symbol, active=active)
    logger.info("Instrument %s %s via API.", key, "resumed" if active else "paused")
    return {"instrument": key, "active": active}


# ── Signals ──────────────────────────────────────────────────────────────


@router.get("/signals")
async def get_signals(
    request: Request,
    limit: int = Query(default=20, ge=1, le=100),
    pair: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
):
    """Return recent signals, newest first."""
    status_filter = None
    if status:
        try:
            status_filter = SignalStatus(status.upper())
        except ValueError:
            raise HTTPException(status_code=422, detail=f"Unknown status: {status}")
    signals = _orchestrator(request).signal_repo.find_recent(
        limit=limit, pair=pair, status=status_filter,
    )
    return {"signals": [_signal_view(s) for s in signals]}


@router.get("/signals/{signal_id}")
async def get_signal(request: Request, signal_id: str):
    return _signal_view(_signal_or_404(_orchestrator(request), signal_id))


@router.post("/signals/{signal_id}/executed")
async def mark_executed(request: Request, signal_id: str):
    """Acknowledge that a downstream consumer acted on the signal."""
    orchestrator = _orchestrator(request)
    signal = _signal_or_404(orchestrator, signal_id)
    await orchestrator.event_bus.publish(
        EventType.SIGNAL_EXECUTED,
        {"signal_id": signal_id, "pair": signal.pair},
        _SOURCE,
        correlation_id=signal_id,
    )
    return {"id": signal_id, "status": _signal_or_404(orchestrator, signal_id).status.value}


@router.post("/signals/{signal_id}/failed")
async def mark_failed(request: Request, signal_id: str, body: Optional[dict] = None):
    """Report a failed signal.  Body: ``{"reason": str, "critical": bool}``."""
    body = body or {}
    orchestrator = _orchestrator(request)
    signal = _signal_or_404(orchestrator, signal_id)
    await orchestrator.event_bus.publish(
        EventType.SIGNAL_FAILED,
        {
            "signal_id": signal_id,
            "pair": signal.pair,
            "reason": body.get("reason", ""),
            "critical": bool(body.get("critical", False)),
        },
        _SOURCE,
        correlation_id=signal_id,
    )
    return {"id": signal_id, "status": _signal_or_404(orchestrator, signal_id).status.value}


# ── Events ───────────────────────────────────────────────────────────────


@router.get("/events")
async def get_events(
    request: Request,
    type: Optional[str] = Query(default=None),
    correlation_id: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
):
    """Return recent events from the in-memory store, newest first."""
    event_type = None
    if type:
        try:
            event_type = EventType(type)
        except ValueError:
            raise HTTPException(status_code=422, detail=f"Unknown event type: {type}")
    events = _orchestrator(request).event_store.get_events(
        event_type=event_type, correlation_id=correlation_id, limit=limit,
    )
    return {"events": [e.to_dict() for e in reversed(events)]}
