"""FastAPI surface for the refresh triggers."""

from __future__ import annotations

import secrets
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from starlette.concurrency import run_in_threadpool

from .. import __version__
from ..cache import UpdateCache
from ..config import GlobalConfig
from ..errors import CacheUnavailableError
from ..logging import get_logger
from ..models import RefreshOutcome, RefreshRequest, RefreshResult, TriggerKind
from ..orchestrator import RefreshOrchestrator

PLAYED_EVENT = "card.played"


class YotoWebhook(BaseModel):
    event_type: str = Field(alias="eventType")
    card_id: Optional[str] = Field(default=None, alias="cardId")
    device_id: Optional[str] = Field(default=None, alias="deviceId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    timestamp: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)

    @property
    def device_timezone(self) -> Optional[str]:
        for key in ("timezone", "geoTimezone"):
            value = self.metadata.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None


def _status_code(result: RefreshResult) -> int:
    return 500 if result.outcome is RefreshOutcome.ERROR else 200


def _respond(result: RefreshResult) -> JSONResponse:
    return JSONResponse(status_code=_status_code(result), content=result.to_dict())


def _respond_many(results: List[RefreshResult]) -> JSONResponse:
    if len(results) == 1:
        return _respond(results[0])
    outcomes = {result.outcome for result in results}
    if RefreshOutcome.ERROR in outcomes:
        status = RefreshOutcome.ERROR
    elif outcomes == {RefreshOutcome.ALREADY_UPDATED}:
        status = RefreshOutcome.ALREADY_UPDATED
    else:
        status = RefreshOutcome.SUCCESS
    body = {
        "status": status.value,
        "results": [result.to_dict() for result in results],
    }
    return JSONResponse(status_code=500 if status is RefreshOutcome.ERROR else 200, content=body)


def _client_host(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def create_app(
    config: GlobalConfig,
    orchestrator: RefreshOrchestrator,
    cache: UpdateCache,
) -> FastAPI:
    """Build the API around an already wired orchestrator."""

    app = FastAPI(title="Songbird API", version=__version__)
    logger = get_logger("songbird.web")

    @app.api_route("/health", methods=["GET", "HEAD"])
    def health() -> Dict[str, str]:
        return {"status": "healthy"}

    @app.post("/api/v1/daily-update")
    def daily_update(
        request: Request,
        scheduler_token: Optional[str] = Header(default=None, alias="X-Scheduler-Token"),
        internal_call: Optional[str] = Header(default=None, alias="X-Internal-Call"),
    ):
        if (internal_call or "").lower() == "true":
            raise HTTPException(status_code=400, detail="Recursive call detected")

        expected = config.server.scheduler_token
        if expected and not secrets.compare_digest(scheduler_token or "", expected):
            logger.warning("web.daily_update_unauthorized", client=_client_host(request))
            raise HTTPException(status_code=401, detail="Invalid scheduler token")

        cards = config.sweep_cards()
        if not cards:
            logger.error("web.daily_update_no_cards")
            result = RefreshResult(outcome=RefreshOutcome.ERROR, error="No card configured for the daily update")
            return _respond(result)

        logger.info("web.daily_update", client=_client_host(request), cards=len(cards))
        return _respond_many(orchestrator.sweep(cards))

    @app.post("/api/v1/yoto/webhook")
    async def yoto_webhook(request: Request):
        try:
            payload = await request.json()
            webhook = YotoWebhook.model_validate(payload)
        except (ValueError, ValidationError) as exc:
            logger.info("web.webhook_invalid", error=str(exc))
            raise HTTPException(status_code=400, detail="Invalid webhook data") from exc

        if webhook.event_type != PLAYED_EVENT:
            return {"status": "ignored", "reason": f"Not a {PLAYED_EVENT} event"}

        refresh_request = RefreshRequest(
            trigger=TriggerKind.WEBHOOK,
            card_id=webhook.card_id,
            client_ip=_client_host(request),
            forwarded_for=request.headers.get("x-forwarded-for"),
            device_timezone=webhook.device_timezone,
            device_id=webhook.device_id,
        )
        result = await run_in_threadpool(orchestrator.refresh, refresh_request)
        return _respond(result)

    @app.post("/api/v1/update-card/{card_id}")
    def update_card(
        card_id: str,
        request: Request,
        timezone: Optional[str] = Query(default=None),
    ):
        refresh_request = RefreshRequest(
            trigger=TriggerKind.MANUAL,
            card_id=card_id,
            client_ip=_client_host(request),
            forwarded_for=request.headers.get("x-forwarded-for"),
            device_timezone=timezone,
        )
        return _respond(orchestrator.refresh(refresh_request))

    @app.get("/api/v1/cache/stats")
    def cache_stats():
        try:
            return cache.stats()
        except CacheUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc

    return app
