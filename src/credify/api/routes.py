"""
API routes.

Endpoints:
- POST   `/api/recommendations/merchant`: rank catalog cards for a merchant.
- GET    `/api/preferences`: current notification preferences.
- PATCH  `/api/preferences`: update dwell/cooldown/enabled knobs at runtime.
- POST   `/api/location/samples`: feed a position sample to the dwell monitor.
- POST   `/api/location/errors`: report a location error (state is kept).
- GET    `/api/location/status`: live dwell status ("dwelling for Ns").
- GET    `/api/notifications/current`: the live notification, if any.
- DELETE `/api/notifications/current`: mark it consumed.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from credify.domain.models import Coordinate, Merchant, Notification, NotificationPreferences
from credify.ingestion.location import location_error_message
from credify.runtime import CredifyRuntime
from credify.scoring.explain import explain_payload
from credify.scoring.rewards import estimate_earnings, rank_cards_detailed, recommendation_reason

router = APIRouter()


class MerchantRecommendationRequest(BaseModel):
    merchant: Merchant
    held_card_ids: list[str] = Field(default_factory=list)
    top_n: int | None = Field(default=None, ge=1, le=50)


class LocationErrorReport(BaseModel):
    code: int
    message: str | None = None


def _runtime(request: Request) -> CredifyRuntime:
    return request.app.state.runtime


def _status_payload(runtime: CredifyRuntime) -> dict[str, Any]:
    status = runtime.monitor.status()
    payload = asdict(status)
    payload["current_location"] = status.current_location.model_dump() if status.current_location else None
    payload["anchor"] = status.anchor.model_dump() if status.anchor else None
    return payload


@router.post("/api/recommendations/merchant")
def post_merchant_recommendations(body: MerchantRecommendationRequest, request: Request) -> dict:
    """Rank catalog cards for one merchant, with explainable scores."""
    runtime = _runtime(request)
    scoring = runtime.settings.scoring
    ranked = rank_cards_detailed(
        body.merchant,
        runtime.cards,
        held_card_ids=body.held_card_ids,
        top_n=body.top_n,
        settings=scoring,
    )
    results = []
    for scored in ranked:
        item = explain_payload(scored)
        item["estimated_earnings"] = estimate_earnings(body.merchant, scored.card, settings=scoring)
        item["reason"] = recommendation_reason(body.merchant, scored.card, settings=scoring)
        results.append(item)
    return {"merchant": body.merchant.model_dump(), "results": results}


@router.get("/api/preferences", response_model=NotificationPreferences)
def get_preferences(request: Request) -> NotificationPreferences:
    return _runtime(request).preferences.current


@router.patch("/api/preferences", response_model=NotificationPreferences)
def patch_preferences(updates: dict[str, Any], request: Request) -> NotificationPreferences:
    """Apply a whitelisted partial update; takes effect on the next monitor tick."""
    try:
        return _runtime(request).preferences.update(updates)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/api/location/samples")
async def post_location_sample(sample: Coordinate, request: Request) -> dict:
    runtime = _runtime(request)
    runtime.source.push(sample)
    return _status_payload(runtime)


@router.post("/api/location/errors")
async def post_location_error(report: LocationErrorReport, request: Request) -> dict:
    runtime = _runtime(request)
    runtime.source.push_error(report.code, report.message or location_error_message(report.code))
    return _status_payload(runtime)


@router.get("/api/location/status")
def get_location_status(request: Request) -> dict:
    return _status_payload(_runtime(request))


@router.get("/api/notifications/current", response_model=Notification | None)
def get_current_notification(request: Request) -> Notification | None:
    return _runtime(request).sink.current


@router.delete("/api/notifications/current", response_model=Notification | None)
def clear_current_notification(request: Request) -> Notification | None:
    return _runtime(request).sink.clear()
