"""Webhook event log queries.

- GET /events?shop=&limit=&topic=  → recent events for a shop
- GET /events/stats?shop=          → counts by topic and status
- GET /events/{event_id}?shop=     → a single event
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from storelink.api.routes import get_container
from storelink.api.schemas import EventListResponse
from storelink.container import ServiceContainer

router = APIRouter()


@router.get("", response_model=EventListResponse)
async def list_events(
    shop: str = Query(..., min_length=1),
    limit: int = Query(50, ge=1, le=100),
    topic: Optional[str] = None,
    container: ServiceContainer = Depends(get_container),
):
    events = await container.event_log.list_events(shop, limit=limit, topic=topic)
    return EventListResponse(
        shop=shop,
        count=len(events),
        events=events,
        has_more=len(events) == limit,
    )


@router.get("/stats")
async def event_stats(
    shop: str = Query(..., min_length=1),
    container: ServiceContainer = Depends(get_container),
):
    return {"success": True, "shop": shop, "data": await container.event_log.stats(shop)}


@router.get("/{event_id}")
async def get_event(
    event_id: str,
    shop: str = Query(..., min_length=1),
    container: ServiceContainer = Depends(get_container),
):
    event = await container.event_log.get_event(event_id)
    if event is None or event.get("shop_domain") != shop:
        raise HTTPException(status_code=404, detail=f"No webhook event found with ID: {event_id}")
    return {"success": True, "data": event}
