"""
Alert Sync REST API

Provides endpoints for:
- Reading market alerts (after the initial reconciliation)
- Creating, moving and removing alerts
- Ingesting push deliveries and price snapshots
- Recent user notices
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import structlog

from .exceptions import AlertNotFoundError
from .service import AlertSyncService

logger = structlog.get_logger()

alert_router = APIRouter(prefix="/api/alerts", tags=["alerts"])


# ============================================================================
# Request Models
# ============================================================================

class CreateAlertRequest(BaseModel):
    """Request to create an alert"""
    market: str = Field(min_length=1)
    price: float = Field(allow_inf_nan=False)
    current_price: Optional[float] = Field(default=None, allow_inf_nan=False)


class MoveAlertRequest(BaseModel):
    """Request to move an alert to a new price"""
    new_price: float = Field(allow_inf_nan=False)
    current_price: Optional[float] = Field(default=None, allow_inf_nan=False)


class PushDeliveryRequest(BaseModel):
    """Push message delivered for a triggered alert"""
    market: str
    price: float = Field(allow_inf_nan=False)
    direction: Optional[str] = None


class PriceSnapshot(BaseModel):
    price: float = Field(allow_inf_nan=False)


def get_service(request: Request) -> AlertSyncService:
    return request.app.state.alert_service


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 with field errors; inputs are echoed as text since NaN is not valid JSON"""
    errors = [
        {
            "loc": list(error.get("loc", ())),
            "msg": error.get("msg"),
            "type": error.get("type"),
            "input": str(error.get("input"))[:100],
        }
        for error in exc.errors()
    ]
    logger.warning("request_validation_failed", path=request.url.path, errors=len(errors))
    return JSONResponse(status_code=422, content={"detail": errors})


# ============================================================================
# Endpoints
# ============================================================================

@alert_router.get("")
async def list_alerts(request: Request, markets: List[str] = Query(default=[])):
    """Alerts of several markets"""
    service = get_service(request)
    alerts = await service.engine.get_alerts_for_markets(markets)
    return {"alerts": [alert.to_dict() for alert in alerts], "count": len(alerts)}


@alert_router.get("/notices")
async def list_notices(request: Request):
    """Recent user notices"""
    service = get_service(request)
    return {"notices": [notice.to_dict() for notice in service.notices.notices]}


@alert_router.get("/{market}")
async def get_market_alerts(request: Request, market: str):
    """Alerts of one market"""
    service = get_service(request)
    alerts = await service.engine.get_alerts(market)
    return {"market": market, "alerts": [alert.to_dict() for alert in alerts]}


@alert_router.post("", status_code=201)
async def create_alert(request: Request, body: CreateAlertRequest):
    """Create an alert; it is stored even when push registration fails"""
    service = get_service(request)
    alert = await service.facade.create_stored_alert(body.market, body.price, body.current_price)
    return alert.to_dict()


@alert_router.put("/{market}/{price}")
async def move_alert(request: Request, market: str, price: float, body: MoveAlertRequest):
    """Move an alert to a new price"""
    service = get_service(request)
    try:
        alert = await service.facade.move_stored_alert(market, price, body.new_price, body.current_price)
    except AlertNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    if alert is None:
        raise HTTPException(
            status_code=409,
            detail="Alert not moved: push notifications are disabled or the new price was rejected",
        )
    return alert.to_dict()


@alert_router.delete("/{market}/{price}")
async def remove_alert(request: Request, market: str, price: float):
    """Remove an alert"""
    service = get_service(request)
    try:
        alert = await service.facade.remove_stored_alert(market, price)
    except AlertNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"removed": alert.to_dict()}


@alert_router.post("/push", status_code=202)
async def deliver_push(request: Request, body: PushDeliveryRequest):
    """Deliver a push message to the push platform"""
    service = get_service(request)
    deliver = getattr(service.platform, "deliver", None)
    if deliver is None:
        raise HTTPException(status_code=501, detail="Push platform does not accept deliveries")

    await deliver(body.model_dump(exclude_none=True))
    return {"status": "delivered"}


@alert_router.post("/prices", status_code=202)
async def publish_prices(request: Request, snapshot: Dict[str, PriceSnapshot]):
    """Publish a price snapshot for alert validation"""
    service = get_service(request)
    await service.price_feed.publish({market: {"price": stats.price} for market, stats in snapshot.items()})
    return {"status": "published", "markets": len(snapshot)}
