"""
WhatsApp Flows API

CRUD for merchant-authored message overrides.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from notifier.models.base import get_db
from notifier.models.flow import WhatsAppFlow
from notifier.services.flow_resolver import NOTIFICATION_FLOW_TYPES
from notifier.utils.helpers import model_to_dict, models_to_dicts
from notifier.utils.logger import log

router = APIRouter(prefix="/api/whatsapp-flows", tags=["flows"])

FLOW_TYPES = sorted(set(NOTIFICATION_FLOW_TYPES.values()))


class FlowCreate(BaseModel):
    shop: str
    flow_name: str
    flow_type: str
    message_content: str
    language: str = 'en'
    flow_example: Optional[str] = None
    trigger_delay_minutes: int = 15
    footer_text: Optional[str] = None
    discount_code: Optional[str] = None
    image_type: Optional[str] = 'dynamic'
    image_url: Optional[str] = None
    button_text: Optional[str] = 'Complete Your Order'
    quick_replies: Optional[List[str]] = None
    is_active: bool = True


class FlowUpdate(BaseModel):
    flow_name: Optional[str] = None
    flow_type: Optional[str] = None
    message_content: Optional[str] = None
    language: Optional[str] = None
    flow_example: Optional[str] = None
    trigger_delay_minutes: Optional[int] = None
    footer_text: Optional[str] = None
    discount_code: Optional[str] = None
    image_type: Optional[str] = None
    image_url: Optional[str] = None
    button_text: Optional[str] = None
    quick_replies: Optional[List[str]] = None
    is_active: Optional[bool] = None


def _get_flow(db: Session, flow_id: int, shop: str) -> WhatsAppFlow:
    flow = db.query(WhatsAppFlow).filter(
        WhatsAppFlow.id == flow_id,
        WhatsAppFlow.shop_domain == shop
    ).first()
    if not flow:
        raise HTTPException(status_code=404, detail=f"Flow {flow_id} not found")
    return flow


# Columns that cannot be cleared through a partial update
REQUIRED_FLOW_FIELDS = ('flow_name', 'flow_type', 'message_content', 'language', 'is_active')


def _check_flow_type(flow_type: Optional[str]) -> None:
    if flow_type is not None and flow_type not in FLOW_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown flow type: {flow_type}. Valid options: {', '.join(FLOW_TYPES)}"
        )


@router.get("")
async def list_flows(
    shop: str = Query(..., description="Shop domain"),
    active_only: bool = Query(False),
    db: Session = Depends(get_db)
):
    """All flows for a shop"""
    try:
        query = db.query(WhatsAppFlow).filter(WhatsAppFlow.shop_domain == shop)
        if active_only:
            query = query.filter(WhatsAppFlow.is_active.is_(True))
        flows = query.order_by(WhatsAppFlow.id).all()
        return {"success": True, "data": {"flows": models_to_dicts(flows), "count": len(flows)}}
    except Exception as e:
        log.error(f"Error listing flows for {shop}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("")
async def create_flow(flow: FlowCreate, db: Session = Depends(get_db)):
    """Create a flow"""
    _check_flow_type(flow.flow_type)
    try:
        values: Dict[str, Any] = flow.model_dump(exclude={'shop'})
        row = WhatsAppFlow(shop_domain=flow.shop, **values)
        db.add(row)
        db.commit()
        log.info(f"Created {row.flow_type} flow '{row.flow_name}' for {flow.shop}")
        return {"success": True, "data": model_to_dict(row)}
    except Exception as e:
        db.rollback()
        log.error(f"Error creating flow for {flow.shop}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{flow_id}")
async def get_flow(flow_id: int, shop: str = Query(...), db: Session = Depends(get_db)):
    return {"success": True, "data": model_to_dict(_get_flow(db, flow_id, shop))}


@router.put("/{flow_id}")
async def update_flow(flow_id: int, update: FlowUpdate, shop: str = Query(...), db: Session = Depends(get_db)):
    """Partial update; omitted fields keep their value"""
    changes = update.model_dump(exclude_unset=True)
    cleared = [key for key in REQUIRED_FLOW_FIELDS if key in changes and changes[key] is None]
    if cleared:
        raise HTTPException(status_code=400, detail=f"Fields cannot be null: {', '.join(cleared)}")
    _check_flow_type(update.flow_type)
    flow = _get_flow(db, flow_id, shop)
    try:
        for key, value in changes.items():
            setattr(flow, key, value)
        flow.updated_at = datetime.utcnow()
        db.commit()
        return {"success": True, "data": model_to_dict(flow)}
    except Exception as e:
        db.rollback()
        log.error(f"Error updating flow {flow_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{flow_id}/toggle")
async def toggle_flow(flow_id: int, shop: str = Query(...), db: Session = Depends(get_db)):
    """Flip is_active"""
    flow = _get_flow(db, flow_id, shop)
    flow.is_active = not flow.is_active
    db.commit()
    log.info(f"Flow {flow_id} {'activated' if flow.is_active else 'deactivated'} for {shop}")
    return {"success": True, "data": {"id": flow.id, "is_active": flow.is_active}}


@router.delete("/{flow_id}")
async def delete_flow(flow_id: int, shop: str = Query(...), db: Session = Depends(get_db)):
    flow = _get_flow(db, flow_id, shop)
    db.delete(flow)
    db.commit()
    return {"success": True, "data": {"id": flow_id, "deleted": True}}
