"""
API endpoints for reading a member's notifications.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query

from src.api.dependencies import get_db, require_user_id

router = APIRouter()


def notification_to_dict(n) -> Dict[str, Any]:
    return {
        "id": n.id,
        "user_id": n.user_id,
        "title": n.title,
        "message": n.message,
        "type": n.type,
        "is_read": n.is_read,
        "action_url": n.action_url,
        "metadata": n.notification_metadata,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }


@router.get("/notifications", tags=["Notifications"])
async def list_notifications(
    limit: int = Query(default=10, ge=1, le=100),
    user_id: str = Depends(require_user_id),
    db=Depends(get_db),
):
    return [notification_to_dict(n) for n in db.list_notifications(user_id, limit=limit)]


@router.post("/notifications/{notification_id}/read", tags=["Notifications"])
async def mark_notification_read(
    notification_id: str,
    user_id: str = Depends(require_user_id),
    db=Depends(get_db),
):
    n = db.mark_notification_read(notification_id, user_id)
    if not n:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification_to_dict(n)
