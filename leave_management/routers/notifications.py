from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from leave_management.core.permissions import Principal
from leave_management.core.schemas import DataResponse, MessageOut
from leave_management.database import get_db
from leave_management.routers.auth_deps import get_current_principal
from leave_management.schemas.notification import NotificationResponse
from leave_management.services.notification import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=DataResponse[List[NotificationResponse]])
def get_notifications(
    unread_only: bool = False,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """The caller's 50 most recent notifications, newest first."""
    return {"data": NotificationService(db, principal).inbox(unread_only)}


@router.patch("/{notification_id}/read", response_model=DataResponse[NotificationResponse])
def mark_notification_as_read(
    notification_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return {"data": NotificationService(db, principal).mark_read(notification_id)}


@router.post("/mark-all-read", response_model=DataResponse[MessageOut])
def mark_all_notifications_as_read(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    updated = NotificationService(db, principal).mark_all_read()
    return {"data": {"message": f"{updated} notification(s) marked as read"}}
