from typing import List, Optional

from sqlalchemy.orm import Session

from leave_management.core.exceptions import NotFoundError
from leave_management.database import utcnow
from leave_management.models.leave_request import LeaveStatus
from leave_management.models.notification import NOTIFICATION_TYPES, Notification
from leave_management.services.base import BaseService

INBOX_SIZE = 50


class NotificationService(BaseService):
    """The caller's inbox, plus static helpers other services use to enqueue notices."""

    def inbox(self, unread_only: bool = False) -> List[Notification]:
        query = self.db.query(Notification).filter(Notification.employee_id == self.actor_id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(INBOX_SIZE).all()

    def mark_read(self, notification_id: int) -> Notification:
        notification = self.db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.employee_id == self.actor_id,
        ).first()
        # someone else's notification is reported as missing
        if notification is None:
            raise NotFoundError("Notification")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            self.db.commit()
            self.db.refresh(notification)
        return notification

    def mark_all_read(self) -> int:
        updated = self.db.query(Notification).filter(
            Notification.employee_id == self.actor_id,
            Notification.is_read.is_(False),
        ).update({Notification.is_read: True, Notification.read_at: utcnow()}, synchronize_session=False)
        self.db.commit()
        return updated

    @staticmethod
    def create_notification(
        db: Session,
        employee_id: int,
        title: str,
        message: str,
        type: str = "info",
        link: Optional[str] = None
    ) -> Notification:
        """Adds the notification to the caller's transaction; the caller commits."""
        if type not in NOTIFICATION_TYPES:
            type = "info"
        notification = Notification(employee_id=employee_id, title=title, message=message, type=type, link=link)
        db.add(notification)
        return notification

    @staticmethod
    def notify_leave_decision(db: Session, leave) -> Notification:
        type_name = leave.leave_type.name if leave.leave_type else "leave"
        if leave.status == LeaveStatus.APPROVED:
            title, kind = "Leave Approved", "success"
            message = f"Your {type_name} request for {leave.days_count} day(s) has been APPROVED."
        else:
            title, kind = "Leave Rejected", "error"
            message = f"Your {type_name} request has been REJECTED."
            if leave.comments:
                message += f" Reason: {leave.comments}"
        return NotificationService.create_notification(
            db, leave.requester_id, title, message, kind, link=f"/leaves/{leave.id}"
        )
