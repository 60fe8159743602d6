from datetime import datetime
from math import ceil
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from finance_tracker.auth import get_current_user
from finance_tracker.database import get_db
from finance_tracker.errors import NotFoundError
from finance_tracker.models import Notification, User
from finance_tracker.responses import envelope
from finance_tracker.schemas import NotificationCreate, NotificationOut
from finance_tracker.services.notifications import create_notification

router = APIRouter()

BUDGET_TYPES = ("budget_alert", "budget_exceeded")
SUBSCRIPTION_TYPES = ("subscription_due", "subscription_overdue")
GOAL_TYPES = ("goal_milestone", "goal_achieved")


def _live(db: Session, user: User):
    """Non-deleted, unexpired notifications of `user`."""
    now = datetime.utcnow()
    return db.query(Notification).filter(
        Notification.user_id == user.id,
        Notification.is_deleted.is_(False),
        or_(Notification.expires_at.is_(None), Notification.expires_at > now),
    )


def _get_owned_notification(db: Session, user: User, notification_id: int) -> Notification:
    notification = (
        db.query(Notification)
        .filter(
            Notification.id == notification_id,
            Notification.user_id == user.id,
            Notification.is_deleted.is_(False),
        )
        .first()
    )
    if not notification:
        raise NotFoundError("Notification not found")
    return notification


def _page(query, page: int, limit: int) -> dict:
    count = query.count()
    notifications = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "notifications": [NotificationOut.model_validate(n) for n in notifications],
        "totalPages": ceil(count / limit),
        "currentPage": page,
        "totalNotifications": count,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def post_notification(
    body: NotificationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    data = body.model_dump(exclude_none=True)
    notification = create_notification(db, current_user.id, **data)
    return envelope(
        {"notification": NotificationOut.model_validate(notification)},
        message="Notification created successfully",
    )


@router.get("")
async def get_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    is_read: Optional[bool] = Query(None, alias="isRead"),
    type: Optional[str] = None,
    priority: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = _live(db, current_user)
    if is_read is not None:
        query = query.filter(Notification.is_read.is_(is_read))
    if type:
        query = query.filter(Notification.type == type)
    if priority:
        query = query.filter(Notification.priority == priority)
    return envelope(_page(query, page, limit))


@router.get("/unread/count")
async def get_unread_count(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    count = _live(db, current_user).filter(Notification.is_read.is_(False)).count()
    return envelope({"unreadCount": count})


@router.get("/summary")
async def get_summary(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    unread = _live(db, current_user).filter(Notification.is_read.is_(False))
    return envelope(
        {
            "summary": {
                "totalUnread": unread.count(),
                "byPriority": {
                    "urgent": unread.filter(Notification.priority == "urgent").count(),
                    "high": unread.filter(Notification.priority == "high").count(),
                },
                "byType": {
                    "budgetAlerts": unread.filter(Notification.type.in_(BUDGET_TYPES)).count(),
                    "subscriptionReminders": unread.filter(
                        Notification.type.in_(SUBSCRIPTION_TYPES)
                    ).count(),
                    "goalUpdates": unread.filter(Notification.type.in_(GOAL_TYPES)).count(),
                },
            }
        }
    )


@router.put("/mark-all-read")
async def mark_all_read(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    modified = (
        db.query(Notification)
        .filter(
            Notification.user_id == current_user.id,
            Notification.is_read.is_(False),
            Notification.is_deleted.is_(False),
        )
        .update(
            {Notification.is_read: True, Notification.read_at: datetime.utcnow()},
            synchronize_session=False,
        )
    )
    db.commit()
    return envelope({"modifiedCount": modified}, message="All notifications marked as read")


@router.delete("/all")
async def delete_all(
    only_read: bool = Query(False, alias="onlyRead"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Notification).filter(
        Notification.user_id == current_user.id, Notification.is_deleted.is_(False)
    )
    if only_read:
        query = query.filter(Notification.is_read.is_(True))
    deleted = query.update(
        {Notification.is_deleted: True, Notification.deleted_at: datetime.utcnow()},
        synchronize_session=False,
    )
    db.commit()
    return envelope({"deletedCount": deleted}, message="Notifications deleted successfully")


@router.post("/cleanup")
async def cleanup_expired(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    now = datetime.utcnow()
    deleted = (
        db.query(Notification)
        .filter(
            Notification.user_id == current_user.id,
            Notification.is_deleted.is_(False),
            Notification.expires_at.isnot(None),
            Notification.expires_at <= now,
        )
        .update(
            {Notification.is_deleted: True, Notification.deleted_at: now},
            synchronize_session=False,
        )
    )
    db.commit()
    return envelope({"deletedCount": deleted}, message="Expired notifications cleaned up")


@router.get("/type/{notification_type}")
async def get_notifications_by_type(
    notification_type: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = _live(db, current_user).filter(Notification.type == notification_type)
    data = _page(query, page, limit)
    data["type"] = notification_type
    return envelope(data)


@router.get("/{notification_id}")
async def get_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    notification = _get_owned_notification(db, current_user, notification_id)
    return envelope({"notification": NotificationOut.model_validate(notification)})


@router.put("/{notification_id}/read")
async def mark_as_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    notification = _get_owned_notification(db, current_user, notification_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()
        db.commit()
        db.refresh(notification)
    return envelope(
        {"notification": NotificationOut.model_validate(notification)},
        message="Notification marked as read",
    )


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    notification = _get_owned_notification(db, current_user, notification_id)
    notification.soft_delete()
    db.commit()
    return envelope(message="Notification deleted successfully")
