from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from enum import Enum

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from lms.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from lms.core.extensions import db
from lms.core.pagination import check_page
from lms.core.models import REVIEWER_ROLES, EntityType, Notification, User, utcnow

logger = logging.getLogger(__name__)


class NotificationFilter(str, Enum):
    ALL = "all"
    UNREAD = "unread"
    READ = "read"


def parse_notification_filter(value: str | None) -> NotificationFilter:
    raw = (value or NotificationFilter.ALL.value).strip().lower()
    try:
        return NotificationFilter(raw)
    except ValueError as exc:
        raise ValidationError(f"Unknown notification filter '{value}'") from exc


def reviewer_recipient_ids() -> list[int]:
    rows = (
        db.session.query(User.id)
        .filter(User.role.in_(REVIEWER_ROLES), User.is_active.is_(True))
        .order_by(User.id.asc())
        .all()
    )
    return [user_id for (user_id,) in rows]


def _build_notifications(
    recipient_ids: list[int],
    title: str,
    message: str,
    entity_type: EntityType | None,
    entity_id: int | None,
) -> list[Notification]:
    return [
        Notification(
            user_id=user_id,
            title=title,
            message=message,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        for user_id in recipient_ids
    ]


def _write_notifications(
    resolve_recipients: Callable[[], Iterable[int | None]],
    title: str,
    message: str,
    entity_type: EntityType | None,
    entity_id: int | None,
) -> int:
    """Create one unread notification per distinct recipient.

    Recipients are resolved and rows written inside a SAVEPOINT of the
    caller's transaction. A database failure rolls back only the
    notifications, gets logged, and returns 0 so the transition that
    triggered it can still commit.
    """
    created = 0
    try:
        with db.session.begin_nested():
            recipient_ids = list(dict.fromkeys(user_id for user_id in resolve_recipients() if user_id is not None))
            db.session.add_all(_build_notifications(recipient_ids, title, message, entity_type, entity_id))
            created = len(recipient_ids)
    except SQLAlchemyError:
        logger.exception(
            "Could not create notification(s) for %s %s: %s",
            entity_type.value if entity_type else "-",
            entity_id,
            title,
        )
        return 0
    if created:
        logger.debug("Queued %d notification(s): %s", created, title)
    return created


def notify(
    recipients: Iterable[int | None],
    title: str,
    message: str,
    entity_type: EntityType | None = None,
    entity_id: int | None = None,
) -> int:
    recipients = list(recipients)
    return _write_notifications(lambda: recipients, title, message, entity_type, entity_id)


def notify_reviewers(
    title: str,
    message: str,
    entity_type: EntityType | None = None,
    entity_id: int | None = None,
) -> int:
    """Notify every active approver and administrator.

    The recipient lookup runs inside the same guarded block as the insert.
    """
    return _write_notifications(reviewer_recipient_ids, title, message, entity_type, entity_id)


def mark_notification_read(notification_id: int, user_id: int) -> Notification:
    notification = db.session.get(Notification, notification_id)
    if notification is None:
        raise NotFoundError(f"Notification {notification_id} not found")
    if notification.user_id != user_id:
        raise PermissionDeniedError("You can only mark your own notifications as read")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        db.session.commit()
    return notification


def mark_all_read(user_id: int) -> int:
    result = db.session.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount


def _inbox_query(user_id: int, read_filter: NotificationFilter | str):
    read_filter = parse_notification_filter(read_filter)
    query = Notification.query.filter_by(user_id=user_id)
    if read_filter == NotificationFilter.UNREAD:
        query = query.filter(Notification.is_read.is_(False))
    elif read_filter == NotificationFilter.READ:
        query = query.filter(Notification.is_read.is_(True))
    return query


def list_notifications(
    user_id: int,
    read_filter: NotificationFilter | str = NotificationFilter.ALL,
    limit: int | None = None,
    page: int = 1,
) -> list[Notification]:
    if limit is None:
        limit = current_app.config["NOTIFICATIONS_PAGE_SIZE"]
    check_page(page, limit)
    return (
        _inbox_query(user_id, read_filter)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )


def count_notifications(user_id: int, read_filter: NotificationFilter | str = NotificationFilter.ALL) -> int:
    return _inbox_query(user_id, read_filter).count()


def unread_count(user_id: int) -> int:
    return Notification.query.filter_by(user_id=user_id, is_read=False).count()
