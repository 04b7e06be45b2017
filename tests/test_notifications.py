from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from lms.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from lms.core.extensions import db
from lms.core.models import EntityType, Notification
from lms.workflow.notifications import (
    NotificationFilter,
    count_notifications,
    list_notifications,
    mark_all_read,
    mark_notification_read,
    notify,
    reviewer_recipient_ids,
    unread_count,
)


def _seed_inbox(user_id: int) -> list[Notification]:
    base = datetime(2026, 2, 1, 9, 0, tzinfo=timezone.utc)
    rows = [
        Notification(user_id=user_id, title="First", message="m1", created_at=base),
        Notification(user_id=user_id, title="Second", message="m2", created_at=base + timedelta(hours=1), is_read=True),
        Notification(user_id=user_id, title="Third", message="m3", created_at=base + timedelta(hours=2)),
    ]
    db.session.add_all(rows)
    db.session.commit()
    return rows


def test_reviewer_recipients_are_active_approvers_and_admins(app, users):
    assert reviewer_recipient_ids() == sorted([users["admin"].id, users["approver"].id])


def test_notify_creates_one_row_per_distinct_recipient(app, users):
    inputter_id = users["inputter"].id
    admin_id = users["admin"].id

    created = notify([inputter_id, inputter_id, None, admin_id], "Hello", "Body", EntityType.PROPERTY, 7)
    db.session.commit()

    assert created == 2
    rows = Notification.query.order_by(Notification.user_id.asc()).all()
    assert sorted(row.user_id for row in rows) == sorted([inputter_id, admin_id])
    assert all(row.entity_type == EntityType.PROPERTY and row.entity_id == 7 for row in rows)
    assert all(not row.is_read and row.read_at is None for row in rows)
    assert notify([], "Nobody", "Body") == 0


def test_list_notifications_newest_first_with_filters(app, users):
    user_id = users["inputter"].id
    _seed_inbox(user_id)

    assert [row.title for row in list_notifications(user_id)] == ["Third", "Second", "First"]
    assert [row.title for row in list_notifications(user_id, "unread")] == ["Third", "First"]
    assert [row.title for row in list_notifications(user_id, NotificationFilter.READ)] == ["Second"]
    assert [row.title for row in list_notifications(user_id, limit=1)] == ["Third"]
    assert list_notifications(users["viewer"].id) == []

    with pytest.raises(ValidationError):
        list_notifications(user_id, "archived")
    with pytest.raises(ValidationError):
        list_notifications(user_id, limit=0)


def test_mark_read_checks_owner_and_is_idempotent(app, users):
    user_id = users["inputter"].id
    first = _seed_inbox(user_id)[0]

    marked = mark_notification_read(first.id, user_id)
    assert marked.is_read
    read_at = marked.read_at
    assert read_at is not None

    again = mark_notification_read(first.id, user_id)
    assert again.is_read
    assert again.read_at == read_at

    with pytest.raises(PermissionDeniedError):
        mark_notification_read(first.id, users["viewer"].id)
    with pytest.raises(NotFoundError):
        mark_notification_read(999999, user_id)


def test_mark_all_read_only_flips_unread_rows(app, users):
    user_id = users["inputter"].id
    rows = _seed_inbox(user_id)
    already_read_at = rows[1].read_at

    assert unread_count(user_id) == 2
    assert mark_all_read(user_id) == 2
    assert unread_count(user_id) == 0
    assert mark_all_read(user_id) == 0
    assert db.session.get(Notification, rows[1].id).read_at == already_read_at


def test_list_notifications_pages_and_counts(app, users):
    user_id = users["inputter"].id
    _seed_inbox(user_id)

    assert [row.title for row in list_notifications(user_id, limit=2, page=1)] == ["Third", "Second"]
    assert [row.title for row in list_notifications(user_id, limit=2, page=2)] == ["First"]
    assert list_notifications(user_id, limit=2, page=3) == []
    assert [row.title for row in list_notifications(user_id, "unread", limit=1, page=2)] == ["First"]

    assert count_notifications(user_id) == 3
    assert count_notifications(user_id, "unread") == 2
    assert count_notifications(user_id, NotificationFilter.READ) == 1
    assert count_notifications(users["viewer"].id) == 0

    with pytest.raises(ValidationError):
        list_notifications(user_id, page=0)
