from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from flask import current_app
from sqlalchemy.orm import selectinload

from lms.core.errors import ValidationError
from lms.core.models import (
    CUSTOMER_DETAIL_ATTRS,
    PROPERTY_DETAIL_ATTRS,
    Customer,
    EntityStatus,
    EntityType,
    Property,
    User,
    utcnow,
)
from lms.core.pagination import paginate_rows

logger = logging.getLogger(__name__)

DEFAULT_OVERDUE_DAYS = 2


class QueueView(str, Enum):
    ALL = "all"
    CUSTOMERS = "customers"
    PROPERTIES = "properties"
    OVERDUE = "overdue"


@dataclass(frozen=True)
class ReviewQueueItem:
    id: int
    entity_type: EntityType
    reference_id: str
    display_name: str | None
    category_label: str
    submitted_by: int
    submitted_by_name: str | None
    submitted_at: datetime
    days_pending: int
    is_overdue: bool
    escalation: str

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "entity_type": self.entity_type.value,
            "reference_id": self.reference_id,
            "display_name": self.display_name,
            "category_label": self.category_label,
            "submitted_by": self.submitted_by,
            "submitted_by_name": self.submitted_by_name,
            "submitted_at": self.submitted_at.isoformat(),
            "days_pending": self.days_pending,
            "is_overdue": self.is_overdue,
            "escalation": self.escalation,
        }


def parse_queue_view(value: str | None) -> QueueView:
    raw = (value or QueueView.ALL.value).strip().lower()
    try:
        return QueueView(raw)
    except ValueError as exc:
        raise ValidationError(f"Unknown review queue view '{value}'") from exc


def _as_utc(value: datetime) -> datetime:
    # SQLite hands datetimes back without tzinfo; everything is stored as UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def days_pending(submitted_at: datetime, now: datetime) -> int:
    elapsed = _as_utc(now) - _as_utc(submitted_at)
    return max(0, elapsed // timedelta(days=1))


def is_overdue(pending_days: int, threshold: int = DEFAULT_OVERDUE_DAYS) -> bool:
    return pending_days > threshold


def escalation_level(pending_days: int) -> str:
    if pending_days < 2:
        return "normal"
    if pending_days < 4:
        return "warning"
    return "critical"


def _submitted(model: type[Customer] | type[Property], variant_attrs, limit: int) -> list:
    return (
        model.query.options(*[selectinload(getattr(model, attr)) for attr in variant_attrs])
        .filter(model.status == EntityStatus.SUBMITTED)
        .order_by(model.submitted_at.asc(), model.id.asc())
        .limit(limit)
        .all()
    )


def _user_names(user_ids: set[int]) -> dict[int, str]:
    if not user_ids:
        return {}
    return {user.id: user.full_name for user in User.query.filter(User.id.in_(user_ids)).all()}


def _queue_item(
    entity: Customer | Property,
    names: dict[int, str],
    now: datetime,
    threshold: int,
) -> ReviewQueueItem:
    display_name = entity.display_name
    if display_name is None:
        logger.warning("%s is awaiting review without a detail record", entity.reference_id)
    submitted_at = entity.submitted_at
    if submitted_at is None:
        logger.warning("%s is SUBMITTED without submitted_at, using created_at", entity.reference_id)
        submitted_at = entity.created_at
    submitted_at = _as_utc(submitted_at)
    pending = days_pending(submitted_at, now)
    return ReviewQueueItem(
        id=entity.id,
        entity_type=entity.entity_type,
        reference_id=entity.reference_id,
        display_name=display_name,
        category_label=entity.category_label,
        submitted_by=entity.created_by_user_id,
        submitted_by_name=names.get(entity.created_by_user_id),
        submitted_at=submitted_at,
        days_pending=pending,
        is_overdue=is_overdue(pending, threshold),
        escalation=escalation_level(pending),
    )


def build_review_queue(limit: int | None = None, now: datetime | None = None) -> list[ReviewQueueItem]:
    """Snapshot of every SUBMITTED customer and property, oldest submission first.

    ``limit`` caps each entity type separately. Ties on ``submitted_at`` are
    broken by id and then entity type, since ids are only unique per type.
    """
    if limit is None:
        limit = current_app.config["REVIEW_QUEUE_LIMIT"]
    if limit < 1:
        raise ValidationError("limit must be a positive number")
    now = now or utcnow()
    threshold = current_app.config.get("REVIEW_OVERDUE_DAYS", DEFAULT_OVERDUE_DAYS)

    entities = [
        *_submitted(Customer, CUSTOMER_DETAIL_ATTRS.values(), limit),
        *_submitted(Property, PROPERTY_DETAIL_ATTRS.values(), limit),
    ]
    names = _user_names({entity.created_by_user_id for entity in entities})
    items = [_queue_item(entity, names, now, threshold) for entity in entities]
    items.sort(key=lambda item: (item.submitted_at, item.id, item.entity_type.value))
    return items


def filter_review_queue(
    items: list[ReviewQueueItem],
    view: QueueView | str,
    threshold: int = DEFAULT_OVERDUE_DAYS,
) -> list[ReviewQueueItem]:
    view = parse_queue_view(view)
    if view == QueueView.CUSTOMERS:
        return [item for item in items if item.entity_type == EntityType.CUSTOMER]
    if view == QueueView.PROPERTIES:
        return [item for item in items if item.entity_type == EntityType.PROPERTY]
    if view == QueueView.OVERDUE:
        return [item for item in items if is_overdue(item.days_pending, threshold)]
    return list(items)


def review_queue_counts(items: list[ReviewQueueItem], threshold: int = DEFAULT_OVERDUE_DAYS) -> dict[str, int]:
    return {view.value: len(filter_review_queue(items, view, threshold)) for view in QueueView}


def paginate_review_queue(
    items: list[ReviewQueueItem],
    page: int = 1,
    limit: int | None = None,
) -> tuple[list[ReviewQueueItem], dict[str, int]]:
    """One page of an already merged and sorted queue."""
    if limit is None:
        limit = current_app.config["REVIEW_QUEUE_PAGE_SIZE"]
    return paginate_rows(items, page, limit)
