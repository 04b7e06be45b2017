from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import delete, update

from lms.core.errors import ValidationError
from lms.core.extensions import db
from lms.core.models import Customer, CustomerBusiness, EntityStatus, EntityType, Property
from lms.workflow.queue import (
    build_review_queue,
    days_pending,
    escalation_level,
    filter_review_queue,
    is_overdue,
    paginate_review_queue,
    review_queue_counts,
)
from lms.workflow.services import approve_entity, submit_entity


def test_days_pending_floors_and_never_goes_negative():
    now = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

    assert days_pending(now - timedelta(hours=48), now) == 2
    assert days_pending(now - timedelta(hours=47, minutes=59), now) == 1
    assert days_pending(now, now) == 0
    assert days_pending(now + timedelta(hours=5), now) == 0
    # Naive values are read as UTC.
    assert days_pending(datetime(2026, 3, 7, 12, 0), now) == 3


def test_overdue_and_escalation_thresholds():
    assert [is_overdue(days) for days in range(5)] == [False, False, False, True, True]
    assert is_overdue(2, threshold=1)
    assert [escalation_level(days) for days in range(6)] == [
        "normal",
        "normal",
        "warning",
        "warning",
        "critical",
        "critical",
    ]


def test_queue_only_lists_submitted_records_oldest_first(app, users):
    items = build_review_queue()

    assert [item.entity_type for item in items] == [EntityType.CUSTOMER, EntityType.PROPERTY]
    customer_item, property_item = items
    assert customer_item.display_name == "Berbera Trading Co"
    assert customer_item.category_label == "BUSINESS"
    assert customer_item.submitted_by == users["inputter"].id
    assert customer_item.submitted_by_name == "Ifrah Inputter"
    assert customer_item.days_pending == 3
    assert customer_item.is_overdue
    assert customer_item.escalation == "warning"

    assert property_item.category_label == "LAND"
    assert property_item.submitted_by_name == "Idris Inputter"
    assert property_item.days_pending == 1
    assert not property_item.is_overdue
    assert property_item.escalation == "normal"


def test_queue_drops_records_once_reviewed(app, users):
    customer = Customer.query.filter_by(status=EntityStatus.SUBMITTED).one()
    approve_entity("customer", customer.id, users["approver"].id)

    items = build_review_queue()
    assert [item.entity_type for item in items] == [EntityType.PROPERTY]


def test_queue_ties_break_on_id_then_entity_type(app, users, make_customer, make_property):
    created = [make_customer(), make_customer(), make_property(), make_property()]
    for entity in created:
        submit_entity(entity.entity_type, entity.id, users["inputter"].id)
    same_moment = datetime(2026, 1, 5, 8, 30, tzinfo=timezone.utc)
    for model in (Customer, Property):
        db.session.execute(
            update(model)
            .where(model.id.in_([entity.id for entity in created if isinstance(entity, model)]))
            .values(submitted_at=same_moment)
        )
    db.session.commit()

    items = build_review_queue(now=same_moment + timedelta(days=1))
    tied = [(item.id, item.entity_type) for item in items if item.submitted_at == same_moment]

    expected = sorted(
        ((entity.id, entity.entity_type) for entity in created),
        key=lambda key: (key[0], key[1].value),
    )
    assert tied == expected
    assert all(item.days_pending == 1 for item in items if item.submitted_at == same_moment)


def test_queue_limit_applies_per_entity_type(app, users, make_customer):
    for _ in range(3):
        customer = make_customer()
        submit_entity("customer", customer.id, users["inputter"].id)

    items = build_review_queue(limit=2)
    assert sum(item.entity_type == EntityType.CUSTOMER for item in items) == 2
    assert sum(item.entity_type == EntityType.PROPERTY for item in items) == 1

    with pytest.raises(ValidationError):
        build_review_queue(limit=0)


def test_orphaned_record_still_listed_without_display_name(app, caplog):
    customer = Customer.query.filter_by(status=EntityStatus.SUBMITTED).one()
    db.session.execute(delete(CustomerBusiness).where(CustomerBusiness.customer_id == customer.id))
    db.session.commit()

    with caplog.at_level(logging.WARNING, logger="lms.workflow.queue"):
        items = build_review_queue()

    orphan = next(item for item in items if item.entity_type == EntityType.CUSTOMER)
    assert orphan.display_name is None
    assert orphan.reference_id == customer.reference_id
    assert len(items) == 2
    assert "without a detail record" in caplog.text


def test_views_and_counts(app):
    items = build_review_queue()

    assert [item.entity_type for item in filter_review_queue(items, "customers")] == [EntityType.CUSTOMER]
    assert [item.entity_type for item in filter_review_queue(items, "properties")] == [EntityType.PROPERTY]
    assert [item.entity_type for item in filter_review_queue(items, "overdue")] == [EntityType.CUSTOMER]
    assert filter_review_queue(items, "overdue", threshold=0) == items
    assert review_queue_counts(items) == {"all": 2, "customers": 1, "properties": 1, "overdue": 1}

    with pytest.raises(ValidationError):
        filter_review_queue(items, "stale")


def test_queue_item_serializes_for_json(app):
    payload = build_review_queue()[0].to_dict()

    assert payload["entity_type"] == "CUSTOMER"
    assert payload["escalation"] == "warning"
    assert payload["submitted_at"].endswith("+00:00")


def test_queue_pages_slice_the_merged_list(app, users, make_customer):
    customer = make_customer()
    submit_entity("customer", customer.id, users["inputter"].id)
    items = build_review_queue()
    assert [item.entity_type for item in items] == [EntityType.CUSTOMER, EntityType.PROPERTY, EntityType.CUSTOMER]

    first, meta = paginate_review_queue(items, page=1, limit=2)
    assert first == items[:2]
    assert meta == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}

    second, meta = paginate_review_queue(items, page=2, limit=2)
    assert [item.reference_id for item in second] == [customer.reference_id]
    assert meta["page"] == 2

    beyond, meta = paginate_review_queue(items, page=3, limit=2)
    assert beyond == []
    assert meta["total"] == 3

    everything, meta = paginate_review_queue(items)
    assert everything == items
    assert meta["limit"] == 50

    with pytest.raises(ValidationError):
        paginate_review_queue(items, page=0)
    with pytest.raises(ValidationError):
        paginate_review_queue(items, limit=0)


def test_empty_queue_has_no_pages(app):
    page_items, meta = paginate_review_queue([], page=1, limit=10)
    assert page_items == []
    assert meta == {"page": 1, "limit": 10, "total": 0, "total_pages": 0}
