from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import inspect

from lms.core.errors import ValidationError, WorkflowError
from lms.core.models import ActivityLog, Customer, Notification, Property, PropertyPhoto, UserRole
from lms.core.pagination import page_meta
from lms.core.permissions import require_role
from lms.workflow import workflow_bp
from lms.workflow.notifications import (
    count_notifications,
    list_notifications,
    mark_all_read,
    mark_notification_read,
    parse_notification_filter,
    unread_count,
)
from lms.workflow.queue import (
    build_review_queue,
    filter_review_queue,
    paginate_review_queue,
    parse_queue_view,
    review_queue_counts,
)
from lms.workflow.services import (
    add_property_photo,
    approve_entity,
    archive_entity,
    create_customer,
    create_property,
    delete_entity,
    get_entity,
    list_entity_activity,
    reject_entity,
    submit_entity,
    unarchive_entity,
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _json_payload() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _serialize_entity(entity: Customer | Property) -> dict[str, object]:
    data: dict[str, object] = {
        "id": entity.id,
        "entity_type": entity.entity_type.value,
        "reference_id": entity.reference_id,
        "status": entity.status.value,
        "category_label": entity.category_label,
        "display_name": entity.display_name,
        "created_by": entity.created_by_user_id,
        "approved_by": entity.approved_by_user_id,
        "rejection_feedback": entity.rejection_feedback,
        "submitted_at": _iso(entity.submitted_at),
        "approved_at": _iso(entity.approved_at),
        "created_at": _iso(entity.created_at),
        "updated_at": _iso(entity.updated_at),
    }
    if isinstance(entity, Property):
        data.update(
            {
                "parcel_number": entity.parcel_number,
                "property_location": entity.property_location,
                "district": entity.district,
                "size": str(entity.size) if entity.size is not None else None,
                "photo_count": len(entity.photos),
            }
        )
    return data


def _serialize_detail(entity: Customer | Property) -> dict[str, object] | None:
    detail = entity.detail
    if detail is None:
        return None
    data: dict[str, object] = {}
    for attr in inspect(detail).mapper.column_attrs:
        if attr.columns[0].primary_key:
            continue
        value = getattr(detail, attr.key)
        data[attr.key] = str(value) if isinstance(value, Decimal) else value
    return data


def _serialize_photo(photo: PropertyPhoto) -> dict[str, object]:
    return {
        "id": photo.id,
        "property_id": photo.property_id,
        "file_name": photo.file_name,
        "file_path": photo.file_path,
        "file_size": photo.file_size,
        "created_at": _iso(photo.created_at),
    }


def _serialize_activity(entry: ActivityLog) -> dict[str, object]:
    return {
        "id": entry.id,
        "entity_type": entry.entity_type.value,
        "entity_id": entry.entity_id,
        "action": entry.action.value,
        "performed_by": entry.performed_by_user_id,
        "performed_by_name": entry.performed_by.full_name if entry.performed_by else None,
        "timestamp": _iso(entry.timestamp),
        "metadata": entry.details,
    }


def _serialize_notification(notification: Notification) -> dict[str, object]:
    return {
        "id": notification.id,
        "title": notification.title,
        "message": notification.message,
        "entity_type": notification.entity_type.value if notification.entity_type else None,
        "entity_id": notification.entity_id,
        "is_read": notification.is_read,
        "created_at": _iso(notification.created_at),
        "read_at": _iso(notification.read_at),
    }


@workflow_bp.errorhandler(WorkflowError)
def handle_workflow_error(error: WorkflowError):
    return jsonify(error.to_dict()), error.status_code


@workflow_bp.post("/customers")
@login_required
def create_customer_endpoint():
    customer = create_customer(_json_payload(), current_user.id)
    return jsonify(_serialize_entity(customer)), 201


@workflow_bp.post("/properties")
@login_required
def create_property_endpoint():
    record = create_property(_json_payload(), current_user.id)
    return jsonify(_serialize_entity(record)), 201


@workflow_bp.post("/<entity_type>/<int:entity_id>/submit")
@login_required
def submit_endpoint(entity_type: str, entity_id: int):
    entity = submit_entity(entity_type, entity_id, current_user.id)
    return jsonify(_serialize_entity(entity))


@workflow_bp.post("/<entity_type>/<int:entity_id>/approve")
@login_required
def approve_endpoint(entity_type: str, entity_id: int):
    entity = approve_entity(entity_type, entity_id, current_user.id)
    return jsonify(_serialize_entity(entity))


@workflow_bp.post("/<entity_type>/<int:entity_id>/reject")
@login_required
def reject_endpoint(entity_type: str, entity_id: int):
    feedback = _json_payload().get("feedback")
    entity = reject_entity(entity_type, entity_id, current_user.id, feedback)
    return jsonify(_serialize_entity(entity))


@workflow_bp.post("/property/<int:entity_id>/archive")
@login_required
def archive_endpoint(entity_id: int):
    entity = archive_entity("property", entity_id, current_user.id)
    return jsonify(_serialize_entity(entity))


@workflow_bp.post("/property/<int:entity_id>/unarchive")
@login_required
def unarchive_endpoint(entity_id: int):
    entity = unarchive_entity("property", entity_id, current_user.id)
    return jsonify(_serialize_entity(entity))


@workflow_bp.post("/property/<int:entity_id>/photos")
@login_required
def photo_upload_endpoint(entity_id: int):
    photo = add_property_photo(entity_id, request.files.get("file"), current_user.id)
    return jsonify(_serialize_photo(photo)), 201


@workflow_bp.delete("/<entity_type>/<int:entity_id>")
@login_required
def delete_endpoint(entity_type: str, entity_id: int):
    delete_entity(entity_type, entity_id, current_user.id)
    return "", 204


@workflow_bp.get("/<entity_type>/<int:entity_id>")
@login_required
@require_role(UserRole.APPROVER, UserRole.ADMINISTRATOR)
def entity_detail_endpoint(entity_type: str, entity_id: int):
    entity = get_entity(entity_type, entity_id)
    data = _serialize_entity(entity)
    data["detail"] = _serialize_detail(entity)
    if isinstance(entity, Property):
        data["photos"] = [_serialize_photo(photo) for photo in entity.photos]
    return jsonify(data)


@workflow_bp.get("/<entity_type>/<int:entity_id>/activity")
@login_required
def activity_endpoint(entity_type: str, entity_id: int):
    entries = list_entity_activity(entity_type, entity_id)
    return jsonify({"items": [_serialize_activity(entry) for entry in entries]})


@workflow_bp.get("/review-queue")
@login_required
@require_role(UserRole.APPROVER, UserRole.ADMINISTRATOR)
def review_queue_endpoint():
    view = parse_queue_view(request.args.get("view"))
    threshold = current_app.config["REVIEW_OVERDUE_DAYS"]
    items = build_review_queue()
    page_items, meta = paginate_review_queue(
        filter_review_queue(items, view, threshold),
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", type=int),
    )
    return jsonify(
        {
            "view": view.value,
            "counts": review_queue_counts(items, threshold),
            "items": [item.to_dict() for item in page_items],
            "meta": meta,
        }
    )


@workflow_bp.get("/notifications")
@login_required
def notifications_endpoint():
    read_filter = parse_notification_filter(request.args.get("filter"))
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", current_app.config["NOTIFICATIONS_PAGE_SIZE"], type=int)
    rows = list_notifications(current_user.id, read_filter, limit, page)
    return jsonify(
        {
            "filter": read_filter.value,
            "unread": unread_count(current_user.id),
            "items": [_serialize_notification(row) for row in rows],
            "meta": page_meta(page, limit, count_notifications(current_user.id, read_filter)),
        }
    )


@workflow_bp.get("/notifications/unread-count")
@login_required
def unread_count_endpoint():
    return jsonify({"unread": unread_count(current_user.id)})


@workflow_bp.post("/notifications/<int:notification_id>/read")
@login_required
def mark_read_endpoint(notification_id: int):
    notification = mark_notification_read(notification_id, current_user.id)
    return jsonify(_serialize_notification(notification))


@workflow_bp.post("/notifications/read-all")
@login_required
def mark_all_read_endpoint():
    return jsonify({"updated": mark_all_read(current_user.id)})
