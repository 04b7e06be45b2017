from __future__ import annotations

import logging
import shutil
from decimal import Decimal, InvalidOperation
from pathlib import Path

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from lms.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from lms.core.extensions import db
from lms.core.models import (
    CUSTOMER_DETAIL_ATTRS,
    PROPERTY_DETAIL_ATTRS,
    REVIEWER_ROLES,
    ActivityAction,
    ActivityLog,
    Customer,
    CustomerBusiness,
    CustomerContractor,
    CustomerGovernment,
    CustomerMosqueHospital,
    CustomerNonProfit,
    CustomerPerson,
    CustomerType,
    EntityStatus,
    EntityType,
    Property,
    PropertyBuilding,
    PropertyLand,
    PropertyPhoto,
    PropertyType,
    User,
    UserRole,
    utcnow,
)
from lms.workflow.notifications import notify, notify_reviewers

logger = logging.getLogger(__name__)

ENTITY_MODELS: dict[EntityType, type[Customer] | type[Property]] = {
    EntityType.CUSTOMER: Customer,
    EntityType.PROPERTY: Property,
}

REFERENCE_PREFIXES = {
    EntityType.CUSTOMER: "CUS",
    EntityType.PROPERTY: "PRP",
}

CREATOR_ROLES = (UserRole.INPUTTER, UserRole.ADMINISTRATOR)
SUBMITTABLE_STATUSES = (EntityStatus.DRAFT, EntityStatus.REJECTED)
PHOTO_EDITABLE_STATUSES = (EntityStatus.DRAFT, EntityStatus.REJECTED)
PHOTO_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}
MAX_BUILDING_FLOORS = 14

# Variant model, required fields, optional fields.
CUSTOMER_VARIANTS: dict[CustomerType, tuple[type, tuple[str, ...], tuple[str, ...]]] = {
    CustomerType.PERSON: (
        CustomerPerson,
        ("first_name", "father_name", "grandfather_name"),
        ("fourth_name", "gender", "mobile_number", "email", "id_type", "id_number"),
    ),
    CustomerType.BUSINESS: (
        CustomerBusiness,
        ("business_name",),
        ("registration_number", "license_number", "contact_name", "mobile_number", "email"),
    ),
    CustomerType.GOVERNMENT: (
        CustomerGovernment,
        ("full_department_name",),
        ("department_address", "contact_name", "mobile_number", "email"),
    ),
    CustomerType.MOSQUE_HOSPITAL: (
        CustomerMosqueHospital,
        ("full_name",),
        ("registration_number", "address", "contact_name", "mobile_number"),
    ),
    CustomerType.NON_PROFIT: (
        CustomerNonProfit,
        ("full_non_profit_name",),
        ("registration_number", "license_number", "contact_name", "mobile_number"),
    ),
    CustomerType.CONTRACTOR: (
        CustomerContractor,
        ("full_contractor_name",),
        ("contact_name", "mobile_number", "email"),
    ),
}


def parse_entity_type(value: EntityType | str | None) -> EntityType:
    raw = (value or "").strip().upper()
    try:
        return EntityType(raw)
    except ValueError as exc:
        raise ValidationError(f"Unknown entity type '{value}'") from exc


def _parse_choice(enum_cls, value, field_name: str):
    raw = (value or "").strip().upper()
    if not raw:
        raise ValidationError(f"{field_name} is required")
    try:
        return enum_cls(raw)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {field_name} '{value}', expected one of: {allowed}") from exc


def _parse_optional_decimal(value, field_name: str) -> Decimal | None:
    raw = str(value if value is not None else "").strip().replace(",", ".")
    if not raw:
        return None
    try:
        amount = Decimal(raw).quantize(Decimal("0.01"))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid number for {field_name}") from exc
    if amount <= 0:
        raise ValidationError(f"{field_name} must be greater than zero")
    return amount


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def _validate_email(value: str) -> str:
    email = (value or "").strip()
    if not email:
        return ""
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValidationError(f"Invalid email address '{email}'")
    return email


def _get_actor(actor_id: int | None) -> User:
    actor = db.session.get(User, actor_id) if actor_id is not None else None
    if actor is None or not actor.is_active:
        raise PermissionDeniedError("Unknown or inactive user")
    return actor


def _get_entity_or_404(entity_type: EntityType, entity_id: int) -> Customer | Property:
    entity = db.session.get(ENTITY_MODELS[entity_type], entity_id)
    if entity is None:
        raise NotFoundError(f"{entity_type.value.title()} {entity_id} not found")
    return entity


def get_entity(entity_type: EntityType | str, entity_id: int) -> Customer | Property:
    return _get_entity_or_404(parse_entity_type(entity_type), entity_id)


def _next_reference_id(entity_type: EntityType, year: int) -> str:
    model = ENTITY_MODELS[entity_type]
    value_prefix = f"{REFERENCE_PREFIXES[entity_type]}-{year}-"
    latest = (
        db.session.query(func.max(model.reference_id))
        .filter(model.reference_id.like(f"{value_prefix}%"))
        .scalar()
    )
    sequence = int(latest.rsplit("-", 1)[1]) if latest else 0
    return f"{value_prefix}{sequence + 1:04d}"


def _log_activity(
    entity: Customer | Property,
    action: ActivityAction,
    actor_id: int,
    **details: object,
) -> None:
    db.session.add(
        ActivityLog(
            entity_type=entity.entity_type,
            entity_id=entity.id,
            action=action,
            performed_by_user_id=actor_id,
            details={"reference_id": entity.reference_id, **details},
        )
    )


def _compare_and_set_status(
    entity: Customer | Property,
    expected: EntityStatus,
    **values: object,
) -> None:
    """Write ``values`` only if the row still has status ``expected``.

    Any other row count means a concurrent request moved the record first: the
    transaction is rolled back and a ConflictError raised.
    """
    model = type(entity)
    result = db.session.execute(
        update(model)
        .where(model.id == entity.id, model.status == expected)
        .values(updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        reference_id = entity.reference_id
        db.session.rollback()
        logger.warning("Status of %s changed concurrently (expected %s)", reference_id, expected.value)
        raise ConflictError()
    db.session.refresh(entity)


def _apply_transition(
    entity: Customer | Property,
    action: ActivityAction,
    actor_id: int,
    details: dict[str, object],
    **values: object,
) -> EntityStatus:
    previous = entity.status
    _compare_and_set_status(entity, previous, **values)
    _log_activity(entity, action, actor_id, previous_status=previous.value, **details)
    db.session.flush()
    return previous


def _require_reviewer(actor: User, verb: str) -> None:
    if actor.role not in REVIEWER_ROLES:
        raise PermissionDeniedError(f"Only approvers or administrators can {verb} records")


def _require_property(entity_type: EntityType, verb: str) -> None:
    if entity_type != EntityType.PROPERTY:
        raise ValidationError(f"Only properties can be {verb}")


def _label(entity: Customer | Property) -> str:
    name = entity.display_name
    return f"{entity.reference_id} ({name})" if name else entity.reference_id


def submit_entity(entity_type: EntityType | str, entity_id: int, actor_id: int | None) -> Customer | Property:
    entity_type = parse_entity_type(entity_type)
    entity = _get_entity_or_404(entity_type, entity_id)
    if entity.status not in SUBMITTABLE_STATUSES:
        raise InvalidStateError(
            f"{entity.reference_id} is {entity.status.value}; only DRAFT or REJECTED records can be submitted"
        )
    actor = _get_actor(actor_id)
    if actor.id != entity.created_by_user_id and actor.role != UserRole.ADMINISTRATOR:
        raise PermissionDeniedError("Only the creator or an administrator can submit this record")
    if entity.detail is None:
        raise ValidationError(f"{entity.reference_id} has no {entity.category_label.lower()} details to submit")

    _apply_transition(
        entity,
        ActivityAction.SUBMITTED,
        actor.id,
        {},
        status=EntityStatus.SUBMITTED,
        submitted_at=utcnow(),
        rejection_feedback=None,
    )
    notify_reviewers(
        f"{entity_type.value.title()} submitted for review",
        f"{_label(entity)} was submitted by {actor.full_name}",
        entity_type,
        entity.id,
    )
    db.session.commit()
    logger.info("%s submitted by user %s", entity.reference_id, actor.id)
    return entity


def approve_entity(entity_type: EntityType | str, entity_id: int, actor_id: int | None) -> Customer | Property:
    entity_type = parse_entity_type(entity_type)
    entity = _get_entity_or_404(entity_type, entity_id)
    if entity.status != EntityStatus.SUBMITTED:
        raise InvalidStateError(f"{entity.reference_id} is {entity.status.value}; only SUBMITTED records can be approved")
    actor = _get_actor(actor_id)
    _require_reviewer(actor, "approve")

    _apply_transition(
        entity,
        ActivityAction.APPROVED,
        actor.id,
        {},
        status=EntityStatus.APPROVED,
        approved_by_user_id=actor.id,
        approved_at=utcnow(),
    )
    notify(
        [entity.created_by_user_id],
        f"{entity_type.value.title()} approved",
        f"{_label(entity)} was approved by {actor.full_name}",
        entity_type,
        entity.id,
    )
    db.session.commit()
    logger.info("%s approved by user %s", entity.reference_id, actor.id)
    return entity


def reject_entity(
    entity_type: EntityType | str,
    entity_id: int,
    actor_id: int | None,
    feedback: str | None,
) -> Customer | Property:
    if not isinstance(feedback, str) or not feedback.strip():
        raise ValidationError("Rejection feedback is required")
    entity_type = parse_entity_type(entity_type)
    entity = _get_entity_or_404(entity_type, entity_id)
    if entity.status != EntityStatus.SUBMITTED:
        raise InvalidStateError(f"{entity.reference_id} is {entity.status.value}; only SUBMITTED records can be rejected")
    actor = _get_actor(actor_id)
    _require_reviewer(actor, "reject")

    _apply_transition(
        entity,
        ActivityAction.REJECTED,
        actor.id,
        {"feedback": feedback},
        status=EntityStatus.REJECTED,
        rejection_feedback=feedback,
    )
    notify(
        [entity.created_by_user_id],
        f"{entity_type.value.title()} rejected",
        f"{_label(entity)} was rejected by {actor.full_name}: {feedback}",
        entity_type,
        entity.id,
    )
    db.session.commit()
    logger.info("%s rejected by user %s", entity.reference_id, actor.id)
    return entity


def archive_entity(entity_type: EntityType | str, entity_id: int, actor_id: int | None) -> Property:
    entity_type = parse_entity_type(entity_type)
    _require_property(entity_type, "archived")
    entity = _get_entity_or_404(entity_type, entity_id)
    if entity.status == EntityStatus.ARCHIVED:
        raise InvalidStateError(f"{entity.reference_id} is already archived")
    actor = _get_actor(actor_id)
    _require_reviewer(actor, "archive")

    _apply_transition(entity, ActivityAction.ARCHIVED, actor.id, {}, status=EntityStatus.ARCHIVED)
    notify(
        [entity.created_by_user_id],
        "Property archived",
        f"{_label(entity)} was archived by {actor.full_name}",
        entity_type,
        entity.id,
    )
    db.session.commit()
    logger.info("%s archived by user %s", entity.reference_id, actor.id)
    return entity


def unarchive_entity(entity_type: EntityType | str, entity_id: int, actor_id: int | None) -> Property:
    entity_type = parse_entity_type(entity_type)
    _require_property(entity_type, "unarchived")
    entity = _get_entity_or_404(entity_type, entity_id)
    if entity.status != EntityStatus.ARCHIVED:
        raise InvalidStateError(f"{entity.reference_id} is {entity.status.value}; only ARCHIVED records can be unarchived")
    actor = _get_actor(actor_id)
    _require_reviewer(actor, "unarchive")

    restored = EntityStatus.APPROVED if entity.approved_by_user_id is not None else EntityStatus.DRAFT
    _apply_transition(
        entity,
        ActivityAction.UNARCHIVED,
        actor.id,
        {"restored_status": restored.value},
        status=restored,
    )
    db.session.commit()
    logger.info("%s unarchived to %s by user %s", entity.reference_id, restored.value, actor.id)
    return entity


def _can_delete(entity: Customer | Property, actor: User) -> bool:
    if actor.role == UserRole.ADMINISTRATOR:
        return True
    return (
        entity.status == EntityStatus.DRAFT
        and actor.id == entity.created_by_user_id
        and actor.role == UserRole.INPUTTER
    )


def _property_storage_root(property_id: int) -> Path:
    return Path(current_app.instance_path) / "storage" / "properties" / str(property_id)


def _remove_photo_files(property_id: int, relative_paths: list[str]) -> None:
    instance_root = Path(current_app.instance_path)
    for relative_path in relative_paths:
        (instance_root / relative_path).unlink(missing_ok=True)
    shutil.rmtree(_property_storage_root(property_id), ignore_errors=True)


def delete_entity(entity_type: EntityType | str, entity_id: int, actor_id: int | None) -> None:
    entity_type = parse_entity_type(entity_type)
    entity = _get_entity_or_404(entity_type, entity_id)
    actor = _get_actor(actor_id)
    if not _can_delete(entity, actor):
        raise PermissionDeniedError("Only administrators, or the inputter who created a draft, can delete it")

    status = entity.status
    _compare_and_set_status(entity, status)
    photo_paths = [photo.file_path for photo in entity.photos] if isinstance(entity, Property) else []
    reference_id = entity.reference_id
    _log_activity(entity, ActivityAction.DELETED, actor.id, status=status.value, photos=len(photo_paths))
    db.session.delete(entity)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Could not delete %s; its photo files were kept", reference_id)
        raise
    if isinstance(entity, Property):
        _remove_photo_files(entity_id, photo_paths)
    logger.info("%s deleted by user %s", reference_id, actor.id)


def _build_detail(model: type, required: tuple[str, ...], optional: tuple[str, ...], details: dict):
    values = {field: str(details.get(field) or "").strip() for field in (*required, *optional)}
    missing = [field for field in required if not values[field]]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    if "email" in values:
        values["email"] = _validate_email(values["email"])
    return model(**values)


def _details_payload(payload: dict) -> dict:
    details = payload.get("details") or {}
    if not isinstance(details, dict):
        raise ValidationError("details must be an object")
    return details


def _require_creator_role(actor: User) -> None:
    if actor.role not in CREATOR_ROLES:
        raise PermissionDeniedError("Only inputters or administrators can create records")


def create_customer(payload: dict, actor_id: int | None) -> Customer:
    actor = _get_actor(actor_id)
    _require_creator_role(actor)
    customer_type = _parse_choice(CustomerType, payload.get("customer_type"), "customer_type")
    model, required, optional = CUSTOMER_VARIANTS[customer_type]
    detail = _build_detail(model, required, optional, _details_payload(payload))

    customer = Customer(
        reference_id=_next_reference_id(EntityType.CUSTOMER, utcnow().year),
        customer_type=customer_type,
        status=EntityStatus.DRAFT,
        created_by_user_id=actor.id,
    )
    setattr(customer, CUSTOMER_DETAIL_ATTRS[customer_type], detail)
    db.session.add(customer)
    db.session.flush()
    _log_activity(customer, ActivityAction.CREATED, actor.id, customer_type=customer_type.value)
    db.session.commit()
    logger.info("%s created by user %s", customer.reference_id, actor.id)
    return customer


def _building_detail(details: dict) -> PropertyBuilding:
    raw_floors = str(details.get("number_of_floors") or "").strip()
    if not raw_floors:
        raise ValidationError("Missing required fields: number_of_floors")
    try:
        floors = int(raw_floors)
    except ValueError as exc:
        raise ValidationError("number_of_floors must be a whole number") from exc
    if not 1 <= floors <= MAX_BUILDING_FLOORS:
        raise ValidationError(f"number_of_floors must be between 1 and {MAX_BUILDING_FLOORS}")
    return PropertyBuilding(
        number_of_floors=floors,
        has_built_area=_parse_bool(details.get("has_built_area", True)),
        door_number=str(details.get("door_number") or "").strip(),
        road_name=str(details.get("road_name") or "").strip(),
    )


def _land_detail(details: dict) -> PropertyLand:
    return PropertyLand(
        parcel_area=_parse_optional_decimal(details.get("parcel_area"), "parcel_area"),
        has_property_wall=_parse_bool(details.get("has_property_wall")),
    )


def create_property(payload: dict, actor_id: int | None) -> Property:
    actor = _get_actor(actor_id)
    _require_creator_role(actor)
    property_type = _parse_choice(PropertyType, payload.get("property_type"), "property_type")
    parcel_number = str(payload.get("parcel_number") or "").strip().upper()
    if not parcel_number:
        raise ValidationError("Missing required fields: parcel_number")
    if Property.query.filter_by(parcel_number=parcel_number).first():
        raise ValidationError(f"Parcel {parcel_number} is already registered")
    details = _details_payload(payload)
    detail = _building_detail(details) if property_type == PropertyType.BUILDING else _land_detail(details)

    record = Property(
        reference_id=_next_reference_id(EntityType.PROPERTY, utcnow().year),
        parcel_number=parcel_number,
        property_type=property_type,
        property_location=str(payload.get("property_location") or "").strip(),
        district=str(payload.get("district") or "").strip(),
        size=_parse_optional_decimal(payload.get("size"), "size"),
        status=EntityStatus.DRAFT,
        created_by_user_id=actor.id,
    )
    setattr(record, PROPERTY_DETAIL_ATTRS[property_type], detail)
    db.session.add(record)
    db.session.flush()
    _log_activity(record, ActivityAction.CREATED, actor.id, property_type=property_type.value)
    db.session.commit()
    logger.info("%s created by user %s", record.reference_id, actor.id)
    return record


def add_property_photo(property_id: int, file_obj: FileStorage | None, actor_id: int | None) -> PropertyPhoto:
    record = _get_entity_or_404(EntityType.PROPERTY, property_id)
    actor = _get_actor(actor_id)
    if actor.id != record.created_by_user_id and actor.role != UserRole.ADMINISTRATOR:
        raise PermissionDeniedError("Only the creator or an administrator can add photos")
    if record.status not in PHOTO_EDITABLE_STATUSES:
        raise InvalidStateError(f"Photos can only be added while {record.reference_id} is DRAFT or REJECTED")
    if not file_obj or not file_obj.filename:
        raise ValidationError("Select a file to upload")
    extension = Path(file_obj.filename).suffix.lower()
    if extension not in PHOTO_EXTENSIONS:
        raise ValidationError(f"Unsupported photo type '{extension or file_obj.filename}'")

    photo = PropertyPhoto(
        property_id=record.id,
        file_path="",
        file_name=file_obj.filename,
        uploaded_by_user_id=actor.id,
    )
    db.session.add(photo)
    db.session.flush()

    filename = f"{photo.id}-{secure_filename(file_obj.filename) or f'photo{extension}'}"
    root = _property_storage_root(record.id)
    root.mkdir(parents=True, exist_ok=True)
    absolute = root / filename
    file_obj.save(absolute)
    photo.file_path = absolute.relative_to(Path(current_app.instance_path)).as_posix()
    photo.file_size = absolute.stat().st_size
    db.session.commit()
    logger.info("Photo %s stored for %s", photo.file_path, record.reference_id)
    return photo


def list_entity_activity(entity_type: EntityType | str, entity_id: int) -> list[ActivityLog]:
    entity_type = parse_entity_type(entity_type)
    return (
        ActivityLog.query.options(joinedload(ActivityLog.performed_by))
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(ActivityLog.timestamp.asc(), ActivityLog.id.asc())
        .all()
    )
