from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index, event
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from werkzeug.security import generate_password_hash

from lms.core.extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    INPUTTER = "INPUTTER"
    APPROVER = "APPROVER"
    ADMINISTRATOR = "ADMINISTRATOR"
    VIEWER = "VIEWER"


REVIEWER_ROLES = (UserRole.APPROVER, UserRole.ADMINISTRATOR)


class EntityType(str, Enum):
    CUSTOMER = "CUSTOMER"
    PROPERTY = "PROPERTY"


class EntityStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    # Properties only.
    ARCHIVED = "ARCHIVED"


class CustomerType(str, Enum):
    PERSON = "PERSON"
    BUSINESS = "BUSINESS"
    GOVERNMENT = "GOVERNMENT"
    MOSQUE_HOSPITAL = "MOSQUE_HOSPITAL"
    NON_PROFIT = "NON_PROFIT"
    CONTRACTOR = "CONTRACTOR"


class PropertyType(str, Enum):
    BUILDING = "BUILDING"
    LAND = "LAND"


class ActivityAction(str, Enum):
    CREATED = "CREATED"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ARCHIVED = "ARCHIVED"
    UNARCHIVED = "UNARCHIVED"
    DELETED = "DELETED"


# Discriminant value -> name of the relationship holding that variant's detail row.
CUSTOMER_DETAIL_ATTRS: dict[CustomerType, str] = {
    CustomerType.PERSON: "person",
    CustomerType.BUSINESS: "business",
    CustomerType.GOVERNMENT: "government",
    CustomerType.MOSQUE_HOSPITAL: "mosque_hospital",
    CustomerType.NON_PROFIT: "non_profit",
    CustomerType.CONTRACTOR: "contractor",
}

PROPERTY_DETAIL_ATTRS: dict[PropertyType, str] = {
    PropertyType.BUILDING: "building",
    PropertyType.LAND: "land",
}


def _check_detail_variant(entity, key, value, discriminant_key: str, attrs: dict) -> None:
    discriminant = value if key == discriminant_key else getattr(entity, discriminant_key)
    populated = {
        attr
        for attr in attrs.values()
        if (value if attr == key else getattr(entity, attr)) is not None
    }
    if len(populated) > 1:
        raise ValueError(f"Only one detail record may be attached, got: {', '.join(sorted(populated))}")
    if discriminant is None or not populated:
        return
    expected = attrs[type(next(iter(attrs)))(discriminant)]
    if populated != {expected}:
        raise ValueError(
            f"Detail record '{populated.pop()}' does not match {discriminant_key}={expected.upper()}"
        )


def _check_reference_id(entity, value: str) -> str:
    current = entity.reference_id
    if current and value != current:
        raise ValueError(f"reference_id {current} cannot be changed")
    return value


class User(UserMixin, db.Model):
    __tablename__ = "user_account"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SAEnum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.VIEWER,
    )
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class Customer(db.Model):
    __tablename__ = "customer"
    __table_args__ = (
        Index("ix_customer_status_submitted", "status", "submitted_at"),
    )

    entity_type = EntityType.CUSTOMER

    id: Mapped[int] = mapped_column(primary_key=True)
    reference_id: Mapped[str] = mapped_column(db.String(20), unique=True, nullable=False)
    customer_type: Mapped[CustomerType] = mapped_column(
        SAEnum(CustomerType, name="customer_type"),
        nullable=False,
    )
    status: Mapped[EntityStatus] = mapped_column(
        SAEnum(EntityStatus, name="customer_status"),
        nullable=False,
        default=EntityStatus.DRAFT,
    )
    created_by_user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)
    approved_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    rejection_feedback: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    created_by = relationship("User", foreign_keys=[created_by_user_id])
    approved_by = relationship("User", foreign_keys=[approved_by_user_id])
    person = relationship("CustomerPerson", back_populates="customer", uselist=False, cascade="all, delete-orphan")
    business = relationship("CustomerBusiness", back_populates="customer", uselist=False, cascade="all, delete-orphan")
    government = relationship(
        "CustomerGovernment",
        back_populates="customer",
        uselist=False,
        cascade="all, delete-orphan",
    )
    mosque_hospital = relationship(
        "CustomerMosqueHospital",
        back_populates="customer",
        uselist=False,
        cascade="all, delete-orphan",
    )
    non_profit = relationship(
        "CustomerNonProfit",
        back_populates="customer",
        uselist=False,
        cascade="all, delete-orphan",
    )
    contractor = relationship(
        "CustomerContractor",
        back_populates="customer",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def detail(self):
        if self.customer_type is None:
            return None
        return getattr(self, CUSTOMER_DETAIL_ATTRS[self.customer_type])

    @property
    def display_name(self) -> str | None:
        detail = self.detail
        return detail.display_name if detail is not None else None

    @property
    def category_label(self) -> str:
        return self.customer_type.value

    @validates("reference_id")
    def validate_reference_id(self, _key, value):
        return _check_reference_id(self, value)

    @validates("customer_type", *CUSTOMER_DETAIL_ATTRS.values())
    def validate_detail_variant(self, key, value):
        if key == "customer_type" and value is not None:
            value = CustomerType(value)
        _check_detail_variant(self, key, value, "customer_type", CUSTOMER_DETAIL_ATTRS)
        return value


class CustomerPerson(db.Model):
    __tablename__ = "customer_person"

    customer_id: Mapped[int] = mapped_column(ForeignKey("customer.id"), primary_key=True)
    first_name: Mapped[str] = mapped_column(db.String(60), nullable=False)
    father_name: Mapped[str] = mapped_column(db.String(60), nullable=False)
    grandfather_name: Mapped[str] = mapped_column(db.String(60), nullable=False)
    fourth_name: Mapped[str] = mapped_column(db.String(60), nullable=False, default="")
    gender: Mapped[str] = mapped_column(db.String(10), nullable=False, default="")
    mobile_number: Mapped[str] = mapped_column(db.String(30), nullable=False, default="")
    email: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    id_type: Mapped[str] = mapped_column(db.String(30), nullable=False, default="")
    id_number: Mapped[str] = mapped_column(db.String(40), nullable=False, default="")

    customer = relationship("Customer", back_populates="person")

    @property
    def display_name(self) -> str:
        parts = [self.first_name, self.father_name, self.grandfather_name, self.fourth_name]
        return " ".join(part.strip() for part in parts if part and part.strip())


class CustomerBusiness(db.Model):
    __tablename__ = "customer_business"

    customer_id: Mapped[int] = mapped_column(ForeignKey("customer.id"), primary_key=True)
    business_name: Mapped[str] = mapped_column(db.String(200), nullable=False)
    registration_number: Mapped[str] = mapped_column(db.String(60), nullable=False, default="")
    license_number: Mapped[str] = mapped_column(db.String(60), nullable=False, default="")
    contact_name: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    mobile_number: Mapped[str] = mapped_column(db.String(30), nullable=False, default="")
    email: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")

    customer = relationship("Customer", back_populates="business")

    @property
    def display_name(self) -> str:
        return self.business_name


class CustomerGovernment(db.Model):
    __tablename__ = "customer_government"

    customer_id: Mapped[int] = mapped_column(ForeignKey("customer.id"), primary_key=True)
    full_department_name: Mapped[str] = mapped_column(db.String(200), nullable=False)
    department_address: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    contact_name: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    mobile_number: Mapped[str] = mapped_column(db.String(30), nullable=False, default="")
    email: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")

    customer = relationship("Customer", back_populates="government")

    @property
    def display_name(self) -> str:
        return self.full_department_name


class CustomerMosqueHospital(db.Model):
    __tablename__ = "customer_mosque_hospital"

    customer_id: Mapped[int] = mapped_column(ForeignKey("customer.id"), primary_key=True)
    full_name: Mapped[str] = mapped_column(db.String(200), nullable=False)
    registration_number: Mapped[str] = mapped_column(db.String(60), nullable=False, default="")
    address: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    contact_name: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    mobile_number: Mapped[str] = mapped_column(db.String(30), nullable=False, default="")

    customer = relationship("Customer", back_populates="mosque_hospital")

    @property
    def display_name(self) -> str:
        return self.full_name


class CustomerNonProfit(db.Model):
    __tablename__ = "customer_non_profit"

    customer_id: Mapped[int] = mapped_column(ForeignKey("customer.id"), primary_key=True)
    full_non_profit_name: Mapped[str] = mapped_column(db.String(200), nullable=False)
    registration_number: Mapped[str] = mapped_column(db.String(60), nullable=False, default="")
    license_number: Mapped[str] = mapped_column(db.String(60), nullable=False, default="")
    contact_name: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    mobile_number: Mapped[str] = mapped_column(db.String(30), nullable=False, default="")

    customer = relationship("Customer", back_populates="non_profit")

    @property
    def display_name(self) -> str:
        return self.full_non_profit_name


class CustomerContractor(db.Model):
    __tablename__ = "customer_contractor"

    customer_id: Mapped[int] = mapped_column(ForeignKey("customer.id"), primary_key=True)
    full_contractor_name: Mapped[str] = mapped_column(db.String(200), nullable=False)
    contact_name: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    mobile_number: Mapped[str] = mapped_column(db.String(30), nullable=False, default="")
    email: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")

    customer = relationship("Customer", back_populates="contractor")

    @property
    def display_name(self) -> str:
        return self.full_contractor_name


class Property(db.Model):
    __tablename__ = "property"
    __table_args__ = (
        CheckConstraint("size IS NULL OR size > 0", name="ck_property_size"),
        Index("ix_property_status_submitted", "status", "submitted_at"),
    )

    entity_type = EntityType.PROPERTY

    id: Mapped[int] = mapped_column(primary_key=True)
    reference_id: Mapped[str] = mapped_column(db.String(20), unique=True, nullable=False)
    parcel_number: Mapped[str] = mapped_column(db.String(40), unique=True, nullable=False)
    property_type: Mapped[PropertyType] = mapped_column(
        SAEnum(PropertyType, name="property_type"),
        nullable=False,
    )
    property_location: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    district: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    size: Mapped[Decimal | None] = mapped_column(db.Numeric(10, 2), nullable=True)
    status: Mapped[EntityStatus] = mapped_column(
        SAEnum(EntityStatus, name="property_status"),
        nullable=False,
        default=EntityStatus.DRAFT,
    )
    created_by_user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)
    approved_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    rejection_feedback: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    created_by = relationship("User", foreign_keys=[created_by_user_id])
    approved_by = relationship("User", foreign_keys=[approved_by_user_id])
    building = relationship("PropertyBuilding", back_populates="parent_property", uselist=False, cascade="all, delete-orphan")
    land = relationship("PropertyLand", back_populates="parent_property", uselist=False, cascade="all, delete-orphan")
    photos = relationship(
        "PropertyPhoto",
        back_populates="parent_property",
        cascade="all, delete-orphan",
        order_by="PropertyPhoto.id",
    )

    @property
    def detail(self):
        if self.property_type is None:
            return None
        return getattr(self, PROPERTY_DETAIL_ATTRS[self.property_type])

    @property
    def display_name(self) -> str | None:
        if self.detail is None:
            return None
        return self.property_location or self.parcel_number

    @property
    def category_label(self) -> str:
        return self.property_type.value

    @validates("reference_id")
    def validate_reference_id(self, _key, value):
        return _check_reference_id(self, value)

    @validates("property_type", *PROPERTY_DETAIL_ATTRS.values())
    def validate_detail_variant(self, key, value):
        if key == "property_type" and value is not None:
            value = PropertyType(value)
        _check_detail_variant(self, key, value, "property_type", PROPERTY_DETAIL_ATTRS)
        return value


class PropertyBuilding(db.Model):
    __tablename__ = "property_building"
    __table_args__ = (
        CheckConstraint("number_of_floors >= 1 AND number_of_floors <= 14", name="ck_building_floors"),
    )

    property_id: Mapped[int] = mapped_column(ForeignKey("property.id"), primary_key=True)
    number_of_floors: Mapped[int] = mapped_column(nullable=False, default=1)
    has_built_area: Mapped[bool] = mapped_column(nullable=False, default=True)
    door_number: Mapped[str] = mapped_column(db.String(20), nullable=False, default="")
    road_name: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")

    parent_property = relationship("Property", back_populates="building")


class PropertyLand(db.Model):
    __tablename__ = "property_land"
    __table_args__ = (
        CheckConstraint("parcel_area IS NULL OR parcel_area > 0", name="ck_land_parcel_area"),
    )

    property_id: Mapped[int] = mapped_column(ForeignKey("property.id"), primary_key=True)
    parcel_area: Mapped[Decimal | None] = mapped_column(db.Numeric(10, 2), nullable=True)
    has_property_wall: Mapped[bool] = mapped_column(nullable=False, default=False)

    parent_property = relationship("Property", back_populates="land")


class PropertyPhoto(db.Model):
    __tablename__ = "property_photo"

    id: Mapped[int] = mapped_column(primary_key=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("property.id"), nullable=False, index=True)
    file_path: Mapped[str] = mapped_column(db.String(255), nullable=False)
    file_name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(nullable=False, default=0)
    uploaded_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    parent_property = relationship("Property", back_populates="photos")


class ActivityLog(db.Model):
    __tablename__ = "activity_log"
    __table_args__ = (
        Index("ix_activity_log_entity_timestamp", "entity_type", "entity_id", "timestamp"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    entity_type: Mapped[EntityType] = mapped_column(SAEnum(EntityType, name="activity_entity_type"), nullable=False)
    # No foreign key: the trail outlives deleted entities.
    entity_id: Mapped[int] = mapped_column(nullable=False)
    action: Mapped[ActivityAction] = mapped_column(SAEnum(ActivityAction, name="activity_action"), nullable=False)
    performed_by_user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)
    details: Mapped[dict] = mapped_column("metadata", db.JSON, nullable=False, default=dict)
    timestamp: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    performed_by = relationship("User")


class Notification(db.Model):
    __tablename__ = "notification"
    __table_args__ = (
        Index("ix_notification_user_read_created", "user_id", "is_read", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)
    title: Mapped[str] = mapped_column(db.String(200), nullable=False)
    message: Mapped[str] = mapped_column(db.String(1000), nullable=False)
    entity_type: Mapped[EntityType | None] = mapped_column(
        SAEnum(EntityType, name="notification_entity_type"),
        nullable=True,
    )
    entity_id: Mapped[int | None] = mapped_column(nullable=True)
    is_read: Mapped[bool] = mapped_column(nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(nullable=True)

    user = relationship("User")


@event.listens_for(ActivityLog, "before_update")
def activity_log_before_update(_mapper, _connection, target: ActivityLog) -> None:
    raise ValueError(f"Activity log entry {target.id} is append-only")


@event.listens_for(ActivityLog, "before_delete")
def activity_log_before_delete(_mapper, _connection, target: ActivityLog) -> None:
    raise ValueError(f"Activity log entry {target.id} cannot be deleted")


def seed_demo_data(session) -> None:
    now = utcnow()
    year = now.year

    admin = User(
        email="admin@lms.local",
        full_name="Amina Administrator",
        password_hash=generate_password_hash("admin123"),
        role=UserRole.ADMINISTRATOR,
    )
    approver = User(
        email="approver@lms.local",
        full_name="Abdi Approver",
        password_hash=generate_password_hash("approver123"),
        role=UserRole.APPROVER,
    )
    former_approver = User(
        email="former.approver@lms.local",
        full_name="Faisal Former",
        password_hash=generate_password_hash("former123"),
        role=UserRole.APPROVER,
        is_active=False,
    )
    inputter = User(
        email="inputter@lms.local",
        full_name="Ifrah Inputter",
        password_hash=generate_password_hash("inputter123"),
        role=UserRole.INPUTTER,
    )
    inputter_2 = User(
        email="inputter2@lms.local",
        full_name="Idris Inputter",
        password_hash=generate_password_hash("inputter123"),
        role=UserRole.INPUTTER,
    )
    viewer = User(
        email="viewer@lms.local",
        full_name="Vera Viewer",
        password_hash=generate_password_hash("viewer123"),
        role=UserRole.VIEWER,
    )
    session.add_all([admin, approver, former_approver, inputter, inputter_2, viewer])
    session.flush()

    customer_draft = Customer(
        reference_id=f"CUS-{year}-0001",
        customer_type=CustomerType.PERSON,
        created_by_user_id=inputter.id,
        person=CustomerPerson(
            first_name="Hodan",
            father_name="Ahmed",
            grandfather_name="Warsame",
            gender="F",
            mobile_number="+252634000001",
            id_type="NATIONAL_ID",
            id_number="NID-100001",
        ),
    )
    customer_submitted = Customer(
        reference_id=f"CUS-{year}-0002",
        customer_type=CustomerType.BUSINESS,
        status=EntityStatus.SUBMITTED,
        created_by_user_id=inputter.id,
        submitted_at=now - timedelta(days=3),
        business=CustomerBusiness(
            business_name="Berbera Trading Co",
            registration_number="BR-2231",
            license_number="LIC-8812",
            contact_name="Omar Yusuf",
        ),
    )
    property_draft = Property(
        reference_id=f"PRP-{year}-0001",
        parcel_number="PCL-000101",
        property_type=PropertyType.BUILDING,
        property_location="Jigjiga Yar, Road 7",
        district="Hargeisa Central",
        size=Decimal("240.00"),
        created_by_user_id=inputter.id,
        building=PropertyBuilding(number_of_floors=2, door_number="14", road_name="Road 7"),
    )
    property_submitted = Property(
        reference_id=f"PRP-{year}-0002",
        parcel_number="PCL-000102",
        property_type=PropertyType.LAND,
        district="Ga'an Libah",
        size=Decimal("600.00"),
        status=EntityStatus.SUBMITTED,
        created_by_user_id=inputter_2.id,
        submitted_at=now - timedelta(days=1),
        land=PropertyLand(parcel_area=Decimal("600.00"), has_property_wall=True),
    )
    property_approved = Property(
        reference_id=f"PRP-{year}-0003",
        parcel_number="PCL-000103",
        property_type=PropertyType.BUILDING,
        property_location="Shacab, Market Street",
        district="Mohamoud Haybe",
        size=Decimal("180.00"),
        status=EntityStatus.APPROVED,
        created_by_user_id=inputter.id,
        approved_by_user_id=approver.id,
        submitted_at=now - timedelta(days=10),
        approved_at=now - timedelta(days=8),
        building=PropertyBuilding(number_of_floors=1, door_number="3", road_name="Market Street"),
    )
    session.add_all([customer_draft, customer_submitted, property_draft, property_submitted, property_approved])
    session.flush()

    for entity in [customer_draft, customer_submitted, property_draft, property_submitted, property_approved]:
        session.add(
            ActivityLog(
                entity_type=entity.entity_type,
                entity_id=entity.id,
                action=ActivityAction.CREATED,
                performed_by_user_id=entity.created_by_user_id,
                details={"reference_id": entity.reference_id},
            )
        )
    for entity in [customer_submitted, property_submitted, property_approved]:
        session.add(
            ActivityLog(
                entity_type=entity.entity_type,
                entity_id=entity.id,
                action=ActivityAction.SUBMITTED,
                performed_by_user_id=entity.created_by_user_id,
                details={"reference_id": entity.reference_id},
                timestamp=entity.submitted_at,
            )
        )
    session.add(
        ActivityLog(
            entity_type=EntityType.PROPERTY,
            entity_id=property_approved.id,
            action=ActivityAction.APPROVED,
            performed_by_user_id=approver.id,
            details={"reference_id": property_approved.reference_id},
            timestamp=property_approved.approved_at,
        )
    )
    session.commit()
