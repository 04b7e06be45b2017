"""land administration workflow schema

Revision ID: 4b1e7c2d9a30
Revises:
Create Date: 2026-10-18 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "4b1e7c2d9a30"
down_revision = None
branch_labels = None
depends_on = None

ENTITY_STATUSES = ("DRAFT", "SUBMITTED", "APPROVED", "REJECTED", "ARCHIVED")
ENTITY_TYPES = ("CUSTOMER", "PROPERTY")


def _workflow_columns() -> list[sa.Column]:
    return [
        sa.Column("created_by_user_id", sa.Integer(), nullable=False),
        sa.Column("approved_by_user_id", sa.Integer(), nullable=True),
        sa.Column("rejection_feedback", sa.Text(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["approved_by_user_id"], ["user_account.id"]),
    ]


def _customer_variant(table_name: str, *columns: sa.Column) -> None:
    op.create_table(
        table_name,
        sa.Column("customer_id", sa.Integer(), nullable=False),
        *columns,
        sa.ForeignKeyConstraint(["customer_id"], ["customer.id"]),
        sa.PrimaryKeyConstraint("customer_id"),
    )


def _text(name: str, length: int, required: bool = False) -> sa.Column:
    if required:
        return sa.Column(name, sa.String(length=length), nullable=False)
    return sa.Column(name, sa.String(length=length), nullable=False, server_default="")


def upgrade():
    op.create_table(
        "user_account",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column(
            "role",
            sa.Enum("INPUTTER", "APPROVER", "ADMINISTRATOR", "VIEWER", name="user_role"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "customer",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("reference_id", sa.String(length=20), nullable=False),
        sa.Column(
            "customer_type",
            sa.Enum(
                "PERSON",
                "BUSINESS",
                "GOVERNMENT",
                "MOSQUE_HOSPITAL",
                "NON_PROFIT",
                "CONTRACTOR",
                name="customer_type",
            ),
            nullable=False,
        ),
        sa.Column("status", sa.Enum(*ENTITY_STATUSES, name="customer_status"), nullable=False),
        *_workflow_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("reference_id"),
    )
    with op.batch_alter_table("customer", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_customer_created_by_user_id"), ["created_by_user_id"], unique=False)
    op.create_index("ix_customer_status_submitted", "customer", ["status", "submitted_at"], unique=False)

    _customer_variant(
        "customer_person",
        _text("first_name", 60, required=True),
        _text("father_name", 60, required=True),
        _text("grandfather_name", 60, required=True),
        _text("fourth_name", 60),
        _text("gender", 10),
        _text("mobile_number", 30),
        _text("email", 255),
        _text("id_type", 30),
        _text("id_number", 40),
    )
    _customer_variant(
        "customer_business",
        _text("business_name", 200, required=True),
        _text("registration_number", 60),
        _text("license_number", 60),
        _text("contact_name", 120),
        _text("mobile_number", 30),
        _text("email", 255),
    )
    _customer_variant(
        "customer_government",
        _text("full_department_name", 200, required=True),
        _text("department_address", 255),
        _text("contact_name", 120),
        _text("mobile_number", 30),
        _text("email", 255),
    )
    _customer_variant(
        "customer_mosque_hospital",
        _text("full_name", 200, required=True),
        _text("registration_number", 60),
        _text("address", 255),
        _text("contact_name", 120),
        _text("mobile_number", 30),
    )
    _customer_variant(
        "customer_non_profit",
        _text("full_non_profit_name", 200, required=True),
        _text("registration_number", 60),
        _text("license_number", 60),
        _text("contact_name", 120),
        _text("mobile_number", 30),
    )
    _customer_variant(
        "customer_contractor",
        _text("full_contractor_name", 200, required=True),
        _text("contact_name", 120),
        _text("mobile_number", 30),
        _text("email", 255),
    )

    op.create_table(
        "property",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("reference_id", sa.String(length=20), nullable=False),
        sa.Column("parcel_number", sa.String(length=40), nullable=False),
        sa.Column("property_type", sa.Enum("BUILDING", "LAND", name="property_type"), nullable=False),
        sa.Column("property_location", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("district", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("size", sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column("status", sa.Enum(*ENTITY_STATUSES, name="property_status"), nullable=False),
        *_workflow_columns(),
        sa.CheckConstraint("size IS NULL OR size > 0", name="ck_property_size"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("reference_id"),
        sa.UniqueConstraint("parcel_number"),
    )
    with op.batch_alter_table("property", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_property_created_by_user_id"), ["created_by_user_id"], unique=False)
    op.create_index("ix_property_status_submitted", "property", ["status", "submitted_at"], unique=False)

    op.create_table(
        "property_building",
        sa.Column("property_id", sa.Integer(), nullable=False),
        sa.Column("number_of_floors", sa.Integer(), nullable=False),
        sa.Column("has_built_area", sa.Boolean(), nullable=False, server_default=sa.true()),
        _text("door_number", 20),
        _text("road_name", 120),
        sa.CheckConstraint("number_of_floors >= 1 AND number_of_floors <= 14", name="ck_building_floors"),
        sa.ForeignKeyConstraint(["property_id"], ["property.id"]),
        sa.PrimaryKeyConstraint("property_id"),
    )
    op.create_table(
        "property_land",
        sa.Column("property_id", sa.Integer(), nullable=False),
        sa.Column("parcel_area", sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column("has_property_wall", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.CheckConstraint("parcel_area IS NULL OR parcel_area > 0", name="ck_land_parcel_area"),
        sa.ForeignKeyConstraint(["property_id"], ["property.id"]),
        sa.PrimaryKeyConstraint("property_id"),
    )
    op.create_table(
        "property_photo",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("property_id", sa.Integer(), nullable=False),
        sa.Column("file_path", sa.String(length=255), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("uploaded_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["property_id"], ["property.id"]),
        sa.ForeignKeyConstraint(["uploaded_by_user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("property_photo", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_property_photo_property_id"), ["property_id"], unique=False)

    op.create_table(
        "activity_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entity_type", sa.Enum(*ENTITY_TYPES, name="activity_entity_type"), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column(
            "action",
            sa.Enum(
                "CREATED",
                "SUBMITTED",
                "APPROVED",
                "REJECTED",
                "ARCHIVED",
                "UNARCHIVED",
                "DELETED",
                name="activity_action",
            ),
            nullable=False,
        ),
        sa.Column("performed_by_user_id", sa.Integer(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["performed_by_user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_activity_log_entity_timestamp",
        "activity_log",
        ["entity_type", "entity_id", "timestamp"],
        unique=False,
    )

    op.create_table(
        "notification",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.String(length=1000), nullable=False),
        sa.Column("entity_type", sa.Enum(*ENTITY_TYPES, name="notification_entity_type"), nullable=True),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_notification_user_read_created",
        "notification",
        ["user_id", "is_read", "created_at"],
        unique=False,
    )


def downgrade():
    op.drop_index("ix_notification_user_read_created", table_name="notification")
    op.drop_table("notification")

    op.drop_index("ix_activity_log_entity_timestamp", table_name="activity_log")
    op.drop_table("activity_log")

    with op.batch_alter_table("property_photo", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_property_photo_property_id"))
    op.drop_table("property_photo")
    op.drop_table("property_land")
    op.drop_table("property_building")

    op.drop_index("ix_property_status_submitted", table_name="property")
    with op.batch_alter_table("property", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_property_created_by_user_id"))
    op.drop_table("property")

    for table_name in (
        "customer_contractor",
        "customer_non_profit",
        "customer_mosque_hospital",
        "customer_government",
        "customer_business",
        "customer_person",
    ):
        op.drop_table(table_name)

    op.drop_index("ix_customer_status_submitted", table_name="customer")
    with op.batch_alter_table("customer", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_customer_created_by_user_id"))
    op.drop_table("customer")
    op.drop_table("user_account")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in (
            "notification_entity_type",
            "activity_action",
            "activity_entity_type",
            "property_status",
            "property_type",
            "customer_status",
            "customer_type",
            "user_role",
        ):
            op.execute(sa.text(f"DROP TYPE IF EXISTS {enum_name}"))
