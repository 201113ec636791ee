"""Database models for the barbershop backend."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from .extensions import db

APPOINTMENT_STATUSES = ("scheduled", "completed", "cancelled", "no_show")
PAYMENT_METHODS = ("money", "pix", "credit_card", "debit_card")
EXPENSE_CATEGORIES = (
    "rent",
    "electricity",
    "water",
    "internet",
    "cleaning_supplies",
    "work_materials",
    "marketing",
    "equipment",
    "maintenance",
    "other",
)


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def cents_to_dollars(cents: int | None) -> float | None:
    return cents / 100.0 if cents is not None else None


def rate_to_float(rate: Decimal | float | None) -> float | None:
    return float(rate) if rate is not None else None


class Client(db.Model):
    __tablename__ = "clients"

    client_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    phone = db.Column(db.String(30))
    email = db.Column(db.String(255), unique=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.client_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Barber(db.Model):
    """Barber with the commission rates applied to new bookings and sales."""

    __tablename__ = "barbers"

    barber_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    phone = db.Column(db.String(30))
    email = db.Column(db.String(255), unique=True)
    commission_rate_service = db.Column(db.Numeric(5, 4), nullable=False, default=Decimal("0"))
    commission_rate_chemical_service = db.Column(db.Numeric(5, 4), nullable=False, default=Decimal("0"))
    commission_rate_product = db.Column(db.Numeric(5, 4), nullable=False, default=Decimal("0"))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def rate_for_service(self, service: "Service") -> Decimal:
        if service.is_chemical:
            return Decimal(self.commission_rate_chemical_service)
        return Decimal(self.commission_rate_service)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.barber_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "commission_rate_service": rate_to_float(self.commission_rate_service),
            "commission_rate_chemical_service": rate_to_float(self.commission_rate_chemical_service),
            "commission_rate_product": rate_to_float(self.commission_rate_product),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Service(db.Model):
    __tablename__ = "services"

    service_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    price_cents = db.Column(db.Integer, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    is_chemical = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.service_id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "price_dollars": cents_to_dollars(self.price_cents),
            "duration_minutes": self.duration_minutes,
            "is_chemical": bool(self.is_chemical),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Product(db.Model):
    __tablename__ = "products"

    product_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    price_cents = db.Column(db.Integer, nullable=False)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.product_id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "price_dollars": cents_to_dollars(self.price_cents),
            "stock_quantity": self.stock_quantity,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Appointment(db.Model):
    """A booking. ``appointment_datetime`` is local wall-clock time."""

    __tablename__ = "appointments"

    appointment_id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.client_id"), nullable=False)
    barber_id = db.Column(db.Integer, db.ForeignKey("barbers.barber_id"), nullable=False)
    appointment_datetime = db.Column(db.DateTime, nullable=False, index=True)
    duration_minutes = db.Column(db.Integer, nullable=False, default=30)
    status = db.Column(
        db.Enum(
            *APPOINTMENT_STATUSES,
            name="appointment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="scheduled",
        server_default="scheduled",
    )
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)
    final_amount_cents = db.Column(db.Integer, nullable=True)
    payment_method = db.Column(db.String(20), nullable=True)
    note = db.Column(db.Text)
    recurrence_group_id = db.Column(db.String(36), nullable=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    client = db.relationship("Client")
    barber = db.relationship("Barber")
    services = db.relationship(
        "AppointmentService",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentService.line_id",
    )

    @property
    def ends_at(self) -> datetime:
        return self.appointment_datetime + timedelta(minutes=self.duration_minutes)

    @property
    def service_ids(self) -> tuple[int, ...]:
        return tuple(sorted(line.service_id for line in self.services))

    @property
    def revenue_cents(self) -> int:
        if self.final_amount_cents is not None:
            return self.final_amount_cents
        return self.total_price_cents

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.appointment_id,
            "client_id": self.client_id,
            "barber_id": self.barber_id,
            "client": {"id": self.client.client_id, "name": self.client.name} if self.client else None,
            "barber": {"id": self.barber.barber_id, "name": self.barber.name} if self.barber else None,
            "appointment_datetime": self.appointment_datetime.isoformat() if self.appointment_datetime else None,
            "ends_at": self.ends_at.isoformat() if self.appointment_datetime else None,
            "duration_minutes": self.duration_minutes,
            "status": self.status,
            "total_price_cents": self.total_price_cents,
            "total_price_dollars": cents_to_dollars(self.total_price_cents),
            "final_amount_cents": self.final_amount_cents,
            "final_amount_dollars": cents_to_dollars(self.final_amount_cents),
            "payment_method": self.payment_method,
            "note": self.note,
            "recurrence_group_id": self.recurrence_group_id,
            "services": [line.to_dict() for line in self.services],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Appointment {self.appointment_id}: {self.appointment_datetime}>"


class AppointmentService(db.Model):
    """Service booked on an appointment with the price and rate captured at booking time."""

    __tablename__ = "appointment_services"

    line_id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey("appointments.appointment_id"), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=False)
    price_at_booking_cents = db.Column(db.Integer, nullable=False)
    commission_rate_applied = db.Column(db.Numeric(5, 4), nullable=False)
    is_chemical_at_booking = db.Column(db.Boolean, nullable=False, default=False)

    appointment = db.relationship("Appointment", back_populates="services")
    service = db.relationship("Service")

    def to_dict(self) -> dict[str, object]:
        return {
            "service_id": self.service_id,
            "name": self.service.name if self.service else None,
            "is_chemical": bool(self.is_chemical_at_booking),
            "duration_minutes": self.service.duration_minutes if self.service else None,
            "price_at_booking_cents": self.price_at_booking_cents,
            "commission_rate_applied": rate_to_float(self.commission_rate_applied),
        }


class Sale(db.Model):
    """Point-of-sale transaction."""

    __tablename__ = "sales"

    sale_id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.client_id"), nullable=True)
    barber_id = db.Column(db.Integer, db.ForeignKey("barbers.barber_id"), nullable=False)
    sale_datetime = db.Column(db.DateTime, nullable=False, index=True)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(20), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    client = db.relationship("Client")
    barber = db.relationship("Barber")
    items = db.relationship(
        "SaleProduct",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleProduct.line_id",
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.sale_id,
            "client_id": self.client_id,
            "barber_id": self.barber_id,
            "client": {"id": self.client.client_id, "name": self.client.name} if self.client else None,
            "barber": {"id": self.barber.barber_id, "name": self.barber.name} if self.barber else None,
            "sale_datetime": self.sale_datetime.isoformat() if self.sale_datetime else None,
            "total_amount_cents": self.total_amount_cents,
            "total_amount_dollars": cents_to_dollars(self.total_amount_cents),
            "payment_method": self.payment_method,
            "products": [item.to_dict() for item in self.items],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class SaleProduct(db.Model):
    __tablename__ = "sale_products"

    line_id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.sale_id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.product_id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price_at_sale_cents = db.Column(db.Integer, nullable=False)
    commission_rate_applied = db.Column(db.Numeric(5, 4), nullable=False)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    @property
    def subtotal_cents(self) -> int:
        return self.price_at_sale_cents * self.quantity

    def to_dict(self) -> dict[str, object]:
        return {
            "product_id": self.product_id,
            "name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "price_at_sale_cents": self.price_at_sale_cents,
            "price_at_sale_dollars": cents_to_dollars(self.price_at_sale_cents),
            "subtotal_cents": self.subtotal_cents,
            "commission_rate_applied": rate_to_float(self.commission_rate_applied),
        }


class ScheduleBlock(db.Model):
    """Interval unavailable for booking, for one barber or (barber_id NULL) the whole shop."""

    __tablename__ = "schedule_blocks"

    block_id = db.Column(db.Integer, primary_key=True)
    barber_id = db.Column(db.Integer, db.ForeignKey("barbers.barber_id"), nullable=True)
    block_date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)
    reason = db.Column(db.String(255))
    parent_block_id = db.Column(db.Integer, db.ForeignKey("schedule_blocks.block_id"), nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    barber = db.relationship("Barber")

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.block_date, self.start_time)

    @property
    def ends_at(self) -> datetime:
        return datetime.combine(self.block_date, self.end_time)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.block_id,
            "barber_id": self.barber_id,
            "block_date": self.block_date.isoformat() if self.block_date else None,
            "start_time": self.start_time.strftime("%H:%M") if self.start_time else None,
            "end_time": self.end_time.strftime("%H:%M") if self.end_time else None,
            "reason": self.reason,
            "parent_block_id": self.parent_block_id,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Expense(db.Model):
    """Shop expense such as rent, utilities or supplies."""

    __tablename__ = "expenses"

    expense_id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(50), nullable=False, index=True)
    expense_date = db.Column(db.Date, nullable=False, index=True)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.expense_id,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "amount_dollars": cents_to_dollars(self.amount_cents),
            "category": self.category,
            "expense_date": self.expense_date.isoformat() if self.expense_date else None,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
