"""
Back-office: entity models

Customers and products are owned by the catalogue; the order is owned by
the fulfillment workflow. All three are stored as JSON documents addressed
by (partition_key, row_key) and carry a ``version`` token for optimistic
concurrency.

An order is a receipt, not a live join: the customer and product names,
the unit price and the currency are copied at write time and never
refreshed when the catalogue changes.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

UNNAMED_CUSTOMER = "(Unnamed customer)"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_row_key() -> str:
    return uuid4().hex


def _clean(value: str | None) -> str | None:
    """Trim text input; blank becomes None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


class EntityKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    partition_key: str
    row_key: str


# ── Customer ─────────────────────────────────────


class CustomerInput(BaseModel):
    first_name: str = Field(min_length=1, max_length=50)
    surname: str = Field(min_length=1, max_length=50)
    date_of_birth: datetime | None = None
    phone_number: str | None = None
    email: str | None = None
    company_name: str | None = Field(default=None, max_length=100)
    address_line1: str | None = Field(default=None, max_length=120)
    address_line2: str | None = Field(default=None, max_length=120)
    city: str | None = Field(default=None, max_length=60)
    state: str | None = Field(default=None, max_length=60)
    zip_code: str | None = Field(default=None, max_length=20)
    country: str | None = Field(default=None, max_length=60)


class Customer(BaseModel):
    partition_key: str
    row_key: str
    version: int = 0

    first_name: str = ""
    surname: str = ""
    date_of_birth: datetime | None = None
    phone_number: str | None = None
    email: str | None = None
    company_name: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None
    created_at_utc: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> EntityKey:
        return EntityKey(partition_key=self.partition_key, row_key=self.row_key)

    @property
    def display_name(self) -> str:
        name = " ".join(p.strip() for p in (self.first_name, self.surname) if p and p.strip())
        return name or self.company_name or self.email or UNNAMED_CUSTOMER

    @staticmethod
    def compute_partition_key(surname: str | None) -> str:
        """Surname initial, upper-cased; ``_`` for blanks and non A-Z initials."""
        surname = (surname or "").strip()
        if not surname:
            return "_"
        initial = surname[0].upper()
        return initial if "A" <= initial <= "Z" else "_"

    @staticmethod
    def _input_fields(data: CustomerInput) -> dict:
        dob = data.date_of_birth
        if dob is not None:
            # naive timestamps from forms are taken as UTC
            dob = dob.replace(tzinfo=timezone.utc) if dob.tzinfo is None else dob.astimezone(timezone.utc)
        return {
            "first_name": data.first_name.strip(),
            "surname": data.surname.strip(),
            "date_of_birth": dob,
            "phone_number": _clean(data.phone_number),
            "email": _clean(data.email),
            "company_name": _clean(data.company_name),
            "address_line1": _clean(data.address_line1),
            "address_line2": _clean(data.address_line2),
            "city": _clean(data.city),
            "state": _clean(data.state),
            "zip_code": _clean(data.zip_code),
            "country": _clean(data.country),
        }

    @classmethod
    def new_from(cls, data: CustomerInput) -> "Customer":
        return cls(
            partition_key=cls.compute_partition_key(data.surname),
            row_key=new_row_key(),
            **cls._input_fields(data),
        )

    def updated_from(self, data: CustomerInput) -> "Customer":
        """Full replace of the mutable fields. The partition stays put."""
        return self.model_copy(update=self._input_fields(data))


# ── Product ──────────────────────────────────────


class ProductInput(BaseModel):
    name: str | None = Field(default=None, max_length=120)
    category: str | None = Field(default=None, max_length=60)
    description: str | None = Field(default=None, max_length=4000)
    price: Decimal | None = Field(default=None, ge=0)
    currency_code: str | None = Field(default=None, max_length=8)
    stock_quantity: int | None = Field(default=None, ge=0)
    is_available: bool | None = None


def to_minor_units(price: Decimal | None) -> int | None:
    """Major-unit amount to integer minor units, rounding half away from zero."""
    if price is None:
        return None
    return int((price * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(minor: int | None) -> Decimal | None:
    if minor is None:
        return None
    return Decimal(minor) / 100


class Product(BaseModel):
    partition_key: str
    row_key: str
    version: int = 0

    name: str | None = None
    category: str | None = None
    description: str | None = None
    price_minor_units: int | None = None
    currency_code: str | None = None
    stock_quantity: int | None = Field(default=None, ge=0)
    is_available: bool | None = None
    created_at_utc: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> EntityKey:
        return EntityKey(partition_key=self.partition_key, row_key=self.row_key)

    @property
    def available_stock(self) -> int:
        return self.stock_quantity or 0

    def currency_or(self, default: str) -> str:
        if self.currency_code and self.currency_code.strip():
            return self.currency_code.strip()
        return default

    @staticmethod
    def compute_partition_key(category: str | None) -> str:
        category = (category or "").strip()
        return category.upper() if category else "_"

    @staticmethod
    def _input_fields(data: ProductInput) -> dict:
        return {
            "name": _clean(data.name),
            "category": _clean(data.category),
            "description": _clean(data.description),
            "price_minor_units": to_minor_units(data.price),
            "currency_code": _clean(data.currency_code),
            "stock_quantity": data.stock_quantity,
            "is_available": data.is_available,
        }

    @classmethod
    def new_from(cls, data: ProductInput) -> "Product":
        return cls(
            partition_key=cls.compute_partition_key(data.category),
            row_key=new_row_key(),
            **cls._input_fields(data),
        )

    def updated_from(self, data: ProductInput) -> "Product":
        """Full replace of the mutable fields; the category decides the partition."""
        fields = self._input_fields(data)
        fields["partition_key"] = self.compute_partition_key(fields["category"])
        return self.model_copy(update=fields)


# ── Order ────────────────────────────────────────


class OrderStatus(str, Enum):
    PLACED = "Placed"
    CANCELLED = "Cancelled"


class OrderInput(BaseModel):
    """Placement and edit request. Quantity is range-checked by the workflow."""

    customer_key: EntityKey
    product_key: EntityKey
    quantity: int
    expected_version: int | None = None


_last_order_number = 0


def next_order_number(now: datetime) -> int:
    """
    Millisecond epoch of ``now``, bumped past the previous number issued by
    this process. Two processes placing in the same millisecond can still
    collide.
    """
    global _last_order_number
    _last_order_number = max(int(now.timestamp() * 1000), _last_order_number + 1)
    return _last_order_number


def order_partition_key(now: datetime) -> str:
    return f"ORD-{now:%Y-%m}"


class Order(BaseModel):
    partition_key: str
    row_key: str
    version: int = 0

    order_number: int
    status: OrderStatus = OrderStatus.PLACED

    customer_key: EntityKey
    customer_name: str
    product_key: EntityKey
    product_name: str | None = None

    quantity: int = Field(ge=1)
    unit_price_minor_units: int = Field(gt=0)
    total_minor_units: int
    currency_code: str
    created_at_utc: datetime

    @model_validator(mode="after")
    def _total_matches_lines(self) -> "Order":
        if self.total_minor_units != self.unit_price_minor_units * self.quantity:
            raise ValueError("total_minor_units must equal unit_price_minor_units * quantity")
        return self

    @property
    def key(self) -> EntityKey:
        return EntityKey(partition_key=self.partition_key, row_key=self.row_key)

    @staticmethod
    def _line_fields(customer: Customer, product: Product, quantity: int, default_currency: str) -> dict:
        unit = product.price_minor_units or 0
        return {
            "customer_key": customer.key,
            "customer_name": customer.display_name,
            "product_key": product.key,
            "product_name": product.name,
            "quantity": quantity,
            "unit_price_minor_units": unit,
            "total_minor_units": unit * quantity,
            "currency_code": product.currency_or(default_currency),
        }

    @classmethod
    def place(
        cls,
        customer: Customer,
        product: Product,
        quantity: int,
        default_currency: str,
        now: datetime | None = None,
    ) -> "Order":
        now = now or utcnow()
        return cls(
            partition_key=order_partition_key(now),
            row_key=new_row_key(),
            order_number=next_order_number(now),
            status=OrderStatus.PLACED,
            created_at_utc=now,
            **cls._line_fields(customer, product, quantity, default_currency),
        )

    def revised(self, customer: Customer, product: Product, quantity: int, default_currency: str) -> "Order":
        """
        Copy of this order with every mutable business field replaced.
        Identity, status, order number and creation time are kept.
        """
        return Order.model_validate(
            {
                **self.model_dump(),
                **self._line_fields(customer, product, quantity, default_currency),
            }
        )
