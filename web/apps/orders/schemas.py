"""Pydantic schemas for the orders app.

``OrderRecordIn`` validates the loosely-typed order records returned by the
upstream API and maps them onto the domain dataclasses. The remaining
schemas validate admin console requests and shape responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from .domain import CustomerInfo, Order, OrderLine, OrderStatus, PaymentStatus

# Statuses the upstream API may still return from older workflows.
LEGACY_STATUS_MAP = {
    "preparing": OrderStatus.CONFIRMED,
    "returned": OrderStatus.CANCELLED,
}


def normalize_status(raw: Any) -> OrderStatus:
    """Map an upstream status token onto ``OrderStatus``.

    Legacy tokens are folded into their closest status; anything unknown is
    treated as ``pending``.
    """
    token = str(raw or "").strip().lower()
    if token in LEGACY_STATUS_MAP:
        return LEGACY_STATUS_MAP[token]
    try:
        return OrderStatus(token)
    except ValueError:
        return OrderStatus.PENDING


# ---- Upstream records ----
class OrderLineIn(BaseModel):
    """One upstream order line.

    ``productId`` is either a plain id or a populated product document
    (``{"_id", "name", "category", ...}``).
    """

    product: Any = Field(validation_alias=AliasChoices("productId", "product_id"))
    name: Optional[str] = Field(default=None, validation_alias=AliasChoices("productName", "name"))
    price: Decimal = Field(default=Decimal("0"), ge=0)
    quantity: int = Field(default=1, ge=1)
    image: Optional[str] = None

    @field_validator("product")
    @classmethod
    def validate_product(cls, v: Any) -> Any:
        if isinstance(v, dict):
            if not v.get("_id"):
                raise ValueError("Populated product without _id")
            return v
        if v is None or str(v) == "":
            raise ValueError("Missing productId")
        return str(v)

    def to_domain(self) -> OrderLine:
        product = self.product
        if isinstance(product, dict):
            product_id = str(product["_id"])
            name = self.name or product.get("name") or "Unknown Product"
            category = product.get("category") or "Unknown"
        else:
            product_id, name, category = product, self.name or "Unknown Product", "Unknown"
        return OrderLine(
            product_id=product_id,
            name=name,
            unit_price=self.price,
            quantity=self.quantity,
            image=self.image or None,
            category=str(category),
        )


class GuestInfoIn(BaseModel):
    name: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""


class OrderRecordIn(BaseModel):
    """An upstream order record.

    Accepts the field spellings used by the upstream API (``_id``,
    ``createdAt``/``orderDate``, ``deliveryFee``/``shippingFee``,
    ``voucherDiscount``/``discount``) and guest orders whose contact block
    lives under ``guestInfo``. ``subtotal`` defaults to the sum of the lines
    and ``totalAmount`` to ``subtotal + shippingFee - discount``; a supplied
    total that disagrees is rejected.
    """

    id: str = Field(validation_alias=AliasChoices("_id", "id"), min_length=1)
    customer_name: str = Field(default="", validation_alias="customerName")
    customer_email: str = Field(default="", validation_alias="customerEmail")
    customer_phone: str = Field(default="", validation_alias="customerPhone")
    customer_address: str = Field(default="", validation_alias="customerAddress")
    guest_info: Optional[GuestInfoIn] = Field(default=None, validation_alias="guestInfo")
    items: List[OrderLineIn] = Field(default_factory=list)
    subtotal: Optional[Decimal] = Field(default=None, ge=0)
    shipping_fee: Decimal = Field(
        default=Decimal("0"), ge=0, validation_alias=AliasChoices("deliveryFee", "shippingFee")
    )
    discount: Decimal = Field(
        default=Decimal("0"), ge=0, validation_alias=AliasChoices("voucherDiscount", "discount")
    )
    total_amount: Optional[Decimal] = Field(default=None, validation_alias="totalAmount")
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING, validation_alias="paymentStatus")
    payment_method: str = Field(default="cod", validation_alias="paymentMethod")
    notes: str = ""
    tracking_code: Optional[str] = Field(default=None, validation_alias="trackingCode")
    placed_at: datetime = Field(validation_alias=AliasChoices("createdAt", "orderDate"))
    updated_at: Optional[datetime] = Field(default=None, validation_alias="updatedAt")

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v: Any) -> OrderStatus:
        return normalize_status(v)

    @field_validator("payment_method", mode="before")
    @classmethod
    def validate_payment_method(cls, v: Any) -> str:
        return str(v or "cod").strip().lower()

    @field_validator("notes", mode="before")
    @classmethod
    def validate_notes(cls, v: Any) -> str:
        return v or ""

    @model_validator(mode="after")
    def check_totals(self) -> "OrderRecordIn":
        if self.subtotal is None:
            self.subtotal = sum((i.price * i.quantity for i in self.items), Decimal("0"))
        expected = self.subtotal + self.shipping_fee - self.discount
        if self.total_amount is None:
            self.total_amount = expected
        elif self.total_amount != expected:
            raise ValueError(
                f"totalAmount {self.total_amount} != subtotal + shippingFee - discount ({expected})"
            )
        return self

    def to_domain(self) -> Order:
        guest = self.guest_info or GuestInfoIn()
        customer = CustomerInfo(
            name=self.customer_name or guest.name,
            phone=self.customer_phone or guest.phone,
            email=self.customer_email or guest.email,
            address=self.customer_address or guest.address,
        )
        return Order(
            id=self.id,
            customer=customer,
            lines=tuple(i.to_domain() for i in self.items),
            subtotal=self.subtotal,
            shipping_fee=self.shipping_fee,
            discount=self.discount,
            total_amount=self.total_amount,
            status=self.status,
            payment_status=self.payment_status,
            payment_method=self.payment_method,
            notes=self.notes,
            tracking_code=self.tracking_code or None,
            placed_at=self.placed_at,
            last_updated=self.updated_at or self.placed_at,
        )


class UpstreamPaginationIn(BaseModel):
    page: int = 1
    limit: int = 0
    total: int = 0
    pages: int = 0


# ---- Console requests ----
class StatusChangeIn(BaseModel):
    """Body of the single status change endpoint."""

    status: OrderStatus

    @field_validator("status", mode="before")
    @classmethod
    def lower_status(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class BulkStatusChangeIn(StatusChangeIn):
    """Body of the bulk status change endpoint.

    Attributes:
        order_ids: Orders to transition; duplicates are dropped keeping the
            first occurrence.
    """

    order_ids: List[str] = Field(min_length=1, validation_alias=AliasChoices("order_ids", "orderIds"))

    @field_validator("order_ids")
    @classmethod
    def dedupe(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(v))


# ---- Responses ----
class OrderLineOut(BaseModel):
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    image: Optional[str] = None
    category: str


class OrderReadDTO(BaseModel):
    id: str
    tracking_code: Optional[str] = None
    customer_name: str
    customer_email: str
    customer_phone: str
    customer_address: str
    items: List[OrderLineOut]
    subtotal: Decimal
    shipping_fee: Decimal
    discount: Decimal
    total_amount: Decimal
    status: str
    payment_status: str
    payment_method: str
    notes: str
    placed_at: datetime
    last_updated: Optional[datetime] = None

    @classmethod
    def from_domain(cls, o: Order) -> "OrderReadDTO":
        return cls(
            id=o.id,
            tracking_code=o.tracking_code,
            customer_name=o.customer.name,
            customer_email=o.customer.email,
            customer_phone=o.customer.phone,
            customer_address=o.customer.address,
            items=[
                OrderLineOut(
                    product_id=line.product_id,
                    name=line.name,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                    image=line.image,
                    category=line.category,
                )
                for line in o.lines
            ],
            subtotal=o.subtotal,
            shipping_fee=o.shipping_fee,
            discount=o.discount,
            total_amount=o.total_amount,
            status=o.status.value,
            payment_status=o.payment_status.value,
            payment_method=o.payment_method,
            notes=o.notes,
            placed_at=o.placed_at,
            last_updated=o.last_updated,
        )
