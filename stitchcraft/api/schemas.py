"""
Pydantic schemas for API request/response models.

JSON bodies use camelCase keys; Python attributes stay snake_case.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from stitchcraft.core.permissions import Permission
from stitchcraft.core.phone import normalize_ghana_phone
from stitchcraft.database.models import (
    AppointmentStatus,
    AppointmentType,
    GarmentType,
    InvitationStatus,
    InvoiceStatus,
    OrderStatus,
    PaymentMethod,
    UserRole,
    UserStatus,
    WorkerRole,
)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class ApiModel(BaseModel):
    """Base for every schema: camelCase on the wire, ORM objects accepted."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _ghana_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return normalize_ghana_phone(value)


# ============================================================================
# AUTH
# ============================================================================

class RegisterRequest(ApiModel):
    """Request schema for account registration."""

    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)
    role: UserRole = Field(default=UserRole.TAILOR)
    phone: Optional[str] = None
    business_name: Optional[str] = Field(default=None, max_length=255)
    region: Optional[str] = Field(default=None, max_length=50)
    city: Optional[str] = Field(default=None, max_length=100)
    tracking_token: Optional[str] = Field(default=None, max_length=64)

    @field_validator("phone")
    @classmethod
    def normalize_phone(cls, v: Optional[str]) -> Optional[str]:
        return _ghana_phone(v)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: UserRole) -> UserRole:
        if v == UserRole.ADMIN:
            raise ValueError("Cannot self-register as admin")
        return v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "email": "ama@kente.gh",
                    "password": "strong-password",
                    "name": "Ama Mensah",
                    "role": "TAILOR",
                    "phone": "0241234567",
                    "businessName": "Ama's Kente Studio",
                    "region": "Greater Accra",
                    "city": "Accra",
                }
            ]
        }
    }


class LoginRequest(ApiModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class UserResponse(ApiModel):
    id: UUID
    email: str
    name: str
    role: str
    status: str
    phone: Optional[str] = None
    business_name: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    linked_client_id: Optional[UUID] = None
    created_at: datetime


class AuthResponse(ApiModel):
    user: UserResponse
    token: Optional[str] = Field(default=None, description="Session token (also set as cookie)")
    expires_at: Optional[datetime] = None


# ============================================================================
# CLIENTS
# ============================================================================

class ClientCreate(ApiModel):
    """Request schema for creating a client."""

    name: str = Field(..., min_length=1, max_length=255)
    phone: str
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    address: Optional[str] = None
    region: Optional[str] = Field(default=None, max_length=50)
    city: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def normalize_phone(cls, v: Optional[str]) -> Optional[str]:
        return _ghana_phone(v)


class ClientUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone: Optional[str] = None
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    address: Optional[str] = None
    region: Optional[str] = Field(default=None, max_length=50)
    city: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def normalize_phone(cls, v: Optional[str]) -> Optional[str]:
        return _ghana_phone(v)


class ClientResponse(ApiModel):
    id: UUID
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class MeasurementCreate(ApiModel):
    values: Dict[str, float] = Field(..., min_length=1)
    notes: Optional[str] = None

    @field_validator("values")
    @classmethod
    def validate_values(cls, v: Dict[str, float]) -> Dict[str, float]:
        if any(value < 0 for value in v.values()):
            raise ValueError("Measurements must be non-negative")
        return v


class MeasurementResponse(ApiModel):
    id: UUID
    client_id: UUID
    values: Dict[str, Any]
    notes: Optional[str] = None
    created_at: datetime


class TrackingTokenResponse(ApiModel):
    token: str
    url: str
    qr_data: str
    expires_at: Optional[datetime] = None


# ============================================================================
# ORDERS
# ============================================================================

class OrderCreate(ApiModel):
    """Request schema for creating an order."""

    client_id: UUID
    garment_type: GarmentType
    garment_description: Optional[str] = None
    style_notes: Optional[str] = None
    quantity: int = Field(default=1, ge=1, le=1000)
    material_cost: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    labor_cost: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    total_amount: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    deadline: Optional[datetime] = None
    measurement_id: Optional[UUID] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "clientId": "123e4567-e89b-12d3-a456-426614174000",
                    "garmentType": "KABA_AND_SLIT",
                    "quantity": 1,
                    "materialCost": "120.00",
                    "laborCost": "180.00",
                }
            ]
        }
    }


class OrderUpdate(ApiModel):
    status: Optional[OrderStatus] = None
    garment_description: Optional[str] = None
    style_notes: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=1, le=1000)
    material_cost: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    labor_cost: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    total_amount: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    deadline: Optional[datetime] = None


class OrderResponse(ApiModel):
    id: UUID
    order_number: str
    client_id: UUID
    garment_type: str
    garment_description: Optional[str] = None
    style_notes: Optional[str] = None
    quantity: int
    material_cost: Decimal
    labor_cost: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    status: str
    deadline: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ============================================================================
# PAYMENTS
# ============================================================================

class PaymentCreate(ApiModel):
    """Request schema for recording a manual payment."""

    order_id: UUID
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    method: PaymentMethod
    transaction_id: Optional[str] = Field(default=None, min_length=1, max_length=255)
    invoice_id: Optional[UUID] = None
    mobile_number: Optional[str] = None
    notes: Optional[str] = None
    paid_at: Optional[datetime] = None

    @field_validator("mobile_number")
    @classmethod
    def normalize_mobile_number(cls, v: Optional[str]) -> Optional[str]:
        return _ghana_phone(v)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "orderId": "123e4567-e89b-12d3-a456-426614174000",
                    "amount": "150.00",
                    "method": "MOBILE_MONEY_MTN",
                    "transactionId": "MTN-8821992",
                    "mobileNumber": "0241234567",
                }
            ]
        }
    }


class PaymentResponse(ApiModel):
    id: UUID
    payment_number: str
    transaction_id: str
    order_id: UUID
    client_id: UUID
    invoice_id: Optional[UUID] = None
    amount: Decimal
    method: str
    status: str
    mobile_number: Optional[str] = None
    notes: Optional[str] = None
    paid_at: datetime
    created_at: datetime


class RecordPaymentResponse(ApiModel):
    success: bool = True
    already_recorded: bool
    payment: PaymentResponse
    order: OrderResponse


# ============================================================================
# INVOICES
# ============================================================================

class InvoiceItem(ApiModel):
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0, decimal_places=2)


class InvoiceCreate(ApiModel):
    """Request schema for creating an invoice."""

    client_id: UUID
    order_id: Optional[UUID] = None
    items: List[InvoiceItem] = Field(..., min_length=1)
    due_date: Optional[datetime] = None
    notes: Optional[str] = None


class InvoiceUpdate(ApiModel):
    status: Optional[InvoiceStatus] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None


class InvoiceResponse(ApiModel):
    id: UUID
    invoice_number: str
    client_id: UUID
    order_id: Optional[UUID] = None
    items: List[Dict[str, Any]]
    subtotal: Decimal
    vat_amount: Decimal
    nhil_amount: Decimal
    getfund_amount: Decimal
    total_tax: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    status: str
    notes: Optional[str] = None
    due_date: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: datetime


# ============================================================================
# APPOINTMENTS
# ============================================================================

class AppointmentCreate(ApiModel):
    client_id: UUID
    order_id: Optional[UUID] = None
    type: AppointmentType
    start_time: datetime
    end_time: datetime
    location: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_window(self) -> "AppointmentCreate":
        if self.end_time <= self.start_time:
            raise ValueError("endTime must be after startTime")
        return self


class AppointmentUpdate(ApiModel):
    type: Optional[AppointmentType] = None
    status: Optional[AppointmentStatus] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    location: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = None


class AppointmentResponse(ApiModel):
    id: UUID
    client_id: UUID
    order_id: Optional[UUID] = None
    type: str
    status: str
    start_time: datetime
    end_time: datetime
    location: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


# ============================================================================
# ORGANIZATION MEMBERS
# ============================================================================

class MemberUpdate(ApiModel):
    role: Optional[WorkerRole] = None
    permissions: Optional[List[Permission]] = None


class MemberResponse(ApiModel):
    id: UUID
    user_id: UUID
    name: str
    email: str
    role: str
    permissions: List[str]
    effective_permissions: List[str]
    created_at: datetime


class PermissionInfo(ApiModel):
    key: str
    description: str
    default_roles: List[str]


class InvitationCreate(ApiModel):
    """Request schema for inviting a worker."""

    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    role: WorkerRole = Field(default=WorkerRole.WORKER)
    permissions: List[Permission] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"email": "yaw@stitchcraft.gh", "role": "SENIOR", "permissions": ["payments:read"]}
            ]
        }
    }


class InvitationResponse(ApiModel):
    id: UUID
    email: str
    role: str
    permissions: List[str]
    status: InvitationStatus
    invited_by_name: str
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: datetime


class InvitationCreatedResponse(InvitationResponse):
    token: str
    url: str


class InvitationPreview(ApiModel):
    email: str
    role: str
    organization_name: str
    organization_slug: str
    invited_by_name: str
    expires_at: datetime


class InvitationAcceptRequest(ApiModel):
    token: str = Field(..., min_length=1, max_length=64)


class InvitationAcceptResponse(ApiModel):
    success: bool = True
    already_member: bool
    organization_id: UUID
    organization_slug: str
    message: str


# ============================================================================
# ADMIN
# ============================================================================

class UserStatusUpdate(ApiModel):
    status: UserStatus
    reason: Optional[str] = Field(default=None, max_length=1000)


class UserStats(ApiModel):
    clients: int
    orders: int
    payments: int


class AdminUserResponse(UserResponse):
    stats: Optional[UserStats] = None


# ============================================================================
# TRACKING PORTAL
# ============================================================================

class TrackPayRequest(ApiModel):
    order_id: UUID
    amount: Decimal = Field(..., gt=0, decimal_places=2)


class TrackFeedbackRequest(ApiModel):
    order_id: UUID
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(default=None, max_length=2000)


class PortalTailor(ApiModel):
    id: UUID
    name: str
    business_name: Optional[str] = None
    phone: Optional[str] = None
    email: str
    profile_image: Optional[str] = None


class PortalClient(ApiModel):
    id: UUID
    name: str
    phone: str


class TimelineStep(ApiModel):
    status: str
    label: str
    completed: bool
    current: bool
    date: Optional[datetime] = None


class PortalOrder(OrderResponse):
    balance: Decimal
    timeline: List[TimelineStep]
    rating: Optional[int] = None


class PortalPayment(ApiModel):
    id: UUID
    payment_number: str
    order_id: UUID
    amount: Decimal
    method: str
    status: str
    paid_at: datetime


class TrackingPortalResponse(ApiModel):
    client: PortalClient
    tailor: PortalTailor
    orders: List[PortalOrder]
    payments: List[PortalPayment]


# ============================================================================
# CLIENT STUDIO
# ============================================================================

class LinkAccountRequest(ApiModel):
    tracking_token: str = Field(..., min_length=1, max_length=64)


class StudioSummary(ApiModel):
    active_orders: int
    outstanding_balance: Decimal
    last_measurement_at: Optional[datetime] = None


class StudioOverview(ApiModel):
    is_linked: bool
    tailor: Optional[PortalTailor] = None
    summary: Optional[StudioSummary] = None
    recent_orders: List[PortalOrder] = Field(default_factory=list)


class StudioPayments(ApiModel):
    invoices: List[InvoiceResponse] = Field(default_factory=list)
    payments: List[PortalPayment] = Field(default_factory=list)


class StudioMeasurements(ApiModel):
    latest: Optional[MeasurementResponse] = None
    history: List[MeasurementResponse] = Field(default_factory=list)


# ============================================================================
# WEBHOOKS / MONITORING
# ============================================================================

class WebhookResponse(BaseModel):
    """Response schema for webhook processing."""

    status: str = Field(..., description="Processing status")


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")
