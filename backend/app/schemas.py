from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from decimal import Decimal
from datetime import datetime

from backend.app.core.constants import AMOUNT_DECIMAL_PLACES, AMOUNT_MAX_DIGITS


class CamelModel(BaseModel):
    """Request bodies accept camelCase keys (walletType) as well as snake_case."""
    model_config = {"populate_by_name": True}


# --- Wallets ---
class PaymentDetails(CamelModel):
    transaction_id: Optional[str] = Field(default=None, alias="transactionId")
    provider: Optional[str] = None
    account_number: Optional[str] = Field(default=None, alias="accountNumber")


class WalletMovement(CamelModel):
    amount: Decimal = Field(gt=0, max_digits=AMOUNT_MAX_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES)
    wallet_type: str = Field(alias="walletType")
    payment_method: str = Field(alias="paymentMethod")
    payment_details: Optional[PaymentDetails] = Field(default=None, alias="paymentDetails")


class WalletTransfer(CamelModel):
    amount: Decimal = Field(gt=0, max_digits=AMOUNT_MAX_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES)
    from_wallet_type: str = Field(alias="fromWalletType")
    to_wallet_type: str = Field(alias="toWalletType")


class TransactionResponse(BaseModel):
    id: int
    type: str
    amount: Decimal
    currency: str
    description: Optional[str] = None
    status: str
    reference: str
    related_order_id: Optional[int] = None
    related_user_id: Optional[int] = None
    payment_method: Optional[str] = None
    provider: Optional[str] = None
    provider_transaction_id: Optional[str] = None
    account_number: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class WalletResponse(BaseModel):
    id: int
    owner_id: int
    wallet_type: str
    balance: Decimal
    currency: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class WalletDetailResponse(WalletResponse):
    transactions: List[TransactionResponse] = []


class TransferResponse(BaseModel):
    from_wallet: WalletResponse
    to_wallet: WalletResponse


class ReconcileResponse(BaseModel):
    wallet_id: int
    stored_balance: Decimal
    ledger_balance: Decimal
    consistent: bool


# --- Orders ---
class Coordinates(BaseModel):
    lat: float
    lng: float


class ShippingAddress(CamelModel):
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: Optional[str] = None
    country: str = Field(min_length=1)
    zip_code: Optional[str] = Field(default=None, alias="zipCode")
    coordinates: Optional[Coordinates] = None


class OrderItemCreate(CamelModel):
    product_id: int = Field(alias="product")
    quantity: int = Field(ge=1)


class OrderCreate(CamelModel):
    items: List[OrderItemCreate] = Field(min_length=1)
    shipping_address: ShippingAddress = Field(alias="shippingAddress")
    payment_method: str = Field(alias="paymentMethod")
    payment_details: Optional[PaymentDetails] = Field(default=None, alias="paymentDetails")


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    seller_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    id: int
    buyer_id: int
    items: List[OrderItemResponse] = []
    total_amount: Decimal
    platform_fee: Decimal
    delivery_fee: Decimal
    admin_fee: Decimal
    currency: str
    status: str
    payment_status: str
    payment_method: str
    payment_reference: Optional[str] = None
    payment_provider: Optional[str] = None
    paid_at: Optional[datetime] = None
    shipping_address: Dict[str, Any]
    delivery_agent_id: Optional[int] = None
    delivery_status: str
    delivery_notes: Optional[str] = None
    delivery_proof: Optional[Dict[str, Any]] = None
    estimated_delivery_date: Optional[datetime] = None
    actual_delivery_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrderStatusUpdate(BaseModel):
    status: str


class AssignDelivery(CamelModel):
    delivery_agent_id: int = Field(alias="deliveryAgentId")


class DeliveryProof(BaseModel):
    signature: Optional[str] = None
    photo: Optional[str] = None
    notes: Optional[str] = None

    model_config = {"extra": "allow"}


class DeliveryStatusUpdate(BaseModel):
    status: str
    proof: Optional[DeliveryProof] = None


class DeliveryProofUpdate(BaseModel):
    proof: DeliveryProof


# --- Delivery desk ---
class AvailabilityUpdate(CamelModel):
    is_available: bool = Field(alias="isAvailable")


class DeliveryStatsResponse(BaseModel):
    total_deliveries: int
    completed_deliveries: int
    in_progress_deliveries: int
    failed_deliveries: int
    is_available: bool


# --- Subscriptions ---
class SubscriptionCreate(CamelModel):
    plan: str
    payment_method: str = Field(alias="paymentMethod")
    auto_renew: bool = Field(default=False, alias="autoRenew")


class SubscriptionRenew(CamelModel):
    payment_method: str = Field(alias="paymentMethod")


class SubscriptionChangePlan(CamelModel):
    plan: str
    payment_method: str = Field(alias="paymentMethod")


class SubscriptionResponse(BaseModel):
    id: int
    seller_id: int
    plan: str
    status: str
    start_date: datetime
    end_date: datetime
    auto_renew: bool
    price: Decimal
    currency: str
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    payment_date: Optional[datetime] = None
    provider: Optional[str] = None

    model_config = {"from_attributes": True}


class SubscriptionCreateResponse(BaseModel):
    subscription: SubscriptionResponse
    is_new: bool


class SellerSummary(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None

    model_config = {"from_attributes": True}


class SubscriptionWithSeller(SubscriptionResponse):
    seller: SellerSummary


# --- Products ---
class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    price: Decimal = Field(gt=0, max_digits=AMOUNT_MAX_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES)
    category: Optional[str] = None
    stock: int = Field(default=0, ge=0)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class ProductResponse(BaseModel):
    id: int
    seller_id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    currency: str
    category: Optional[str] = None
    stock: int
    is_available: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# --- Users ---
class RoleUpdate(BaseModel):
    role: str


class SellerInfo(BaseModel):
    subscription_status: str
    subscription_type: str
    subscription_start_date: datetime
    subscription_end_date: datetime


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    roles: List[str]
    is_available: bool
    created_at: datetime
    seller_info: Optional[SellerInfo] = None


# --- Admin dashboard ---
class UserCounts(BaseModel):
    total: int
    by_role: Dict[str, int]


class OrderCounts(BaseModel):
    total: int
    by_status: Dict[str, int]


class SubscriptionCounts(BaseModel):
    total: int
    active: int


class DashboardResponse(BaseModel):
    users: UserCounts
    products: int
    orders: OrderCounts
    subscriptions: SubscriptionCounts
