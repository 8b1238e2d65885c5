# backend/app/services/__init__.py
"""
Services layer for business logic.
Keeps API endpoints thin and business logic testable and reusable.
"""

from backend.app.services.wallets import (
    WalletService,
    WalletServiceError,
    WalletNotFoundError,
    InsufficientBalanceError,
    generate_reference,
    signed_amount,
)
from backend.app.services.fees import FeeSchedule
from backend.app.services.settlement import SettlementService, SettlementFailure
from backend.app.services.orders import (
    OrderService,
    OrderServiceError,
    OrderNotFoundError,
    InvalidOrderStatusError,
    DeliveryAlreadyAssignedError,
)
from backend.app.services.delivery import DeliveryService
from backend.app.services.subscription import (
    SubscriptionService,
    SubscriptionServiceError,
    SubscriptionNotFoundError,
)
from backend.app.services.users import (
    UserService,
    UserServiceError,
    UserNotFoundError,
)
from backend.app.services.admin import AdminService
from backend.app.services.products import (
    ProductService,
    ProductServiceError,
    SubscriptionRequiredError,
)

__all__ = [
    # Wallet service
    "WalletService",
    "WalletServiceError",
    "WalletNotFoundError",
    "InsufficientBalanceError",
    "generate_reference",
    "signed_amount",
    # Fees and settlement
    "FeeSchedule",
    "SettlementService",
    "SettlementFailure",
    # Order service
    "OrderService",
    "OrderServiceError",
    "OrderNotFoundError",
    "InvalidOrderStatusError",
    "DeliveryAlreadyAssignedError",
    "DeliveryService",
    # Subscription service
    "SubscriptionService",
    "SubscriptionServiceError",
    "SubscriptionNotFoundError",
    # User service
    "UserService",
    "UserServiceError",
    "UserNotFoundError",
    # Admin dashboard
    "AdminService",
    # Product service
    "ProductService",
    "ProductServiceError",
    "SubscriptionRequiredError",
]
