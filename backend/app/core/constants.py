"""
Shared constants for the backend application.
"""
from decimal import Decimal

CURRENCY = "XOF"

# Money columns are DECIMAL(14,2)
AMOUNT_DECIMAL_PLACES = 2
AMOUNT_MAX_DIGITS = 14
AMOUNT_QUANTUM = Decimal("0.01")
MAX_AMOUNT = Decimal("999999999999.99")

# ---------------------------------------------------------------------------
# Roles and wallets
# ---------------------------------------------------------------------------
USER_ROLES = ("buyer", "seller", "delivery", "admin", "customer_service")

# Roles that own a wallet (customer_service does not)
WALLET_TYPES = ("buyer", "seller", "delivery", "admin")

# ---------------------------------------------------------------------------
# Wallet transactions
# ---------------------------------------------------------------------------
CREDIT_TRANSACTION_TYPES = ("deposit", "refund", "commission")
DEBIT_TRANSACTION_TYPES = ("withdrawal", "payment", "fee")
TRANSACTION_TYPES = CREDIT_TRANSACTION_TYPES + DEBIT_TRANSACTION_TYPES

TRANSACTION_STATUSES = ("pending", "completed", "failed", "cancelled")

# Methods accepted for deposits and withdrawals
WALLET_PAYMENT_METHODS = ("mobile_money", "credit_card", "bank_transfer")
TRANSACTION_PAYMENT_METHODS = WALLET_PAYMENT_METHODS + ("internal", "wallet")

REFERENCE_BYTES = 10  # 20 hex chars

# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled", "refunded")
TERMINAL_ORDER_STATUSES = ("delivered", "cancelled", "refunded")
# Forward progress order of the non-terminal pipeline
ORDER_STATUS_RANK = {"pending": 0, "processing": 1, "shipped": 2, "delivered": 3}

# payment_status: pending -> paid|failed at checkout, paid -> released|refunded at settlement
ALLOWED_PAYMENT_TRANSITIONS = {
    "pending": ("paid", "failed"),
    "paid": ("released", "refunded"),
}

ORDER_PAYMENT_METHODS = ("wallet", "mobile_money", "credit_card", "bank_transfer")

# Statuses a delivery agent may report
AGENT_DELIVERY_STATUSES = ("picked_up", "in_transit", "delivered", "failed")
DELIVERY_STATUS_RANK = {"pending": 0, "assigned": 1, "picked_up": 2, "in_transit": 3, "delivered": 4}

# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------
SUBSCRIPTION_PLANS = ("free_trial", "weekly", "monthly", "yearly")
PAID_SUBSCRIPTION_PLANS = ("weekly", "monthly", "yearly")
SUBSCRIPTION_PAYMENT_METHODS = ("wallet", "mobile_money", "credit_card", "bank_transfer")
