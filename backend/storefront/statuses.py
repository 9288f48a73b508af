# Overview: Status vocabularies for orders, deliveries, refunds and payments.

from __future__ import annotations

# Order aggregate status (derived from sibling deliveries, except CANCELLED)
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_IN_TRANSIT = "in-transit"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUS_CANCELLED = "cancelled"

ORDER_STATUSES = (
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_IN_TRANSIT,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
)

# Per line item fulfillment
DELIVERY_STATUS_PENDING = "pending"
DELIVERY_STATUS_IN_TRANSIT = "in-transit"
DELIVERY_STATUS_DELIVERED = "delivered"
DELIVERY_STATUS_FAILED = "failed"

DELIVERY_STATUSES = (
    DELIVERY_STATUS_PENDING,
    DELIVERY_STATUS_IN_TRANSIT,
    DELIVERY_STATUS_DELIVERED,
    DELIVERY_STATUS_FAILED,
)

REFUND_STATUS_PENDING = "pending"
REFUND_STATUS_APPROVED = "approved"
REFUND_STATUS_REJECTED = "rejected"
REFUND_STATUS_PROCESSED = "processed"

REFUND_STATUSES = (
    REFUND_STATUS_PENDING,
    REFUND_STATUS_APPROVED,
    REFUND_STATUS_REJECTED,
    REFUND_STATUS_PROCESSED,
)

# A pending or approved refund blocks another request for the same line
ACTIVE_REFUND_STATUSES = (REFUND_STATUS_PENDING, REFUND_STATUS_APPROVED)

# Set by the payment-completion flow only
PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_COMPLETED = "completed"
PAYMENT_STATUS_FAILED = "failed"
PAYMENT_STATUS_REFUNDED = "refunded"

PAYMENT_STATUSES = (
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_REFUNDED,
)
