from enum import Enum


class OrderStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


ORDER_STATUSES = [s.value for s in OrderStatus]

# Steps may be skipped (e.g. confirmed -> delivered) when fulfillment is
# recorded after the fact. delivered and cancelled are the only sinks.
ALLOWED_TRANSITIONS = {
    "pending": ["confirmed", "cancelled"],
    "confirmed": ["processing", "shipped", "delivered", "cancelled"],
    "processing": ["shipped", "delivered", "cancelled"],
    "shipped": ["delivered", "cancelled"],  # cancelled = delivery failed
    "delivered": [],
    "cancelled": [],
}

TERMINAL_STATES = ["delivered", "cancelled"]

# self-service cancellation by the customer
CUSTOMER_CANCELLABLE_STATES = ["pending", "confirmed"]

STATUS_LABELS = {
    "pending": "Pending",
    "confirmed": "Confirmed",
    "processing": "Processing",
    "shipped": "Shipped",
    "delivered": "Delivered",
    "cancelled": "Cancelled",
}


class ActorRole(str, Enum):
    admin = "admin"
    customer = "customer"
    system = "system"


class PaymentMethod(str, Enum):
    cod = "cod"


class PaymentStatus(str, Enum):
    pending = "pending"
