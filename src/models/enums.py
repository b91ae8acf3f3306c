import enum


# ── Marketplace orders ─────────────────────────────────────────────────────────


class MarketplaceOrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CLOSED = "closed"
    CANCELLED = "cancelled"


# ── Dispute resolution ─────────────────────────────────────────────────────────


class DisputeStatus(str, enum.Enum):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    SELLER_RESPONDED = "seller_responded"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    ESCALATED = "escalated"
    CLOSED = "closed"


class DisputeReason(str, enum.Enum):
    WRONG_ITEM = "wrong_item"
    DAMAGED_GOODS = "damaged_goods"
    MISSING_QUANTITY = "missing_quantity"
    LATE_DELIVERY = "late_delivery"
    QUALITY_ISSUE = "quality_issue"
    OTHER = "other"


class PriorityLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class SellerResponseType(str, enum.Enum):
    ACCEPT_RESPONSIBILITY = "accept_responsibility"
    REJECT = "reject"
    PROPOSE_RESOLUTION = "propose_resolution"


class ResolutionType(str, enum.Enum):
    FULL_REFUND = "full_refund"
    PARTIAL_REFUND = "partial_refund"
    REPLACEMENT = "replacement"
    NO_ACTION = "no_action"
    OTHER = "other"


class ActorType(str, enum.Enum):
    BUYER = "buyer"
    SELLER = "seller"
    SYSTEM = "system"
    PLATFORM = "platform"
