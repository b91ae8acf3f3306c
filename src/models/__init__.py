# Import all models so SQLAlchemy metadata is populated for Alembic autogenerate
from src.models.dispute import Dispute
from src.models.dispute_event import DisputeEvent
from src.models.dispute_evidence import DisputeEvidence
from src.models.dispute_number_counter import DisputeNumberCounter
from src.models.enums import (
    ActorType,
    DisputeReason,
    DisputeStatus,
    MarketplaceOrderStatus,
    PriorityLevel,
    ResolutionType,
    SellerResponseType,
)
from src.models.invoice import MarketplaceInvoice
from src.models.order import MarketplaceOrder
from src.models.return_request import ReturnRequest

__all__ = [
    "ActorType",
    "Dispute",
    "DisputeEvent",
    "DisputeEvidence",
    "DisputeNumberCounter",
    "DisputeReason",
    "DisputeStatus",
    "MarketplaceInvoice",
    "MarketplaceOrder",
    "MarketplaceOrderStatus",
    "PriorityLevel",
    "ResolutionType",
    "ReturnRequest",
    "SellerResponseType",
]
