"""Authorization checks tying an acting user to a dispute's buyer/seller roles."""

from __future__ import annotations

import logging
import uuid

from src.exceptions import ForbiddenException, NotFoundException
from src.models.dispute import Dispute
from src.models.enums import ActorType

logger = logging.getLogger(__name__)


def is_party(dispute: Dispute, actor_id: uuid.UUID) -> bool:
    return actor_id in (dispute.buyer_id, dispute.seller_id)


def require_buyer(
    dispute: Dispute, actor_id: uuid.UUID, message: str = "Unauthorized"
) -> ActorType:
    if dispute.buyer_id != actor_id:
        logger.warning("Actor %s is not the buyer on dispute %s", actor_id, dispute.id)
        raise ForbiddenException(message)
    return ActorType.BUYER


def require_seller(dispute: Dispute, actor_id: uuid.UUID) -> ActorType:
    if dispute.seller_id != actor_id:
        logger.warning("Actor %s is not the seller on dispute %s", actor_id, dispute.id)
        raise ForbiddenException("Unauthorized")
    return ActorType.SELLER


def require_party(dispute: Dispute, actor_id: uuid.UUID) -> ActorType:
    """Allow either party and report which side the actor is on."""
    if dispute.buyer_id == actor_id:
        return ActorType.BUYER
    if dispute.seller_id == actor_id:
        return ActorType.SELLER
    logger.warning("Actor %s is not a party to dispute %s", actor_id, dispute.id)
    raise ForbiddenException("Unauthorized")


def require_visible(dispute: Dispute | None, actor_id: uuid.UUID) -> Dispute:
    """Read-path guard: non-parties see the same NotFound as a missing dispute."""
    if dispute is None or not is_party(dispute, actor_id):
        raise NotFoundException("Dispute not found")
    return dispute
