"""
Payment provider webhook endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import CollectionsSystem, get_collections_system, http_error
from .schemas import WebhookEvent
from ..logging_config import get_logger


router = APIRouter()
logger = get_logger("collections.api.webhooks")

SUPPORTED_PROVIDERS = ("stripe", "mercadopago")


@router.post("/{provider}")
async def receive_payment_webhook(
    provider: str,
    event: WebhookEvent,
    system: CollectionsSystem = Depends(get_collections_system)
):
    """
    Apply a payment provider event.

    Signatures are verified upstream; this endpoint only maps the event.
    """
    provider = provider.lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise http_error(ValueError(f"Unsupported payment provider: {provider}"))

    try:
        return system.ledger.process_payment_webhook(provider, event.model_dump())
    except ValueError as e:
        logger.warning(f"Rejected {provider} webhook: {e}")
        raise http_error(e)
