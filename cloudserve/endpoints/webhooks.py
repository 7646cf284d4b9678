import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from cloudserve.config import config
from cloudserve.dependencies import get_db, get_billing_gateway, get_panel_factory
from cloudserve.errors.billing_errors import WebhookSignatureError
from cloudserve.errors.panel_errors import PanelWebhookSignatureError
from cloudserve.services.billing_gateway import BillingGateway
from cloudserve.services.panel_webhook import PanelWebhookService
from cloudserve.services.provisioning import PanelFactory
from cloudserve.services.stripe_webhook import PaymentEventProcessor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_billing_gateway),
    panel_factory: PanelFactory = Depends(get_panel_factory),
):
    """
    Billing events from Stripe.

    Signature failures are rejected with 400. Every verified event is
    answered with 200, including unhandled types and events whose metadata
    is incomplete; only unexpected errors return 500 so Stripe redelivers.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    processor = PaymentEventProcessor(db, gateway, panel_factory)
    try:
        return await run_in_threadpool(processor.process, payload, signature)
    except WebhookSignatureError as e:
        logger.warning(f"Stripe webhook rejected: {e}")
        raise HTTPException(status_code=400, detail="Webhook signature verification failed")
    except Exception as e:
        logger.error(f"Error in stripe webhook: {e}")
        raise HTTPException(status_code=500, detail="Webhook processing failed")


@router.post("/pterodactyl")
async def pterodactyl_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Server events from the game panel, signed with HMAC-SHA256 of the raw body.
    """
    body = await request.body()
    signature = request.headers.get("x-signature") or request.headers.get("x-pterodactyl-signature")
    service = PanelWebhookService(db, config.PTERODACTYL_WEBHOOK_SECRET)
    try:
        return await run_in_threadpool(service.handle, body, signature)
    except PanelWebhookSignatureError:
        logger.error("Invalid panel webhook signature, rejecting request")
        raise HTTPException(status_code=401, detail="Unauthorized")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
