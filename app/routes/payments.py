from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from typing import List, Optional

from app.core.context import AppContext
from app.core.dependencies import get_context, get_current_user, require_admin
from app.database import get_db
from app.models.payment import PaymentType
from app.models.user import User
from app.schemas.payment import (
    PaymentInitiate, PaymentIntentResponse, PaymentResponse, RefundRequest, WebhookAck,
)
from app.services.payment_service import PaymentService
from app.services.webhook_service import WebhookService

router = APIRouter()

def _initiate(db: Session, context: AppContext, booking_id: int, user: User, payment_type: PaymentType):
    result = PaymentService.create_intent(
        db, context.payments, booking_id, user, payment_type, currency=context.settings.STRIPE_CURRENCY
    )
    return {
        "client_secret": result.client_secret,
        "payment_intent_id": result.payment_intent_id,
        "amount": result.amount,
        "payment": result.payment,
    }

@router.post("/deposit", response_model=PaymentIntentResponse)
def pay_deposit(
    payment_data: PaymentInitiate,
    current_user: User = Depends(get_current_user),
    context: AppContext = Depends(get_context),
    db: Session = Depends(get_db)
):
    """Start the deposit payment for a booking"""
    return _initiate(db, context, payment_data.booking_id, current_user, PaymentType.DEPOSIT)

@router.post("/remaining", response_model=PaymentIntentResponse)
def pay_remaining(
    payment_data: PaymentInitiate,
    current_user: User = Depends(get_current_user),
    context: AppContext = Depends(get_context),
    db: Session = Depends(get_db)
):
    """Pay the balance after the deposit"""
    return _initiate(db, context, payment_data.booking_id, current_user, PaymentType.REMAINING)

@router.post("/full", response_model=PaymentIntentResponse)
def pay_full(
    payment_data: PaymentInitiate,
    current_user: User = Depends(get_current_user),
    context: AppContext = Depends(get_context),
    db: Session = Depends(get_db)
):
    """Pay the whole package price in one go"""
    return _initiate(db, context, payment_data.booking_id, current_user, PaymentType.FULL)

@router.get("/history", response_model=List[PaymentResponse])
def payment_history(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return PaymentService.get_payment_history(db, current_user)

@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    context: AppContext = Depends(get_context),
    db: Session = Depends(get_db)
):
    """Stripe webhook; the raw body is needed for signature verification"""
    payload = await request.body()
    signature: Optional[str] = request.headers.get("stripe-signature")
    service = WebhookService(db, context.payments, context.notifier)
    return await run_in_threadpool(service.process, payload, signature)

@router.post("/{payment_id}/refund", response_model=PaymentResponse)
def refund_payment(
    payment_id: int,
    refund_data: Optional[RefundRequest] = None,
    current_user: User = Depends(require_admin),
    context: AppContext = Depends(get_context),
    db: Session = Depends(get_db)
):
    """Refund a successful payment, fully or partially (admin)"""
    amount = refund_data.amount if refund_data else None
    return PaymentService.refund_payment(db, context.payments, payment_id, amount)
