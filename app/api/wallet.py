import json
import logging

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies import get_paystack
from app.errors import InvalidSignature, TransferFailed, ValidationError
from app.security import Principal, require_permission
from app.services import ledger
from app.services.paystack import PaystackClient
from schemas.keys import Permission
from schemas.wallet import (
    BalanceResponse,
    ChargeData,
    DepositRequest,
    DepositResponse,
    DepositStatus,
    PaystackEvent,
    TransactionItem,
    TransactionList,
    TransferRequest,
    TransferResult,
)

router = APIRouter()
logger = logging.getLogger("wallet.api.wallet")


@router.post("/deposit", response_model=DepositResponse, status_code=201)
async def deposit(
    payload: DepositRequest,
    principal: Principal = Depends(require_permission(Permission.DEPOSIT)),
    db: AsyncSession = Depends(get_db),
    paystack: PaystackClient = Depends(get_paystack),
):
    tx, created = await ledger.initiate_deposit(
        db,
        paystack,
        user_id=principal.user_id,
        email=principal.email,
        amount=payload.amount,
        reference=payload.reference,
    )
    if not created:
        return JSONResponse(
            status_code=200,
            content={
                "reference": tx.reference,
                "authorization_url": tx.checkout_url,
                "message": "Transaction already exists",
            },
        )
    return DepositResponse(reference=tx.reference, authorization_url=tx.checkout_url)


def _verify_webhook_signature(paystack: PaystackClient, raw: bytes, signature: str | None) -> None:
    if not paystack.webhook_secret:
        if settings.is_production:
            logger.error("Webhook secret not configured; rejecting webhook in production")
            raise InvalidSignature("Webhook secret not configured")
        logger.warning("DEV MODE: Skipping webhook signature verification")
        return
    if not signature:
        raise ValidationError("Missing Paystack signature", code="invalid_request")
    if not paystack.verify_signature(raw, signature):
        logger.warning("Invalid webhook signature")
        raise InvalidSignature()


@router.post("/paystack/webhook")
async def paystack_webhook(
    request: Request,
    x_paystack_signature: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
    paystack: PaystackClient = Depends(get_paystack),
):
    raw = await request.body()
    _verify_webhook_signature(paystack, raw, x_paystack_signature)

    try:
        event = PaystackEvent.model_validate(json.loads(raw or b"{}"))
    except (ValueError, PydanticValidationError):
        raise ValidationError("Invalid webhook payload", code="invalid_payload")

    if event.event == "charge.success":
        try:
            charge = ChargeData.model_validate(event.data)
        except PydanticValidationError:
            raise ValidationError("Invalid charge payload", code="invalid_payload")
        await ledger.confirm_deposit(db, charge, event=event.event)
    else:
        logger.info("Ignoring Paystack event %s", event.event)

    return {"status": True}


@router.get("/deposit/{reference}/status", response_model=DepositStatus)
async def deposit_status(
    reference: str,
    refresh: bool = False,
    principal: Principal = Depends(require_permission(Permission.READ)),
    db: AsyncSession = Depends(get_db),
    paystack: PaystackClient = Depends(get_paystack),
):
    if not reference.strip():
        raise ValidationError("Transaction reference is required", code="invalid_request")
    tx = await ledger.get_deposit_status(
        db, paystack, user_id=principal.user_id, reference=reference, refresh=refresh
    )
    return DepositStatus(reference=tx.reference, status=tx.status, amount=tx.amount)


@router.get("/balance", response_model=BalanceResponse)
async def balance(
    principal: Principal = Depends(require_permission(Permission.READ)),
    db: AsyncSession = Depends(get_db),
):
    return BalanceResponse(balance=await ledger.get_balance(db, principal.user_id))


@router.post("/transfer", response_model=TransferResult)
async def transfer(
    payload: TransferRequest,
    principal: Principal = Depends(require_permission(Permission.TRANSFER)),
    db: AsyncSession = Depends(get_db),
):
    try:
        await ledger.transfer(
            db,
            user_id=principal.user_id,
            amount=payload.amount,
            wallet_number=payload.wallet_number,
        )
    except TransferFailed as exc:
        logger.info("Transfer by user %s rejected: %s", principal.user_id, exc.code)
        return TransferResult(status="failed", message=exc.message)
    return TransferResult(status="success", message="Transfer completed")


@router.get("/transactions", response_model=TransactionList)
async def transactions(
    principal: Principal = Depends(require_permission(Permission.READ)),
    db: AsyncSession = Depends(get_db),
):
    rows = await ledger.list_transactions(db, principal.user_id)
    return TransactionList(transactions=[TransactionItem.model_validate(t) for t in rows])
