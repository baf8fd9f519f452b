import logging
import secrets
from datetime import datetime

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import (
    Conflict,
    Forbidden,
    InsufficientFunds,
    InternalError,
    NotFound,
    PaymentInitiationFailed,
    RecipientNotFound,
    SelfTransferDenied,
    UpstreamError,
    ValidationError,
)
from app.services.paystack import PaystackClient
from app.utils.clock import to_naive_utc
from models.wallet import Transaction, Wallet
from models.webhook import WebhookEvent
from schemas.wallet import ChargeData

logger = logging.getLogger("wallet.ledger")

WALLET_NUMBER_DIGITS = 13
_WALLET_NUMBER_ATTEMPTS = 5

_SUCCESS_STATUSES = {"success"}
_FAILED_STATUSES = {"failed", "reversed"}


def generate_wallet_number() -> str:
    low = 10 ** (WALLET_NUMBER_DIGITS - 1)
    return str(low + secrets.randbelow(9 * low))


def map_provider_status(status: str | None) -> str:
    value = (status or "").strip().lower()
    if value in _SUCCESS_STATUSES:
        return "success"
    if value in _FAILED_STATUSES:
        return "failed"
    # abandoned / ongoing / queued: the customer may still complete checkout
    return "pending"


# ---------------------------------------------------------------------------
# Wallets
# ---------------------------------------------------------------------------

async def find_wallet(db: AsyncSession, user_id: int) -> Wallet | None:
    result = await db.execute(select(Wallet).where(Wallet.user_id == user_id))
    return result.scalar_one_or_none()


async def get_or_create_wallet(db: AsyncSession, user_id: int, *, commit: bool = True) -> Wallet:
    wallet = await find_wallet(db, user_id)
    if wallet:
        return wallet
    for _ in range(_WALLET_NUMBER_ATTEMPTS):
        number = generate_wallet_number()
        taken = (await db.execute(select(Wallet.id).where(Wallet.wallet_number == number))).first()
        if not taken:
            break
    else:
        raise InternalError("Could not allocate a wallet number")

    wallet = Wallet(wallet_number=number, balance=0, user_id=user_id)
    db.add(wallet)
    if not commit:
        await db.flush()
        return wallet
    try:
        await db.commit()
    except IntegrityError:
        # a concurrent request created it first
        await db.rollback()
        wallet = await find_wallet(db, user_id)
        if wallet is None:
            raise
    logger.info("Wallet %s created for user %s", wallet.wallet_number, user_id)
    return wallet


async def get_balance(db: AsyncSession, user_id: int) -> int:
    wallet = await get_or_create_wallet(db, user_id)
    return int(wallet.balance or 0)


async def _credit(db: AsyncSession, wallet_id: int, amount: int) -> None:
    await db.execute(
        update(Wallet)
        .where(Wallet.id == wallet_id)
        .values(balance=Wallet.balance + amount)
        .execution_options(synchronize_session=False)
    )


async def _debit(db: AsyncSession, wallet_id: int, amount: int) -> bool:
    result = await db.execute(
        update(Wallet)
        .where(Wallet.id == wallet_id, Wallet.balance >= amount)
        .values(balance=Wallet.balance - amount)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# ---------------------------------------------------------------------------
# Deposits
# ---------------------------------------------------------------------------

async def find_transaction(db: AsyncSession, reference: str) -> Transaction | None:
    result = await db.execute(select(Transaction).where(Transaction.reference == reference))
    return result.scalar_one_or_none()


async def initiate_deposit(
    db: AsyncSession,
    paystack: PaystackClient,
    *,
    user_id: int,
    email: str,
    amount: int,
    reference: str | None = None,
) -> tuple[Transaction, bool]:
    """Open a hosted checkout for ``amount`` kobo.

    Returns the transaction and whether it was created by this call; a repeated
    ``reference`` hands back the transaction recorded the first time.
    """
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValidationError("Amount must be a positive number (in kobo)")

    reference = reference or paystack.generate_reference()
    existing = await find_transaction(db, reference)
    if existing:
        if existing.payer_user_id != user_id:
            raise Conflict("Transaction reference already in use")
        return existing, False

    try:
        data = await paystack.initialize_transaction(amount, email, reference)
    except UpstreamError as exc:
        logger.error("Paystack initialization error reference=%s: %s", reference, exc.message)
        raise PaymentInitiationFailed(exc.message) from exc

    tx = Transaction(
        reference=data.get("reference") or reference,
        amount=amount,
        type="deposit",
        status="pending",
        checkout_url=data.get("authorization_url"),
        payer_user_id=user_id,
    )
    db.add(tx)
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Failed to save transaction reference=%s", reference)
        raise InternalError("Failed to save transaction", code="database_error") from exc
    return tx, True


def _apply_provider_state(tx: Transaction, status: str, amount: int | None, paid_at: datetime | None) -> bool:
    """Copy the provider's view onto ``tx``; only pending rows may change status."""
    if tx.status != "pending" and tx.status != status:
        logger.warning(
            "Ignoring status change %s -> %s for transaction %s", tx.status, status, tx.reference
        )
        return False
    tx.status = status
    if amount is not None:
        tx.amount = int(amount)
    if paid_at is not None:
        tx.paid_at = to_naive_utc(paid_at)
    return True


async def confirm_deposit(
    db: AsyncSession,
    charge: ChargeData,
    *,
    event: str = "charge.success",
) -> str:
    """Apply a provider charge event to the ledger exactly once.

    Returns one of ``unknown_reference``, ``duplicate``, ``ignored``,
    ``credited`` or ``recorded``.
    """
    tx = await find_transaction(db, charge.reference)
    if tx is None:
        logger.warning("Transaction with reference %s not found", charge.reference)
        return "unknown_reference"
    if tx.type != "deposit" or tx.payer_user_id is None:
        logger.warning("Transaction %s is not a deposit; event ignored", charge.reference)
        return "ignored"

    event_key = f"{event}:{charge.reference}"
    seen = (await db.execute(select(WebhookEvent.id).where(WebhookEvent.event_key == event_key))).first()
    if seen:
        logger.info("Duplicate %s delivery for %s skipped", event, charge.reference)
        return "duplicate"

    status = map_provider_status(charge.status)
    if not _apply_provider_state(tx, status, charge.amount, charge.paid_at):
        await db.rollback()
        return "ignored"

    credited = False
    try:
        db.add(WebhookEvent(
            event_key=event_key,
            event=event,
            provider_event_id=str(charge.id) if charge.id is not None else None,
            reference=charge.reference,
        ))
        await db.flush()
        if status == "success":
            wallet = await get_or_create_wallet(db, tx.payer_user_id, commit=False)
            await _credit(db, wallet.id, int(charge.amount))
            credited = True
        await db.commit()
    except IntegrityError:
        # the same event is being applied by a concurrent delivery
        await db.rollback()
        logger.info("Concurrent %s delivery for %s lost the race", event, charge.reference)
        return "duplicate"

    logger.info("Transaction %s updated to %s", charge.reference, status)
    return "credited" if credited else "recorded"


async def get_deposit_status(
    db: AsyncSession,
    paystack: PaystackClient,
    *,
    user_id: int,
    reference: str,
    refresh: bool = False,
) -> Transaction:
    tx = await find_transaction(db, reference)
    if not tx:
        raise NotFound("Transaction not found")
    if tx.payer_user_id != user_id:
        raise Forbidden("You don't have permission to view this transaction")

    if refresh or tx.status == "pending":
        try:
            charge = ChargeData.model_validate(await paystack.verify_transaction(reference))
        except UpstreamError as exc:
            logger.warning("Failed to verify %s with Paystack: %s", reference, exc.message)
            return tx
        except PydanticValidationError as exc:
            logger.warning("Unexpected Paystack verify payload for %s: %s", reference, exc)
            return tx
        if _apply_provider_state(tx, map_provider_status(charge.status), charge.amount, charge.paid_at):
            await db.commit()
    return tx


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------

async def transfer(db: AsyncSession, *, user_id: int, amount: int, wallet_number: str) -> Transaction:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValidationError("Amount must be a positive number (in kobo)")

    sender = await get_or_create_wallet(db, user_id)
    recipient = (await db.execute(
        select(Wallet).where(Wallet.wallet_number == wallet_number.strip())
    )).scalar_one_or_none()

    if recipient is not None and recipient.user_id == user_id:
        raise SelfTransferDenied()
    if (sender.balance or 0) < amount:
        raise InsufficientFunds()
    if recipient is None:
        raise RecipientNotFound()

    # touch rows in id order so opposing transfers cannot deadlock
    for wallet_id in sorted((sender.id, recipient.id)):
        if wallet_id == recipient.id:
            await _credit(db, recipient.id, amount)
        elif not await _debit(db, sender.id, amount):
            await db.rollback()
            raise InsufficientFunds()

    tx = Transaction(
        reference=PaystackClient.generate_reference(),
        amount=amount,
        type="transfer",
        status="success",
        sender_user_id=user_id,
        receiver_user_id=recipient.user_id,
    )
    db.add(tx)
    await db.commit()
    logger.info(
        "Transfer %s: %s kobo from wallet %s to wallet %s",
        tx.reference,
        amount,
        sender.wallet_number,
        recipient.wallet_number,
    )
    return tx


async def list_transactions(db: AsyncSession, user_id: int) -> list[Transaction]:
    result = await db.execute(
        select(Transaction)
        .where(or_(
            Transaction.payer_user_id == user_id,
            Transaction.sender_user_id == user_id,
            Transaction.receiver_user_id == user_id,
        ))
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
    )
    return list(result.scalars().all())
