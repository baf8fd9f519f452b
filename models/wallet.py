from sqlalchemy import Column, Integer, BigInteger, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.sql import func
from app.database import Base


class Wallet(Base):
    __tablename__ = "wallets"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_wallet_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    wallet_number = Column(String(13), unique=True, index=True, nullable=False)
    balance = Column(BigInteger, default=0, nullable=False)  # minor units (kobo)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    reference = Column(String, unique=True, index=True, nullable=False)
    amount = Column(BigInteger, nullable=False)
    type = Column(String, nullable=False)  # deposit / transfer
    status = Column(String, default="pending", nullable=False)  # pending / success / failed
    checkout_url = Column(String, nullable=True)
    payer_user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    sender_user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    receiver_user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
