"""Deposit and withdrawal results."""

from datetime import datetime
from decimal import Decimal

from pydantic import Field

from spindbet.models.payment import PaymentStatus
from spindbet.schemas.common import BaseSchema


class DepositCreated(BaseSchema):
    invoice_id: str = Field(..., alias="invoiceId")
    amount: Decimal
    pay_url: str = Field(..., alias="payUrl")
    status: PaymentStatus
    expires_at: datetime | None = Field(None, alias="expiresAt")


class DepositStatus(BaseSchema):
    """Result of a poll or webhook for one invoice."""

    invoice_id: str = Field(..., alias="invoiceId")
    amount: Decimal
    status: PaymentStatus
    credited: bool = Field(..., description="This call applied the credit")
    paid_at: datetime | None = Field(None, alias="paidAt")
    balance: Decimal | None = None


class WithdrawalResult(BaseSchema):
    check_id: str = Field(..., alias="checkId")
    amount: Decimal
    claim_url: str = Field(..., alias="claimUrl")
    status: PaymentStatus
    balance: Decimal


class DailyBonusResult(BaseSchema):
    claimed: bool
    amount: Decimal
    balance: Decimal
    next_claim_at: datetime | None = Field(None, alias="nextClaimAt")
