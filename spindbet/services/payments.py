"""Payment reconciliation: deposits (invoices) and withdrawals (checks).

Features:
- Poll and webhook paths share one paid transition (pending -> paid CAS)
- Deposit credit, referrer binding and deposit-tier cascade in one transaction
- Withdrawals debit only after the gateway created the check
- Expired deposits are terminal and never credited
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

from redis.asyncio import Redis
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from spindbet.config import Settings
from spindbet.gateway.base import PaymentGateway, PayoutCheck, normalize_status
from spindbet.models.account import Account
from spindbet.models.base import utcnow
from spindbet.models.ledger import EntryType
from spindbet.models.payment import PaymentKind, PaymentRecord, PaymentStatus
from spindbet.schemas.payments import DepositCreated, DepositStatus, WithdrawalResult
from spindbet.services.house import HouseConfigService
from spindbet.services.ledger import LedgerService
from spindbet.services.referral import ReferralService
from spindbet.utils.errors import (
    GatewayError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from spindbet.utils.money import parse_amount
from spindbet.utils.redis_client import account_lock

logger = logging.getLogger(__name__)

INVOICE_PAID_UPDATE = "invoice_paid"


class PaymentService:
    """Bridges gateway invoice/check state into the ledger exactly once.

    Gateway calls are made outside database transactions; each public
    method performs at most one gateway call per money-moving step.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        gateway: PaymentGateway,
        redis: Redis,
    ):
        self._sessions = session_factory
        self.settings = settings
        self.gateway = gateway
        self._redis = redis

    def _ledger(self, session: AsyncSession) -> LedgerService:
        return LedgerService(session, self._redis, self.settings.balance_cache_ttl)

    # =========================================================================
    # Deposits
    # =========================================================================

    async def create_deposit(
        self,
        account_id: str,
        amount: Decimal | str | int | float,
        referral_code: str | None = None,
    ) -> DepositCreated:
        """Create a gateway invoice and a pending PaymentRecord.

        Args:
            account_id: Depositing account
            amount: Requested amount
            referral_code: Referrer id to bind when the deposit is credited

        Raises:
            ValidationError: amount below min_deposit
            MaintenanceModeError: maintenance mode is on
            GatewayError: invoice creation failed (nothing recorded)
        """
        amount = parse_amount(amount)

        async with self._sessions.begin() as session:
            house = await HouseConfigService(session, self.settings).require_open()
            if await session.get(Account, account_id) is None:
                raise NotFoundError("Account", account_id)

        if amount < house.min_deposit:
            raise ValidationError(
                f"Minimum deposit is {house.min_deposit}",
                details={"amount": str(amount)},
            )

        invoice = await self.gateway.create_invoice(
            amount,
            description=f"Deposit {amount} {self.settings.cryptopay_asset}",
            payload=account_id,
            expires_in=self.settings.invoice_ttl_seconds,
        )

        expires_at = utcnow() + timedelta(seconds=self.settings.invoice_ttl_seconds)
        async with self._sessions.begin() as session:
            record = PaymentRecord(
                external_id=invoice.invoice_id,
                account_id=account_id,
                amount=amount,
                kind=PaymentKind.DEPOSIT,
                status=PaymentStatus.PENDING,
                referral_code_used=(referral_code or None),
                url=invoice.pay_url,
                expires_at=expires_at,
            )
            session.add(record)

        logger.info(
            f"Deposit invoice created: invoice={invoice.invoice_id} "
            f"account={account_id[:8]}... amount={amount}"
        )
        return DepositCreated(
            invoice_id=invoice.invoice_id,
            amount=amount,
            pay_url=invoice.pay_url,
            status=PaymentStatus.PENDING,
            expires_at=expires_at,
        )

    async def check_deposit(self, invoice_id: str) -> DepositStatus:
        """Poll path.

        A record that is already terminal locally is returned without
        contacting the gateway.
        """
        async with self._sessions() as session:
            record = await self._get_deposit(session, invoice_id)

        if record.status.is_terminal:
            logger.info(
                f"Deposit already {record.status.value}: invoice={invoice_id}, skipping gateway"
            )
            return self._deposit_status(record, credited=False)

        status = await self.gateway.get_invoice_status(invoice_id)
        if status is PaymentStatus.PAID:
            return await self.handle_invoice_paid(invoice_id)
        if status.is_terminal:
            return await self._close_deposit(invoice_id, status)
        return self._deposit_status(record, credited=False)

    async def handle_invoice_paid(self, invoice_id: str) -> DepositStatus:
        """Apply the paid transition and its ledger effect exactly once.

        The pending -> paid compare-and-set, referrer binding, deposit
        credit and referral cascade commit together; a lost race or a
        record that is already expired/cancelled credits nothing.
        """
        async with self._sessions.begin() as session:
            record = await self._get_deposit(session, invoice_id)

            result = await session.execute(
                update(PaymentRecord)
                .where(
                    PaymentRecord.id == record.id,
                    PaymentRecord.status == PaymentStatus.PENDING,
                )
                .values(status=PaymentStatus.PAID, paid_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                record = await self._get_deposit(session, invoice_id)
                if record.status is PaymentStatus.PAID:
                    logger.info(f"Deposit already credited: invoice={invoice_id}")
                else:
                    logger.warning(
                        f"Paid notice for {record.status.value} deposit ignored: invoice={invoice_id}"
                    )
                return self._deposit_status(record, credited=False)

            ledger = self._ledger(session)
            referral = ReferralService(session, ledger)
            if record.referral_code_used:
                await referral.bind_referrer(record.account_id, record.referral_code_used)

            entry = await ledger.credit(
                record.account_id,
                record.amount,
                EntryType.DEPOSIT,
                counters={"total_deposited": record.amount},
                reference_id=record.id,
                description=f"Deposit invoice {invoice_id}",
            )
            await referral.apply_referral_bonus(
                record.account_id,
                record.amount,
                self.settings.deposit_referral_rates,
                reference_id=record.id,
            )
            record = await self._get_deposit(session, invoice_id)

        await ledger.invalidate_cached_balances()
        logger.info(
            f"Deposit credited: invoice={invoice_id} account={record.account_id[:8]}... "
            f"amount={record.amount} balance={entry.balance_after}"
        )
        return self._deposit_status(record, credited=True, balance=entry.balance_after)

    async def process_webhook(self, raw_body: bytes, signature: str | None) -> DepositStatus | None:
        """Push path: verified gateway update routed to the paid transition.

        Returns:
            DepositStatus for invoice_paid updates, None for other update types

        Raises:
            ValidationError: bad signature, malformed body or no invoice id
        """
        if not self.gateway.verify_webhook_signature(raw_body, signature):
            logger.warning("Webhook rejected: invalid signature")
            raise ValidationError("Invalid webhook signature")

        update_type, payload = self.gateway.parse_webhook(raw_body)
        if update_type != INVOICE_PAID_UPDATE:
            logger.info(f"Webhook ignored: update_type={update_type}")
            return None

        invoice_id = payload.get("invoice_id")
        if invoice_id is None:
            raise ValidationError("Webhook payload has no invoice_id")

        if normalize_status(payload.get("status", "paid")) is not PaymentStatus.PAID:
            logger.warning(f"Webhook invoice_paid with status={payload.get('status')}: invoice={invoice_id}")
            return None

        return await self.handle_invoice_paid(str(invoice_id))

    async def expire_stale_deposits(self, now: datetime | None = None) -> int:
        """Move pending deposits past expires_at to expired.

        Returns:
            Number of records expired
        """
        now = now or utcnow()
        async with self._sessions.begin() as session:
            result = await session.execute(
                update(PaymentRecord)
                .where(
                    PaymentRecord.kind == PaymentKind.DEPOSIT,
                    PaymentRecord.status == PaymentStatus.PENDING,
                    PaymentRecord.expires_at.is_not(None),
                    PaymentRecord.expires_at <= now,
                )
                .values(status=PaymentStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            )
            expired = result.rowcount

        if expired:
            logger.info(f"Expired {expired} stale deposit(s)")
        return expired

    async def get_deposit(self, invoice_id: str) -> DepositStatus:
        async with self._sessions() as session:
            record = await self._get_deposit(session, invoice_id)
        return self._deposit_status(record, credited=False)

    async def _close_deposit(self, invoice_id: str, status: PaymentStatus) -> DepositStatus:
        """pending -> expired/cancelled as reported by the gateway."""
        async with self._sessions.begin() as session:
            await session.execute(
                update(PaymentRecord)
                .where(
                    PaymentRecord.kind == PaymentKind.DEPOSIT,
                    PaymentRecord.external_id == invoice_id,
                    PaymentRecord.status == PaymentStatus.PENDING,
                )
                .values(status=status)
                .execution_options(synchronize_session=False)
            )
            record = await self._get_deposit(session, invoice_id)

        logger.info(f"Deposit closed by gateway: invoice={invoice_id} status={record.status.value}")
        return self._deposit_status(record, credited=False)

    # =========================================================================
    # Withdrawals
    # =========================================================================

    async def withdraw(
        self,
        account_id: str,
        amount: Decimal | str | int | float,
    ) -> WithdrawalResult:
        """Create a payout check, then debit and record it as paid.

        The per-account lock keeps two withdrawals of the same account
        from both passing the balance pre-check.

        Raises:
            ValidationError: amount below min_withdrawal
            InsufficientFundsError: balance < amount
            ConcurrentOperationError: another withdrawal is in progress
            GatewayError: check creation failed (nothing debited)
        """
        amount = parse_amount(amount)

        async with self._sessions.begin() as session:
            house = await HouseConfigService(session, self.settings).snapshot()
            balance = await session.scalar(select(Account.balance).where(Account.id == account_id))

        if amount < house.min_withdrawal:
            raise ValidationError(
                f"Minimum withdrawal is {house.min_withdrawal}",
                details={"amount": str(amount)},
            )
        if balance is None:
            raise NotFoundError("Account", account_id)
        if balance < amount:
            raise InsufficientFundsError(required=amount, available=balance)

        async with account_lock(self._redis, account_id, self.settings.account_lock_ttl):
            check = await self.gateway.create_payout_check(account_id, amount)

            try:
                async with self._sessions.begin() as session:
                    ledger = self._ledger(session)
                    now = utcnow()
                    record = PaymentRecord(
                        id=str(uuid4()),
                        external_id=check.check_id,
                        account_id=account_id,
                        amount=amount,
                        kind=PaymentKind.WITHDRAWAL,
                        status=PaymentStatus.PAID,
                        url=check.claim_url,
                        paid_at=now,
                    )
                    entry = await ledger.debit(
                        account_id,
                        amount,
                        EntryType.WITHDRAWAL,
                        counters={"total_withdrawn": amount},
                        reference_id=record.id,
                        description=f"Withdrawal check {check.check_id}",
                    )
                    session.add(record)
                    await session.execute(
                        update(Account)
                        .where(Account.id == account_id)
                        .values(last_withdrawal_check_url=check.claim_url, last_withdrawal_at=now)
                        .execution_options(synchronize_session=False)
                    )
            except Exception:
                await self._revoke_check(check)
                raise

        await ledger.invalidate_cached_balances()
        logger.info(
            f"Withdrawal paid: check={check.check_id} account={account_id[:8]}... "
            f"amount={amount} balance={entry.balance_after}"
        )
        return WithdrawalResult(
            check_id=check.check_id,
            amount=amount,
            claim_url=check.claim_url,
            status=PaymentStatus.PAID,
            balance=entry.balance_after,
        )

    async def _revoke_check(self, check: PayoutCheck) -> None:
        """Best effort: the ledger was not debited, so the check must not be claimable."""
        try:
            await self.gateway.delete_check(check.check_id)
            logger.warning(f"Withdrawal check revoked after failed debit: check={check.check_id}")
        except GatewayError as e:
            logger.error(f"Failed to revoke check {check.check_id}: {e.message}")

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    async def _get_deposit(session: AsyncSession, invoice_id: str) -> PaymentRecord:
        record = (
            await session.execute(
                select(PaymentRecord)
                .where(
                    PaymentRecord.kind == PaymentKind.DEPOSIT,
                    PaymentRecord.external_id == str(invoice_id),
                )
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if record is None:
            raise NotFoundError("Invoice", invoice_id)
        return record

    @staticmethod
    def _deposit_status(
        record: PaymentRecord,
        credited: bool,
        balance: Decimal | None = None,
    ) -> DepositStatus:
        return DepositStatus(
            invoice_id=record.external_id,
            amount=record.amount,
            status=record.status,
            credited=credited,
            paid_at=record.paid_at,
            balance=balance,
        )
