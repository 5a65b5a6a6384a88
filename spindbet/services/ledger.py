"""Ledger Service: the only code path that moves an account balance.

Features:
- Atomic credit/debit as single conditional UPDATE ... RETURNING
- Aggregate counters updated in the same statement as the balance
- Journal row per movement with SHA-256 integrity hash
- Redis read-cache for balance lookups
"""

import hashlib
import logging
from decimal import Decimal

from redis.asyncio import Redis
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from spindbet.models.account import Account
from spindbet.models.ledger import EntryType, LedgerEntry
from spindbet.utils.errors import InsufficientFundsError, NotFoundError, ValidationError
from spindbet.utils.money import ZERO, quantize

logger = logging.getLogger(__name__)

# Counters a movement may bump alongside the balance
COUNTER_COLUMNS = frozenset(
    {
        "total_deposited",
        "total_withdrawn",
        "total_wagered",
        "total_wins",
        "total_games",
        "referral_earnings",
    }
)

# Write the cached balance only if no invalidation happened since the read began
STORE_BALANCE_SCRIPT = """
if (redis.call("get", KEYS[1]) or "0") == ARGV[1] then
    return redis.call("setex", KEYS[2], ARGV[2], ARGV[3])
else
    return 0
end
"""


class LedgerService:
    """Ledger operations bound to one session (one transaction).

    The caller owns the transaction boundary; nothing here commits.
    After the caller commits, ``invalidate_cached_balances()`` drops the
    cached balance of every account this instance touched.
    """

    BALANCE_KEY_PREFIX = "ledger:balance:"
    VERSION_KEY_PREFIX = "ledger:balance_version:"
    BALANCE_CACHE_TTL = 300  # seconds

    def __init__(
        self,
        session: AsyncSession,
        redis: Redis | None = None,
        cache_ttl: int | None = None,
    ) -> None:
        self.session = session
        self._redis = redis
        self._cache_ttl = cache_ttl or self.BALANCE_CACHE_TTL
        self._touched: set[str] = set()

    async def credit(
        self,
        account_id: str,
        amount: Decimal,
        entry_type: EntryType,
        *,
        counters: dict[str, Decimal | int] | None = None,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> LedgerEntry:
        """Increase balance and apply counter deltas atomically.

        Args:
            account_id: Account to credit
            amount: Positive amount
            entry_type: Journal entry type
            counters: Counter deltas, e.g. {"total_deposited": amount}
            reference_id: Round or payment id
            description: Optional description

        Returns:
            LedgerEntry journal row

        Raises:
            NotFoundError: Unknown account
        """
        amount = self._check_amount(amount)

        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(balance=Account.balance + amount, **self._counter_values(counters))
            .returning(Account.balance)
            .execution_options(synchronize_session=False)
        )
        balance_after = (await self.session.execute(stmt)).scalar_one_or_none()
        if balance_after is None:
            raise NotFoundError("Account", account_id)

        balance_after = quantize(balance_after)
        return await self._record(
            account_id=account_id,
            entry_type=entry_type,
            amount=amount,
            balance_before=balance_after - amount,
            balance_after=balance_after,
            reference_id=reference_id,
            description=description,
        )

    async def debit(
        self,
        account_id: str,
        amount: Decimal,
        entry_type: EntryType,
        *,
        counters: dict[str, Decimal | int] | None = None,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> LedgerEntry:
        """Decrease balance if it covers the amount.

        The balance check and the write are one statement, so two
        concurrent debits can never both pass on the same funds.

        Raises:
            InsufficientFundsError: balance < amount (nothing changed)
            NotFoundError: Unknown account
        """
        amount = self._check_amount(amount)

        stmt = (
            update(Account)
            .where(Account.id == account_id, Account.balance >= amount)
            .values(balance=Account.balance - amount, **self._counter_values(counters))
            .returning(Account.balance)
            .execution_options(synchronize_session=False)
        )
        balance_after = (await self.session.execute(stmt)).scalar_one_or_none()
        if balance_after is None:
            available = await self.session.scalar(
                select(Account.balance).where(Account.id == account_id)
            )
            if available is None:
                raise NotFoundError("Account", account_id)
            logger.info(
                f"Debit rejected: account={account_id[:8]}... "
                f"amount={amount} available={available}"
            )
            raise InsufficientFundsError(required=amount, available=quantize(available))

        balance_after = quantize(balance_after)
        return await self._record(
            account_id=account_id,
            entry_type=entry_type,
            amount=-amount,
            balance_before=balance_after + amount,
            balance_after=balance_after,
            reference_id=reference_id,
            description=description,
        )

    async def record_counters(
        self,
        account_id: str,
        counters: dict[str, Decimal | int],
    ) -> None:
        """Bump aggregate counters without moving the balance."""
        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(**self._counter_values(counters))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError("Account", account_id)

    async def get_balance(self, account_id: str) -> Decimal:
        """Get account balance.

        Args:
            account_id: Account ID

        Returns:
            Current balance
        """
        cache_key = f"{self.BALANCE_KEY_PREFIX}{account_id}"
        version_key = f"{self.VERSION_KEY_PREFIX}{account_id}"
        if self._redis is not None:
            cached = await self._redis.get(cache_key)
            if cached is not None:
                return Decimal(cached)
            version = await self._redis.get(version_key) or "0"

        balance = await self.session.scalar(
            select(Account.balance).where(Account.id == account_id)
        )
        if balance is None:
            raise NotFoundError("Account", account_id)
        balance = quantize(balance)

        if self._redis is not None:
            store = self._redis.register_script(STORE_BALANCE_SCRIPT)
            await store(
                keys=[version_key, cache_key],
                args=[version, self._cache_ttl, str(balance)],
            )

        return balance

    async def get_entries(
        self,
        account_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        entry_type: EntryType | None = None,
    ) -> list[LedgerEntry]:
        """Get account's ledger history, newest first.

        Args:
            account_id: Account ID
            limit: Max entries to return
            offset: Pagination offset
            entry_type: Optional filter by entry type

        Returns:
            List of entries
        """
        query = (
            select(LedgerEntry)
            .where(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id)
            .offset(offset)
            .limit(limit)
        )

        if entry_type:
            query = query.where(LedgerEntry.entry_type == entry_type)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def invalidate_cached_balances(self) -> None:
        """Drop cached balances of touched accounts. Call after commit.

        The version bump makes any read that started before the commit
        skip its cache write.
        """
        if self._redis is None or not self._touched:
            return
        for account_id in self._touched:
            await self._redis.incr(f"{self.VERSION_KEY_PREFIX}{account_id}")
        keys = [f"{self.BALANCE_KEY_PREFIX}{account_id}" for account_id in self._touched]
        await self._redis.delete(*keys)
        self._touched.clear()

    async def _record(
        self,
        *,
        account_id: str,
        entry_type: EntryType,
        amount: Decimal,
        balance_before: Decimal,
        balance_after: Decimal,
        reference_id: str | None,
        description: str | None,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            account_id=account_id,
            entry_type=entry_type,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            reference_id=reference_id,
            description=description,
            integrity_hash=self._compute_integrity_hash(
                account_id=account_id,
                entry_type=entry_type,
                amount=amount,
                balance_before=balance_before,
                balance_after=balance_after,
            ),
        )
        self.session.add(entry)
        await self.session.flush()
        self._touched.add(account_id)

        logger.info(
            f"Ledger {entry_type.value}: account={account_id[:8]}... "
            f"amount={amount:+} balance={balance_before} -> {balance_after}"
        )
        return entry

    @staticmethod
    def _check_amount(amount: Decimal) -> Decimal:
        amount = quantize(amount)
        if amount <= ZERO:
            raise ValidationError("Ledger amount must be positive", details={"amount": str(amount)})
        return amount

    @staticmethod
    def _counter_values(counters: dict[str, Decimal | int] | None) -> dict:
        if not counters:
            return {}
        unknown = set(counters) - COUNTER_COLUMNS
        if unknown:
            raise ValueError(f"Unknown ledger counters: {sorted(unknown)}")
        return {name: getattr(Account, name) + delta for name, delta in counters.items()}

    @staticmethod
    def _compute_integrity_hash(
        account_id: str,
        entry_type: EntryType,
        amount: Decimal,
        balance_before: Decimal,
        balance_after: Decimal,
    ) -> str:
        """Compute SHA-256 integrity hash for a journal row.

        This hash can be verified later to detect tampering.
        """
        data = (
            f"{account_id}:{entry_type.value}:{quantize(amount)}:"
            f"{quantize(balance_before)}:{quantize(balance_after)}"
        )
        return hashlib.sha256(data.encode()).hexdigest()

    @staticmethod
    def verify_integrity(entry: LedgerEntry) -> bool:
        """Verify journal row integrity hash."""
        expected = LedgerService._compute_integrity_hash(
            account_id=entry.account_id,
            entry_type=entry.entry_type,
            amount=entry.amount,
            balance_before=entry.balance_before,
            balance_after=entry.balance_after,
        )
        return entry.integrity_hash == expected
