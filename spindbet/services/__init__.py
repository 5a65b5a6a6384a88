"""Business logic services."""

from spindbet.services.account import AccountService
from spindbet.services.coinflip import CoinflipService
from spindbet.services.house import HouseConfigService
from spindbet.services.ledger import LedgerService
from spindbet.services.payments import PaymentService
from spindbet.services.referral import ReferralPayout, ReferralService
from spindbet.services.slots import SlotService

__all__ = [
    "AccountService",
    "CoinflipService",
    "HouseConfigService",
    "LedgerService",
    "PaymentService",
    "ReferralPayout",
    "ReferralService",
    "SlotService",
]
