"""SpinBet core: provably fair wagers, ledger settlement and payment reconciliation."""

__version__ = "0.1.0"
