"""Settlement ledger package."""

from splitbook.ledger.service import ParticipantNotFoundError, SettlementLedgerService

__all__ = ["ParticipantNotFoundError", "SettlementLedgerService"]
