"""
Payment domain models.

- ConnectedAccount: Stripe Connect accounts receiving traveler payouts
- EscrowTransaction: Funds held for a shipment request
"""

from payments.models.connected_account import ConnectedAccount
from payments.models.escrow_transaction import EscrowTransaction

__all__ = [
    "ConnectedAccount",
    "EscrowTransaction",
]
