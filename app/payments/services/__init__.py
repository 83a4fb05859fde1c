"""
Payment services.

- EscrowService: Charges, payouts and refunds for shipment requests
- ConnectedAccountService: Stripe Connect onboarding for travelers

Usage:
    from payments.services import EscrowService

    result = EscrowService.release(shipment_request)
    if not result:
        logger.warning("Release failed", extra={"error_code": result.error_code})
"""

from payments.services.connected_account_service import ConnectedAccountService
from payments.services.escrow_service import EscrowService

__all__ = [
    "ConnectedAccountService",
    "EscrowService",
]
