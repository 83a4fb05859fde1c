"""
Payments app: escrow for shipment requests on Stripe.

This app handles:
- Charging the sender into escrow (manual-capture PaymentIntents)
- Releasing the payout to the traveler's Connect account
- Refunding the sender
- Reconciling charges whose outcome is unknown

Related apps:
    - shipments: drives escrow operations from lifecycle transitions

Usage:
    from payments.services import EscrowService

    result = EscrowService.authorize_and_capture(shipment_request, "pm_card_visa")
"""
