"""
Read-side queries for payments.

Usage:
    from payments import selectors

    queryset = selectors.transactions_for_user(request.user)
"""

from __future__ import annotations

from django.db.models import Q, QuerySet

from payments.models import EscrowTransaction


def transactions_for_user(user) -> QuerySet[EscrowTransaction]:
    """Escrows the user paid into or is paid out from, newest first."""
    return (
        EscrowTransaction.objects.filter(Q(payer=user) | Q(payee=user))
        .select_related("shipment_request", "shipment_request__listing")
        .order_by("-created_at", "-id")
    )
