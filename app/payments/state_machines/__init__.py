"""
State machine enums for payment models.
"""

from payments.state_machines.states import EscrowStatus, OnboardingStatus

__all__ = [
    "EscrowStatus",
    "OnboardingStatus",
]
