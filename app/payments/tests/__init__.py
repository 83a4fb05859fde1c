"""
Tests for payments app.

This package contains test modules for:
- test_models.py: ConnectedAccount and EscrowTransaction constraints
- test_state_transitions.py: EscrowTransaction FSM edges
- test_escrow_service.py: capture, release, refund and reconciliation
- test_locks.py: per-request Redis lock
- test_tasks.py: reconcile_pending_escrows

Usage:
    pytest payments/tests/
    pytest payments/tests/test_escrow_service.py
"""
