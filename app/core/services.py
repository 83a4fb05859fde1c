"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with common service utilities

Pattern Comparison:
    - ServiceResult: Use for expected, recoverable outcomes the caller branches
      on (a declined card, lock contention, an already-settled escrow)
    - Exceptions: Use for precondition violations the caller should surface
      as-is (see core.exceptions)

Usage:
    from core.services import BaseService, ServiceResult

    class EscrowService(BaseService):
        @classmethod
        def release(cls, shipment_request) -> ServiceResult[EscrowTransaction]:
            if escrow.status == EscrowStatus.RELEASED:
                return ServiceResult.success(escrow)
            ...
            return ServiceResult.failure(
                "Payout could not be sent", error_code="PAYOUT_FAILED"
            )
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

# Generic type for ServiceResult data
T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        details: Extra context for failures (e.g. whether a retry may succeed)

    Usage:
        result = EscrowService.refund(shipment_request)
        if not result:
            logger.warning("Refund failed", extra={"error_code": result.error_code})
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """Create a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
            details: Additional context (retryable flag, provider code, ...)
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            details=details or {},
        )

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Services are stateless: use @classmethod and pass everything in.

    Usage:
        class ReviewService(BaseService):
            @classmethod
            def submit(cls, ...):
                with cls.atomic():
                    review = Review.objects.create(...)
                    cls._refresh_rating(review.reviewee)
                cls.get_logger().info("Review submitted", extra={...})
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get a logger named after the service class."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around transaction.atomic() that makes transaction
        boundaries explicit in service code. Never wrap an external API call
        in this block.
        """
        with transaction.atomic():
            yield
