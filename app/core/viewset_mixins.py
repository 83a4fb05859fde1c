"""
View mixins for common DRF functionality.

This module provides generic, non-domain-specific mixins for API views:
- ApplicationErrorMixin: Render core.exceptions errors as JSON responses

Usage:
    from core.viewset_mixins import ApplicationErrorMixin

    class ShipmentRequestViewSet(ApplicationErrorMixin, viewsets.GenericViewSet):
        ...

Any BaseApplicationError escaping a handler is answered with its
to_dict() body and its http_status; 5xx ones are logged with exc_info.
Other exceptions go through DRF's default handling.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rest_framework.response import Response

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class ApplicationErrorMixin:
    """
    Translate domain exceptions raised by services into API responses.

    Client errors (4xx) are logged at info level. Server-side failures
    (5xx, e.g. ExternalServiceError) are logged at error level with the
    traceback.
    """

    def handle_exception(self, exc: Exception) -> Any:
        if isinstance(exc, BaseApplicationError):
            extra = {
                "error_code": exc.error_code,
                "http_status": exc.http_status,
                "view": self.__class__.__name__,
            }
            if exc.http_status >= 500:
                logger.error("Service layer failure", extra=extra, exc_info=exc)
            else:
                logger.info("Request rejected by service layer", extra=extra)
            return Response(exc.to_dict(), status=exc.http_status)
        return super().handle_exception(exc)  # type: ignore[misc]
