"""
Tests for ApplicationErrorMixin.
"""

from __future__ import annotations

from rest_framework.permissions import AllowAny
from rest_framework.test import APIRequestFactory
from rest_framework.views import APIView

from core.exceptions import ConflictError, ExternalServiceError
from core.viewset_mixins import ApplicationErrorMixin


def _view_raising(error):
    class RaisingView(ApplicationErrorMixin, APIView):
        permission_classes = [AllowAny]
        authentication_classes = []

        def get(self, request):
            raise error

    return RaisingView.as_view()


class TestApplicationErrorMixin:
    def test_client_error_rendered_and_logged_at_info(self, mocker):
        logger = mocker.patch("core.viewset_mixins.logger")
        view = _view_raising(ConflictError("Request changed", error_code="TRANSITION_CONFLICT"))

        response = view(APIRequestFactory().get("/"))

        assert response.status_code == 409
        assert response.data == {
            "error": "Request changed",
            "error_code": "TRANSITION_CONFLICT",
        }
        logger.info.assert_called_once()
        logger.error.assert_not_called()

    def test_server_error_logged_with_traceback(self, mocker):
        logger = mocker.patch("core.viewset_mixins.logger")
        error = ExternalServiceError("Stripe is down", error_code="ONBOARDING_UNAVAILABLE")
        view = _view_raising(error)

        response = view(APIRequestFactory().get("/"))

        assert response.status_code == 502
        assert response.data["error_code"] == "ONBOARDING_UNAVAILABLE"
        logger.info.assert_not_called()
        _, kwargs = logger.error.call_args
        assert kwargs["exc_info"] is error
        assert kwargs["extra"]["http_status"] == 502
