"""
Pagination classes for the shipments API.

Cursor pagination keeps pages stable while new requests are created.
"""

from rest_framework.pagination import CursorPagination


class NewestFirstCursorPagination(CursorPagination):
    """
    Requests and reviews, most recent first.

    Default: 20 items per page
    Maximum: 100 items per page
    """

    page_size = 20
    max_page_size = 100
    page_size_query_param = "page_size"
    ordering = ("-created_at", "-id")


class OldestFirstCursorPagination(CursorPagination):
    """Work queues (open disputes), oldest first."""

    page_size = 20
    max_page_size = 100
    page_size_query_param = "page_size"
    ordering = ("created_at", "id")
