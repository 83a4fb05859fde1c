"""
Pagination classes for the payments API.
"""

from rest_framework.pagination import PageNumberPagination


class TransactionPagination(PageNumberPagination):
    """
    Transaction history, numbered pages.

    Default: 20 items per page
    Maximum: 50 items per page (?per_page=)
    """

    page_size = 20
    max_page_size = 50
    page_size_query_param = "per_page"
