"""
OpenAPI schema customizations for drf-spectacular.

This module provides a postprocessing hook that adds summaries to the
simplejwt token endpoints and groups operations under tags for ReDoc.

Tag naming follows the pattern: [App Name] - [Group Name]
Examples:
- Auth (token obtain/refresh)
- Shipments - Listings
- Shipments - Requests
- Shipments - Disputes
- Shipments - Reviews
- Payments - Payouts
- Payments - Transactions
"""

# Natural language summaries for simplejwt endpoints
# Maps operation_id to (summary, description)
TOKEN_SUMMARIES = {
    "auth_token_create": (
        "Obtain token pair",
        "Authenticate with email and password to receive access and refresh JWTs.",
    ),
    "auth_token_refresh_create": (
        "Refresh access token",
        "Exchange a refresh token for a new access token.",
    ),
}

TAG_DESCRIPTIONS = [
    {
        "name": "Auth",
        "description": "JWT token issue and refresh.",
    },
    {
        "name": "Shipments - Listings",
        "description": "A traveler's offered luggage capacity.",
    },
    {
        "name": "Shipments - Requests",
        "description": (
            "Shipment requests and their lifecycle: accept, pay, delivery "
            "tracking and confirmation by code."
        ),
    },
    {
        "name": "Shipments - Disputes",
        "description": "Disputes opened by participants and resolved by staff.",
    },
    {
        "name": "Shipments - Reviews",
        "description": "Ratings left after a confirmed delivery.",
    },
    {
        "name": "Payments - Payouts",
        "description": "Stripe Connect onboarding for travelers receiving payouts.",
    },
    {
        "name": "Payments - Transactions",
        "description": "Escrow history for the money a user paid or receives.",
    },
]


def group_api_endpoints(result, generator, request, public):
    """
    Postprocessing hook to group API endpoints by function.

    Shipments and payments operations carry their tags via @extend_schema;
    this hook tags the third-party auth endpoints and adds tag descriptions.
    """
    paths = result.get("paths", {})

    for path, methods in paths.items():
        for method, operation in methods.items():
            if not isinstance(operation, dict):
                continue

            operation_id = operation.get("operationId", "")

            if operation_id in TOKEN_SUMMARIES:
                summary, description = TOKEN_SUMMARIES[operation_id]
                operation["summary"] = summary
                operation["description"] = description

            if operation_id.startswith("auth_"):
                operation["tags"] = ["Auth"]

    result["tags"] = TAG_DESCRIPTIONS

    return result
