"""
Shipment models.
"""

from shipments.models.dispute import Dispute
from shipments.models.listing import Listing
from shipments.models.review import Review
from shipments.models.shipment_request import ShipmentRequest

__all__ = [
    "Dispute",
    "Listing",
    "Review",
    "ShipmentRequest",
]
