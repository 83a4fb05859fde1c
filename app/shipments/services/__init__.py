"""
Shipment services.

Services are the only writers of shipment state. Views and tasks call them;
nothing else saves a ShipmentRequest.
"""

from shipments.services.disputes import DisputeService
from shipments.services.lifecycle import LifecycleService
from shipments.services.listings import ListingService
from shipments.services.requests import RequestService
from shipments.services.reviews import ReviewService

__all__ = [
    "DisputeService",
    "LifecycleService",
    "ListingService",
    "RequestService",
    "ReviewService",
]
