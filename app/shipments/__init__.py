"""
Shipments app: listings, shipment requests, disputes and reviews.
"""
