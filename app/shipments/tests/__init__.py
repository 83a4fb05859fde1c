"""
Tests for shipments app.
"""
