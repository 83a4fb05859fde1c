"""
Tests for authentication app.

This package contains test modules for:
- test_managers.py: UserManager create_user/create_superuser
- test_views.py: JWT token obtain and refresh endpoints

Usage:
    pytest authentication/tests/
    pytest authentication/tests/test_managers.py
"""
