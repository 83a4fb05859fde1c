"""
Authentication application.

Email-based accounts for senders, travelers and administrators, plus JWT
token endpoints.

Usage:
    from authentication.models import User
"""
