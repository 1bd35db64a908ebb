"""
Rider dispatch backend.

Order dispatch, delivery lifecycle and live rider tracking for the grocery
delivery platform.
"""

__version__ = "1.0.0"
