"""FastAPI service for the tour booking platform.

This package provides REST API endpoints for browsing tours, writing
reviews, booking through hosted checkout and managing user accounts.
"""

__version__ = "1.0.0"
