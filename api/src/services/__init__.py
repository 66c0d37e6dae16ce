"""Business logic services.

This package contains the query feature builder, authentication flows and
the collaborators (email, payments) the API endpoints depend on.
"""
