"""Data models for the FastAPI service.

This package contains Pydantic models for request validation and the
entity schema descriptors used by the repositories.
"""
