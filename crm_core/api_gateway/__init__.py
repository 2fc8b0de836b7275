"""
API Gateway Module

Main FastAPI application with tenant routing and all API endpoints.
"""

from .main import app

__all__ = ["app"]
