"""
Middleware components for the geofence filter.

This module provides:
- GeofenceMiddleware: Starlette middleware applying the admission decision
"""

from geofence.src.middleware.geofence import GeofenceMiddleware

__all__ = [
    "GeofenceMiddleware",
]
