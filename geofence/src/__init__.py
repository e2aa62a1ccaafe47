"""
Geofence admission filter.

Accepts or rejects HTTP requests depending on whether the client address is
geographically near a configured reference location.
"""

__version__ = "1.0.0"
