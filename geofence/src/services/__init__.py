"""
Service layer for geofence admission decisions.

Modules:
- address: Peer address normalization and private-address classification
- allowlist: Addresses exempt from the proximity check
- proximity_cache: In-process and Redis verdict caches
- providers: Interchangeable geolocation providers
- resolver: Cache-backed proximity resolution
- engine: The admission decision engine
- exceptions: Error taxonomy
"""
