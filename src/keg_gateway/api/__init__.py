"""
keg_gateway.api

HTTP API package.

Responsibilities:
- Expose login, renewal, archive and statistics routes over FastAPI.
"""

# Package marker.
