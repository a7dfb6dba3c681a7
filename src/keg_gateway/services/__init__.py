"""
keg_gateway.services

Service-layer package.

Responsibilities:
- Compose the directory, resolver and token layers into login and renewal flows.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Services are plain Python and testable with fake directory connections.
