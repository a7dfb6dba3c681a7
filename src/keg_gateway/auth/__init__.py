"""
keg_gateway.auth

Authentication/authorization package.

Responsibilities:
- Key material loading.
- JWT issuing and validation.
- Scope guard and FastAPI auth dependencies.
"""

# Package marker.
