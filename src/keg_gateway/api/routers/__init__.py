"""
keg_gateway.api.routers

API routers.
"""
