"""
keg_gateway.archive

Archive package.

Responsibilities:
- Provide the scope-guarded query gateway and statistics aggregator over the score store.
"""

# Package marker.
