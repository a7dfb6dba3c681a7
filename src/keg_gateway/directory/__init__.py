"""
keg_gateway.directory

Directory (LDAP) package.

Responsibilities:
- Bind identities and fan out membership searches (`client`).
- Reduce memberships to ordered roles and scopes (`resolver`).
"""

# Package marker.
