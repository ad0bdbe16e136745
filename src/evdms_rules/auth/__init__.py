"""
evdms_rules.auth

Session and authorization core.

Responsibilities:
- Role -> namespace resolution and feature permissions.
- Route permission table, menu filtering and edge routing decisions.
- Session ownership with durable/cookie mirrors and cross-context sync.
- JWT helpers and FastAPI auth dependencies.
"""

# Package marker.
