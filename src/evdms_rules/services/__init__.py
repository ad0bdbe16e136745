"""
evdms_rules.services

Service-layer package.

Responsibilities:
- Own transaction boundaries and persistence decisions.
- Compose rule modules (lifecycle, finance) with repositories.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Services are the only callers of `session.commit()`; routers never commit.
