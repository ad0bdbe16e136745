"""
evdms_rules.db

Persistence package (SQLAlchemy async).

Responsibilities:
- Provide ORM models, engine/session setup, and repositories.
- Implement conditional writes (expected status, debt limit) at the storage layer.
"""

# Package marker.
