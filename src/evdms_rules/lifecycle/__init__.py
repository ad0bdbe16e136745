"""
evdms_rules.lifecycle

Order and Quotation state machines.

Responsibilities:
- Define the allowed status transitions and who may perform them.
- Produce new entity values on transition; never mutate in place.
"""

# Package marker.
