"""
evdms_rules.finance

Financial computation engine.

Responsibilities:
- Price composition with fixed ordering and clamping.
- Fixed-payment amortization and installment plans.
- Dealer debt-limit accounting.
"""

# Package marker.
