"""
Advance Collections

Collections and repayment reconciliation for cash advances made against
future agricultural deliveries: reminder cascades, late fees, repayments,
liquidity pool reconciliation, due-date extensions and daily status jobs.
"""

__version__ = "1.0.0"
