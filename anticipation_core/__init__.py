"""
Anticipation Core

Payment plan installment engine for receivables anticipation: billing
allocation ledger, amortization recalculation with reserve fund, and
monetary index adjustments. All financial math uses Decimal.
"""

__version__ = "1.0.0"
