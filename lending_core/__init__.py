"""
Lending Core

Loan marketplace engine: offers, applications, amortized loans and payment
settlement over a single serialized state aggregate, with Decimal money math.
"""

__version__ = "1.0.0"
