"""
Financial Document Engine

Turns line items into consistent, auditable monetary documents
(quotations, sales invoices, supplier purchases) for small businesses.

DESIGN PRINCIPLES:
1. Money is Decimal, never float
2. Every operation receives its context explicitly
3. Locked documents stay locked
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Financial Document Engine Team"
