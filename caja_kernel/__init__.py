"""
Caja Kernel - cash ledger and document numbering

The transactional core of the practice's back office:
- One cash drawer per calendar day, with derived running balances
- Gapless receipt numbering under concurrent writers
- Receipts and expenses posted atomically with their drawer movements
- Void-last that keeps the counter equal to the highest receipt number
"""

__version__ = "0.1.0"
