"""
Ledger Kernel

The posting core of the multi-tenant accounting platform:
- Balanced double-entry journal with irreversible posting
- Period locking with audited overrides
- Purpose-based account resolution
- Hash-chained audit trail
- One unit of work per business operation
"""

__version__ = "0.1.0"
