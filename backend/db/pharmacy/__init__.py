"""
Pharmacy stock ledger tables.

Models:
- PharmacyItem (authoritative quantity / threshold / derived status per item)
- PharmacyDispense (append-only dispense audit trail with item snapshot)
"""

from .dispense import PharmacyDispense  # noqa: F401
from .item import PharmacyItem  # noqa: F401
