"""
Name-based duplicate detection.

Policy: case-sensitive substring match of the candidate name against every
stored customer name. Deliberately simple; any smarter matching layered on
later must still return at least the substring matches.
"""

from core.models import CustomerSummary
from core.stores.base import CustomerStore


class DuplicateDetector:
    """Surface customers that may be the same person as a candidate name."""

    def __init__(self, customers: CustomerStore):
        self.customers = customers

    def check(self, name: str, exclude_phone: str | None = None) -> list[CustomerSummary]:
        """
        Find customers whose name contains `name`.

        Args:
            name: Candidate name. Blank names match nothing.
            exclude_phone: Phone to leave out, e.g. the customer being checked
                against everyone else.

        Returns:
            Matching customer summaries; empty list when nothing matches.
        """
        if name is None or not name.strip():
            return []

        matches = self.customers.find_by_name(name, exclude_phone=exclude_phone)
        return [
            CustomerSummary.from_customer(c)
            for c in matches
            if c.phone != exclude_phone
        ]
