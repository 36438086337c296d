"""
Ingestion Engine - Configuration.
"""

import re
from dataclasses import dataclass
from typing import List


DEFAULT_MEMO_PATTERN = r"^[0-9A-Za-z_\-]{1,64}$"


@dataclass(frozen=True)
class IngestionConfig:
    """
    Settings for history ingestion and deposit classification.
    """

    monitored_account: str = ""
    """Account uid whose history is ingested."""

    asset_id: int = 0
    """Asset accepted for deposits; anything else is WRONG_ASSET."""

    page_size: int = 10
    """History entries fetched per page."""

    memo_pattern: str = DEFAULT_MEMO_PATTERN
    """A memo must fully match this to be GOOD_MEMO."""

    def validate(self) -> List[str]:
        errors = []
        if not self.monitored_account:
            errors.append("monitored_account is required")
        if self.page_size < 1:
            errors.append("page_size must be at least 1")
        try:
            re.compile(self.memo_pattern)
        except re.error as e:
            errors.append(f"memo_pattern is not a valid regex: {e}")
        return errors
