"""Write outcomes reported by the stores."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class WriteOutcome(str, Enum):
    INSERTED = "INSERTED"
    # Key already stored; expected under replay, not an error
    DUPLICATE = "DUPLICATE"


@dataclass
class BulkWriteSummary:
    inserted: int = 0
    duplicates: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.duplicates
