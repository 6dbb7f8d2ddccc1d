"""
Batch of changes produced by one tracker sync step.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional


@dataclass
class Event:
    """
    Changes to apply to a stream in one transaction.

    Attributes:
        index: First stored index invalidated by a reorganization; records
            from here on are removed before appending (0 or None: nothing removed)
        added: Records to append, in order
        removed: Records dropped by the reorganization, for consumers only
        block: Last processed block, stored as the checkpoint when set
    """

    index: Optional[int] = None
    added: List[Any] = field(default_factory=list)
    removed: List[Any] = field(default_factory=list)
    block: Optional[Any] = None

    def __post_init__(self) -> None:
        if self.index is not None and self.index < 0:
            raise ValueError(f"Index must be non-negative, got {self.index}")

    def is_empty(self) -> bool:
        return not self.index and not self.added and self.block is None
