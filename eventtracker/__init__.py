"""
eventtracker - durable storage for tracked blockchain event logs.

Records for each tracked stream are kept in index order next to the last
processed block, and chain reorganizations are applied as one atomic
truncate-and-append batch.
"""

__version__ = "0.1.0"

from eventtracker.event import Event
from eventtracker.models import Block, Log
from eventtracker.store import Entry, TrackerStore

__all__ = [
    "Block",
    "Entry",
    "Event",
    "Log",
    "TrackerStore",
]
