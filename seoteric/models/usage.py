"""
seoteric/models/usage.py

Per-cycle usage records.

A UsageBucket holds the metered counters for one user within one billing
cycle, keyed by (user_id, cycle_start_ms). Counters only ever grow.
"""

from typing import Literal
from pydantic import BaseModel, ConfigDict


# Bucket columns that can be incremented
UsageCounter = Literal["messages_used", "page_speed_reports_used"]


class CycleUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    messages_used: int = 0
    page_speed_reports_used: int = 0


class UsageBucket(BaseModel):
    """
    Counter row for one (user, cycle start).

    cycle_end_ms is denormalized and refreshed on every increment.
    """
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str
    cycle_start_ms: int
    cycle_end_ms: int
    messages_used: int = 0
    page_speed_reports_used: int = 0
