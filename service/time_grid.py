"""
Weekly time grid: the weekdays and the ordered block list shared by all of them.
"""
from datetime import datetime, time
from typing import List, Optional, Sequence

from models.schemas import TimeBlock
from service.exceptions import BreakBlockError, ScheduleValidationError


CANONICAL_WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday"]

DEFAULT_BLOCKS = [
    TimeBlock(start_time="07:00", end_time="07:50"),
    TimeBlock(start_time="07:50", end_time="08:40"),
    TimeBlock(start_time="08:40", end_time="09:30"),
    TimeBlock(start_time="09:30", end_time="10:00", is_break=True),
    TimeBlock(start_time="10:00", end_time="10:50"),
    TimeBlock(start_time="10:50", end_time="11:40"),
    TimeBlock(start_time="11:40", end_time="12:30"),
    TimeBlock(start_time="12:30", end_time="13:20"),
    TimeBlock(start_time="13:30", end_time="14:20"),
    TimeBlock(start_time="14:20", end_time="15:10"),
    TimeBlock(start_time="15:10", end_time="16:00"),
    TimeBlock(start_time="16:00", end_time="16:30", is_break=True),
    TimeBlock(start_time="16:30", end_time="17:20"),
    TimeBlock(start_time="17:20", end_time="18:10"),
    TimeBlock(start_time="18:00", end_time="19:00"),
    TimeBlock(start_time="19:00", end_time="19:50"),
]


def parse_time(time_str: str) -> time:
    """Parse HH:MM string to time object."""
    return datetime.strptime(time_str, "%H:%M").time()


def to_minutes(time_str: str) -> int:
    t = parse_time(time_str)
    return t.hour * 60 + t.minute


def overlaps(start1: str, end1: str, start2: str, end2: str) -> bool:
    """Check if two half-open [start, end) intervals overlap."""
    return to_minutes(start1) < to_minutes(end2) and to_minutes(start2) < to_minutes(end1)


class TimeGrid:
    """
    Static catalog of weekday x block cells.

    The block sequence is kept in chronological order of start time; a
    block flagged as a break can never host an assignment.
    """

    def __init__(
        self,
        blocks: Optional[Sequence[TimeBlock]] = None,
        shift_cutoff: str = "13:00",
        include_saturday: bool = False,
    ):
        source = DEFAULT_BLOCKS if blocks is None else blocks
        self.blocks: List[TimeBlock] = sorted(source, key=lambda b: to_minutes(b.start_time))
        self.shift_cutoff = shift_cutoff
        self.weekdays: List[str] = list(CANONICAL_WEEKDAYS)
        if include_saturday:
            self.weekdays.append("saturday")

    def blocks_for_shift(self, shift: str) -> List[TimeBlock]:
        """
        Return the blocks of a shift in chronological order.

        Morning blocks start before the cutoff, afternoon blocks at or after
        it. Breaks are included; filter them with ``is_break``.
        """
        cutoff = to_minutes(self.shift_cutoff)
        if shift == "morning":
            return [b for b in self.blocks if to_minutes(b.start_time) < cutoff]
        if shift == "afternoon":
            return [b for b in self.blocks if to_minutes(b.start_time) >= cutoff]
        raise ValueError(f"Unknown shift '{shift}'. Use 'morning' or 'afternoon'")

    def is_break(self, block: TimeBlock) -> bool:
        return block.is_break

    def find_block(self, start_time: str, end_time: Optional[str] = None) -> Optional[TimeBlock]:
        for block in self.blocks:
            if block.start_time == start_time and (end_time is None or block.end_time == end_time):
                return block
        return None

    def contains(self, weekday: str) -> bool:
        return weekday in self.weekdays

    def assignable_block(self, weekday: str, start_time: str, end_time: Optional[str] = None) -> TimeBlock:
        """Return the block for a cell that can host a class, or raise."""
        if not self.contains(weekday):
            raise ScheduleValidationError(f"{weekday} is not a school day", field="weekday")
        block = self.find_block(start_time, end_time)
        if block is None:
            raise ScheduleValidationError(
                f"No time block {start_time}-{end_time or '?'} in the grid", field="start_time"
            )
        if self.is_break(block):
            raise BreakBlockError(weekday, start_time)
        return block
