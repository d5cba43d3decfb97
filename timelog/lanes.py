"""Lane allocation for process blocks.

Instances of the same process that run at the same time are drawn side by
side. Each process name owns lane groups ``name-0``, ``name-1``, ...; an
instance takes the first group where none of its blocks overlaps a block
already placed there. Groups of all names share one lane index space, in the
order they were created, which gives the column offset of the lane.
"""

from typing import Dict, Iterable, List

from .models import CalendarBlock, ProcessEntryBlock


def process_key(block: CalendarBlock) -> str:
    """`name-pid` for a process block."""
    entry = block.entry
    if isinstance(entry, ProcessEntryBlock):
        return f"{entry.name}-{entry.pid}"
    return f"{block.label}-"


def _process_name(block: CalendarBlock) -> str:
    entry = block.entry
    return entry.name if isinstance(entry, ProcessEntryBlock) else block.label


def assign_lanes(process_blocks: Iterable[CalendarBlock]) -> Dict[str, int]:
    """
    Map each process key to a lane index so that blocks sharing a lane never overlap.

    Args:
        process_blocks: Day-split process blocks, in the order they should claim lanes.

    Returns:
        {`name-pid`: lane index}. Lane indexes are global across process names.
    """
    by_key: Dict[str, List[CalendarBlock]] = {}
    names: Dict[str, str] = {}
    for block in process_blocks:
        key = process_key(block)
        by_key.setdefault(key, []).append(block)
        names.setdefault(key, _process_name(block))

    group_lane: Dict[str, int] = {}
    group_blocks: Dict[str, List[CalendarBlock]] = {}
    lanes: Dict[str, int] = {}

    for key, blocks in by_key.items():
        name = names[key]
        group_index = 0
        while True:
            group = f"{name}-{group_index}"
            placed = group_blocks.get(group, [])
            if not any(b.overlaps(p) for b in blocks for p in placed):
                break
            group_index += 1

        if group not in group_lane:
            group_lane[group] = len(group_lane)
            group_blocks[group] = []
        group_blocks[group].extend(blocks)
        lanes[key] = group_lane[group]

    return lanes


def lane_count(lanes: Dict[str, int]) -> int:
    return max(lanes.values()) + 1 if lanes else 0
