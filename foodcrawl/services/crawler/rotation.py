"""Source rotation as a small finite-state machine.

Sources are drained one at a time in a fixed cyclic order. The only
transition is "the active source came back empty": move to the next one.
"""

from enum import Enum


class Source(str, Enum):
    OPFF = "opff"
    FRESSNAPF = "fressnapf"
    ZOOPLUS = "zooplus"


ROTATION: tuple[Source, ...] = (Source.OPFF, Source.FRESSNAPF, Source.ZOOPLUS)


def first_source(order: tuple[Source, ...] = ROTATION) -> Source:
    return order[0]


def parse_source(value: str | None, order: tuple[Source, ...] = ROTATION) -> Source:
    """Map a stored value to a Source, falling back to the head of the rotation."""
    try:
        source = Source(value)
    except ValueError:
        return first_source(order)
    return source if source in order else first_source(order)


def next_source(
    current: Source, yielded_zero: bool, order: tuple[Source, ...] = ROTATION
) -> Source:
    """Transition function: stay while the source yields, advance when it is empty."""
    if current not in order:
        return first_source(order)
    if not yielded_zero:
        return current
    return order[(order.index(current) + 1) % len(order)]
