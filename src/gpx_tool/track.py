"""Track: the ordered, mutable sequence of track points of one activity.

Points live in an arena of slots linked to their neighbours by slot
number, so a point can be removed in O(1) while a pass is walking the
sequence. A removed point gives up its slot and can no longer be used to
navigate the track.
"""

from collections.abc import Iterator

from gpx_tool.models import ActivityType, SensorMask, TrackPoint, TrackStats

_END = -1


class Track:
    def __init__(self) -> None:
        self._slots: list[TrackPoint | None] = []
        self._next: list[int] = []
        self._prev: list[int] = []
        self._head = _END
        self._tail = _END
        self._size = 0

        # Number of points created by the input parsers (used for indexing)
        self.num_parsed = 0

        self.activity_type: ActivityType | None = None
        self.in_mask = SensorMask.NONE
        self.input_format: str | None = None

        self.start_time: float | None = None
        self.end_time: float | None = None
        self.base_time = 0.0  # reference for relative timestamps
        self.time_offset = 0.0  # shift applied when changing the start time

        self.stats = TrackStats()

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[TrackPoint]:
        slot = self._head
        while slot != _END:
            point = self._slots[slot]
            slot = self._next[slot]
            yield point

    def new_point(self, source_file: str, record_num: int) -> TrackPoint:
        """Create a point carrying the next sequential index (not yet appended)."""
        point = TrackPoint(index=self.num_parsed, source_file=source_file, record_num=record_num)
        self.num_parsed += 1
        return point

    def append(self, point: TrackPoint) -> None:
        if point.slot is not None:
            raise ValueError(f"{point.label} already belongs to a track")
        slot = len(self._slots)
        self._slots.append(point)
        self._next.append(_END)
        self._prev.append(self._tail)
        if self._tail == _END:
            self._head = slot
        else:
            self._next[self._tail] = slot
        self._tail = slot
        point.slot = slot
        self._size += 1

    def _slot_of(self, point: TrackPoint) -> int:
        slot = point.slot
        if slot is None or slot >= len(self._slots) or self._slots[slot] is not point:
            raise ValueError(f"{point.label} is not in this track")
        return slot

    def _point_at(self, slot: int) -> TrackPoint | None:
        return None if slot == _END else self._slots[slot]

    def first(self) -> TrackPoint | None:
        return self._point_at(self._head)

    def last(self) -> TrackPoint | None:
        return self._point_at(self._tail)

    def next_of(self, point: TrackPoint) -> TrackPoint | None:
        return self._point_at(self._next[self._slot_of(point)])

    def prev_of(self, point: TrackPoint) -> TrackPoint | None:
        return self._point_at(self._prev[self._slot_of(point)])

    def remove(self, point: TrackPoint) -> TrackPoint | None:
        """Unlink a point from the track and return the point that followed it."""
        slot = self._slot_of(point)
        prev_slot = self._prev[slot]
        next_slot = self._next[slot]

        if prev_slot == _END:
            self._head = next_slot
        else:
            self._next[prev_slot] = next_slot
        if next_slot == _END:
            self._tail = prev_slot
        else:
            self._prev[next_slot] = prev_slot

        self._slots[slot] = None
        self._next[slot] = self._prev[slot] = _END
        point.slot = None
        self._size -= 1

        return self._point_at(next_slot)

    def pairs(self) -> "PairWalk":
        return PairWalk(self)

    # Averages over the retained points
    @property
    def avg_speed(self) -> float:
        return self.stats.distance / self.stats.time if self.stats.time > 0 else 0.0

    @property
    def avg_grade(self) -> float:
        # The first point has no grade of its own
        n = len(self) - 1
        return self.stats.grade_sum / n if n > 0 else 0.0

    @property
    def avg_cadence(self) -> float:
        return self.stats.cadence_sum / len(self) if len(self) else 0.0

    @property
    def avg_heart_rate(self) -> float:
        return self.stats.heart_rate_sum / len(self) if len(self) else 0.0

    @property
    def avg_power(self) -> float:
        return self.stats.power_sum / len(self) if len(self) else 0.0

    @property
    def avg_temperature(self) -> float:
        return self.stats.temperature_sum / len(self) if len(self) else 0.0


class PairWalk:
    """Walk consecutive (prev, curr) point pairs, allowing curr to be removed.

    ``prev`` only moves forward when ``curr`` is kept (``advance``); after
    ``remove`` the next point becomes ``curr`` and is compared against the
    same ``prev``.

        walk = track.pairs()
        while walk:
            if bogus(walk.prev, walk.curr):
                walk.remove()
            else:
                walk.advance()
    """

    def __init__(self, track: Track) -> None:
        self._track = track
        self.prev = track.first()
        self.curr = track.next_of(self.prev) if self.prev is not None else None

    def __bool__(self) -> bool:
        return self.curr is not None

    def advance(self) -> TrackPoint | None:
        self.prev = self.curr
        self.curr = self._track.next_of(self.curr)
        return self.curr

    def remove(self) -> TrackPoint | None:
        self.curr = self._track.remove(self.curr)
        return self.curr
