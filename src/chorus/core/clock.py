"""Tick-counting simulation clock."""


class SimulationClock:
    """Discrete simulation clock advanced by the host's tick loop.

    All pacing in the dialogue core is measured in ticks of this clock; no
    wall-clock timers are involved.

    Args:
        start_tick: Initial tick value
    """

    def __init__(self, start_tick: int = 0) -> None:
        if start_tick < 0:
            raise ValueError("start_tick must be non-negative")
        self._tick = start_tick

    def current_tick(self) -> int:
        return self._tick

    def advance(self, ticks: int = 1) -> int:
        """Move the clock forward and return the new tick."""
        if ticks < 0:
            raise ValueError("Cannot move the clock backwards")
        self._tick += ticks
        return self._tick

    def has_interval_elapsed(self, since_tick: int, min_interval: int) -> bool:
        """Whether at least ``min_interval`` ticks have passed since ``since_tick``.

        A negative ``since_tick`` means "never happened" and always counts
        as elapsed.
        """
        if since_tick < 0:
            return True
        return self._tick - since_tick >= min_interval

    def __repr__(self) -> str:
        return f"SimulationClock(tick={self._tick})"
