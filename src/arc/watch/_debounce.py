"""Debounce and cooldown bookkeeping for one watch target."""

from dataclasses import dataclass


@dataclass(slots=True)
class Debouncer:
    """Coalesces bursts of change events into single firings.

    Times are plain floats (seconds on any monotonic clock) so the logic
    is independent of the event loop. A burst fires once `debounce`
    seconds after its last event; events within `cooldown` seconds after
    a firing are dropped.

    Attributes:
        debounce: Quiet period required before firing.
        cooldown: Period after firing during which events are ignored.
    """

    debounce: float
    cooldown: float
    _last_event: float | None = None
    _cooldown_until: float = float("-inf")

    @property
    def pending(self) -> bool:
        """Whether an event is waiting to fire."""
        return self._last_event is not None

    def record(self, now: float) -> bool:
        """Record an event.

        Returns:
            False if the event fell inside the cooldown and was dropped.
        """
        if now < self._cooldown_until:
            return False
        self._last_event = now
        return True

    def next_deadline(self) -> float | None:
        """When the pending burst becomes due, or None if nothing is pending."""
        if self._last_event is None:
            return None
        return self._last_event + self.debounce

    def due(self, now: float) -> bool:
        """Whether the pending burst should fire at `now`."""
        deadline = self.next_deadline()
        return deadline is not None and now >= deadline

    def fire(self, now: float) -> None:
        """Mark the pending burst as fired and start the cooldown."""
        self._last_event = None
        self._cooldown_until = now + self.cooldown
