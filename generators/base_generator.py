#!/usr/bin/env python3
"""
Base generator class for synthetic telemetry generation.

This module provides common functionality for all event generators:
- Reproducible random source and injectable clock
- Weighted sampling helpers
- Timestamp utilities
- Skewed user population model
"""

import time
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional, Sequence, TypeVar
import logging

from streaming.core.utils.metrics import EVENTS_GENERATED


logger = logging.getLogger(__name__)

T = TypeVar('T')


class BaseEventGenerator(ABC):
    """Base class for all event generators."""

    def __init__(
        self,
        seed: Optional[int] = None,
        clock: Optional[Callable[[], float]] = None
    ):
        """
        Initialize the event generator.

        Args:
            seed: Seed for the random source (None = nondeterministic)
            clock: Callable returning the current epoch time in seconds
        """
        self.rng = random.Random(seed)
        self.clock = clock or time.time
        self.seed = seed

        # Statistics
        self.events_produced = 0

    @abstractmethod
    def generate_event(self) -> Any:
        """Generate a single event. Must be implemented by subclasses."""
        pass

    def generate_events(self, count: int) -> List[Any]:
        """Generate several events in one go."""
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        return [self.generate_event() for _ in range(count)]

    def weighted_choice(self, items: Sequence[T], weights: Sequence[float]) -> T:
        """Pick one item with probability proportional to its weight."""
        return self.rng.choices(items, weights=weights)[0]

    def _record_generated(self, mode: str, count: int = 1) -> None:
        self.events_produced += count
        EVENTS_GENERATED.labels(mode=mode).inc(count)

        if self.events_produced % 1000 == 0:
            logger.info(f"Generated {self.events_produced} events")


class TimestampMixin:
    """Mixin for adding timestamp utilities."""

    clock: Callable[[], float]
    rng: random.Random

    def current_timestamp_ms(self) -> int:
        """Get current timestamp in milliseconds."""
        return int(self.clock() * 1000)

    def timestamp_days_ago_at(self, days_ago: int, hour: int) -> int:
        """Timestamp on the local calendar day `days_ago` before now, at `hour` and a random minute."""
        date = datetime.fromtimestamp(self.clock()) - timedelta(days=days_ago)
        date = date.replace(hour=hour, minute=self.rng.randrange(60))
        return int(date.timestamp() * 1000)


@dataclass(frozen=True)
class PopulationBand:
    """A slice of the user base: `size` users sharing `weight` of the traffic."""
    name: str
    first_id: int
    size: int
    weight: float


class UserPopulation:
    """Skewed user population producing a long-tail customer distribution."""

    DEFAULT_BANDS = (
        PopulationBand('whale', 0, 12, 0.30),
        PopulationBand('regular', 12, 38, 0.35),
        PopulationBand('occasional', 50, 50, 0.20),
        PopulationBand('rare', 100, 50, 0.15),
    )

    def __init__(self, bands: Sequence[PopulationBand] = DEFAULT_BANDS, prefix: str = "USR"):
        self.bands = list(bands)
        self.prefix = prefix

    @property
    def size(self) -> int:
        return sum(band.size for band in self.bands)

    def all_user_ids(self) -> List[str]:
        return [
            f"{self.prefix}-{band.first_id + i}"
            for band in self.bands
            for i in range(band.size)
        ]

    def sample_user_id(self, rng: random.Random) -> str:
        """Pick a band by traffic weight, then a user uniformly within it."""
        band = rng.choices(self.bands, weights=[b.weight for b in self.bands])[0]
        return f"{self.prefix}-{band.first_id + rng.randrange(band.size)}"
