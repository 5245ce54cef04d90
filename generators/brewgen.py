#!/usr/bin/env python3
"""
Brew Event Generator

Generates realistic synthetic beverage-machine telemetry events.
Features:
- Daily brewing rhythm (morning and afternoon peaks)
- Two-stage weighted beverage choice (category, then product)
- Beverage-specific brewing parameters with jitter
- Fault injection with an inflated latency / CPU signature
- Long-tail user population for varied customer segments
- Recency-skewed 30-day history for batch corpora
"""

import os
import sys
import math
import json
from typing import Dict, Any, List, Optional, Union
import logging

import click

# Add parent directory to path for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from generators.base_generator import BaseEventGenerator, TimestampMixin, UserPopulation
from streaming.core.models.config import CITY_CONFIGS
from streaming.core.models.events import (
    BeverageType, BrewEvent, BrewingParams, Gender, TelemetryData
)

logger = logging.getLogger(__name__)

# Relative brewing activity per hour of day (00..23)
HOUR_WEIGHTS = [1, 1, 1, 1, 2, 5, 10, 20, 25, 15, 10, 5, 10, 15, 15, 10, 5, 5, 3, 2, 2, 1, 1, 1]

COFFEE_SHARE = 0.7
COFFEE_WEIGHTS = {
    BeverageType.ESPRESSO: 30,
    BeverageType.LUNGO: 20,
    BeverageType.CAPPUCCINO: 25,
    BeverageType.LATTE_MACCHIATO: 25,
}
TEA_WEIGHTS = {
    BeverageType.GREEN_TEA: 40,
    BeverageType.BLACK_TEA: 30,
    BeverageType.EARL_GREY: 30,
}

# (temperature C, pressure bar, volume ml)
DEFAULT_BREW_BASE = (90.0, 19.0, 40.0)
BREW_BASES = {
    BeverageType.GREEN_TEA: (80.0, 5.0, 150.0),
    BeverageType.LUNGO: (90.0, 19.0, 110.0),
    BeverageType.LATTE_MACCHIATO: (85.0, 19.0, 200.0),
}

ERROR_RATE = 0.02
ERROR_CODES = ['ERR_PRESSURE_LOW', 'ERR_TIMEOUT_GW']
ERROR_LATENCY_PENALTY_MS = 200
ERROR_CPU_USAGE = 95

FIRMWARE_VERSIONS = ['2.1.0', '2.0.5', '1.9.8']
FIRMWARE_WEIGHTS = [50, 30, 20]

MACHINE_POOL_SIZE = 10000


class BrewEventGenerator(BaseEventGenerator, TimestampMixin):
    """Generates synthetic brew events with realistic usage patterns."""

    def __init__(self, population: Optional[UserPopulation] = None, history_days: int = 30, **kwargs):
        super().__init__(**kwargs)

        self.population = population or UserPopulation()
        self.history_days = history_days
        self.cities = [config.center for config in CITY_CONFIGS.values()]
        self._next_id = 0

        logger.info(f"Initialized BrewEventGenerator with {len(self.cities)} cities "
                    f"and {self.population.size} users")

    def generate_event(self) -> BrewEvent:
        """Generate a single live event stamped with the current time."""
        event = self.generate_record(self._take_id(), force_now=True)
        self._record_generated('live')
        return event

    def generate_record(
        self,
        record_id: Union[int, str],
        force_now: bool = False,
        history_days_ago: int = 0
    ) -> BrewEvent:
        """
        Generate one brew event.

        Args:
            record_id: Identifier suffix for the event id
            force_now: Stamp the event with the current time
            history_days_ago: Otherwise, the calendar day (days before today)
                the event falls on; the hour follows the daily rhythm

        Returns:
            The synthesized event
        """
        if force_now:
            timestamp = self.current_timestamp_ms()
        else:
            hour = self.weighted_choice(range(24), HOUR_WEIGHTS)
            timestamp = self.timestamp_days_ago_at(history_days_ago, hour)

        location = self.rng.choice(self.cities)
        beverage = self._choose_beverage()
        params = self._generate_brewing_params(beverage)
        telemetry = self._generate_telemetry()

        return BrewEvent(
            id=f"REC-{record_id}",
            timestamp=timestamp,
            user_id=self.population.sample_user_id(self.rng),
            age=self.rng.randrange(18, 65),
            gender=Gender.FEMALE if self.rng.random() > 0.48 else Gender.MALE,
            location=location,
            beverage=beverage,
            quantity=self.rng.randint(1, 2),
            params=params,
            telemetry=telemetry,
            machine_id=f"MAC-{self.rng.randrange(MACHINE_POOL_SIZE)}",
            firmware_version=self.weighted_choice(FIRMWARE_VERSIONS, FIRMWARE_WEIGHTS),
        )

    def generate_batch(self, count: int) -> List[BrewEvent]:
        """
        Generate a historical corpus spread over the trailing window.

        Days-ago is drawn as floor(U^2 * history_days) so most events cluster
        near today while the whole window stays populated.
        """
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")

        batch = []
        for i in range(count):
            days_ago = math.floor(self.rng.random() ** 2 * self.history_days)
            batch.append(self.generate_record(i, force_now=False, history_days_ago=days_ago))

        batch.sort(key=lambda e: e.timestamp)
        self._record_generated('batch', count)
        logger.debug(f"Generated batch of {count} events")
        return batch

    def _take_id(self) -> str:
        self._next_id += 1
        return f"{self.current_timestamp_ms()}-{self._next_id}"

    def _choose_beverage(self) -> BeverageType:
        """Coin-flip coffee vs tea, then a weighted pick within the category."""
        weights = COFFEE_WEIGHTS if self.rng.random() < COFFEE_SHARE else TEA_WEIGHTS
        return self.weighted_choice(list(weights.keys()), list(weights.values()))

    def _generate_brewing_params(self, beverage: BeverageType) -> BrewingParams:
        base_temp, base_pressure, base_volume = BREW_BASES.get(beverage, DEFAULT_BREW_BASE)

        temperature = round(base_temp + self.rng.uniform(-2, 2))
        pressure = round(base_pressure + self.rng.uniform(-0.5, 0.5), 1)
        volume = round(base_volume + self.rng.uniform(-5, 5))

        return BrewingParams(
            temperature=temperature,
            pressure=pressure,
            volume=volume,
            brewing_time=round(volume / 2.5)
        )

    def _generate_telemetry(self) -> TelemetryData:
        latency = self.rng.randrange(20, 100)
        signal_strength = -30 - self.rng.randrange(40)
        cpu_usage = self.rng.randrange(10, 70)

        error_code = None
        if self.rng.random() < ERROR_RATE:
            error_code = self.rng.choice(ERROR_CODES)
            # Fault signature
            latency += ERROR_LATENCY_PENALTY_MS
            cpu_usage = ERROR_CPU_USAGE

        return TelemetryData(
            latency=latency,
            signal_strength=signal_strength,
            cpu_usage=cpu_usage,
            error_code=error_code
        )


_default_generator: Optional[BrewEventGenerator] = None


def _get_default_generator() -> BrewEventGenerator:
    global _default_generator
    if _default_generator is None:
        _default_generator = BrewEventGenerator()
    return _default_generator


def generate_record(record_id: Union[int, str], force_now: bool = False, history_days_ago: int = 0) -> BrewEvent:
    """Generate one event with the shared module-level generator."""
    return _get_default_generator().generate_record(record_id, force_now, history_days_ago)


def generate_batch(count: int) -> List[BrewEvent]:
    """Generate a timestamp-sorted batch with the shared module-level generator."""
    return _get_default_generator().generate_batch(count)


def event_to_json(event: BrewEvent) -> Dict[str, Any]:
    return event.model_dump(mode='json')


@click.command()
@click.option('--count', '-n', default=2000, help='Number of events to generate')
@click.option('--seed', '-s', default=None, type=int, help='Random seed for reproducible output')
@click.option('--output', '-o', default='-', type=click.File('w'), help='Output file for JSON lines (default stdout)')
@click.option('--verbose', '-v', is_flag=True, help='Verbose logging')
def main(count, seed, output, verbose):
    """Generate a historical batch of brew events as JSON lines."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        generator = BrewEventGenerator(seed=seed)
        for event in generator.generate_batch(count):
            output.write(json.dumps(event_to_json(event), ensure_ascii=False) + "\n")
        logger.info(f"Wrote {count} events")

    except Exception as e:
        logger.error(f"Generator failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
