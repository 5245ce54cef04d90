#!/usr/bin/env python3
"""
Test script for the brew event generator.

Runs entirely in memory. It validates:
- Field ranges and enum membership
- Fault signature on injected errors
- Batch ordering and history window
- Reproducibility with a seed and a fixed clock
"""

import os
import sys
import time
from collections import Counter

import pytest

# Add parent directory to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from generators.base_generator import UserPopulation
from generators.brewgen import (
    BrewEventGenerator, FIRMWARE_VERSIONS, ERROR_CPU_USAGE, ERROR_LATENCY_PENALTY_MS,
    event_to_json, generate_batch, generate_record
)
from streaming.core.models.config import CITY_CONFIGS
from streaming.core.models.events import BeverageType, Gender

FIXED_NOW = 1_700_000_000.0
DAY_MS = 24 * 60 * 60 * 1000


def make_generator(seed=42):
    return BrewEventGenerator(seed=seed, clock=lambda: FIXED_NOW)


def test_record_fields_in_range():
    """Every generated record respects the documented ranges."""
    generator = make_generator()
    valid_users = set(UserPopulation().all_user_ids())

    for i in range(500):
        event = generator.generate_record(i, force_now=True)

        assert event.id == f"REC-{i}"
        assert event.timestamp == int(FIXED_NOW * 1000)
        assert event.user_id in valid_users
        assert 18 <= event.age < 65
        assert event.gender in (Gender.MALE, Gender.FEMALE)
        assert event.location.city in CITY_CONFIGS
        assert event.beverage != BeverageType.RISTRETTO
        assert event.quantity in (1, 2)
        assert event.machine_id.startswith("MAC-")
        assert 0 <= int(event.machine_id[4:]) < 10000
        assert event.firmware_version in FIRMWARE_VERSIONS
        assert event.params.brewing_time == round(event.params.volume / 2.5)

        if not event.telemetry.has_error:
            assert 20 <= event.telemetry.latency < 100
            assert 10 <= event.telemetry.cpu_usage < 70
        assert -69 <= event.telemetry.signal_strength <= -30

    print("✅ Record field ranges validated")


def test_error_signature():
    """Errored records carry the inflated latency and pinned CPU."""
    generator = make_generator(seed=7)
    errored = [e for e in (generator.generate_record(i, force_now=True) for i in range(3000))
               if e.telemetry.has_error]

    assert errored, "expected at least one injected fault in 3000 records"
    for event in errored:
        assert event.telemetry.cpu_usage == ERROR_CPU_USAGE
        assert event.telemetry.latency >= 20 + ERROR_LATENCY_PENALTY_MS
        assert event.telemetry.error_code in ('ERR_PRESSURE_LOW', 'ERR_TIMEOUT_GW')


def test_brewing_parameters_follow_beverage_base():
    generator = make_generator(seed=3)
    for i in range(1000):
        event = generator.generate_record(i, force_now=True)
        temp = event.params.temperature
        if event.beverage == BeverageType.GREEN_TEA:
            assert 78 <= temp <= 82
            assert 145 <= event.params.volume <= 155
        elif event.beverage == BeverageType.LATTE_MACCHIATO:
            assert 83 <= temp <= 87
            assert 195 <= event.params.volume <= 205
        else:
            assert 88 <= temp <= 92


def test_batch_sorted_and_within_history():
    generator = make_generator()
    batch = generator.generate_batch(2000)

    assert len(batch) == 2000
    timestamps = [e.timestamp for e in batch]
    assert timestamps == sorted(timestamps)

    now_ms = int(FIXED_NOW * 1000)
    # 30 calendar days back plus the rest of today
    assert all(now_ms - 31 * DAY_MS <= t <= now_ms + DAY_MS for t in timestamps)

    # Recency skew: about 70% of the batch lands in the most recent half of the window
    recent = sum(1 for t in timestamps if t >= now_ms - 15 * DAY_MS)
    assert recent > 0.6 * len(batch)


def test_batch_edge_counts():
    generator = make_generator()
    assert generator.generate_batch(0) == []
    with pytest.raises(ValueError):
        generator.generate_batch(-1)


def test_seeded_generation_is_reproducible():
    first = [event_to_json(e) for e in make_generator(seed=99).generate_batch(200)]
    second = [event_to_json(e) for e in make_generator(seed=99).generate_batch(200)]
    assert first == second


def test_population_skew():
    """Whales (12 users) take roughly 30% of the traffic."""
    generator = make_generator(seed=11)
    counts = Counter(generator.generate_record(i, force_now=True).user_id for i in range(5000))

    whales = {f"USR-{i}" for i in range(12)}
    whale_share = sum(c for u, c in counts.items() if u in whales) / 5000
    assert 0.25 < whale_share < 0.35
    print(f"📊 Whale traffic share: {whale_share:.2%}")


def test_coffee_tea_split():
    generator = make_generator(seed=5)
    events = [generator.generate_record(i, force_now=True) for i in range(4000)]
    tea_share = sum(1 for e in events if e.beverage.is_tea) / len(events)
    assert 0.25 < tea_share < 0.35


def test_live_events_use_clock():
    generator = make_generator()
    event = generator.generate_event()
    assert event.timestamp == int(FIXED_NOW * 1000)
    assert generator.events_produced == 1

    events = generator.generate_events(4)
    assert len({e.id for e in events}) == 4
    assert generator.events_produced == 5


def test_module_level_helpers():
    before = int(time.time() * 1000)
    event = generate_record("abc", force_now=True)
    assert event.id == "REC-abc"
    assert event.timestamp >= before

    batch = generate_batch(10)
    assert len(batch) == 10
    assert [e.timestamp for e in batch] == sorted(e.timestamp for e in batch)


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
