#!/usr/bin/env python3
"""
Tests for the statistics aggregator and the fleet status projector.

Validates:
- Full fold and incremental ingestion agree on the same events
- Running statistics stay within bounds
- Fleet rows are deterministic and derive status correctly
"""

import os
import sys

import pytest

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))))

from generators.brewgen import BrewEventGenerator
from streaming.core.models.config import CITY_CONFIGS, ProcessorConfig
from streaming.core.models.events import (
    BeverageType, BrewEvent, BrewingParams, Gender, TelemetryData
)
from streaming.core.models.stats import MachineStatus, NO_TOP_BEVERAGE
from streaming.core.processors.aggregator import aggregate_stats, event_hour, ingest_events
from streaming.core.processors.fleet import derive_status, jitter_location, project_fleet_status
from streaming.core.utils.hashing import cyrb53
from streaming.core.utils.windowing import EventBuffer

FIXED_NOW = 1_700_000_000.0
NOW_MS = int(FIXED_NOW * 1000)
HOUR_MS = 60 * 60 * 1000

SHANGHAI = CITY_CONFIGS['Shanghai'].center


def make_event(idx, timestamp=NOW_MS, user_id="USR-1", beverage=BeverageType.ESPRESSO,
               machine_id="MAC-1", temperature=90.0, latency=50.0, error_code=None,
               quantity=1, location=SHANGHAI):
    return BrewEvent(
        id=f"REC-{idx}",
        timestamp=timestamp,
        user_id=user_id,
        age=30,
        gender=Gender.FEMALE,
        location=location,
        beverage=beverage,
        quantity=quantity,
        params=BrewingParams(temperature=temperature, pressure=19.0, volume=40.0, brewing_time=16),
        telemetry=TelemetryData(latency=latency, signal_strength=-45, cpu_usage=30, error_code=error_code),
        machine_id=machine_id,
        firmware_version="2.1.0",
    )


@pytest.fixture
def batch():
    return BrewEventGenerator(seed=1234, clock=lambda: FIXED_NOW).generate_batch(2000)


# === Aggregation ===

def test_empty_aggregate_defaults():
    stats = aggregate_stats([])
    assert stats.total_brews == 0
    assert stats.avg_temp == 0
    assert stats.avg_latency == 0
    assert stats.error_rate == 0
    assert stats.active_users == 0
    assert stats.top_beverage == NO_TOP_BEVERAGE
    assert stats.time_distribution == [0] * 24


def test_aggregate_basic_counts():
    events = [
        make_event(0, user_id="USR-1", beverage=BeverageType.LUNGO, temperature=88, latency=40),
        make_event(1, user_id="USR-2", beverage=BeverageType.LUNGO, temperature=92, latency=60,
                   error_code="ERR_TIMEOUT_GW"),
        make_event(2, user_id="USR-1", beverage=BeverageType.GREEN_TEA, temperature=80, latency=50),
    ]
    stats = aggregate_stats(events)

    assert stats.total_brews == 3
    assert stats.active_users == 2
    assert stats.top_beverage == "Lungo"
    assert stats.beverage_distribution == {"Lungo": 2, "Green Tea": 1}
    assert stats.city_distribution == {"Shanghai": 3}
    assert stats.avg_temp == pytest.approx(260 / 3)
    assert stats.avg_latency == pytest.approx(50)
    assert stats.error_rate == pytest.approx(1 / 3)
    assert stats.time_distribution[event_hour(NOW_MS)] == 3
    assert sum(stats.time_distribution) == 3


def test_top_beverage_tie_keeps_first_leader():
    events = [
        make_event(0, beverage=BeverageType.ESPRESSO),
        make_event(1, beverage=BeverageType.LUNGO),
    ]
    assert aggregate_stats(events).top_beverage == "Espresso"

    prior = aggregate_stats(events[:1])
    assert ingest_events(prior, events[1:]).top_beverage == "Espresso"


def test_full_and_incremental_agree(batch):
    """Seeding with a prefix then ingesting packets matches one full fold."""
    full = aggregate_stats(batch)

    stats = aggregate_stats(batch[:500])
    position = 500
    packet_sizes = [1, 3, 2]
    i = 0
    while position < len(batch):
        size = packet_sizes[i % len(packet_sizes)]
        stats = ingest_events(stats, batch[position:position + size], prior_total=stats.total_brews)
        position += size
        i += 1

    assert stats.total_brews == full.total_brews
    assert stats.active_users == full.active_users
    assert stats.top_beverage == full.top_beverage
    assert stats.beverage_distribution == full.beverage_distribution
    assert stats.city_distribution == full.city_distribution
    assert stats.time_distribution == full.time_distribution
    assert abs(stats.avg_temp - full.avg_temp) < 1e-9
    assert abs(stats.avg_latency - full.avg_latency) < 1e-9
    assert abs(stats.error_rate - full.error_rate) < 1e-9
    print(f"✅ Incremental fold matches full fold over {full.total_brews} events")


def test_ingest_into_empty_prior():
    events = [make_event(i, temperature=85 + i) for i in range(4)]
    stats = ingest_events(aggregate_stats([]), events)
    assert stats.total_brews == 4
    assert stats.avg_temp == pytest.approx(86.5)
    assert stats.active_users == 1


def test_ingest_does_not_modify_prior():
    prior = aggregate_stats([make_event(0)])
    snapshot = prior.model_dump()
    ingest_events(prior, [make_event(1, beverage=BeverageType.LUNGO, user_id="USR-9")])
    assert prior.model_dump() == snapshot
    assert prior.user_ids == frozenset({"USR-1"})


def test_ingest_rejects_mismatched_prior_total():
    prior = aggregate_stats([make_event(0), make_event(1)])
    with pytest.raises(ValueError):
        ingest_events(prior, [make_event(2)], prior_total=5)


def test_ingest_resorts_out_of_order_packets():
    prior = aggregate_stats([make_event(0, timestamp=NOW_MS - 10 * HOUR_MS)])
    late = make_event(1, timestamp=NOW_MS, temperature=80, beverage=BeverageType.LUNGO)
    early = make_event(2, timestamp=NOW_MS - HOUR_MS, temperature=96, beverage=BeverageType.GREEN_TEA)

    shuffled = ingest_events(prior, [late, early])
    ordered = ingest_events(prior, [early, late])
    assert shuffled.model_dump() == ordered.model_dump()
    assert shuffled.top_beverage == "Espresso"


def test_running_stats_bounds(batch):
    stats = aggregate_stats(batch[:100])
    for start in range(100, 400, 3):
        stats = ingest_events(stats, batch[start:start + 3])
        assert 0 <= stats.error_rate <= 1
        assert stats.active_users <= stats.total_brews
        assert sum(stats.time_distribution) == stats.total_brews
        assert sum(stats.beverage_distribution.values()) == stats.total_brews
        assert sum(stats.city_distribution.values()) == stats.total_brews
        if stats.top_beverage != NO_TOP_BEVERAGE:
            assert stats.top_beverage in stats.beverage_distribution


def test_batch_error_rate_near_fault_rate(batch):
    stats = aggregate_stats(batch)
    assert stats.error_rate <= 0.08
    assert set(stats.city_distribution) <= set(CITY_CONFIGS)


def test_user_ids_not_serialized():
    stats = aggregate_stats([make_event(0)])
    assert 'user_ids' not in stats.model_dump()


# === Fleet ===

def test_fleet_one_row_per_machine_in_first_appearance_order():
    events = [
        make_event(0, machine_id="MAC-7"),
        make_event(1, machine_id="MAC-3"),
        make_event(2, machine_id="MAC-7"),
    ]
    fleet = project_fleet_status(events, now_ms=NOW_MS)
    assert [m.machine_id for m in fleet] == ["MAC-7", "MAC-3"]


def test_fleet_projection_is_deterministic(batch):
    first = [m.model_dump() for m in project_fleet_status(batch, now_ms=NOW_MS)]
    second = [m.model_dump() for m in project_fleet_status(batch, now_ms=NOW_MS)]
    assert first == second


def test_fleet_row_contents():
    events = [
        make_event(0, machine_id="MAC-42", quantity=2, beverage=BeverageType.LUNGO, latency=41),
        make_event(1, machine_id="MAC-42", quantity=1, beverage=BeverageType.ESPRESSO, latency=50),
    ]
    machine = project_fleet_status(events, now_ms=NOW_MS)[0]
    seed = cyrb53("MAC-42")

    assert machine.city == "Shanghai"
    assert machine.daily_stats.total_sales_qty == 3
    assert machine.daily_stats.total_revenue == pytest.approx(13.5)
    assert machine.daily_stats.category_count == 2
    assert machine.avg_latency == 45
    assert machine.error_rate == 0
    assert machine.status == MachineStatus.ACTIVE
    assert machine.online_time == f"{seed % 12 + 2}h {seed % 60}m"
    assert machine.iot_interface == ['WiFi', '5G', 'WiFi', 'LoRaWAN'][seed % 4]
    assert machine.address.endswith(", Shanghai")
    assert machine.address.startswith(f"{seed % 800 + 1} ")

    spread = CITY_CONFIGS['Shanghai'].spread
    assert abs(machine.geo.lat - SHANGHAI.lat) <= spread
    assert abs(machine.geo.lng - SHANGHAI.lng) <= spread


def test_fleet_status_derivation():
    config = ProcessorConfig()
    # One error in ten is above the 5% maintenance threshold
    faulty = [make_event(i, machine_id="MAC-1", error_code="ERR_PRESSURE_LOW" if i == 0 else None)
              for i in range(10)]
    stale = [make_event(20, machine_id="MAC-2", timestamp=NOW_MS - 5 * HOUR_MS)]
    stale_and_faulty = [make_event(30, machine_id="MAC-3", timestamp=NOW_MS - 5 * HOUR_MS,
                                   error_code="ERR_TIMEOUT_GW")]

    fleet = {m.machine_id: m for m in project_fleet_status(faulty + stale + stale_and_faulty,
                                                           now_ms=NOW_MS, config=config)}
    assert fleet["MAC-1"].status == MachineStatus.MAINTENANCE
    assert fleet["MAC-2"].status == MachineStatus.OFFLINE
    assert fleet["MAC-3"].status == MachineStatus.OFFLINE

    assert derive_status(0.05, 0, config) == MachineStatus.ACTIVE
    assert derive_status(0.0, 4 * HOUR_MS, config) == MachineStatus.ACTIVE


def test_fleet_uses_latest_event_location():
    beijing = CITY_CONFIGS['Beijing'].center
    events = [
        make_event(0, machine_id="MAC-5", timestamp=NOW_MS - HOUR_MS, location=SHANGHAI),
        make_event(1, machine_id="MAC-5", timestamp=NOW_MS, location=beijing),
    ]
    assert project_fleet_status(events, now_ms=NOW_MS)[0].city == "Beijing"


def test_empty_fleet():
    assert project_fleet_status([], now_ms=NOW_MS) == []


# === Utilities ===

def test_cyrb53_is_stable_and_bounded():
    assert cyrb53("MAC-1") == cyrb53("MAC-1")
    assert cyrb53("MAC-1") != cyrb53("MAC-2")
    assert cyrb53("MAC-1", seed=1) != cyrb53("MAC-1")
    for value in ["", "a", "USR-149", "MAC-9999"]:
        assert 0 <= cyrb53(value) < 2 ** 53


def test_jitter_stays_within_spread():
    for seed in (0, 1, 99, 359, 12345, 2 ** 52):
        point = jitter_location(seed, 30.0, 120.0, 0.1)
        assert (point.lat - 30.0) ** 2 + (point.lng - 120.0) ** 2 <= 0.1 ** 2 + 1e-12


def test_event_buffer_keeps_most_recent():
    buffer = EventBuffer(3)
    buffer.extend(make_event(i) for i in range(5))
    assert buffer.size() == 3
    assert [e.id for e in buffer.get_events()] == ["REC-2", "REC-3", "REC-4"]
    assert len(buffer.get_events_in_range(NOW_MS, NOW_MS)) == 3
    assert buffer.get_events_in_range(0, NOW_MS - 1) == []

    with pytest.raises(ValueError):
        EventBuffer(0)


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
