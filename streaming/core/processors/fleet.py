"""
Fleet status processors.

Projects one current-status row per physical machine from the raw event
stream. Everything cosmetic about a machine (map position, interface,
address, online time) is derived from a hash of its id, so re-projecting the
same events always yields the same rows.
"""

import math
import time
from collections import Counter
from typing import Dict, List, Optional, Sequence
import structlog

from streaming.core.models.config import (
    CITY_CONFIGS, DEFAULT_CITY_CONFIG, DEFAULT_STREETS, STREET_NAMES, ProcessorConfig
)
from streaming.core.models.events import BrewEvent
from streaming.core.models.stats import (
    DailyStats, GeoPoint, MachineFleetStatus, MachineStatus
)
from streaming.core.utils.hashing import cyrb53
from streaming.core.utils.metrics import MACHINES_BY_STATUS, PROCESSING_DURATION

logger = structlog.get_logger(__name__)


def derive_status(error_rate: float, latest_age_ms: float, config: ProcessorConfig) -> MachineStatus:
    """Maintenance on a high error rate, overridden by Offline when stale."""
    status = MachineStatus.ACTIVE
    if error_rate > config.maintenance_error_rate:
        status = MachineStatus.MAINTENANCE
    if latest_age_ms > config.offline_after_hours * 3600 * 1000:
        status = MachineStatus.OFFLINE
    return status


def jitter_location(seed: int, center_lat: float, center_lng: float, spread: float) -> GeoPoint:
    """Place a pin near the city centre at a bearing and radius fixed by `seed`."""
    angle = math.radians(seed % 360)
    radius = (seed % 100) / 100 * spread
    return GeoPoint(
        lat=center_lat + math.sin(angle) * radius,
        lng=center_lng + math.cos(angle) * radius,
    )


def _street_address(seed: int, city: str) -> str:
    streets = STREET_NAMES.get(city, DEFAULT_STREETS)
    return f"{(seed % 800) + 1} {streets[seed % len(streets)]}, {city}"


def _machine_status(machine_id: str, records: List[BrewEvent], now_ms: int,
                    config: ProcessorConfig) -> MachineFleetStatus:
    latest = max(records, key=lambda r: r.timestamp)
    total_sales_qty = sum(r.quantity for r in records)
    avg_latency = sum(r.telemetry.latency for r in records) / len(records)
    error_rate = sum(1 for r in records if r.telemetry.has_error) / len(records)

    seed = cyrb53(machine_id)
    city = latest.location.city
    city_config = CITY_CONFIGS.get(city, DEFAULT_CITY_CONFIG)
    interfaces = config.iot_interfaces

    return MachineFleetStatus(
        machine_id=machine_id,
        city=city,
        address=_street_address(seed, city),
        geo=jitter_location(seed, latest.location.lat, latest.location.lng, city_config.spread),
        status=derive_status(error_rate, now_ms - latest.timestamp, config),
        online_time=f"{(seed % 12) + 2}h {seed % 60}m",
        daily_stats=DailyStats(
            total_sales_qty=total_sales_qty,
            total_revenue=total_sales_qty * config.unit_price,
            category_count=len({r.beverage for r in records}),
        ),
        iot_interface=interfaces[seed % len(interfaces)],
        signal_strength=math.floor(latest.telemetry.signal_strength),
        avg_latency=math.floor(avg_latency),
        error_rate=error_rate,
        cpu_load=math.floor(latest.telemetry.cpu_usage),
    )


def project_fleet_status(
    events: Sequence[BrewEvent],
    now_ms: Optional[int] = None,
    config: Optional[ProcessorConfig] = None
) -> List[MachineFleetStatus]:
    """
    Project one status row per distinct machine id.

    Args:
        events: Raw event stream
        now_ms: Reference time for the staleness check (defaults to now)
        config: Thresholds and interface list

    Returns:
        Rows in order of each machine's first appearance in `events`
    """
    config = config or ProcessorConfig()
    if now_ms is None:
        now_ms = int(time.time() * 1000)

    with PROCESSING_DURATION.labels(view='fleet').time():
        machines: Dict[str, List[BrewEvent]] = {}
        for event in events:
            machines.setdefault(event.machine_id, []).append(event)

        fleet = [
            _machine_status(machine_id, records, now_ms, config)
            for machine_id, records in machines.items()
        ]

    status_counts = Counter(m.status for m in fleet)
    for status in MachineStatus:
        MACHINES_BY_STATUS.labels(status=status.value).set(status_counts.get(status, 0))

    logger.debug("Projected fleet status",
                 machines=len(fleet),
                 offline=status_counts.get(MachineStatus.OFFLINE, 0),
                 maintenance=status_counts.get(MachineStatus.MAINTENANCE, 0))
    return fleet
