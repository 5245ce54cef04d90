"""
Statistics aggregation processors.

Two ways of producing the same summary over brew events:
- a full single-pass fold over an event list
- an incremental fold of freshly arrived packets into a prior summary

Both update the top-beverage leader with the same rule (a beverage takes the
lead only when its count strictly exceeds the leader's), so folding a list in
one shot and ingesting it packet by packet agree, averages up to rounding.
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence
import structlog

from streaming.core.models.events import BrewEvent
from streaming.core.models.stats import AggregatedStats, NO_TOP_BEVERAGE
from streaming.core.utils.metrics import EVENTS_INGESTED, PROCESSING_DURATION, STATS_COMPUTED

logger = structlog.get_logger(__name__)


def event_hour(timestamp_ms: int) -> int:
    """Local hour of day (0-23) of a millisecond timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000).hour


def _bump_leader(distribution: Dict[str, int], leader: str, beverage: str) -> str:
    """Return the new leader after `beverage`'s count was incremented."""
    if beverage != leader and distribution[beverage] > distribution.get(leader, 0):
        return beverage
    return leader


def aggregate_stats(events: Sequence[BrewEvent]) -> AggregatedStats:
    """
    Fold an event list into summary statistics in a single pass.

    Args:
        events: Events in arrival order

    Returns:
        Summary statistics; averages and error rate are 0 for an empty list
    """
    with PROCESSING_DURATION.labels(view='stats_full').time():
        beverage_counts: Dict[str, int] = {}
        city_counts: Dict[str, int] = {}
        time_distribution = [0] * 24
        user_ids = set()
        total_temp = 0.0
        total_latency = 0.0
        error_count = 0
        top_beverage = NO_TOP_BEVERAGE

        for event in events:
            beverage = event.beverage.value
            beverage_counts[beverage] = beverage_counts.get(beverage, 0) + 1
            top_beverage = _bump_leader(beverage_counts, top_beverage, beverage)

            city = event.location.city
            city_counts[city] = city_counts.get(city, 0) + 1
            time_distribution[event_hour(event.timestamp)] += 1
            user_ids.add(event.user_id)

            total_temp += event.params.temperature
            total_latency += event.telemetry.latency
            if event.telemetry.has_error:
                error_count += 1

        total = len(events)
        stats = AggregatedStats(
            total_brews=total,
            avg_temp=total_temp / total if total else 0.0,
            top_beverage=top_beverage,
            active_users=len(user_ids),
            city_distribution=city_counts,
            time_distribution=time_distribution,
            beverage_distribution=beverage_counts,
            avg_latency=total_latency / total if total else 0.0,
            error_rate=error_count / total if total else 0.0,
            user_ids=frozenset(user_ids),
        )

    STATS_COMPUTED.labels(mode='full').inc()
    logger.debug("Aggregated stats", total_brews=total, error_rate=stats.error_rate)
    return stats


def _in_arrival_order(events: Sequence[BrewEvent]) -> List[BrewEvent]:
    """Packets must be folded in timestamp order; re-sort stably if needed."""
    ordered = list(events)
    if any(later.timestamp < earlier.timestamp for earlier, later in zip(ordered, ordered[1:])):
        logger.warning("Out-of-order packets re-sorted before ingestion", packet_count=len(ordered))
        ordered.sort(key=lambda e: e.timestamp)
    return ordered


def ingest_events(
    prior: AggregatedStats,
    new_events: Sequence[BrewEvent],
    prior_total: Optional[int] = None
) -> AggregatedStats:
    """
    Incrementally fold freshly arrived packets into prior statistics.

    Each packet is applied in arrival order using the running-mean identity
    new_avg = (old_avg * (n - 1) + x) / n. The prior value is not modified.

    Args:
        prior: Statistics over everything ingested so far
        new_events: Newly arrived packets
        prior_total: Number of events `prior` summarizes (defaults to
            prior.total_brews)

    Returns:
        Statistics over the prior events plus the new packets

    Raises:
        ValueError: If prior_total disagrees with the prior statistics
    """
    if prior_total is None:
        prior_total = prior.total_brews
    elif prior_total != prior.total_brews:
        raise ValueError(
            f"prior_total {prior_total} does not match prior stats total {prior.total_brews}"
        )

    with PROCESSING_DURATION.labels(view='stats_incremental').time():
        beverage_counts = dict(prior.beverage_distribution)
        city_counts = dict(prior.city_distribution)
        time_distribution = list(prior.time_distribution)
        user_ids = set(prior.user_ids)
        avg_temp = prior.avg_temp
        avg_latency = prior.avg_latency
        error_count = round(prior.error_rate * prior_total)
        error_rate = prior.error_rate
        top_beverage = prior.top_beverage
        total = prior_total

        for event in _in_arrival_order(new_events):
            total += 1

            beverage = event.beverage.value
            beverage_counts[beverage] = beverage_counts.get(beverage, 0) + 1
            top_beverage = _bump_leader(beverage_counts, top_beverage, beverage)

            city = event.location.city
            city_counts[city] = city_counts.get(city, 0) + 1
            time_distribution[event_hour(event.timestamp)] += 1
            user_ids.add(event.user_id)

            avg_latency = (avg_latency * (total - 1) + event.telemetry.latency) / total
            avg_temp = (avg_temp * (total - 1) + event.params.temperature) / total

            if event.telemetry.has_error:
                error_count += 1
            error_rate = error_count / total

    EVENTS_INGESTED.labels(mode='incremental', status='success').inc(len(new_events))
    STATS_COMPUTED.labels(mode='incremental').inc()

    return AggregatedStats(
        total_brews=total,
        avg_temp=avg_temp,
        top_beverage=top_beverage,
        active_users=len(user_ids),
        city_distribution=city_counts,
        time_distribution=time_distribution,
        beverage_distribution=beverage_counts,
        avg_latency=avg_latency,
        error_rate=error_rate,
        user_ids=frozenset(user_ids),
    )
