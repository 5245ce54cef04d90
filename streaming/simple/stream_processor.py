#!/usr/bin/env python3
"""
Live Stream Simulator

Runs the telemetry pipeline without any external infrastructure:
- Seeds the view with a 30-day historical batch
- Each tick synthesizes a small packet of live events
- Packets are folded into the running statistics incrementally
- Only the most recent events are kept in memory for fleet and CRM views

Use this for development and demos of the analytics core.
"""

import os
import sys
import json
import time
from typing import Any, Dict, List, Optional
import logging

# Add project root to path (go up two levels from streaming/simple/ to project root)
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

import click
import structlog
from prometheus_client import start_http_server

from crm.config import CRMConfig
from crm.profiles import build_customer_profiles
from crm.schemas import CustomerProfile
from generators.brewgen import BrewEventGenerator
from ml.models import TrainedModelRegistry
from streaming.core.models.config import ProcessorConfig
from streaming.core.models.events import BrewEvent
from streaming.core.models.stats import AggregatedStats, MachineFleetStatus
from streaming.core.processors.aggregator import aggregate_stats, ingest_events
from streaming.core.processors.fleet import project_fleet_status
from streaming.core.utils.metrics import BUFFER_SIZE, EVENTS_INGESTED
from streaming.core.utils.windowing import EventBuffer

logger = structlog.get_logger(__name__)


class StreamProcessor:
    """Main live simulation engine."""

    def __init__(
        self,
        config: Optional[ProcessorConfig] = None,
        generator: Optional[BrewEventGenerator] = None,
        crm_config: Optional[CRMConfig] = None
    ):
        self.config = config or ProcessorConfig()
        self.generator = generator or BrewEventGenerator(history_days=self.config.history_days)
        self.crm_config = crm_config or CRMConfig()
        self.running = False

        self.buffer = EventBuffer(self.config.max_buffered_events)
        self.stats: AggregatedStats = aggregate_stats([])
        self.refresh()

        logger.info("Stream processor initialized",
                    initial_batch=self.config.initial_batch_size,
                    max_buffered_events=self.config.max_buffered_events)

    @property
    def events(self) -> List[BrewEvent]:
        return self.buffer.get_events()

    def refresh(self) -> AggregatedStats:
        """Discard all state and start over from a fresh historical batch."""
        batch = self.generator.generate_batch(self.config.initial_batch_size)

        self.buffer.clear()
        self.buffer.extend(batch)
        self.stats = aggregate_stats(batch)

        BUFFER_SIZE.set(self.buffer.size())
        EVENTS_INGESTED.labels(mode='batch', status='success').inc(len(batch))
        logger.info("Loaded historical batch", events=len(batch), active_users=self.stats.active_users)
        return self.stats

    def tick(self) -> List[BrewEvent]:
        """
        Synthesize one packet of live events and fold it in.

        Returns:
            The events of this packet, in arrival order
        """
        rng = self.generator.rng
        packet_size = rng.randint(self.config.min_packet_size, self.config.max_packet_size)
        packet = [self.generator.generate_event() for _ in range(packet_size)]

        self.stats = ingest_events(self.stats, packet)
        self.buffer.extend(packet)
        BUFFER_SIZE.set(self.buffer.size())

        logger.debug("Ingested live packet",
                     packet_size=packet_size,
                     total_brews=self.stats.total_brews,
                     buffered=self.buffer.size())
        return packet

    def fleet(self, now_ms: Optional[int] = None) -> List[MachineFleetStatus]:
        return project_fleet_status(self.events, now_ms=now_ms, config=self.config)

    def profiles(self, registry: Optional[TrainedModelRegistry] = None,
                 now_ms: Optional[int] = None) -> List[CustomerProfile]:
        return build_customer_profiles(self.events, registry=registry, now_ms=now_ms,
                                       config=self.crm_config)

    def start(self, ticks: Optional[int] = None, interval: Optional[float] = None):
        """
        Run ticks until stopped.

        Args:
            ticks: Number of ticks to run (forever if None)
            interval: Seconds between ticks (defaults to config)
        """
        self.running = True
        interval = self.config.tick_interval_seconds if interval is None else interval
        completed = 0

        logger.info("Starting live stream...", interval=interval, ticks=ticks)
        try:
            while self.running and (ticks is None or completed < ticks):
                self.tick()
                completed += 1
                if interval > 0 and (ticks is None or completed < ticks):
                    time.sleep(interval)
        except KeyboardInterrupt:
            logger.info("Received interrupt signal")
        finally:
            self.stop()

    def stop(self):
        """Stop the live stream."""
        self.running = False
        logger.info("Stream processor stopped", total_brews=self.stats.total_brews)

    def summary(self) -> Dict[str, Any]:
        fleet = self.fleet()
        status_counts: Dict[str, int] = {}
        for machine in fleet:
            status_counts[machine.status.value] = status_counts.get(machine.status.value, 0) + 1

        return {
            'stats': self.stats.model_dump(mode='json'),
            'buffered_events': self.buffer.size(),
            'machines': len(fleet),
            'machines_by_status': status_counts,
        }


@click.command()
@click.option('--ticks', default=10, help='Number of live ticks to run (0 runs until interrupted)')
@click.option('--interval', default=None, type=float, help='Seconds between ticks')
@click.option('--batch-size', default=2000, help='Initial historical batch size')
@click.option('--seed', '-s', default=None, type=int, help='Random seed for reproducible runs')
@click.option('--metrics-port', default=None, type=int, help='Expose Prometheus metrics on this port')
@click.option('--verbose', '-v', is_flag=True, help='Verbose logging')
def main(ticks, interval, batch_size, seed, metrics_port, verbose):
    """Run the live telemetry simulation and print a JSON summary."""

    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)

    config = ProcessorConfig(initial_batch_size=batch_size)
    if metrics_port:
        config.metrics_port = metrics_port
        start_http_server(config.metrics_port)
        logger.info(f"Metrics server started on port {config.metrics_port}")

    try:
        generator = BrewEventGenerator(seed=seed, history_days=config.history_days)
        processor = StreamProcessor(config, generator, CRMConfig.from_env())
        processor.start(ticks=ticks or None, interval=interval)
        click.echo(json.dumps(processor.summary(), ensure_ascii=False, indent=2))
    except Exception as e:
        logger.error("Stream processor failed", error=str(e))
        sys.exit(1)


if __name__ == '__main__':
    main()
