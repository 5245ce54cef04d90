"""
Shared Prometheus metrics for the telemetry pipeline.

This module provides centralized metric definitions to avoid
duplicate registrations across different processor modules.
"""

from prometheus_client import Counter, Gauge, Histogram

# Generation metrics
EVENTS_GENERATED = Counter(
    'brew_events_generated_total',
    'Total synthetic brew events generated',
    ['mode']
)

# Aggregation metrics
EVENTS_INGESTED = Counter(
    'brew_events_ingested_total',
    'Total events folded into running statistics',
    ['mode', 'status']
)

STATS_COMPUTED = Counter(
    'brew_stats_computed_total',
    'Total statistics computations',
    ['mode']
)

PROCESSING_DURATION = Histogram(
    'brew_processing_duration_seconds',
    'Time spent computing derived views',
    ['view']
)

# Buffer metrics
BUFFER_SIZE = Gauge(
    'brew_live_buffer_size',
    'Events currently held in the live stream buffer'
)

# Fleet metrics
MACHINES_BY_STATUS = Gauge(
    'brew_fleet_machines',
    'Machines per derived status',
    ['status']
)

# CRM metrics
PROFILES_BUILT = Counter(
    'crm_profiles_built_total',
    'Total customer profiles built',
    ['loyalty_tier']
)

ACTIONS_SELECTED = Counter(
    'crm_next_best_actions_total',
    'Next-best-actions selected by type',
    ['action_type']
)

# Narrative metrics
NARRATIVES_GENERATED = Counter(
    'narrative_reports_total',
    'Narrative reports produced',
    ['source']
)
