"""
Derived data models.

Aggregated statistics over a set of brew events and the per-machine fleet
status projected from the same events.
"""

from enum import Enum
from typing import Dict, FrozenSet, List
from pydantic import BaseModel, Field

NO_TOP_BEVERAGE = "N/A"


class AggregatedStats(BaseModel):
    """Rolling summary over a set of brew events."""
    total_brews: int = 0
    avg_temp: float = 0.0
    top_beverage: str = NO_TOP_BEVERAGE
    active_users: int = 0
    city_distribution: Dict[str, int] = Field(default_factory=dict)
    time_distribution: List[int] = Field(default_factory=lambda: [0] * 24)
    beverage_distribution: Dict[str, int] = Field(default_factory=dict)
    avg_latency: float = 0.0
    error_rate: float = 0.0

    # Distinct users seen so far; carried so incremental ingestion stays exact
    user_ids: FrozenSet[str] = Field(default_factory=frozenset, exclude=True, repr=False)


class MachineStatus(str, Enum):
    ACTIVE = "Active"
    MAINTENANCE = "Maintenance"
    OFFLINE = "Offline"


class GeoPoint(BaseModel):
    lat: float
    lng: float


class DailyStats(BaseModel):
    total_sales_qty: int
    total_revenue: float
    category_count: int


class MachineFleetStatus(BaseModel):
    """Current status of one physical machine."""
    machine_id: str
    city: str
    address: str
    geo: GeoPoint
    status: MachineStatus
    online_time: str
    daily_stats: DailyStats
    iot_interface: str
    signal_strength: int
    avg_latency: int
    error_rate: float
    cpu_load: int
