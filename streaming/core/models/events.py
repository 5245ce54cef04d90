"""
Event data models for brew telemetry.

These models define the structure of the events produced by the generators
and consumed by the aggregator, the fleet projector and the CRM engine.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict


class BeverageType(str, Enum):
    """Beverages a machine can brew."""
    ESPRESSO = "Espresso"
    LUNGO = "Lungo"
    RISTRETTO = "Ristretto"
    GREEN_TEA = "Green Tea"
    BLACK_TEA = "Black Tea"
    EARL_GREY = "Earl Grey"
    LATTE_MACCHIATO = "Latte Macchiato"
    CAPPUCCINO = "Cappuccino"

    @property
    def is_tea(self) -> bool:
        return self in (BeverageType.GREEN_TEA, BeverageType.BLACK_TEA, BeverageType.EARL_GREY)


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class GeoLocation(BaseModel):
    """City plus coordinates."""
    model_config = ConfigDict(frozen=True)

    city: str
    lat: float
    lng: float


class BrewingParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    temperature: float  # Celsius
    pressure: float  # bar
    volume: float  # ml
    brewing_time: float  # seconds


class TelemetryData(BaseModel):
    model_config = ConfigDict(frozen=True)

    latency: float  # ms
    signal_strength: float  # dBm
    cpu_usage: float  # percent
    error_code: Optional[str] = None

    @property
    def has_error(self) -> bool:
        return bool(self.error_code)


class BrewEvent(BaseModel):
    """One brewing transaction with embedded device telemetry."""
    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: int  # milliseconds
    user_id: str
    age: int
    gender: Gender
    location: GeoLocation
    beverage: BeverageType
    quantity: int
    params: BrewingParams
    telemetry: TelemetryData
    machine_id: str
    firmware_version: str
