"""
Configuration models for brew telemetry processing.

Centralized configuration for the generators, the aggregator, the fleet
projector and the live stream simulator.
"""

from typing import Dict, List
from dataclasses import dataclass, field

from streaming.core.models.events import GeoLocation


@dataclass(frozen=True)
class CityConfig:
    """Metro area centre and the radius (degrees) machines are spread over."""
    center: GeoLocation
    spread: float


CITY_CONFIGS: Dict[str, CityConfig] = {
    'Shanghai': CityConfig(GeoLocation(city='Shanghai', lat=31.2304, lng=121.4737), 0.12),
    'Beijing': CityConfig(GeoLocation(city='Beijing', lat=39.9042, lng=116.4074), 0.15),
    'Shenzhen': CityConfig(GeoLocation(city='Shenzhen', lat=22.5431, lng=114.0579), 0.08),
    'Guangzhou': CityConfig(GeoLocation(city='Guangzhou', lat=23.1291, lng=113.2644), 0.10),
    'Chengdu': CityConfig(GeoLocation(city='Chengdu', lat=30.5728, lng=104.0668), 0.14),
    'Hangzhou': CityConfig(GeoLocation(city='Hangzhou', lat=30.2741, lng=120.1551), 0.10),
}

# Used when an event names a city we have no configuration for
DEFAULT_CITY_CONFIG = CityConfig(GeoLocation(city='Unknown', lat=31.0, lng=121.0), 0.1)

STREET_NAMES: Dict[str, List[str]] = {
    'Shanghai': ['Nanjing West Rd', 'Huaihai Middle Rd', 'Changning Rd', 'Yan\'an West Rd',
                 'Century Ave', 'Lujiazui Ring Rd', 'Zhangjiang Hi-Tech Rd', 'Xujiahui Rd'],
    'Beijing': ['Chang\'an Ave', 'Wangfujing St', 'Sanlitun Rd', 'Xidan North St',
                'Zhongguancun St', 'Chaoyang North Rd', 'Jianguomenwai St', 'Financial St'],
    'Shenzhen': ['Shennan Blvd', 'Binhai Blvd', 'Huaqiang North Rd', 'Keyuan South Rd',
                 'Yitian Rd', 'Nanhai Blvd', 'Bao\'an Blvd', 'Qianhai Rd'],
    'Guangzhou': ['Tianhe Rd', 'Beijing Rd', 'Zhujiang New Town Ave', 'Zhongshan 5th Rd',
                  'Jiangnan West Rd', 'Huanshi East Rd', 'Dongfeng Middle Rd', 'Guangzhou Ave'],
    'Chengdu': ['Chunxi Rd', 'Hongxing Rd', 'Tianfu Ave', 'Shudu Ave',
                'Jianshe Rd', 'Renmin South Rd', '2nd Ring Rd South', 'Kuanzhai Alley'],
    'Hangzhou': ['Yan\'an Rd', 'Jiefang Rd', 'Qingchun Rd', 'Fengqi Rd',
                 'Wensan Rd', 'Binsheng Rd', 'Moganshan Rd', 'Nanshan Rd'],
}

DEFAULT_STREETS = ['Main Road', 'Center Ave', 'Technology Drive']


@dataclass
class ProcessorConfig:
    """Configuration for batch generation and the live stream simulator."""

    # Batch settings
    initial_batch_size: int = 2000
    history_days: int = 30

    # Live stream settings
    max_buffered_events: int = 5000
    min_packet_size: int = 1
    max_packet_size: int = 3
    tick_interval_seconds: float = 5.0

    # Fleet settings
    offline_after_hours: float = 4.0
    maintenance_error_rate: float = 0.05
    unit_price: float = 4.5
    iot_interfaces: List[str] = field(default_factory=lambda: ['WiFi', '5G', 'WiFi', 'LoRaWAN'])

    # Monitoring
    metrics_port: int = 8000
