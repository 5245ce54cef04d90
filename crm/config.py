#!/usr/bin/env python3
"""
CRM Engine Configuration

Centralized configuration for customer profiling, the decision engine and
the narrative report generator. Supports environment-based overrides.
"""

import os
from typing import Optional
from pydantic import BaseModel, Field


class PricingConfig(BaseModel):
    """Pod pricing and order simulation."""

    unit_price: float = Field(default=4.5, description="Price per pod")
    pods_per_order: int = Field(default=50, description="Average pods per order")
    default_order_frequency_days: int = Field(default=30, description="Order frequency for single-order customers")


class InventoryConfig(BaseModel):
    """Per-SKU depletion model."""

    tracked_skus: int = Field(default=3, description="Top beverages tracked per customer")
    order_cover_days: int = Field(default=35, description="Days of consumption one order covers")
    min_order_qty: int = Field(default=20, description="Smallest order quantity")
    max_days_since_order: int = Field(default=40, description="Upper bound of synthesized last-order age")
    unknown_days_left: int = Field(default=99, description="Days left reported for an unconsumed SKU")

    # Status bands on estimated days left
    critical_days: int = Field(default=3, description="At or below: Critical")
    low_days: int = Field(default=7, description="At or below: Low")
    medium_days: int = Field(default=14, description="At or below: Medium")


class NarrativeConfig(BaseModel):
    """Remote text-generation service used for narrative reports."""

    api_key: Optional[str] = Field(default=None, description="API key; fallback template when unset")
    model: str = Field(default="gemini-2.5-flash", description="Text generation model")
    api_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models",
        description="Base URL of the generation endpoint"
    )
    timeout_seconds: float = Field(default=30.0, description="Request timeout in seconds")


class CRMConfig(BaseModel):
    """Complete CRM configuration."""

    pricing: PricingConfig = Field(default_factory=PricingConfig)
    inventory: InventoryConfig = Field(default_factory=InventoryConfig)
    narrative: NarrativeConfig = Field(default_factory=NarrativeConfig)

    @classmethod
    def from_env(cls) -> "CRMConfig":
        """Load configuration from environment variables."""
        config = cls()

        if os.getenv("BREW_UNIT_PRICE"):
            config.pricing.unit_price = float(os.getenv("BREW_UNIT_PRICE"))
        if os.getenv("BREW_PODS_PER_ORDER"):
            config.pricing.pods_per_order = int(os.getenv("BREW_PODS_PER_ORDER"))

        api_key = os.getenv("NARRATIVE_API_KEY") or os.getenv("API_KEY")
        if api_key and api_key.strip():
            config.narrative.api_key = api_key.strip()
        if os.getenv("NARRATIVE_MODEL"):
            config.narrative.model = os.getenv("NARRATIVE_MODEL")
        if os.getenv("NARRATIVE_API_URL"):
            config.narrative.api_url = os.getenv("NARRATIVE_API_URL")

        return config
