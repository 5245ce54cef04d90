#!/usr/bin/env python3
"""
CRM Schemas

Pydantic models for customer profiles, the evidence the decision engine
scores, and the next-best-action it produces.
"""

from typing import Dict, List, Optional
from enum import Enum

from pydantic import BaseModel, Field

REPAIR_REQUEST = "Repair Request"


class LoyaltyTier(str, Enum):
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"

    @property
    def rank(self) -> int:
        return list(LoyaltyTier).index(self)


class Sentiment(str, Enum):
    POSITIVE = "Positive"
    NEUTRAL = "Neutral"
    NEGATIVE = "Negative"


class InventoryLevel(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    CRITICAL = "Critical"

    @property
    def severity(self) -> int:
        return list(InventoryLevel).index(self)


class ActionType(str, Enum):
    REPLENISHMENT = "replenishment"
    MAINTENANCE = "maintenance"
    RETENTION = "retention"
    UPSELL = "upsell"
    ENGAGEMENT = "engagement"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FeedbackType(str, Enum):
    COMPLAINT = "complaint"
    INQUIRY = "inquiry"
    SUGGESTION = "suggestion"
    PRAISE = "praise"


class FeedbackStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"
    PENDING = "pending"


class TagCategory(str, Enum):
    VALUE = "Value"
    RISK = "Risk"
    HABIT = "Habit"
    AI = "AI"


# === Profile parts ===

class CRMTag(BaseModel):
    id: str
    label: str
    color: str
    description: str
    category: TagCategory
    is_ai_generated: bool = False


class EvidenceMetric(BaseModel):
    label: str
    value: str
    trend: str = Field(description="up, down or stable")
    color: str = Field(description="green = good, red = bad, slate = neutral, blue = informational")


class NextBestAction(BaseModel):
    type: ActionType
    title: str
    description: str
    reasoning: str
    evidence: List[EvidenceMetric] = Field(default_factory=list)
    confidence_score: int
    impact_prediction: str
    used_algorithms: List[str] = Field(default_factory=list)
    priority: Priority
    suggested_offer: Optional[str] = None
    model_source: Optional[str] = None
    scores: Dict[str, int] = Field(default_factory=dict, description="Raw score per action class")


class FeedbackRecord(BaseModel):
    id: str
    date: int
    type: FeedbackType
    content: str
    status: FeedbackStatus


class InventoryItem(BaseModel):
    sku: str
    name: str
    current_stock: int
    last_order_qty: int
    consumption_rate: float
    estimated_days_left: int
    status: InventoryLevel


class InventoryStatus(BaseModel):
    last_order_date: int
    overall_status: InventoryLevel
    items: List[InventoryItem] = Field(default_factory=list)


class Financials(BaseModel):
    total_spend: float
    avg_order_value: float
    order_frequency_days: int
    last_order_amount: float


class CustomerEvidence(BaseModel):
    """Everything the decision engine looks at for one customer."""
    ltv_score: int
    churn_probability: int
    inventory: InventoryStatus
    sentiment: Sentiment
    open_tickets: List[FeedbackRecord] = Field(default_factory=list)
    last_feedback: Optional[FeedbackRecord] = None
    order_frequency_days: int
    total_spend: float
    total_orders: int
    average_daily_brews: float
    hardware_errors: int = 0
    is_declining: bool = False
    favorite_product: str = "N/A"

    @property
    def last_request(self) -> str:
        """Display name of the most recent request type."""
        if self.last_feedback is None:
            return "None"
        if self.last_feedback.type == FeedbackType.COMPLAINT:
            return REPAIR_REQUEST
        return self.last_feedback.type.value.capitalize()


class CustomerProfile(BaseModel):
    """Per-user rollup with derived scores and the attached next-best-action."""
    user_id: str
    name: str
    email: str
    phone: str
    avatar: str
    join_date: int
    ltv_score: int
    churn_probability: int
    loyalty_tier: LoyaltyTier
    tags: List[CRMTag] = Field(default_factory=list)
    next_best_action: NextBestAction
    last_active: int
    total_brews: int
    favorite_product: str
    average_daily_brews: float
    feedback_history: List[FeedbackRecord] = Field(default_factory=list)
    inventory: InventoryStatus
    financials: Financials
    current_sentiment: Sentiment
