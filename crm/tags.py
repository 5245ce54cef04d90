"""
Standard tag library and the rules that attach tags to a customer.
"""

from typing import Dict, List, NamedTuple, Optional

from crm.schemas import CRMTag, TagCategory


class TagTemplate(NamedTuple):
    label: str
    color: str
    description: str
    category: TagCategory


TAG_LIBRARY: Dict[str, TagTemplate] = {
    # Value
    'VIP': TagTemplate('VIP Core Customer', 'text-emerald-400 border-emerald-400',
                       'Top 20% customers by LTV', TagCategory.VALUE),
    'HIGH_SPENDER': TagTemplate('High Spender', 'text-amber-400 border-amber-400',
                                'Total spend above ¥2000', TagCategory.VALUE),

    # Risk
    'CHURN_RISK': TagTemplate('Churn Risk', 'text-red-500 border-red-500',
                              'Churn probability above 70%', TagCategory.RISK),
    'HARDWARE_ISSUE': TagTemplate('Hardware Issue', 'text-slate-300 border-slate-300',
                                  'Repeated hardware errors detected', TagCategory.RISK),

    # Habit
    'HIGH_TEMP': TagTemplate('High-Temp Extraction', 'text-rose-400 border-rose-400',
                             'Average water temperature above 92°C', TagCategory.HABIT),
    'LOW_TEMP': TagTemplate('Low-Temp Flavor', 'text-cyan-400 border-cyan-400',
                            'Average water temperature below 85°C', TagCategory.HABIT),
    'MORNING_USER': TagTemplate('Morning User', 'text-orange-400 border-orange-400',
                                'Over 60% of brews before 10:00', TagCategory.HABIT),
    'NIGHT_USER': TagTemplate('Night Owl', 'text-indigo-400 border-indigo-400',
                              'Mostly active after 21:00', TagCategory.HABIT),

    # AI
    'AI_CLUSTER': TagTemplate('[AI] Smart Segment', 'text-purple-400 border-purple-400 bg-purple-500/10',
                              'Assigned by the persona clustering model', TagCategory.AI),
}


def make_tag(key: str, tag_id: str, **overrides) -> CRMTag:
    """Instantiate a library tag, optionally overriding label or description."""
    template = TAG_LIBRARY[key]
    fields = template._asdict()
    fields.update(overrides)
    return CRMTag(id=tag_id, **fields)


def derive_tags(
    avg_temp: float,
    morning_share: float,
    night_share: float,
    churn_probability: int,
    ltv_score: int,
    total_spend: float,
    hardware_errors: int,
    cluster_label: Optional[str] = None
) -> List[CRMTag]:
    """Apply the tag rule table to a customer's derived signals."""
    tags = []

    if avg_temp > 92:
        tags.append(make_tag('HIGH_TEMP', 't_high_temp'))
    if avg_temp < 85:
        tags.append(make_tag('LOW_TEMP', 't_low_temp'))

    if morning_share > 0.6:
        tags.append(make_tag('MORNING_USER', 't_morning'))
    if night_share > 0.4:
        tags.append(make_tag('NIGHT_USER', 't_night'))

    if churn_probability > 70:
        tags.append(make_tag('CHURN_RISK', 't_churn'))

    if ltv_score > 80:
        tags.append(make_tag('VIP', 't_vip'))
    elif total_spend > 2000:
        tags.append(make_tag('HIGH_SPENDER', 't_spender'))

    if hardware_errors > 0:
        tags.append(make_tag('HARDWARE_ISSUE', 't_hardware',
                             description=f"{hardware_errors} hardware errors detected"))

    if cluster_label:
        tags.append(make_tag('AI_CLUSTER', 'ai-cluster-res',
                             label=f"[AI] {cluster_label}",
                             description=f"AI cluster assignment: {cluster_label}",
                             is_ai_generated=True))

    return tags
