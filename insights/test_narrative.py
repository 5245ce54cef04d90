#!/usr/bin/env python3
"""
Tests for the narrative report generator.

The remote text service is never contacted: requests.post is replaced with
fakes that succeed, fail or time out.
"""

import os
import sys

import pytest
import requests

# Add parent directory to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import insights.narrative as narrative
from crm.config import CRMConfig, NarrativeConfig
from insights.narrative import NarrativeReportGenerator, render_fallback_report
from ml.models import (
    ForecastPoint, MLResult, ModelType, RecommendationRule, RegressionResult, TrainingMetrics
)
from streaming.core.models.stats import AggregatedStats

STATS = AggregatedStats(
    total_brews=2000,
    avg_temp=88.64,
    top_beverage="Espresso",
    active_users=148,
    city_distribution={"Shanghai": 400},
    beverage_distribution={"Espresso": 420},
    avg_latency=61.2,
    error_rate=0.021,
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


def keyed_generator():
    return NarrativeReportGenerator(NarrativeConfig(api_key="test-key", timeout_seconds=5))


def test_fallback_without_key(monkeypatch):
    def fail_post(*args, **kwargs):
        raise AssertionError("remote service must not be called without a key")

    monkeypatch.setattr(narrative.requests, "post", fail_post)
    report = NarrativeReportGenerator(NarrativeConfig(api_key=None)).generate(ModelType.SALES_PREDICTION, STATS)

    assert "2,000" in report
    assert "148" in report
    assert "Espresso" in report
    assert "88.6°C" in report
    assert "2.10%" in report
    assert "Sales Outlook" in report


def test_blank_key_uses_fallback():
    report = NarrativeReportGenerator(NarrativeConfig(api_key="   ")).generate(ModelType.USER_PERSONA, STATS)
    assert "Personas" in report


def test_fallback_is_deterministic_per_model_type():
    sections = {
        ModelType.SALES_PREDICTION: "Sales Outlook",
        ModelType.USER_PERSONA: "Personas and Targeted Marketing",
        ModelType.RECOMMENDATION: "Association Rules",
        ModelType.BEHAVIOR_ANALYSIS: "General Business Insights",
    }
    for model_type, heading in sections.items():
        first = render_fallback_report(model_type, STATS)
        assert first == render_fallback_report(model_type, STATS)
        assert heading in first


def test_fallback_on_empty_stats():
    report = render_fallback_report(ModelType.BEHAVIOR_ANALYSIS, AggregatedStats())
    assert report.strip()
    assert "N/A" in report


def test_remote_success(monkeypatch):
    calls = []

    def fake_post(url, json=None, timeout=None, headers=None):
        calls.append((url, json, timeout, headers))
        return FakeResponse(payload={"candidates": [{"content": {"parts": [{"text": "## Remote report"}]}}]})

    monkeypatch.setattr(narrative.requests, "post", fake_post)
    report = keyed_generator().generate(ModelType.RECOMMENDATION, STATS)

    assert report == "## Remote report"
    url, payload, timeout, headers = calls[0]
    assert url.endswith("/gemini-2.5-flash:generateContent")
    assert timeout == 5
    assert headers['x-goog-api-key'] == "test-key"
    assert "Espresso" in payload["contents"][0]["parts"][0]["text"]


def test_remote_error_falls_back(monkeypatch):
    def raising_post(*args, **kwargs):
        raise requests.exceptions.ConnectionError("service down")

    monkeypatch.setattr(narrative.requests, "post", raising_post)
    report = keyed_generator().generate(ModelType.SALES_PREDICTION, STATS)
    assert "Sales Outlook" in report


def test_remote_timeout_falls_back(monkeypatch):
    def slow_post(*args, **kwargs):
        raise requests.exceptions.Timeout()

    monkeypatch.setattr(narrative.requests, "post", slow_post)
    assert "local rule engine" in keyed_generator().generate(ModelType.USER_PERSONA, STATS)


def test_remote_bad_status_or_empty_text_falls_back(monkeypatch):
    monkeypatch.setattr(narrative.requests, "post",
                        lambda *a, **k: FakeResponse(status_code=500, text="internal error"))
    assert "Executive Summary" in keyed_generator().generate(ModelType.RECOMMENDATION, STATS)

    monkeypatch.setattr(narrative.requests, "post",
                        lambda *a, **k: FakeResponse(payload={"candidates": [{"content": {"parts": []}}]}))
    assert "Executive Summary" in keyed_generator().generate(ModelType.RECOMMENDATION, STATS)


def test_prompt_includes_model_findings():
    result = MLResult(
        type=ModelType.SALES_PREDICTION,
        metrics=TrainingMetrics(accuracy=0.93, loss=0.07, precision=0.9, recall=0.9, epoch=30),
        algorithm="Linear Regression",
        regression=RegressionResult(slope=1.25, intercept=10, r_squared=0.8,
                                    forecast=[ForecastPoint(day=d, value=60 + d) for d in range(10)]),
        recommendations=[RecommendationRule(antecedent="Latte Macchiato", consequent="Espresso",
                                            confidence=0.65, lift=1.8)],
    )
    prompt = keyed_generator().build_prompt(ModelType.SALES_PREDICTION, STATS, result)

    assert "Linear Regression" in prompt
    assert "93.00%" in prompt
    assert "1.25" in prompt
    assert "60, 61, 62, 63, 64, 65, 66" in prompt
    assert "Latte Macchiato" in prompt


def test_config_from_env(monkeypatch):
    monkeypatch.delenv("NARRATIVE_API_KEY", raising=False)
    monkeypatch.setenv("API_KEY", "  env-key  ")
    monkeypatch.setenv("NARRATIVE_MODEL", "custom-model")
    monkeypatch.setenv("BREW_UNIT_PRICE", "5.5")

    config = CRMConfig.from_env()
    assert config.narrative.api_key == "env-key"
    assert config.narrative.model == "custom-model"
    assert config.pricing.unit_price == 5.5


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
