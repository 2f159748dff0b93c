"""Session quality score: weighted blend of normalized analytics terms."""

from __future__ import annotations

from pydantic import BaseModel, Field

from marketkit.config.schema import AnalyticsSettings
from marketkit.sessions.models import SessionAnalytics

QUALITY_WEIGHTS: dict[str, float] = {
    "user_satisfaction": 0.40,
    "message_count": 0.20,
    "response_time": 0.20,
    "escalation": 0.20,
}

_MAX_RATING = 5.0


class QualityTerm(BaseModel):
    name: str
    value: float = 0.0  # normalized to [0, 1]
    weight: float = 0.0

    @property
    def contribution(self) -> float:
        return self.value * self.weight


class QualityReport(BaseModel):
    score: float = 0.0  # 0-100
    terms: list[QualityTerm] = Field(default_factory=list)

    @property
    def reasoning(self) -> str:
        return "; ".join(f"{t.name}={t.value:.2f}x{t.weight:.2f}" for t in self.terms)


def compute_quality_terms(
    analytics: SessionAnalytics,
    settings: AnalyticsSettings | None = None,
    weights: dict[str, float] | None = None,
) -> list[QualityTerm]:
    """Normalize each analytics signal to [0, 1] and attach its weight."""
    settings = settings or AnalyticsSettings()
    weights = weights or QUALITY_WEIGHTS

    cap = max(settings.max_messages_for_score, 1)
    slowest = settings.ideal_response_ms * 5

    values = {
        "user_satisfaction": _clamp(analytics.user_satisfaction / _MAX_RATING),
        "message_count": min(analytics.message_count, cap) / cap,
        "response_time": max(0.0, 1 - analytics.average_response_time_ms / slowest)
        if slowest > 0
        else 0.0,
        "escalation": max(
            0.0, 1 - analytics.escalation_count / max(settings.escalation_ceiling, 1)
        ),
    }
    return [
        QualityTerm(name=name, value=value, weight=weights.get(name, 0.0))
        for name, value in values.items()
    ]


def quality_report(
    analytics: SessionAnalytics,
    settings: AnalyticsSettings | None = None,
    weights: dict[str, float] | None = None,
) -> QualityReport:
    terms = compute_quality_terms(analytics, settings, weights)
    raw = sum(t.contribution for t in terms) * 100
    return QualityReport(score=min(max(raw, 0.0), 100.0), terms=terms)


def quality_score(
    analytics: SessionAnalytics,
    settings: AnalyticsSettings | None = None,
) -> float:
    """0-100 quality score for a session's analytics snapshot."""
    return quality_report(analytics, settings).score


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)
