"""
Domain: risk levels, signals and assessments.

Risk levels are derived strictly from the score:
  - CRITICAL: score >= 60
  - HIGH:     score >= 35
  - MEDIUM:   score >= 15
  - LOW:      otherwise

Each level carries presentation metadata (color, badge) and a fixed set of
generic recommendations that are appended after the per-signal ones.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .cart import CartSnapshot
from .time import require_utc_timestamp


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Ordinal position: low < medium < high < critical."""
        return _LEVEL_ORDER.index(self)

    @property
    def color(self) -> str:
        return _PRESENTATION[self][0]

    @property
    def badge(self) -> str:
        return _PRESENTATION[self][1]

    @property
    def recommendations(self) -> Tuple[str, ...]:
        return _LEVEL_RECOMMENDATIONS[self]

    @staticmethod
    def from_score(score: int) -> "RiskLevel":
        if score >= 60:
            return RiskLevel.CRITICAL
        if score >= 35:
            return RiskLevel.HIGH
        if score >= 15:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW


_LEVEL_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]

_PRESENTATION: Dict[RiskLevel, Tuple[str, str]] = {
    RiskLevel.CRITICAL: ("rgb(239, 68, 68)", "CRITICAL"),
    RiskLevel.HIGH: ("rgb(245, 101, 101)", "HIGH RISK"),
    RiskLevel.MEDIUM: ("rgb(251, 146, 60)", "MEDIUM"),
    RiskLevel.LOW: ("rgb(34, 197, 94)", "LOW"),
}

_LEVEL_RECOMMENDATIONS: Dict[RiskLevel, Tuple[str, ...]] = {
    RiskLevel.CRITICAL: ("Manager approval required", "Document transaction details"),
    RiskLevel.HIGH: ("Supervisor review recommended", "Verify customer identity"),
    RiskLevel.MEDIUM: ("Additional verification suggested",),
    RiskLevel.LOW: (),
}


@dataclass(frozen=True, slots=True)
class RiskSignal:
    """A named heuristic with a fixed point weight."""

    name: str
    weight: int
    recommendation: str


@dataclass(frozen=True, slots=True)
class RiskAssessment:
    """
    Result of evaluating every signal against one transaction.

    risk_score is the uncapped sum of fired weights. risk_factors maps every
    signal name to whether it fired.
    """

    risk_score: int
    risk_level: RiskLevel
    risk_factors: Dict[str, bool]
    risk_reasons: List[str]
    recommendations: List[str]

    @property
    def color(self) -> str:
        return self.risk_level.color

    @property
    def badge(self) -> str:
        return self.risk_level.badge

    @property
    def fired_signals(self) -> List[str]:
        return [name for name, fired in self.risk_factors.items() if fired]

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation for the reporting surface."""
        return {
            "risk_level": self.risk_level.value,
            "risk_score": self.risk_score,
            "risk_factors": dict(self.risk_factors),
            "risk_reasons": list(self.risk_reasons),
            "color": self.color,
            "badge": self.badge,
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """A committed transaction as read back from the ledger."""

    transaction_id: int
    transaction_number: Optional[str]
    status: str  # completed, voided, held
    created_at: datetime
    snapshot: CartSnapshot

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)


@dataclass(frozen=True, slots=True)
class AssessedTransaction:
    transaction: TransactionRecord
    assessment: RiskAssessment


@dataclass(frozen=True, slots=True)
class DailyRiskSummary:
    """Risk counts for every transaction created on one calendar day (UTC)."""

    day: date
    total_transactions: int = 0
    low_risk: int = 0
    medium_risk: int = 0
    high_risk: int = 0
    critical_risk: int = 0
    total_risk_score: int = 0
    flagged: List[AssessedTransaction] = field(default_factory=list)


__all__ = [
    "RiskLevel",
    "RiskSignal",
    "RiskAssessment",
    "TransactionRecord",
    "AssessedTransaction",
    "DailyRiskSummary",
]
