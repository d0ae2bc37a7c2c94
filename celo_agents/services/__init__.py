"""
Celo Agents Services
Decision-making core: triggers, rules, scoring models and the Decision Engine
"""

from .triggers import (
    Trigger,
    TriggerType,
    Operator,
    ScheduleInterval,
    ThresholdConfig,
    ScheduleConfig,
    EventConfig,
    PatternConfig,
    MLPredictionConfig,
)
from .decision_rules import (
    NO_ACTION,
    ActionType,
    ActionTemplate,
    Decision,
    DecisionCondition,
    DecisionRule,
)
from .scoring_models import ScoringModel, ScoringModelKind, run_model
from .features import calculate_risk_score, extract_features
from .decision_engine import DecisionEngine
from .default_catalog import load_default_catalog

__all__ = [
    # Triggers
    "Trigger",
    "TriggerType",
    "Operator",
    "ScheduleInterval",
    "ThresholdConfig",
    "ScheduleConfig",
    "EventConfig",
    "PatternConfig",
    "MLPredictionConfig",

    # Rules
    "NO_ACTION",
    "ActionType",
    "ActionTemplate",
    "Decision",
    "DecisionCondition",
    "DecisionRule",

    # Scoring
    "ScoringModel",
    "ScoringModelKind",
    "run_model",
    "calculate_risk_score",
    "extract_features",

    # Engine
    "DecisionEngine",
    "load_default_catalog",
]
