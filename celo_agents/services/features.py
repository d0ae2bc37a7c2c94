"""
Metric lookup, comparison and feature extraction over observed state + memory.

Everything here is deterministic and side-effect free; the decision engine
calls it once per trigger/rule and isolates whatever it raises.
"""

import math
import re
from collections import Counter
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..infrastructure.errors import MetricUnavailableError
from .triggers import Operator

if TYPE_CHECKING:
    from ..agents.agent_memory import AgentMemory

EPSILON = 1e-9

# Metric name -> observed state key
STATE_METRIC_KEYS = {
    "balance": "cusd_balance",
    "price": "price",
    "volume": "volume",
    "apy": "apy",
    "gas_price": "gas_price",
    "liquidity": "liquidity",
    "volatility": "volatility",
    "time_since_last_rebalance": "time_since_last_rebalance",
    "donation_amount": "donation_amount",
    "price_difference": "price_difference",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_datetime(value: Any) -> datetime:
    """Unix seconds, ISO strings and naive datetimes all become aware UTC."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    return as_datetime(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


# ==========================================
# METRICS & COMPARISON
# ==========================================

def get_metric_value(state: Dict[str, Any], metric: str, token: Optional[str] = None) -> Any:
    """
    Read a metric from observed state.
    "balance" with a token reads token_balances[token]; unknown metric names
    fall through to a raw state key. Missing values raise MetricUnavailableError.
    """
    if metric == "balance" and token:
        balances = state.get("token_balances") or {}
        if token in balances:
            return balances[token]
        lowered = {str(k).lower(): v for k, v in balances.items()}
        if str(token).lower() in lowered:
            return lowered[str(token).lower()]
        raise MetricUnavailableError(f"balance[{token}]")

    key = STATE_METRIC_KEYS.get(metric, metric)
    value = state.get(key)
    if value is None:
        raise MetricUnavailableError(metric)
    return value


def compare_values(actual: Any, operator: Operator, expected: Any) -> bool:
    operator = Operator(operator)

    if operator is Operator.CONTAINS:
        return str(expected) in str(actual)
    if operator is Operator.MATCHES:
        return re.search(str(expected), str(actual)) is not None
    if operator is Operator.EQ:
        try:
            return math.isclose(float(actual), float(expected), abs_tol=EPSILON)
        except (TypeError, ValueError):
            return actual == expected

    a, e = float(actual), float(expected)
    if operator is Operator.GT:
        return a > e
    if operator is Operator.LT:
        return a < e
    if operator is Operator.GTE:
        return a >= e
    return a <= e


def match_strength(actual: Any, operator: Operator, expected: Any) -> float:
    """
    1.0 when the comparison holds. Unsatisfied inequalities get partial credit
    for numeric closeness: 1 - |a - e| / max(|e|, eps), clamped to [0, 1].
    """
    operator = Operator(operator)
    if compare_values(actual, operator, expected):
        return 1.0
    if not operator.is_inequality:
        return 0.0

    a, e = float(actual), float(expected)
    closeness = 1.0 - abs(a - e) / max(abs(e), EPSILON)
    return min(1.0, max(0.0, closeness))


# ==========================================
# MEMORY-DERIVED SIGNALS
# ==========================================

def action_amounts(memory: "AgentMemory") -> List[float]:
    amounts = []
    for record in memory.actions:
        raw = (record.params or {}).get("amount")
        try:
            amount = float(raw)
        except (TypeError, ValueError):
            continue
        if amount:
            amounts.append(amount)
    return amounts


def amount_variance(memory: "AgentMemory") -> float:
    """Coefficient of variation of recent action amounts"""
    amounts = action_amounts(memory)
    if len(amounts) < 2:
        return 0.0
    mean = sum(amounts) / len(amounts)
    if mean == 0:
        return 0.0
    variance = sum((x - mean) ** 2 for x in amounts) / len(amounts)
    return math.sqrt(variance) / abs(mean)


def time_patterns(memory: "AgentMemory") -> float:
    """Regularity of action intervals: 1 = perfectly periodic"""
    stamps = [as_datetime(a.timestamp).timestamp() for a in memory.actions]
    if len(stamps) < 3:
        return 0.0
    intervals = [b - a for a, b in zip(stamps, stamps[1:])]
    mean = sum(intervals) / len(intervals)
    if mean <= 0:
        return 0.0
    variance = sum((i - mean) ** 2 for i in intervals) / len(intervals)
    return max(0.0, 1.0 - math.sqrt(variance) / mean)


def hour_concentration(memory: "AgentMemory") -> float:
    """Share of actions falling in the single most common hour of day"""
    if len(memory.actions) < 2:
        return 0.0
    hours = Counter(as_datetime(a.timestamp).hour for a in memory.actions)
    return hours.most_common(1)[0][1] / len(memory.actions)


def attempted_actions(memory: "AgentMemory") -> List[Any]:
    """Action records that were attempts; propose-mode records are not"""
    return [a for a in memory.actions if not a.is_proposal]


def historical_performance(memory: "AgentMemory") -> float:
    attempts = attempted_actions(memory)
    if not attempts:
        return 0.0
    return sum(1 for a in attempts if a.success) / len(attempts)


def calculate_risk_score(state: Dict[str, Any], memory: "AgentMemory") -> float:
    """
    Risk in [0, 100]: 40% amount variance, 20% time-of-day concentration,
    40% historical failure rate (proposals excluded).
    """
    variance = min(amount_variance(memory), 1.0)
    concentration = hour_concentration(memory)
    failure_rate = 1.0 - historical_performance(memory) if attempted_actions(memory) else 0.0

    score = 100 * (0.4 * variance + 0.2 * concentration + 0.4 * failure_rate)
    return min(100.0, max(0.0, score))


# ==========================================
# FEATURE EXTRACTION
# ==========================================

def extract_features(state: Dict[str, Any], memory: "AgentMemory", features: List[str]) -> List[float]:
    """Map feature names to a numeric vector; unknown/missing features are 0."""
    vector = []
    for feature in features:
        if feature == "risk_score":
            value = calculate_risk_score(state, memory) / 100
        elif feature == "transaction_frequency":
            value = len(memory.actions)
        elif feature == "amount_variance":
            value = amount_variance(memory)
        elif feature == "time_patterns":
            value = time_patterns(memory)
        elif feature == "historical_performance":
            value = historical_performance(memory)
        else:
            try:
                value = float(state.get(STATE_METRIC_KEYS.get(feature, feature)) or 0)
            except (TypeError, ValueError):
                value = 0.0
        vector.append(float(value))
    return vector
