"""
Trigger Catalog - Data Models
Typed trigger definitions: threshold, schedule, event, pattern, ml_prediction.
Each trigger carries exactly one config variant; the type is derived from it.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from ..infrastructure.errors import CatalogError


class TriggerType(str, Enum):
    THRESHOLD = "threshold"
    SCHEDULE = "schedule"
    EVENT = "event"
    PATTERN = "pattern"
    ML_PREDICTION = "ml_prediction"


class Operator(str, Enum):
    GT = "gt"
    LT = "lt"
    EQ = "eq"
    GTE = "gte"
    LTE = "lte"
    CONTAINS = "contains"
    MATCHES = "matches"

    @property
    def is_inequality(self) -> bool:
        return self in (Operator.GT, Operator.LT, Operator.GTE, Operator.LTE)


class ScheduleInterval(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def seconds(self) -> int:
        return {
            ScheduleInterval.HOURLY: 3600,
            ScheduleInterval.DAILY: 86400,
            ScheduleInterval.WEEKLY: 604800,
            ScheduleInterval.MONTHLY: 2592000,
        }[self]


@dataclass
class ThresholdConfig:
    """Fires when metric <operator> value"""
    metric: str                     # balance | price | volume | apy | gas_price | ...
    operator: Operator
    value: float
    token: Optional[str] = None     # Scopes "balance" to one token

    def __post_init__(self):
        self.operator = Operator(self.operator)


@dataclass
class ScheduleConfig:
    """Fires when the interval has elapsed since the trigger last fired"""
    interval: ScheduleInterval
    time: Optional[str] = None      # "HH:MM", gates firing to at/after this time of day
    timezone: Optional[str] = None  # IANA name, default UTC

    def __post_init__(self):
        self.interval = ScheduleInterval(self.interval)
        if self.time is not None:
            hours, _, minutes = self.time.partition(":")
            if not (hours.isdigit() and minutes.isdigit() and int(hours) < 24 and int(minutes) < 60):
                raise CatalogError(f"Invalid schedule time '{self.time}', expected HH:MM")


@dataclass
class EventConfig:
    """Fires on a matching contract event newer than the last fire"""
    contract_address: str
    event_name: str
    filter: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PatternConfig:
    """Fires when recent history contains the sequence in order"""
    sequence: List[str]
    timeframe_seconds: float
    confidence: float = 1.0


@dataclass
class MLPredictionConfig:
    """Fires when the referenced scoring model crosses threshold"""
    model: str
    features: List[str]
    threshold: float


TriggerConfig = Union[ThresholdConfig, ScheduleConfig, EventConfig, PatternConfig, MLPredictionConfig]

_CONFIG_TYPES = {
    ThresholdConfig: TriggerType.THRESHOLD,
    ScheduleConfig: TriggerType.SCHEDULE,
    EventConfig: TriggerType.EVENT,
    PatternConfig: TriggerType.PATTERN,
    MLPredictionConfig: TriggerType.ML_PREDICTION,
}

_CONFIG_CLASSES = {v: k for k, v in _CONFIG_TYPES.items()}


@dataclass
class Trigger:
    """A trigger definition: gates which rules are considered each cycle"""
    id: str
    name: str
    config: TriggerConfig
    enabled: bool = True
    priority: int = 0           # Higher priority triggers evaluated first

    def __post_init__(self):
        if type(self.config) not in _CONFIG_TYPES:
            raise CatalogError(f"Trigger '{self.id}' has unsupported config {type(self.config).__name__}", self.id)

    @property
    def type(self) -> TriggerType:
        return _CONFIG_TYPES[type(self.config)]

    def to_dict(self) -> dict:
        config = {k: (v.value if isinstance(v, Enum) else v) for k, v in asdict(self.config).items()}
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "config": {self.type.value: config},
            "enabled": self.enabled,
            "priority": self.priority,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Trigger":
        """Accepts {type, config: {<type>: {...}}} or a flat config dict."""
        try:
            trigger_type = TriggerType(data["type"])
            raw = data.get("config", {})
            raw = raw.get(trigger_type.value, raw)
            config = _CONFIG_CLASSES[trigger_type](**_snake_keys(raw))
        except (KeyError, TypeError, ValueError) as e:
            raise CatalogError(f"Malformed trigger definition: {e}", data.get("id")) from e

        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            config=config,
            enabled=data.get("enabled", True),
            priority=data.get("priority", 0),
        )


def _snake_keys(raw: dict) -> dict:
    """contractAddress -> contract_address, timeframe -> timeframe_seconds"""
    out = {}
    for key, value in raw.items():
        if key == "timeframe":
            key = "timeframe_seconds"
        snake = "".join(f"_{c.lower()}" if c.isupper() else c for c in key)
        out[snake] = value
    return out
