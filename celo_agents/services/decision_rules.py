"""
Rule Catalog - Data Models
Decision rules bound to a trigger: weighted conditions plus action templates.
"""

from copy import deepcopy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..infrastructure.errors import CatalogError
from .triggers import Operator

NO_ACTION = "none"


class ActionType(str, Enum):
    TRANSFER = "transfer"
    SWAP = "swap"
    STAKE = "stake"
    UNSTAKE = "unstake"
    CLAIM = "claim"
    BUY = "buy"
    SELL = "sell"
    REQUEST = "request"
    MINT = "mint"
    NOTIFY = "notify"          # Off-chain, never dispatched to the client

    @property
    def is_onchain(self) -> bool:
        return self is not ActionType.NOTIFY


@dataclass
class DecisionCondition:
    """Weighted condition; contributes to a rule's score, not a hard gate"""
    metric: str
    operator: Operator
    value: Any
    weight: float = 1.0

    def __post_init__(self):
        self.operator = Operator(self.operator)
        if not 0.0 <= self.weight <= 1.0:
            raise CatalogError(f"Condition weight {self.weight} on '{self.metric}' outside [0, 1]")


@dataclass
class ActionTemplate:
    """
    Action to instantiate when a rule wins.
    config values may be literals or synthesis hints resolved against
    current state ("auto", "optimal", "all", "selected", "emergency_wallet").
    """
    type: ActionType
    config: Dict[str, Any] = field(default_factory=dict)
    conditions: List[DecisionCondition] = field(default_factory=list)

    def __post_init__(self):
        self.type = ActionType(self.type)

    def instantiate(self) -> Dict[str, Any]:
        """Fresh params copy; the catalog template is never mutated"""
        return deepcopy(self.config)


@dataclass
class DecisionRule:
    """A weighted mapping from one fired trigger to candidate actions"""
    id: str
    name: str
    trigger_id: str
    conditions: List[DecisionCondition]
    actions: List[ActionTemplate]
    priority: int = 0
    enabled: bool = True

    def __post_init__(self):
        if not self.actions:
            raise CatalogError(f"Rule '{self.id}' has no action templates", self.id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "triggerId": self.trigger_id,
            "conditions": [
                {"metric": c.metric, "operator": c.operator.value, "value": c.value, "weight": c.weight}
                for c in self.conditions
            ],
            "actions": [{"type": a.type.value, "config": a.config} for a in self.actions],
            "priority": self.priority,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DecisionRule":
        try:
            return cls(
                id=data["id"],
                name=data.get("name", data["id"]),
                trigger_id=data.get("trigger_id") or data["triggerId"],
                conditions=[DecisionCondition(**c) for c in data.get("conditions", [])],
                actions=[
                    ActionTemplate(
                        type=a["type"],
                        config=a.get("config", {}),
                        conditions=[DecisionCondition(**c) for c in a.get("conditions", [])],
                    )
                    for a in data.get("actions", [])
                ],
                priority=data.get("priority", 0),
                enabled=data.get("enabled", True),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CatalogError(f"Malformed rule definition: {e}", data.get("id")) from e


@dataclass
class Decision:
    """Output of one decision pass"""
    action: str
    params: Dict[str, Any]
    reasoning: str
    confidence: float
    triggered_by: List[str] = field(default_factory=list)
    rule_id: Optional[str] = None

    @classmethod
    def none(cls, reasoning: str, triggered_by: List[str] = None) -> "Decision":
        return cls(action=NO_ACTION, params={}, reasoning=reasoning, confidence=0.0,
                   triggered_by=triggered_by or [])

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "params": self.params,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "triggeredBy": self.triggered_by,
            "ruleId": self.rule_id,
        }
