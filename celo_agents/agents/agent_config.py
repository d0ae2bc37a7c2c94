"""
Agent configuration: goal, spending limits, address lists and permissions.
Frozen; changes go through AgentExecutionEngine.update_agent_config.
"""

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import List


class ExecutionMode(str, Enum):
    AUTO = "auto"          # Validated decisions are dispatched
    PROPOSE = "propose"    # Validated decisions are only proposed


@dataclass(frozen=True)
class SpendingLimits:
    """Local best-effort limits in token units; 0 disables a limit"""
    daily: float = 0.0
    per_tx: float = 0.0


@dataclass(frozen=True)
class AgentConfig:
    goal: str
    constraints: str = ""
    execution_mode: ExecutionMode = ExecutionMode.AUTO
    spending_limits: SpendingLimits = field(default_factory=SpendingLimits)
    whitelist: List[str] = field(default_factory=list)
    blacklist: List[str] = field(default_factory=list)
    permissions: List[str] = field(default_factory=list)   # Empty = every action allowed
    agent_type: str = "generic"

    def __post_init__(self):
        object.__setattr__(self, "execution_mode", ExecutionMode(self.execution_mode))
        if isinstance(self.spending_limits, dict):
            object.__setattr__(self, "spending_limits", SpendingLimits(**self.spending_limits))

    def with_changes(self, **changes) -> "AgentConfig":
        if isinstance(changes.get("spending_limits"), dict):
            changes["spending_limits"] = replace(self.spending_limits, **changes["spending_limits"])
        return replace(self, **changes)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["execution_mode"] = self.execution_mode.value
        return data
