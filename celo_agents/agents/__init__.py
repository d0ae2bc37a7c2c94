"""
Celo Agents - Execution Layer

- agent_engine.py: Per-agent observe/decide/validate/execute/record cycles
- action_dispatch.py: One blockchain write per action type
- action_validator.py: Local structural and policy checks before dispatch
- agent_memory.py: Bounded rolling observations, actions and learnings
- decision_provider.py: Pluggable decision source (rule-based by default)
"""

from .agent_config import AgentConfig, ExecutionMode, SpendingLimits
from .agent_memory import ActionRecord, AgentMemory, Observation
from .action_validator import ValidationResult, validate_action
from .action_dispatch import ActionDispatcher
from .decision_provider import DecisionProvider, RuleBasedDecisionProvider
from .agent_engine import AgentExecutionEngine, CycleState, ExecutionResult

__all__ = [
    "AgentConfig",
    "ExecutionMode",
    "SpendingLimits",
    "ActionRecord",
    "AgentMemory",
    "Observation",
    "ValidationResult",
    "validate_action",
    "ActionDispatcher",
    "DecisionProvider",
    "RuleBasedDecisionProvider",
    "AgentExecutionEngine",
    "CycleState",
    "ExecutionResult",
]
