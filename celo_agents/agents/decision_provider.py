"""
Decision Provider interface

A provider replaces (never runs alongside) the built-in DecisionEngine as the
decision source of an AgentExecutionEngine. A language-model-backed provider
plugs in here without touching the execution cycle.
"""

import logging
from typing import Any, Dict, Protocol

from ..services.decision_engine import DecisionEngine
from ..services.decision_rules import NO_ACTION, Decision
from .action_validator import validate_action
from .agent_memory import AgentMemory

logger = logging.getLogger("DecisionProvider")


class DecisionProvider(Protocol):

    async def generate_decision(
        self,
        agent_type: str,
        goal: str,
        constraints: str,
        state: Dict[str, Any],
        memory: AgentMemory,
    ) -> Decision: ...

    async def explain_action(self, action: str, params: Dict[str, Any], context: Dict[str, Any]) -> str: ...

    async def validate_action(self, action: str, params: Dict[str, Any], context: Dict[str, Any]) -> bool: ...


class RuleBasedDecisionProvider:
    """Exposes a DecisionEngine through the DecisionProvider interface."""

    def __init__(self, engine: DecisionEngine = None):
        self.engine = engine or DecisionEngine()

    async def generate_decision(
        self,
        agent_type: str,
        goal: str,
        constraints: str,
        state: Dict[str, Any],
        memory: AgentMemory,
    ) -> Decision:
        return self.engine.generate_decision(memory.agent_id, state, memory, goal)

    async def explain_action(self, action: str, params: Dict[str, Any], context: Dict[str, Any]) -> str:
        if action == NO_ACTION:
            return "No action taken: " + str(context.get("reasoning") or "no rule met threshold")

        details = ", ".join(f"{k}={v}" for k, v in sorted(params.items()))
        explanation = f"{action} ({details})"
        if context.get("reasoning"):
            explanation += f" because {context['reasoning']}"
        return explanation

    async def validate_action(self, action: str, params: Dict[str, Any], context: Dict[str, Any]) -> bool:
        result = validate_action(action, params, context.get("state") or {}, context.get("config"))
        if not result.is_valid:
            logger.debug(f"Provider validation failed for {action}: {result.reason}")
        return result.is_valid
