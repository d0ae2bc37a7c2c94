"""
Celo Agents
Autonomous on-chain agents for Celo: rule-based decisions, validated execution

Usage:
    engine = AgentExecutionEngine(Web3BlockchainClient(), load_default_catalog(DecisionEngine()))
    engine.register_agent(1, AgentConfig(goal="Keep cUSD liquid"))
    result = await engine.execute_agent(1)
"""

from .agents import AgentConfig, AgentExecutionEngine, ExecutionMode, ExecutionResult, SpendingLimits
from .services import DecisionEngine, load_default_catalog

__version__ = "0.1.0"

__all__ = [
    "AgentConfig",
    "AgentExecutionEngine",
    "ExecutionMode",
    "ExecutionResult",
    "SpendingLimits",
    "DecisionEngine",
    "load_default_catalog",
]
