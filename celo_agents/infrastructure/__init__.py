"""
Celo Agents Infrastructure Module
Errors, configuration and the blockchain client capability
"""

from .errors import (
    CeloAgentsError,
    AgentNotRegisteredError,
    AgentAlreadyRegisteredError,
    CatalogError,
    UnknownActionError,
    ValidationFailedError,
    TriggerEvaluationError,
    MetricUnavailableError,
    RuleEvaluationError,
    BlockchainError,
    DispatchError,
    ErrorCode,
    ErrorTracker,
    retry,
)

from .config import (
    CeloAgentsConfig,
    Environment,
    MemorySettings,
    DecisionSettings,
    ExecutionSettings,
    BlockchainSettings,
    SecretsManager,
    get_config,
    get_secrets,
    reload_config,
)

from .blockchain import BlockchainClient, FunctionRef, NetworkConfig
from .web3_client import EventRef, Web3BlockchainClient

__all__ = [
    # Errors
    "CeloAgentsError",
    "AgentNotRegisteredError",
    "AgentAlreadyRegisteredError",
    "CatalogError",
    "UnknownActionError",
    "ValidationFailedError",
    "TriggerEvaluationError",
    "MetricUnavailableError",
    "RuleEvaluationError",
    "BlockchainError",
    "DispatchError",
    "ErrorCode",
    "ErrorTracker",
    "retry",

    # Config
    "CeloAgentsConfig",
    "Environment",
    "MemorySettings",
    "DecisionSettings",
    "ExecutionSettings",
    "BlockchainSettings",
    "SecretsManager",
    "get_config",
    "get_secrets",
    "reload_config",

    # Blockchain
    "BlockchainClient",
    "FunctionRef",
    "NetworkConfig",
    "EventRef",
    "Web3BlockchainClient",
]
