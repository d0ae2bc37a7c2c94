"""
Configuration Management for Celo Agents
Environment-based configuration with secrets handling

Features:
- Environment-based config (dev/staging/prod), .env support
- Decision/execution tunables
- Network token and contract registry
- Secrets management
"""

import os
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional
from enum import Enum

from dotenv import load_dotenv

logger = logging.getLogger("Config")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


@dataclass
class MemorySettings:
    """Rolling memory caps (FIFO eviction)"""
    max_observations: int = 100
    max_actions: int = 100
    max_learnings: int = 50


@dataclass
class DecisionSettings:
    """Decision engine tunables"""
    min_rule_score: float = 0.5         # Below this the decision is "none"
    learning_confidence: float = 0.8    # Successful actions above this become learnings
    high_risk_threshold: float = 70.0   # Risk score (0-100) that forces emergency fallback
    price_slippage: float = 0.02        # Applied to "auto" maxPrice / minPrice
    emergency_wallet: str = ZERO_ADDRESS


@dataclass
class ExecutionSettings:
    """Agent execution tunables"""
    client_timeout_seconds: Optional[float] = None  # None = no timeout on blockchain awaits
    history_limit: int = 10


@dataclass
class BlockchainSettings:
    """Celo network configuration"""
    network: str = "celo"
    chain_id: int = 42220
    rpc_url: str = "https://forno.celo.org"
    explorer_api_url: str = "https://api.celoscan.io/api"
    token_decimals: int = 18

    tokens: Dict[str, str] = field(default_factory=lambda: {
        "CELO": "0x471EcE3750Da237f93B8E339c536989b8978a438",
        "cUSD": "0x765DE816845861e75A25fCA122bb6898B8B1282a",
        "cEUR": "0xD8763CBa276a3738E6DE85b4b3bF5FDed6D6cA73",
    })

    contracts: Dict[str, str] = field(default_factory=lambda: {
        "agentRegistry": ZERO_ADDRESS,
        "yieldAggregator": ZERO_ADDRESS,
        "masterTrading": ZERO_ADDRESS,
        "attendanceNFT": ZERO_ADDRESS,
        "swapRouter": "0xE3D8bd6Aed4F159bc8000a9cD47CffDb95F96121",  # Ubeswap V2 router
    })


@dataclass
class MonitoringSettings:
    """Monitoring configuration"""
    log_level: str = "INFO"


@dataclass
class CeloAgentsConfig:
    """Main configuration"""
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True

    memory: MemorySettings = field(default_factory=MemorySettings)
    decision: DecisionSettings = field(default_factory=DecisionSettings)
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    blockchain: BlockchainSettings = field(default_factory=BlockchainSettings)
    monitoring: MonitoringSettings = field(default_factory=MonitoringSettings)

    @classmethod
    def from_env(cls) -> "CeloAgentsConfig":
        """Create configuration from environment variables"""
        load_dotenv()
        env = os.environ.get("CELO_AGENTS_ENV", "development").lower()

        config = cls(
            environment=Environment(env) if env in [e.value for e in Environment] else Environment.DEVELOPMENT,
            debug=os.environ.get("DEBUG", "true").lower() == "true",
        )

        config.decision = DecisionSettings(
            min_rule_score=float(os.environ.get("MIN_RULE_SCORE", "0.5")),
            learning_confidence=float(os.environ.get("LEARNING_CONFIDENCE", "0.8")),
            high_risk_threshold=float(os.environ.get("HIGH_RISK_THRESHOLD", "70")),
            price_slippage=float(os.environ.get("PRICE_SLIPPAGE", "0.02")),
            emergency_wallet=os.environ.get("EMERGENCY_WALLET", ZERO_ADDRESS),
        )

        timeout = os.environ.get("CLIENT_TIMEOUT_SECONDS")
        config.execution = ExecutionSettings(
            client_timeout_seconds=float(timeout) if timeout else None,
            history_limit=int(os.environ.get("HISTORY_LIMIT", "10")),
        )

        config.blockchain.rpc_url = os.environ.get("CELO_RPC_URL", config.blockchain.rpc_url)
        config.blockchain.chain_id = int(os.environ.get("CELO_CHAIN_ID", str(config.blockchain.chain_id)))
        config.blockchain.explorer_api_url = os.environ.get("EXPLORER_API_URL", config.blockchain.explorer_api_url)

        # Deployed contract addresses as a JSON object, merged over defaults
        contracts = os.environ.get("CELO_AGENTS_CONTRACTS")
        if contracts:
            config.blockchain.contracts.update(json.loads(contracts))

        config.monitoring.log_level = os.environ.get("CELO_AGENTS_LOG_LEVEL", "INFO").upper()

        if config.environment == Environment.PRODUCTION:
            config.debug = False
            config.monitoring.log_level = "WARNING"

        return config

    def to_dict(self) -> Dict:
        """Convert to dictionary (hiding secrets)"""
        def sanitize(obj):
            if isinstance(obj, dict):
                return {k: sanitize(v) for k, v in obj.items() if "key" not in k.lower() and "secret" not in k.lower()}
            elif hasattr(obj, '__dataclass_fields__'):
                return sanitize({k: getattr(obj, k) for k in obj.__dataclass_fields__})
            elif isinstance(obj, Enum):
                return obj.value
            else:
                return obj

        return sanitize(self)


# ============================================
# SECRETS MANAGEMENT
# ============================================

class SecretsManager:
    """Holds secrets loaded from the environment; never logged."""

    def __init__(self):
        self._secrets: Dict[str, str] = {}
        self._load_from_env()

    def _load_from_env(self):
        """Load secrets from environment variables"""
        secret_keys = [
            "WALLET_PRIVATE_KEY",  # NEVER log this!
            "EXPLORER_API_KEY",
        ]

        for key in secret_keys:
            value = os.environ.get(key)
            if value:
                self._secrets[key] = value

    def get(self, key: str, default: str = None) -> Optional[str]:
        """Get a secret value"""
        return self._secrets.get(key, default)

    def set(self, key: str, value: str):
        """Set a secret value (runtime only)"""
        self._secrets[key] = value

    def has(self, key: str) -> bool:
        """Check if secret exists"""
        return key in self._secrets


# ============================================
# GLOBAL INSTANCES
# ============================================

config = CeloAgentsConfig.from_env()
secrets = SecretsManager()

logging.basicConfig(level=getattr(logging, config.monitoring.log_level, logging.INFO))
logger.info(f"Configuration loaded for environment: {config.environment.value}")


def get_config() -> CeloAgentsConfig:
    """Get the global configuration"""
    return config


def get_secrets() -> SecretsManager:
    """Get the secrets manager"""
    return secrets


def reload_config() -> CeloAgentsConfig:
    """Reload configuration from environment"""
    global config
    config = CeloAgentsConfig.from_env()
    logger.info("Configuration reloaded")
    return config
