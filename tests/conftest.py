"""
Pytest Configuration for Celo Agents Tests

Run all tests: python -m pytest tests/ -v
Run unit tests only: python -m pytest tests/ -v -m "not integration"
"""

import pytest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

from dotenv import load_dotenv
from web3 import Web3

load_dotenv(Path(__file__).parent.parent / ".env")

from celo_agents.agents.agent_config import AgentConfig
from celo_agents.agents.agent_memory import AgentMemory
from celo_agents.infrastructure.blockchain import NetworkConfig
from celo_agents.infrastructure.config import ZERO_ADDRESS, CeloAgentsConfig
from celo_agents.services.decision_engine import DecisionEngine


# =============================================================================
# FIXTURES - Shared across all test files
# =============================================================================

@pytest.fixture
def test_addresses():
    """Standard test addresses for Celo"""
    return {
        "CELO": "0x471EcE3750Da237f93B8E339c536989b8978a438",
        "cUSD": "0x765DE816845861e75A25fCA122bb6898B8B1282a",
        "cEUR": "0xD8763CBa276a3738E6DE85b4b3bF5FDed6D6cA73",
        "ROUTER": "0xE3D8bd6Aed4F159bc8000a9cD47CffDb95F96121",
        "YIELD_AGGREGATOR": "0x1111111111111111111111111111111111111111",
        "MASTER_TRADING": "0x2222222222222222222222222222222222222222",
        "ATTENDANCE_NFT": "0x3333333333333333333333333333333333333333",
        "agent": "0xa30A689ec0F9D717C5bA1098455B031b868B720f",
        "recipient": "0x5E047DeB5eb22F4E4A7f2207087369468575e3EF",
    }


@pytest.fixture
def network_config(test_addresses):
    return NetworkConfig(
        tokens={s: test_addresses[s] for s in ("CELO", "cUSD", "cEUR")},
        contracts={
            "agentRegistry": ZERO_ADDRESS,
            "swapRouter": test_addresses["ROUTER"],
            "yieldAggregator": test_addresses["YIELD_AGGREGATOR"],
            "masterTrading": test_addresses["MASTER_TRADING"],
            "attendanceNFT": test_addresses["ATTENDANCE_NFT"],
        },
    )


@pytest.fixture
def mock_client(test_addresses, network_config):
    """
    Mock BlockchainClient: 10 CELO, 500 cUSD, 0 cEUR, no history.
    Every write returns the same tx hash.
    """
    balances = {
        test_addresses["cUSD"]: Web3.to_wei(500, "ether"),
        test_addresses["cEUR"]: 0,
    }

    client = MagicMock()
    client.get_addresses = AsyncMock(return_value=[test_addresses["agent"]])
    client.get_native_balance = AsyncMock(return_value=Web3.to_wei(10, "ether"))
    client.get_token_balance = AsyncMock(side_effect=lambda token, address: balances.get(token, 0))
    client.get_transaction_history = AsyncMock(return_value=[])
    client.read_contract = AsyncMock(return_value=None)
    client.write_contract = AsyncMock(return_value="0x" + "ab" * 32)
    client.get_network_config = MagicMock(return_value=network_config)
    return client


@pytest.fixture
def app_config():
    """Defaults only, independent of the local environment"""
    return CeloAgentsConfig()


@pytest.fixture
def decision_engine(app_config):
    return DecisionEngine(settings=app_config.decision)


@pytest.fixture
def agent_config():
    """Standard agent configuration for testing"""
    return AgentConfig(goal="Keep cUSD liquid and earn yield", agent_type="treasury")


@pytest.fixture
def memory():
    return AgentMemory(agent_id=1)


@pytest.fixture
def sample_state(test_addresses):
    """Observed state as produced by AgentExecutionEngine.observe_state"""
    return {
        "wallet": test_addresses["agent"],
        "celo_balance": 10.0,
        "cusd_balance": 500.0,
        "ceur_balance": 0.0,
        "token_balances": {"CELO": 10.0, "cUSD": 500.0, "cEUR": 0.0},
        "token_addresses": {s: test_addresses[s] for s in ("CELO", "cUSD", "cEUR")},
        "recent_transactions": [],
        "recent_events": [],
        "agent_data": {},
    }


# =============================================================================
# MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (use real RPC)"
    )
