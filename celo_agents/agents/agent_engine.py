"""
Agent Execution Engine
Runs observe -> decide -> validate -> execute -> record cycles for registered agents

Cycle states:
Idle -> Observing -> Deciding -> Validating -> (Executing | Skipped | Rejected) -> Recording -> Idle

Cycles for one agent are serialized by a per-agent lock; different agents
run concurrently. The engine never synthesizes blockchain outcomes: every
transaction handle comes from the client.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Awaitable, Dict, Iterable, List, Optional

from web3 import Web3

from ..infrastructure.blockchain import BlockchainClient, FunctionRef, NetworkConfig
from ..infrastructure.config import ZERO_ADDRESS, CeloAgentsConfig, get_config
from ..infrastructure.errors import (
    AgentAlreadyRegisteredError,
    AgentNotRegisteredError,
    BlockchainError,
    CeloAgentsError,
    ErrorCode,
    ValidationFailedError,
)
from ..services.decision_engine import DecisionEngine
from ..services.decision_rules import NO_ACTION, ActionType, Decision
from ..services.features import utcnow
from .action_dispatch import ActionDispatcher
from .action_validator import validate_action
from .agent_config import AgentConfig, ExecutionMode
from .agent_memory import PROPOSED_RESULT, AgentMemory
from .decision_provider import DecisionProvider

logger = logging.getLogger("AgentEngine")

REGISTRY_GET_AGENT = FunctionRef(
    name="getAgent",
    inputs=(("agentId", "uint256"),),
    outputs=(
        ("owner", "address"),
        ("agentType", "string"),
        ("dailyLimit", "uint256"),
        ("perTxLimit", "uint256"),
        ("dailySpent", "uint256"),
        ("isActive", "bool"),
    ),
    state_mutability="view",
)


class CycleState(str, Enum):
    IDLE = "idle"
    OBSERVING = "observing"
    DECIDING = "deciding"
    VALIDATING = "validating"
    EXECUTING = "executing"
    SKIPPED = "skipped"
    REJECTED = "rejected"
    RECORDING = "recording"


@dataclass
class ExecutionResult:
    """Outcome of one decision cycle"""
    action: str
    params: Dict[str, Any] = field(default_factory=dict)
    reasoning: str = ""
    confidence: float = 0.0
    executed: bool = False
    tx_handle: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    proposed: bool = False

    @classmethod
    def from_decision(cls, decision: Decision, **outcome) -> "ExecutionResult":
        return cls(
            action=decision.action,
            params=decision.params,
            reasoning=decision.reasoning,
            confidence=decision.confidence,
            **outcome,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["txHandle"] = data.pop("tx_handle")
        data["errorCode"] = data.pop("error_code")
        return {k: v for k, v in data.items() if v is not None}


def from_base_units(raw: Any) -> float:
    return float(Web3.from_wei(int(raw or 0), "ether"))


class AgentExecutionEngine:
    """
    Owns the agent registry (configs, memories, locks) and drives cycles.

    Decisions come from `decision_provider` when one is given, otherwise
    from the built-in DecisionEngine.
    """

    def __init__(
        self,
        client: BlockchainClient,
        decision_engine: Optional[DecisionEngine] = None,
        decision_provider: Optional[DecisionProvider] = None,
        config: Optional[CeloAgentsConfig] = None,
    ):
        self.config = config or get_config()
        self.client = client
        self.decision_engine = decision_engine or DecisionEngine(self.config.decision)
        self.decision_provider = decision_provider
        self.dispatcher = ActionDispatcher(client, timeout=self.config.execution.client_timeout_seconds)

        self.agent_configs: Dict[Any, AgentConfig] = {}
        self.agent_memories: Dict[Any, AgentMemory] = {}
        self._locks: Dict[Any, asyncio.Lock] = {}
        self._cycle_states: Dict[Any, CycleState] = {}

    # ==========================================
    # REGISTRY
    # ==========================================

    def register_agent(self, agent_id: Any, config: AgentConfig) -> AgentMemory:
        if agent_id in self.agent_configs:
            raise AgentAlreadyRegisteredError(agent_id)
        if isinstance(config, dict):
            config = AgentConfig(**config)

        self.agent_configs[agent_id] = config
        self.agent_memories[agent_id] = AgentMemory(agent_id=agent_id)
        self._locks[agent_id] = asyncio.Lock()
        self._cycle_states[agent_id] = CycleState.IDLE

        logger.info(f"🤖 Agent {agent_id} registered ({config.agent_type}, {config.execution_mode.value})")
        return self.agent_memories[agent_id]

    def update_agent_config(self, agent_id: Any, **changes) -> AgentConfig:
        self._require(agent_id)
        self.agent_configs[agent_id] = self.agent_configs[agent_id].with_changes(**changes)
        logger.info(f"Agent {agent_id} config updated: {sorted(changes)}")
        return self.agent_configs[agent_id]

    def deregister_agent(self, agent_id: Any):
        self._require(agent_id)
        for registry in (self.agent_configs, self.agent_memories, self._locks, self._cycle_states):
            registry.pop(agent_id, None)
        logger.info(f"Agent {agent_id} deregistered")

    def get_agent_config(self, agent_id: Any) -> AgentConfig:
        self._require(agent_id)
        return self.agent_configs[agent_id]

    def get_agent_memory(self, agent_id: Any) -> AgentMemory:
        self._require(agent_id)
        return self.agent_memories[agent_id]

    def get_cycle_state(self, agent_id: Any) -> CycleState:
        self._require(agent_id)
        return self._cycle_states[agent_id]

    def list_agents(self) -> List[Any]:
        return list(self.agent_configs)

    def _require(self, agent_id: Any):
        if agent_id not in self.agent_configs:
            raise AgentNotRegisteredError(agent_id)

    def _set_state(self, agent_id: Any, state: CycleState):
        if agent_id in self._cycle_states:
            self._cycle_states[agent_id] = state

    # ==========================================
    # CYCLE
    # ==========================================

    async def execute_agent(self, agent_id: Any) -> ExecutionResult:
        """
        Run one decision cycle. Raises only AgentNotRegisteredError; every
        other failure is returned as executed=False with an error.
        """
        self._require(agent_id)
        async with self._locks[agent_id]:
            # Deregistered while waiting for the lock
            self._require(agent_id)
            return await self._run_cycle(agent_id)

    async def execute_all(self, agent_ids: Optional[Iterable[Any]] = None) -> Dict[Any, ExecutionResult]:
        """Run one cycle per agent concurrently; failures stay per agent."""
        ids = list(agent_ids) if agent_ids is not None else self.list_agents()
        outcomes = await asyncio.gather(*(self.execute_agent(a) for a in ids), return_exceptions=True)

        results = {}
        for agent_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"❌ Agent {agent_id} cycle raised: {outcome}")
                code = (outcome.code if isinstance(outcome, CeloAgentsError) else ErrorCode.INTERNAL_ERROR).value
                outcome = ExecutionResult(action=NO_ACTION, error=str(outcome), error_code=code)
            results[agent_id] = outcome
        return results

    async def _run_cycle(self, agent_id: Any) -> ExecutionResult:
        config = self.agent_configs[agent_id]
        memory = self.agent_memories[agent_id]
        decision = None

        try:
            self._set_state(agent_id, CycleState.OBSERVING)
            state = await self.observe_state(agent_id)

            self._set_state(agent_id, CycleState.DECIDING)
            decision = await self._decide(agent_id, config, state, memory)

            self._set_state(agent_id, CycleState.VALIDATING)
            validation = validate_action(decision.action, decision.params, state, config)

            if not validation.is_valid:
                self._set_state(agent_id, CycleState.REJECTED)
                rejection = ValidationFailedError(validation.reason, decision.action)
                result = ExecutionResult.from_decision(
                    decision, error=rejection.message, error_code=rejection.code.value,
                )
            elif decision.action == NO_ACTION:
                self._set_state(agent_id, CycleState.SKIPPED)
                result = ExecutionResult.from_decision(decision)
            elif config.execution_mode is ExecutionMode.PROPOSE:
                self._set_state(agent_id, CycleState.SKIPPED)
                logger.info(f"📝 [{agent_id}] Proposed {decision.action}: {decision.reasoning}")
                result = ExecutionResult.from_decision(decision, proposed=True)
            elif decision.action == ActionType.NOTIFY.value:
                self._set_state(agent_id, CycleState.EXECUTING)
                logger.info(f"🔔 [{agent_id}] {decision.params.get('message')}")
                result = ExecutionResult.from_decision(decision, executed=True)
            else:
                self._set_state(agent_id, CycleState.EXECUTING)
                tx_handle = await self.dispatcher.dispatch(agent_id, decision.action, decision.params)
                result = ExecutionResult.from_decision(decision, executed=True, tx_handle=tx_handle)

            self._set_state(agent_id, CycleState.RECORDING)
            self.update_memory(agent_id, state, decision, result)

            logger.info(
                f"[{agent_id}] Cycle done: {result.action} executed={result.executed}"
                + (f" error={result.error}" if result.error else "")
            )
            return result

        except Exception as e:
            message = getattr(e, "message", None) or str(e) or type(e).__name__
            code = (e.code if isinstance(e, CeloAgentsError) else ErrorCode.INTERNAL_ERROR).value
            logger.error(f"❌ [{agent_id}] Cycle failed: {message}")

            self._set_state(agent_id, CycleState.RECORDING)
            params = {"action": decision.action, **decision.params} if decision else {}
            memory.record_action("error", params, {"error": message, "code": code}, success=False)
            memory.last_run = utcnow()
            memory.trim(self.config.memory)

            if decision is None:
                return ExecutionResult(action=NO_ACTION, error=message, error_code=code)
            return ExecutionResult.from_decision(decision, error=message, error_code=code)

        finally:
            self._set_state(agent_id, CycleState.IDLE)

    async def _decide(self, agent_id: Any, config: AgentConfig, state: Dict[str, Any], memory: AgentMemory) -> Decision:
        if self.decision_provider is not None:
            return await self.decision_provider.generate_decision(
                config.agent_type, config.goal, config.constraints, state, memory,
            )
        return self.decision_engine.generate_decision(agent_id, state, memory, config.goal)

    # ==========================================
    # OBSERVE
    # ==========================================

    async def _await(self, call: Awaitable) -> Any:
        timeout = self.config.execution.client_timeout_seconds
        if timeout:
            return await asyncio.wait_for(call, timeout)
        return await call

    async def observe_state(self, agent_id: Any) -> Dict[str, Any]:
        """Snapshot balances (token units), recent transactions/events and registry data."""
        addresses = await self._await(self.client.get_addresses())
        if not addresses:
            raise BlockchainError(self.config.blockchain.network, "Client exposes no wallet address")
        wallet = addresses[0]
        network = self.client.get_network_config()

        token_balances = {"CELO": from_base_units(await self._await(self.client.get_native_balance(wallet)))}
        for symbol, token_address in network.tokens.items():
            if symbol == "CELO":
                continue
            raw = await self._await(self.client.get_token_balance(token_address, wallet))
            token_balances[symbol] = from_base_units(raw)

        history = await self._await(
            self.client.get_transaction_history(wallet, self.config.execution.history_limit)
        )
        recent_transactions = list(history or [])[-self.config.execution.history_limit:]

        return {
            "wallet": wallet,
            "celo_balance": token_balances["CELO"],
            "cusd_balance": token_balances.get("cUSD", 0.0),
            "ceur_balance": token_balances.get("cEUR", 0.0),
            "token_balances": token_balances,
            "token_addresses": dict(network.tokens),
            "recent_transactions": recent_transactions,
            "recent_events": flatten_events(recent_transactions),
            "agent_data": await self._read_agent_data(agent_id, network),
        }

    async def _read_agent_data(self, agent_id: Any, network: NetworkConfig) -> Dict[str, Any]:
        registry = network.contracts.get("agentRegistry")
        if not registry or registry == ZERO_ADDRESS:
            return {}

        try:
            raw = await self._await(self.client.read_contract(registry, REGISTRY_GET_AGENT, [int(agent_id)]))
            if isinstance(raw, dict):
                raw = [raw.get(name) for name, _ in REGISTRY_GET_AGENT.outputs]
            _owner, agent_type, daily_limit, per_tx_limit, daily_spent, is_active = raw
            return {
                "agent_type": agent_type,
                "daily_limit": from_base_units(daily_limit),
                "per_tx_limit": from_base_units(per_tx_limit),
                "daily_spent": from_base_units(daily_spent),
                "is_active": bool(is_active),
            }
        except Exception as e:
            logger.warning(f"⚠️ [{agent_id}] Registry read failed: {e}")
            return {"error": str(e)}

    # ==========================================
    # RECORD
    # ==========================================

    def update_memory(self, agent_id: Any, state: Dict[str, Any], decision: Decision, result: ExecutionResult):
        memory = self.agent_memories.get(agent_id)
        if memory is None:
            logger.warning(f"⚠️ [{agent_id}] Deregistered mid-cycle, outcome not recorded")
            return
        now = utcnow()

        memory.record_observation(state, now=now)

        # "none" is not an attempt and leaves no action record
        if decision.action != NO_ACTION:
            if result.error:
                outcome = {"error": result.error, "code": result.error_code}
            elif result.proposed:
                outcome = dict(PROPOSED_RESULT)
            elif result.tx_handle:
                outcome = {"tx_handle": result.tx_handle}
            else:
                outcome = {"delivered": True}
            memory.record_action(decision.action, decision.params, outcome, success=result.executed, now=now)

        if result.tx_handle and decision.confidence > self.config.decision.learning_confidence:
            memory.add_learning(
                f"{decision.action} succeeded with confidence {decision.confidence:.2f}: {decision.reasoning}"
            )

        for trigger_id in decision.triggered_by:
            memory.trigger_last_fired[trigger_id] = now
        if decision.rule_id:
            memory.rule_last_selected[decision.rule_id] = now

        memory.last_run = now
        memory.trim(self.config.memory)


def flatten_events(transactions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Decoded logs of recent transactions, stamped with their tx time/hash."""
    events = []
    for tx in transactions:
        for log in tx.get("logs") or []:
            event = dict(log)
            event.setdefault("timestamp", tx.get("timestamp"))
            event.setdefault("tx_hash", tx.get("hash"))
            events.append(event)
    return events
