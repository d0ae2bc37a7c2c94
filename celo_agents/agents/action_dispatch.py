"""
Action Dispatch Table
Translates a validated decision into exactly one blockchain write.

Handlers are pure translators: no retries, no validation, no memory writes.
The table is keyed by the closed ActionType enum and checked for
completeness at construction.
"""

import asyncio
import logging
import time
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Optional

from web3 import Web3

from ..infrastructure.blockchain import BlockchainClient, FunctionRef, NetworkConfig
from ..infrastructure.config import ZERO_ADDRESS
from ..infrastructure.errors import DispatchError, UnknownActionError
from ..services.decision_rules import ActionType

logger = logging.getLogger("ActionDispatch")

ORDER_TTL_SECONDS = 86400

ERC20_TRANSFER = FunctionRef(
    name="transfer",
    inputs=(("to", "address"), ("amount", "uint256")),
    outputs=(("", "bool"),),
)

SWAP_EXACT_TOKENS = FunctionRef(
    name="swapExactTokensForTokens",
    inputs=(
        ("amountIn", "uint256"),
        ("amountOutMin", "uint256"),
        ("path", "address[]"),
        ("to", "address"),
        ("deadline", "uint256"),
    ),
    outputs=(("amounts", "uint256[]"),),
)

DEPOSIT_TO_PROTOCOL = FunctionRef(
    name="depositToProtocol",
    inputs=(("agentId", "uint256"), ("protocolId", "bytes32"), ("token", "address"), ("amount", "uint256")),
    outputs=(("shares", "uint256"),),
)

WITHDRAW_FROM_PROTOCOL = FunctionRef(
    name="withdrawFromProtocol",
    inputs=(("agentId", "uint256"), ("protocolId", "bytes32"), ("token", "address"), ("shares", "uint256")),
    outputs=(("amount", "uint256"),),
)

CLAIM_REWARDS = FunctionRef(
    name="claimRewards",
    inputs=(("agentId", "uint256"), ("protocolId", "bytes32")),
    outputs=(("rewards", "uint256"),),
)

CREATE_BUY_ORDER = FunctionRef(
    name="createBuyOrder",
    inputs=(
        ("tokenOut", "address"),
        ("amountOut", "uint256"),
        ("maxAmountIn", "uint256"),
        ("deadline", "uint256"),
        ("description", "string"),
    ),
    outputs=(("orderId", "uint256"),),
)

CREATE_SELL_ORDER = FunctionRef(
    name="createSellOrder",
    inputs=(
        ("tokenIn", "address"),
        ("amountIn", "uint256"),
        ("minAmountOut", "uint256"),
        ("deadline", "uint256"),
        ("description", "string"),
    ),
    outputs=(("orderId", "uint256"),),
)

CREATE_REQUEST_ORDER = FunctionRef(
    name="createRequestOrder",
    inputs=(
        ("tokenIn", "address"),
        ("tokenOut", "address"),
        ("amountIn", "uint256"),
        ("amountOut", "uint256"),
        ("deadline", "uint256"),
        ("description", "string"),
    ),
    outputs=(("orderId", "uint256"),),
)

MINT_ATTENDANCE_NFT = FunctionRef(
    name="mintAttendanceNFT",
    inputs=(("agentId", "uint256"), ("recipient", "address"), ("metadataURI", "string"), ("soulbound", "bool")),
    outputs=(("tokenId", "uint256"),),
)


def to_base_units(amount: Any) -> int:
    """Token units -> 18-decimal base units"""
    return int(Web3.to_wei(Decimal(str(amount)), "ether"))


def protocol_id(protocol: str) -> bytes:
    """bytes32 protocol id: 0x-hex passes through, text is right-padded"""
    if isinstance(protocol, str) and protocol.startswith("0x") and len(protocol) == 66:
        return Web3.to_bytes(hexstr=protocol)
    raw = str(protocol).encode()
    if len(raw) > 32:
        raise ValueError(f"Protocol id '{protocol}' longer than 32 bytes")
    return raw.ljust(32, b"\0")


def agent_uint(agent_id: Any) -> int:
    try:
        return int(agent_id)
    except (TypeError, ValueError):
        raise ValueError(f"Agent id {agent_id!r} is not a uint256")


def deadline() -> int:
    return int(time.time()) + ORDER_TTL_SECONDS


Handler = Callable[[Any, Dict[str, Any]], Awaitable[str]]


class ActionDispatcher:
    """Maps on-chain ActionTypes to handlers that call the blockchain client."""

    def __init__(self, client: BlockchainClient, timeout: Optional[float] = None):
        self.client = client
        self.timeout = timeout

        self._handlers: Dict[ActionType, Handler] = {
            ActionType.TRANSFER: self.execute_transfer,
            ActionType.SWAP: self.execute_swap,
            ActionType.STAKE: self.execute_stake,
            ActionType.UNSTAKE: self.execute_unstake,
            ActionType.CLAIM: self.execute_claim,
            ActionType.BUY: self.execute_buy,
            ActionType.SELL: self.execute_sell,
            ActionType.REQUEST: self.execute_request,
            ActionType.MINT: self.execute_mint,
        }

        missing = {a for a in ActionType if a.is_onchain} - set(self._handlers)
        if missing:
            raise RuntimeError(f"Dispatch table missing handlers for {sorted(a.value for a in missing)}")

    async def dispatch(self, agent_id: Any, action: str, params: Dict[str, Any]) -> str:
        """Submit the action; returns the transaction handle or raises DispatchError."""
        try:
            action_type = ActionType(action)
        except ValueError:
            raise UnknownActionError(action)

        handler = self._handlers.get(action_type)
        if handler is None:
            raise UnknownActionError(action)

        try:
            call = handler(agent_id, params)
            tx_handle = await (asyncio.wait_for(call, self.timeout) if self.timeout else call)
        except asyncio.TimeoutError as e:
            raise DispatchError(action, f"{action} timed out after {self.timeout}s", e)
        except (DispatchError, UnknownActionError):
            raise
        except Exception as e:
            raise DispatchError(action, f"{action} failed: {e}", e)

        logger.info(f"📤 [{agent_id}] {action} submitted: {tx_handle}")
        return tx_handle

    # ==========================================
    # HANDLERS
    # ==========================================

    def _network(self) -> NetworkConfig:
        return self.client.get_network_config()

    def _contract(self, name: str) -> str:
        address = self._network().contracts.get(name)
        if not address or address == ZERO_ADDRESS:
            raise DispatchError(name, f"Contract '{name}' is not configured for this network")
        return address

    async def execute_transfer(self, agent_id: Any, params: Dict[str, Any]) -> str:
        network = self._network()
        token = params.get("token") or "cUSD"
        amount = to_base_units(params["amount"])

        # CELO moves as a native value transfer
        if network.token_symbol(token) == "CELO":
            return await self.client.write_contract(params["to"], None, [], value=amount)

        return await self.client.write_contract(
            network.token_address(token), ERC20_TRANSFER, [params["to"], amount]
        )

    async def execute_swap(self, agent_id: Any, params: Dict[str, Any]) -> str:
        network = self._network()
        recipient = params.get("to") or (await self.client.get_addresses())[0]
        path = [network.token_address(params["tokenIn"]), network.token_address(params["tokenOut"])]

        return await self.client.write_contract(
            self._contract("swapRouter"),
            SWAP_EXACT_TOKENS,
            [
                to_base_units(params["amountIn"]),
                to_base_units(params.get("amountOutMin", 0)),
                path,
                recipient,
                deadline(),
            ],
        )

    async def execute_stake(self, agent_id: Any, params: Dict[str, Any]) -> str:
        return await self.client.write_contract(
            self._contract("yieldAggregator"),
            DEPOSIT_TO_PROTOCOL,
            [
                agent_uint(agent_id),
                protocol_id(params["protocol"]),
                self._network().token_address(params.get("token", "cUSD")),
                to_base_units(params["amount"]),
            ],
        )

    async def execute_unstake(self, agent_id: Any, params: Dict[str, Any]) -> str:
        return await self.client.write_contract(
            self._contract("yieldAggregator"),
            WITHDRAW_FROM_PROTOCOL,
            [
                agent_uint(agent_id),
                protocol_id(params["protocol"]),
                self._network().token_address(params.get("token", "cUSD")),
                to_base_units(params["shares"]),
            ],
        )

    async def execute_claim(self, agent_id: Any, params: Dict[str, Any]) -> str:
        return await self.client.write_contract(
            self._contract("yieldAggregator"),
            CLAIM_REWARDS,
            [agent_uint(agent_id), protocol_id(params["protocol"])],
        )

    async def execute_buy(self, agent_id: Any, params: Dict[str, Any]) -> str:
        amount = Decimal(str(params["amount"]))
        max_in = amount * Decimal(str(params["maxPrice"]))
        return await self.client.write_contract(
            self._contract("masterTrading"),
            CREATE_BUY_ORDER,
            [
                self._network().token_address(params["token"]),
                to_base_units(amount),
                to_base_units(max_in),
                deadline(),
                params.get("description") or "Agent buy order",
            ],
        )

    async def execute_sell(self, agent_id: Any, params: Dict[str, Any]) -> str:
        amount = Decimal(str(params["amount"]))
        min_out = amount * Decimal(str(params["minPrice"]))
        return await self.client.write_contract(
            self._contract("masterTrading"),
            CREATE_SELL_ORDER,
            [
                self._network().token_address(params["token"]),
                to_base_units(amount),
                to_base_units(min_out),
                deadline(),
                params.get("description") or "Agent sell order",
            ],
        )

    async def execute_request(self, agent_id: Any, params: Dict[str, Any]) -> str:
        network = self._network()
        return await self.client.write_contract(
            self._contract("masterTrading"),
            CREATE_REQUEST_ORDER,
            [
                network.token_address(params["tokenIn"]),
                network.token_address(params["tokenOut"]),
                to_base_units(params["amountIn"]),
                to_base_units(params["amountOut"]),
                deadline(),
                params.get("description") or "Agent request order",
            ],
        )

    async def execute_mint(self, agent_id: Any, params: Dict[str, Any]) -> str:
        return await self.client.write_contract(
            self._contract("attendanceNFT"),
            MINT_ATTENDANCE_NFT,
            [agent_uint(agent_id), params["recipient"], params["metadataURI"], bool(params.get("soulbound", False))],
        )
