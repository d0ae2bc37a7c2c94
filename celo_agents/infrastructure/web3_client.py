# infrastructure/web3_client.py
"""
Web3-backed BlockchainClient for Celo.
Reads and writes go through AsyncWeb3 over the configured RPC; transaction
history comes from the Etherscan-compatible explorer API (Celoscan).
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from eth_account import Account
from web3 import AsyncWeb3, Web3

from .blockchain import FunctionRef, NetworkConfig
from .config import CeloAgentsConfig, SecretsManager, get_config, get_secrets
from .errors import BlockchainError, retry

logger = logging.getLogger("Web3Client")

ERC20_BALANCE_OF = FunctionRef(
    name="balanceOf",
    inputs=(("account", "address"),),
    outputs=(("", "uint256"),),
    state_mutability="view",
)


@dataclass(frozen=True)
class EventRef:
    """Event signature used to decode receipt logs: inputs are (name, type, indexed)"""
    name: str
    inputs: Tuple[Tuple[str, str, bool], ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(t for _, t, _ in self.inputs)})"

    @property
    def topic(self) -> str:
        return Web3.to_hex(Web3.keccak(text=self.signature))


ERC20_TRANSFER_EVENT = EventRef(
    name="Transfer",
    inputs=(("from", "address", True), ("to", "address", True), ("value", "uint256", False)),
)

ERC20_APPROVAL_EVENT = EventRef(
    name="Approval",
    inputs=(("owner", "address", True), ("spender", "address", True), ("value", "uint256", False)),
)

DEFAULT_EVENTS = (ERC20_TRANSFER_EVENT, ERC20_APPROVAL_EVENT)


class Web3BlockchainClient:
    """
    BlockchainClient implementation on web3.py.

    Writes are signed locally with WALLET_PRIVATE_KEY and awaited until mined;
    a reverted receipt raises BlockchainError. Writes are never retried.

    History entries carry the receipt logs; logs matching a known EventRef are
    decoded to {address, name, args}, others keep name=None and raw topics.
    """

    def __init__(
        self,
        config: Optional[CeloAgentsConfig] = None,
        secrets: Optional[SecretsManager] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        events: Sequence[EventRef] = DEFAULT_EVENTS,
    ):
        self.config = config or get_config()
        self.secrets = secrets or get_secrets()
        chain = self.config.blockchain

        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(chain.rpc_url))
        self.http = http_client or httpx.AsyncClient(timeout=30)
        self._network = NetworkConfig(tokens=dict(chain.tokens), contracts=dict(chain.contracts))
        self._events = {event.topic: event for event in events}

        private_key = self.secrets.get("WALLET_PRIVATE_KEY")
        self.account = Account.from_key(private_key) if private_key else None
        if self.account:
            logger.info(f"[Web3Client] Agent wallet: {self.account.address[:10]}...")
        else:
            logger.warning("[Web3Client] No WALLET_PRIVATE_KEY - client is read-only")

    # ==========================================
    # READS
    # ==========================================

    @retry(max_attempts=3, delay=1.0)
    async def get_native_balance(self, address: str) -> int:
        return await self.w3.eth.get_balance(Web3.to_checksum_address(address))

    @retry(max_attempts=3, delay=1.0)
    async def get_token_balance(self, token_address: str, address: str) -> int:
        return await self.read_contract(token_address, ERC20_BALANCE_OF, [Web3.to_checksum_address(address)])

    async def _explorer_get(self, params: Dict[str, Any]) -> Any:
        params = dict(params)
        api_key = self.secrets.get("EXPLORER_API_KEY")
        if api_key:
            params["apikey"] = api_key

        response = await self.http.get(self.config.blockchain.explorer_api_url, params=params)
        response.raise_for_status()
        return response.json().get("result")

    @retry(max_attempts=3, delay=1.0)
    async def get_transaction_history(self, address: str, limit: int) -> List[Dict[str, Any]]:
        result = await self._explorer_get({
            "module": "account",
            "action": "txlist",
            "address": address,
            "page": 1,
            "offset": limit,
            "sort": "desc",
        })

        # Explorer returns status "0" with a message for empty histories
        if not isinstance(result, list):
            return []

        history = []
        for tx in result[:limit]:
            history.append({
                "hash": tx.get("hash"),
                "from": tx.get("from"),
                "to": tx.get("to"),
                "value": int(tx.get("value", 0)),
                "timestamp": int(tx.get("timeStamp", 0)),
                "logs": await self.get_transaction_logs(tx.get("hash")),
            })
        return history

    async def get_transaction_logs(self, tx_hash: str) -> List[Dict[str, Any]]:
        """Receipt logs for one transaction, decoded where the event is known."""
        if not tx_hash:
            return []
        try:
            receipt = await self._explorer_get({
                "module": "proxy",
                "action": "eth_getTransactionReceipt",
                "txhash": tx_hash,
            })
        except httpx.HTTPError as e:
            logger.warning(f"[Web3Client] Receipt fetch failed for {tx_hash}: {e}")
            return []

        if not isinstance(receipt, dict):
            return []
        return [self.decode_log(log) for log in receipt.get("logs") or []]

    def decode_log(self, log: Dict[str, Any]) -> Dict[str, Any]:
        topics = [t if isinstance(t, str) else Web3.to_hex(t) for t in log.get("topics") or []]
        event = {"address": log.get("address"), "name": None, "args": {}, "topics": topics}

        ref = self._events.get(topics[0].lower()) if topics else None
        if ref is None:
            return event

        indexed = [(name, typ) for name, typ, is_indexed in ref.inputs if is_indexed]
        plain = [(name, typ) for name, typ, is_indexed in ref.inputs if not is_indexed]
        try:
            args = {}
            for (name, typ), topic in zip(indexed, topics[1:]):
                args[name] = self.w3.codec.decode([typ], Web3.to_bytes(hexstr=topic))[0]
            if plain:
                values = self.w3.codec.decode([typ for _, typ in plain], Web3.to_bytes(hexstr=log.get("data") or "0x"))
                args.update(zip((name for name, _ in plain), values))
        except Exception as e:
            logger.warning(f"[Web3Client] Could not decode {ref.name} log: {e}")
            return event

        event.update(name=ref.name, args=args)
        return event

    async def read_contract(self, address: str, function_ref: FunctionRef, args: Sequence[Any]) -> Any:
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=[function_ref.abi()])
        return await getattr(contract.functions, function_ref.name)(*args).call()

    async def get_addresses(self) -> List[str]:
        if self.account:
            return [self.account.address]
        return list(await self.w3.eth.accounts)

    def get_network_config(self) -> NetworkConfig:
        return self._network

    # ==========================================
    # WRITES
    # ==========================================

    async def write_contract(
        self,
        address: str,
        function_ref: Optional[FunctionRef],
        args: Sequence[Any],
        value: Optional[int] = None,
    ) -> str:
        """Sign, send and await a transaction. function_ref=None sends plain value."""
        if not self.account:
            raise BlockchainError(self.config.blockchain.network, "No signing key configured")

        sender = self.account.address
        base_tx = {
            "from": sender,
            "nonce": await self.w3.eth.get_transaction_count(sender),
            "chainId": self.config.blockchain.chain_id,
            "value": value or 0,
        }

        if function_ref is None:
            tx = dict(base_tx, to=Web3.to_checksum_address(address))
            tx["gas"] = await self.w3.eth.estimate_gas(tx)
            tx["gasPrice"] = await self.w3.eth.gas_price
        else:
            contract = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=[function_ref.abi()])
            tx = await getattr(contract.functions, function_ref.name)(*args).build_transaction(base_tx)

        signed = self.account.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        tx_hex = Web3.to_hex(tx_hash)
        logger.info(f"[Web3Client] TX sent: {tx_hex}")

        receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash)
        if receipt["status"] != 1:
            logger.error(f"[Web3Client] TX failed! Hash: {tx_hex}, Gas used: {receipt['gasUsed']}")
            raise BlockchainError(self.config.blockchain.network, "Transaction reverted", tx_hex)

        return tx_hex

    async def close(self):
        await self.http.aclose()
