"""
Blockchain client capability consumed by the execution engine.

The engine only depends on this Protocol; `Web3BlockchainClient` in
web3_client.py is one implementation, tests use mocks.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple


@dataclass(frozen=True)
class FunctionRef:
    """A contract function reference: enough to render a single-entry ABI."""
    name: str
    inputs: Tuple[Tuple[str, str], ...] = ()       # (name, solidity type)
    outputs: Tuple[Tuple[str, str], ...] = ()
    state_mutability: str = "nonpayable"

    def abi(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": "function",
            "stateMutability": self.state_mutability,
            "inputs": [{"name": n, "type": t} for n, t in self.inputs],
            "outputs": [{"name": n, "type": t} for n, t in self.outputs],
        }


@dataclass
class NetworkConfig:
    """Token and contract address registry for the connected network"""
    tokens: Dict[str, str] = field(default_factory=dict)
    contracts: Dict[str, str] = field(default_factory=dict)

    def token_address(self, symbol_or_address: str) -> str:
        """Resolve a token symbol to its address; addresses pass through."""
        if symbol_or_address in self.tokens:
            return self.tokens[symbol_or_address]
        for symbol, address in self.tokens.items():
            if symbol.lower() == str(symbol_or_address).lower():
                return address
        return symbol_or_address

    def token_symbol(self, symbol_or_address: str) -> Optional[str]:
        """Reverse lookup: address (or symbol in any case) to canonical symbol."""
        for symbol, address in self.tokens.items():
            value = str(symbol_or_address).lower()
            if value in (symbol.lower(), address.lower()):
                return symbol
        return None


class BlockchainClient(Protocol):
    """Minimal async surface the core calls into. Amounts are base units (wei)."""

    async def get_native_balance(self, address: str) -> int: ...

    async def get_token_balance(self, token_address: str, address: str) -> int: ...

    async def get_transaction_history(self, address: str, limit: int) -> List[Dict[str, Any]]: ...

    async def read_contract(self, address: str, function_ref: FunctionRef, args: Sequence[Any]) -> Any: ...

    async def write_contract(
        self,
        address: str,
        function_ref: Optional[FunctionRef],
        args: Sequence[Any],
        value: Optional[int] = None,
    ) -> str: ...

    async def get_addresses(self) -> List[str]: ...

    def get_network_config(self) -> NetworkConfig: ...
