"""
Ledger Client - the three chain operations the keeper needs.

    get_inactivity_threshold()            -> seconds
    estimate_disbursement_cost(wallet_id) -> gas units
    submit_disbursement(wallet_id, cost)  -> transaction hash

EvmLedgerClient speaks JSON-RPC 2.0 over HTTP POST to an EVM node. Contract
calls are ABI-encoded with eth-abi; transactions are sent from an operator
account managed (unlocked) by the node.

Transport failures raise LedgerUnavailable, JSON-RPC errors raise
LedgerRejected. Callers decide what each failure means for a cycle.
"""

import abc
import logging
from typing import Any, List, Optional

import httpx
from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from inheritor.config.settings import settings
from inheritor.services.errors import LedgerRejected, LedgerUnavailable

logger = logging.getLogger("inheritor.ledger")


class LedgerClient(abc.ABC):
    """Capability interface used by the scheduler and the executor."""

    @abc.abstractmethod
    async def get_inactivity_threshold(self) -> int:
        ...

    @abc.abstractmethod
    async def estimate_disbursement_cost(self, wallet_id: str) -> int:
        ...

    @abc.abstractmethod
    async def submit_disbursement(self, wallet_id: str, cost: int) -> str:
        ...

    async def is_connected(self) -> bool:
        return True

    async def close(self) -> None:
        return None


def _argument_types(signature: str) -> List[str]:
    """'distributeFunds(address)' -> ['address']"""
    inner = signature[signature.index("(") + 1:signature.rindex(")")]
    return [t.strip() for t in inner.split(",") if t.strip()]


class EvmLedgerClient(LedgerClient):
    """
    Async JSON-RPC 2.0 client for the inheritance contract.

    Lazy-initialized: no HTTP connection is made until the first RPC call.
    """

    def __init__(
        self,
        endpoint: str,
        contract_address: str,
        operator_address: str,
        threshold_function: str = "inactivityThreshold()",
        disburse_function: str = "distributeFunds(address)",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._endpoint = endpoint
        self._contract = to_checksum_address(contract_address)
        self._operator = to_checksum_address(operator_address)
        self._threshold_selector = function_signature_to_4byte_selector(threshold_function)
        self._disburse_selector = function_signature_to_4byte_selector(disburse_function)
        self._disburse_types = _argument_types(disburse_function)
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._request_id = 0

    @classmethod
    def from_settings(cls, config=settings, **kwargs) -> "EvmLedgerClient":
        return cls(
            endpoint=config.rpc_url,
            contract_address=config.contract_address,
            operator_address=config.operator_address,
            threshold_function=config.threshold_function,
            disburse_function=config.disburse_function,
            timeout=config.rpc_timeout,
            **kwargs,
        )

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy-create the httpx AsyncClient on first use."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    #  Low-level RPC                                                      #
    # ------------------------------------------------------------------ #

    async def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Execute a JSON-RPC 2.0 call and return its ``result``.

        Raises:
            LedgerUnavailable: Node unreachable, timeout, non-2xx status or
                an unparseable body.
            LedgerRejected: The response carries an ``error`` member.
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        client = self._get_client()
        try:
            response = await client.post(self._endpoint, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise LedgerUnavailable(f"{method} failed: {e}") from e
        except ValueError as e:
            raise LedgerUnavailable(f"{method} returned invalid JSON: {e}") from e

        if body.get("error") is not None:
            err = body["error"]
            raise LedgerRejected(
                code=err.get("code", -1),
                message=err.get("message", "Unknown RPC error"),
                data=err.get("data"),
            )

        return body.get("result")

    async def is_connected(self) -> bool:
        try:
            await self.call("eth_blockNumber")
            return True
        except (LedgerUnavailable, LedgerRejected):
            return False

    # ------------------------------------------------------------------ #
    #  Contract encoding                                                  #
    # ------------------------------------------------------------------ #

    def _disburse_data(self, wallet_id: str) -> str:
        args = encode(self._disburse_types, [to_checksum_address(wallet_id)])
        return "0x" + (self._disburse_selector + args).hex()

    def _disburse_tx(self, wallet_id: str) -> dict:
        return {
            "from": self._operator,
            "to": self._contract,
            "data": self._disburse_data(wallet_id),
        }

    # ------------------------------------------------------------------ #
    #  Ledger operations                                                  #
    # ------------------------------------------------------------------ #

    async def get_inactivity_threshold(self) -> int:
        """Read the contract's inactivity threshold in seconds."""
        result = await self.call(
            "eth_call",
            [{"to": self._contract, "data": "0x" + self._threshold_selector.hex()}, "latest"],
        )
        if not isinstance(result, str) or not result.startswith("0x") or len(result) < 66:
            raise LedgerRejected(-1, f"Unexpected threshold response: {result!r}")
        (threshold,) = decode(["uint256"], bytes.fromhex(result[2:]))
        return int(threshold)

    async def estimate_disbursement_cost(self, wallet_id: str) -> int:
        """Gas units the node expects the disbursement call to consume."""
        result = await self.call("eth_estimateGas", [self._disburse_tx(wallet_id)])
        try:
            return int(result, 16)
        except (TypeError, ValueError):
            raise LedgerRejected(-1, f"Unexpected gas estimate: {result!r}")

    async def submit_disbursement(self, wallet_id: str, cost: int) -> str:
        """Send the disbursement with an explicit gas limit. Returns the tx hash."""
        tx = self._disburse_tx(wallet_id)
        tx["gas"] = hex(cost)
        tx_hash = await self.call("eth_sendTransaction", [tx])
        if not tx_hash:
            raise LedgerRejected(-1, f"No transaction hash returned for {wallet_id}")
        logger.debug("Disbursement for %s sent with gas %d: %s", wallet_id, cost, tx_hash)
        return tx_hash


# ------------------------------------------------------------------ #
#  Singleton                                                           #
# ------------------------------------------------------------------ #

_ledger_client: Optional[LedgerClient] = None


def get_ledger_client() -> LedgerClient:
    """Get or create the ledger client from settings."""
    global _ledger_client
    if _ledger_client is None:
        _ledger_client = EvmLedgerClient.from_settings()
    return _ledger_client


def set_ledger_client(client: Optional[LedgerClient]) -> None:
    global _ledger_client
    _ledger_client = client


async def close_ledger_client() -> None:
    global _ledger_client
    if _ledger_client is not None:
        await _ledger_client.close()
        _ledger_client = None
