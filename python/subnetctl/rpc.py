"""JSON-RPC chain client over httpx.

Implements the ChainClient protocol against a node's HTTP API:
``/ext/info`` for chain aliases, ``/ext/bc/P`` (``platform.*``) and
``/ext/bc/X`` (``avm.*``) for chain state and submission.
"""

from __future__ import annotations

import itertools
import time
from typing import Any

import httpx

from .app_logging import structlog
from .config import CoordinatorConfig
from .constants import DEFAULT_POLL_INTERVAL, P_CHAIN, X_CHAIN
from .errors import ChainStatePrecondition, ChainTimeout, SubmissionRejected
from .types import AssetInfo, BlockchainInfo, SubnetInfo, UTXO, ValidatorInfo

logger = structlog.get_logger(__name__)

CHAIN_ENDPOINTS = {P_CHAIN: "/ext/bc/P", X_CHAIN: "/ext/bc/X"}
CHAIN_NAMESPACES = {P_CHAIN: "platform", X_CHAIN: "avm"}
INFO_ENDPOINT = "/ext/info"

ACCEPTED_STATUSES = ("Committed", "Accepted")
FAILED_STATUSES = ("Dropped", "Rejected", "Aborted")

# HTTP statuses worth retrying
RETRYABLE_HTTP_STATUSES = {429, 500, 502, 503, 504}


class RpcError(Exception):
    """JSON-RPC error payload returned by the node."""

    def __init__(self, method: str, code: int, message: str):
        self.method = method
        self.code = code
        self.message = message
        super().__init__(f"{method} failed ({code}): {message}")

    @property
    def not_found(self) -> bool:
        return "not found" in self.message.lower() or "does not exist" in self.message.lower()


class JsonRpcChainClient:
    """ChainClient backed by a node's JSON-RPC API.

    Args:
        config: Coordinator configuration (API URL and timeouts).
        http_client: Optional pre-built httpx client (tests pass one with
            a mock transport).

    Example:
        ```python
        config = CoordinatorConfig.from_env()
        with JsonRpcChainClient(config) as client:
            subnet = client.get_subnet(subnet_id)
        ```
    """

    def __init__(self, config: CoordinatorConfig, http_client: httpx.Client | None = None):
        self._config = config
        self._http = http_client or httpx.Client(
            base_url=config.api_url,
            timeout=config.request_timeout,
        )
        self._ids = itertools.count(1)

    def __enter__(self) -> "JsonRpcChainClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _call(self, endpoint: str, method: str, params: dict[str, Any]) -> dict[str, Any]:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        logger.debug("rpc call", method=method, endpoint=endpoint)
        try:
            response = self._http.post(endpoint, json=payload)
        except httpx.TimeoutException as e:
            raise ChainTimeout(f"{method} timed out after {self._config.request_timeout}s") from e
        except httpx.TransportError as e:
            raise ChainTimeout(f"{method} failed: node unreachable ({e})") from e

        if response.status_code in RETRYABLE_HTTP_STATUSES:
            raise ChainTimeout(f"{method} failed: HTTP {response.status_code}")
        try:
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPStatusError, ValueError) as e:
            raise RpcError(method, response.status_code, str(e)) from e

        if data.get("error"):
            error = data["error"]
            raise RpcError(method, int(error.get("code", -32000)), str(error.get("message", "")))
        return data.get("result") or {}

    def _chain_call(self, chain: str, method: str, params: dict[str, Any]) -> dict[str, Any]:
        if chain not in CHAIN_ENDPOINTS:
            raise ValueError(f"Unknown chain alias: {chain}")
        return self._call(CHAIN_ENDPOINTS[chain], f"{CHAIN_NAMESPACES[chain]}.{method}", params)

    def _read(self, chain: str, method: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            return self._chain_call(chain, method, params)
        except RpcError as e:
            raise ChainStatePrecondition(str(e)) from e

    # ------------------------------------------------------------------
    # ChainClient
    # ------------------------------------------------------------------

    def get_blockchain_id(self, chain: str) -> str:
        try:
            result = self._call(INFO_ENDPOINT, "info.getBlockchainID", {"alias": chain})
        except RpcError as e:
            raise ChainStatePrecondition(str(e)) from e
        return result["blockchainID"]

    def get_subnet(self, subnet_id: str) -> SubnetInfo | None:
        try:
            result = self._chain_call(P_CHAIN, "getSubnet", {"subnetID": subnet_id})
        except RpcError as e:
            if e.not_found:
                return None
            raise ChainStatePrecondition(str(e)) from e
        return SubnetInfo(
            subnet_id=subnet_id,
            control_keys=tuple(result.get("controlKeys", [])),
            threshold=int(result.get("threshold", 0)),
            transformed=not result.get("isPermissioned", True),
        )

    def get_blockchains(self, subnet_id: str) -> list[BlockchainInfo]:
        result = self._read(P_CHAIN, "getBlockchains", {})
        return [
            BlockchainInfo(
                blockchain_id=item["id"],
                name=item["name"],
                subnet_id=item["subnetID"],
                vm_id=item["vmID"],
            )
            for item in result.get("blockchains", [])
            if item["subnetID"] == subnet_id
        ]

    def get_asset(self, asset_id: str) -> AssetInfo | None:
        try:
            result = self._chain_call(X_CHAIN, "getAssetDescription", {"assetID": asset_id})
        except RpcError as e:
            if e.not_found:
                return None
            raise ChainStatePrecondition(str(e)) from e
        return AssetInfo(
            asset_id=result.get("assetID", asset_id),
            name=result["name"],
            symbol=result["symbol"],
            denomination=int(result["denomination"]),
        )

    def get_current_validators(self, subnet_id: str) -> list[ValidatorInfo]:
        result = self._read(P_CHAIN, "getCurrentValidators", {"subnetID": subnet_id})
        return [
            ValidatorInfo(
                node_id=item["nodeID"],
                subnet_id=subnet_id,
                start_time=int(item["startTime"]),
                end_time=int(item["endTime"]),
                weight=int(item.get("weight", 0)),
            )
            for item in result.get("validators", [])
        ]

    def _parse_utxos(self, result: dict[str, Any]) -> list[UTXO]:
        return [
            UTXO(
                utxo_id=item["utxoID"],
                asset_id=item["assetID"],
                amount=int(item["amount"]),
                owner=item["owner"],
            )
            for item in result.get("utxos", [])
        ]

    def get_utxos(self, chain: str, addresses: list[str]) -> list[UTXO]:
        return self._parse_utxos(self._read(chain, "getUTXOs", {"addresses": list(addresses)}))

    def get_atomic_utxos(
        self,
        chain: str,
        source_chain: str,
        addresses: list[str],
    ) -> list[UTXO]:
        result = self._read(
            chain,
            "getUTXOs",
            {"addresses": list(addresses), "sourceChain": source_chain},
        )
        return self._parse_utxos(result)

    def issue_tx(self, chain: str, tx_bytes: bytes) -> str:
        try:
            result = self._chain_call(
                chain,
                "issueTx",
                {"tx": "0x" + tx_bytes.hex(), "encoding": "hex"},
            )
        except RpcError as e:
            raise SubmissionRejected(e.code, e.message) from e
        return result["txID"]

    def get_tx_status(self, chain: str, tx_id: str) -> tuple[str, str]:
        """Get (status, reason) of a transaction."""
        result = self._read(chain, "getTxStatus", {"txID": tx_id})
        return result.get("status", "Unknown"), result.get("reason", "")

    def wait_for_acceptance(
        self,
        chain: str,
        tx_id: str,
        timeout: float,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        deadline = time.monotonic() + timeout
        while True:
            status, reason = self.get_tx_status(chain, tx_id)
            if status in ACCEPTED_STATUSES:
                return
            if status in FAILED_STATUSES:
                raise SubmissionRejected(status, reason or f"transaction {tx_id} was {status.lower()}")
            if time.monotonic() >= deadline:
                raise ChainTimeout(f"transaction {tx_id} still {status} after {timeout}s")
            time.sleep(poll_interval)
