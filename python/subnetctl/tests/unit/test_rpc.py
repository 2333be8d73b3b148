"""Unit tests for the JSON-RPC chain client."""

import json

import httpx
import pytest

from subnetctl.config import CoordinatorConfig
from subnetctl.errors import ChainStatePrecondition, ChainTimeout, SubmissionRejected
from subnetctl.rpc import JsonRpcChainClient, RpcError

from conftest import ADDR_X, ADDR_Y, NATIVE_ASSET_ID, make_id

BASE_URL = "http://node.test:9650"


class Node:
    """Mock node: maps RPC method names to a result dict, error dict or callable."""

    def __init__(self, **routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append((request.url.path, payload))
        route = self.routes.get(payload["method"])
        if callable(route):
            route = route(payload["params"])
        if isinstance(route, httpx.Response):
            return route
        if route is None:
            body = {"jsonrpc": "2.0", "id": payload["id"], "error": {"code": -32601, "message": "method not found"}}
        elif "error" in route:
            body = {"jsonrpc": "2.0", "id": payload["id"], "error": route["error"]}
        else:
            body = {"jsonrpc": "2.0", "id": payload["id"], "result": route}
        return httpx.Response(200, json=body)


def make_client(node: Node) -> JsonRpcChainClient:
    config = CoordinatorConfig(api_url=BASE_URL, request_timeout=1)
    http = httpx.Client(transport=httpx.MockTransport(node), base_url=BASE_URL)
    return JsonRpcChainClient(config, http_client=http)


class TestTransport:
    """Tests for request framing and error mapping."""

    def test_request_framing(self):
        node = Node(**{"info.getBlockchainID": {"blockchainID": "chain-p"}})
        with make_client(node) as client:
            assert client.get_blockchain_id("P") == "chain-p"
        path, payload = node.requests[0]
        assert path == "/ext/info"
        assert payload["jsonrpc"] == "2.0"
        assert payload["params"] == {"alias": "P"}

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = JsonRpcChainClient(
            CoordinatorConfig(api_url=BASE_URL),
            http_client=httpx.Client(transport=httpx.MockTransport(handler), base_url=BASE_URL),
        )
        with pytest.raises(ChainTimeout, match="timed out") as exc_info:
            client.get_utxos("P", [ADDR_X])
        assert exc_info.value.retryable

    def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = JsonRpcChainClient(
            CoordinatorConfig(api_url=BASE_URL),
            http_client=httpx.Client(transport=httpx.MockTransport(handler), base_url=BASE_URL),
        )
        with pytest.raises(ChainTimeout, match="unreachable"):
            client.get_blockchain_id("P")

    @pytest.mark.parametrize("status", [429, 502, 503])
    def test_retryable_http_status(self, status):
        node = Node(**{"platform.getUTXOs": httpx.Response(status)})
        with pytest.raises(ChainTimeout, match=f"HTTP {status}"):
            make_client(node).get_utxos("P", [ADDR_X])

    def test_http_error_is_precondition_on_reads(self):
        node = Node(**{"platform.getUTXOs": httpx.Response(400, text="bad request")})
        with pytest.raises(ChainStatePrecondition):
            make_client(node).get_utxos("P", [ADDR_X])

    def test_rpc_error_is_precondition_on_reads(self):
        node = Node(**{"platform.getCurrentValidators": {"error": {"code": -32000, "message": "boom"}}})
        with pytest.raises(ChainStatePrecondition, match="boom"):
            make_client(node).get_current_validators(make_id("s"))

    def test_unknown_chain(self):
        with pytest.raises(ValueError, match="Unknown chain alias"):
            make_client(Node()).get_utxos("C", [ADDR_X])

    def test_rpc_error_not_found(self):
        assert RpcError("m", -32000, "subnet does not exist").not_found
        assert RpcError("m", -32000, "Not Found").not_found
        assert not RpcError("m", -32000, "internal").not_found


class TestReads:
    """Tests for chain state reads."""

    def test_get_subnet(self):
        subnet_id = make_id("s")
        node = Node(**{
            "platform.getSubnet": {
                "controlKeys": [ADDR_X, ADDR_Y],
                "threshold": "2",
                "isPermissioned": True,
            }
        })
        subnet = make_client(node).get_subnet(subnet_id)
        assert subnet.control_keys == (ADDR_X, ADDR_Y)
        assert subnet.threshold == 2
        assert not subnet.transformed
        assert node.requests[0][0] == "/ext/bc/P"

    def test_get_subnet_not_found(self):
        node = Node(**{"platform.getSubnet": {"error": {"code": -32000, "message": "subnet not found"}}})
        assert make_client(node).get_subnet(make_id("s")) is None

    def test_get_blockchains_filters_subnet(self):
        subnet_id = make_id("s")
        node = Node(**{
            "platform.getBlockchains": {
                "blockchains": [
                    {"id": "c1", "name": "one", "subnetID": subnet_id, "vmID": "vm"},
                    {"id": "c2", "name": "two", "subnetID": make_id("other"), "vmID": "vm"},
                ]
            }
        })
        chains = make_client(node).get_blockchains(subnet_id)
        assert [c.name for c in chains] == ["one"]

    def test_get_asset(self):
        node = Node(**{
            "avm.getAssetDescription": {"assetID": "gold", "name": "Gold", "symbol": "GLD", "denomination": "2"}
        })
        asset = make_client(node).get_asset("gold")
        assert (asset.name, asset.symbol, asset.denomination) == ("Gold", "GLD", 2)
        assert node.requests[0][0] == "/ext/bc/X"

    def test_get_asset_missing(self):
        node = Node(**{"avm.getAssetDescription": {"error": {"code": -32000, "message": "asset not found"}}})
        assert make_client(node).get_asset("gold") is None

    def test_get_current_validators(self):
        node = Node(**{
            "platform.getCurrentValidators": {
                "validators": [{"nodeID": "NodeID-a", "startTime": "10", "endTime": "20", "weight": "5"}]
            }
        })
        [validator] = make_client(node).get_current_validators("s")
        assert (validator.node_id, validator.start_time, validator.end_time, validator.weight) == (
            "NodeID-a",
            10,
            20,
            5,
        )

    def test_get_atomic_utxos(self):
        item = {"utxoID": "u1", "assetID": NATIVE_ASSET_ID, "amount": "7", "owner": ADDR_X}
        node = Node(**{"platform.getUTXOs": {"utxos": [item]}})
        [utxo] = make_client(node).get_atomic_utxos("P", "X", [ADDR_X])
        assert utxo.amount == 7
        assert node.requests[0][1]["params"] == {"addresses": [ADDR_X], "sourceChain": "X"}


class TestSubmission:
    """Tests for issuing and polling transactions."""

    def test_issue_tx(self):
        node = Node(**{"platform.issueTx": {"txID": "tx1"}})
        assert make_client(node).issue_tx("P", b"\x01\x02") == "tx1"
        assert node.requests[0][1]["params"] == {"tx": "0x0102", "encoding": "hex"}

    def test_issue_tx_rejected(self):
        node = Node(**{"avm.issueTx": {"error": {"code": -32000, "message": "missing signature"}}})
        with pytest.raises(SubmissionRejected, match="missing signature") as exc_info:
            make_client(node).issue_tx("X", b"\x01")
        assert exc_info.value.code == -32000
        assert not exc_info.value.retryable

    def test_wait_for_acceptance_polls(self):
        statuses = iter(["Processing", "Processing", "Committed"])
        node = Node(**{"platform.getTxStatus": lambda params: {"status": next(statuses)}})
        make_client(node).wait_for_acceptance("P", "tx1", timeout=5, poll_interval=0)
        assert len(node.requests) == 3

    def test_wait_for_acceptance_dropped(self):
        node = Node(**{"platform.getTxStatus": {"status": "Dropped", "reason": "fee too low"}})
        with pytest.raises(SubmissionRejected, match="fee too low"):
            make_client(node).wait_for_acceptance("P", "tx1", timeout=5, poll_interval=0)

    def test_wait_for_acceptance_timeout(self):
        node = Node(**{"platform.getTxStatus": {"status": "Processing"}})
        with pytest.raises(ChainTimeout, match="still Processing"):
            make_client(node).wait_for_acceptance("P", "tx1", timeout=0, poll_interval=0)
