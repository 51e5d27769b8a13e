"""In-memory chain for testing registry and payment code without a node.

``MockWeb3`` exposes the slice of the web3 API the SDK uses: contract
calls and transaction building, signing through ``eth.account``, raw
transaction submission, receipts, balances and event logs. Contract
behavior is keyed by address: the three ERC-8004 registries are
simulated, every other address is treated as an ERC-20 token.
"""

import itertools
import time
from types import SimpleNamespace
from typing import Any, Callable, Optional

from eth_account import Account
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound

from .feedback import AUTH_LENGTH, FeedbackAuthorization

ZERO_BYTES32 = b"\x00" * 32
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _addr(address: str) -> str:
    return Web3.to_checksum_address(address)


def _b32(value: Any) -> bytes:
    if isinstance(value, str):
        return bytes(HexBytes(value)).rjust(32, b"\x00")
    return bytes(value).rjust(32, b"\x00")


class MockChain:
    """Shared ledger state: balances, transactions, receipts and logs."""

    def __init__(self, chain_id: int = 84532):
        self.chain_id = chain_id
        self.block_number = 1
        self.balances: dict[str, int] = {}
        self.transactions: dict[bytes, dict[str, Any]] = {}
        self.receipts: dict[bytes, dict[str, Any]] = {}
        self.logs: list[dict[str, Any]] = []
        self.failing_recipients: set[str] = set()
        self._nonces: dict[str, int] = {}

    def fund(self, address: str, wei: int) -> None:
        """Credit native balance to an address."""
        address = _addr(address)
        self.balances[address] = self.balances.get(address, 0) + wei

    def fail_transfers_to(self, address: str) -> None:
        """Make native and token transfers to ``address`` revert."""
        self.failing_recipients.add(_addr(address))

    def check_recipient(self, address: str) -> None:
        if _addr(address) in self.failing_recipients:
            raise ContractLogicError("execution reverted: transfer rejected")

    def next_nonce(self, address: str) -> int:
        return self._nonces.get(_addr(address), 0)

    def bump_nonce(self, address: str) -> None:
        address = _addr(address)
        self._nonces[address] = self._nonces.get(address, 0) + 1

    def mine(
        self,
        tx_hash: bytes,
        tx: dict[str, Any],
        events: list[dict[str, Any]],
        status: int = 1,
    ) -> None:
        self.block_number += 1
        logs = []
        for index, event in enumerate(events):
            log = dict(event, blockNumber=self.block_number, logIndex=index)
            logs.append(log)
            self.logs.append(log)
        self.transactions[tx_hash] = dict(tx, hash=HexBytes(tx_hash), blockNumber=self.block_number)
        self.receipts[tx_hash] = {
            "transactionHash": HexBytes(tx_hash),
            "status": status,
            "blockNumber": self.block_number,
            "from": tx["from"],
            "to": tx.get("to"),
            "logs": logs,
        }


class MockIdentityRegistry:
    """Identity registry: agents are ERC-721 tokens with a URI and metadata."""

    def __init__(self, chain: MockChain, address: str):
        self.chain = chain
        self.address = address
        self.agents: dict[int, dict[str, Any]] = {}
        self._ids = itertools.count(1)

    def _event(self, name: str, **args) -> dict[str, Any]:
        return {"address": self.address, "event": name, "args": args}

    def _owned(self, sender: str, agent_id: int) -> dict[str, Any]:
        agent = self.agents.get(agent_id)
        if agent is None:
            raise ContractLogicError("execution reverted: agent does not exist")
        if agent["owner"] != sender:
            raise ContractLogicError("execution reverted: not agent owner")
        return agent

    # Transactions
    def tx_register(self, sender: str, token_uri: str = "", metadata=()) -> list[dict]:
        agent_id = next(self._ids)
        self.agents[agent_id] = {
            "owner": sender,
            "uri": token_uri,
            "metadata": {key: bytes(value) for key, value in metadata},
        }
        events = [
            self._event("Transfer", **{"from": ZERO_ADDRESS, "to": sender, "tokenId": agent_id}),
            self._event("Registered", agentId=agent_id, tokenURI=token_uri, owner=sender),
        ]
        for key, value in metadata:
            events.append(
                self._event("MetadataSet", agentId=agent_id, indexedKey=key, key=key, value=value)
            )
        return events

    def tx_setMetadata(self, sender: str, agent_id: int, key: str, value: bytes) -> list[dict]:
        self._owned(sender, agent_id)["metadata"][key] = bytes(value)
        return [self._event("MetadataSet", agentId=agent_id, indexedKey=key, key=key, value=value)]

    def tx_setAgentUri(self, sender: str, agent_id: int, new_uri: str) -> list[dict]:
        self._owned(sender, agent_id)["uri"] = new_uri
        return [self._event("UriUpdated", agentId=agent_id, newUri=new_uri, updatedBy=sender)]

    def tx_transferFrom(self, sender: str, from_: str, to: str, agent_id: int) -> list[dict]:
        agent = self._owned(sender, agent_id)
        if _addr(from_) != agent["owner"]:
            raise ContractLogicError("execution reverted: incorrect owner")
        agent["owner"] = _addr(to)
        return [self._event("Transfer", **{"from": _addr(from_), "to": _addr(to), "tokenId": agent_id})]

    # Views
    def call_ownerOf(self, agent_id: int) -> str:
        agent = self.agents.get(agent_id)
        if agent is None:
            raise ContractLogicError("execution reverted: ERC721NonexistentToken")
        return agent["owner"]

    def call_tokenURI(self, agent_id: int) -> str:
        self.call_ownerOf(agent_id)
        return self.agents[agent_id]["uri"]

    def call_getMetadata(self, agent_id: int, key: str) -> bytes:
        self.call_ownerOf(agent_id)
        return self.agents[agent_id]["metadata"].get(key, b"")

    def call_balanceOf(self, owner: str) -> int:
        return sum(1 for agent in self.agents.values() if agent["owner"] == _addr(owner))

    def call_totalAgents(self) -> int:
        return len(self.agents)


class MockReputationRegistry:
    """Reputation registry that checks feedback authorizations like the real contract."""

    def __init__(self, chain: MockChain, address: str, identity: MockIdentityRegistry):
        self.chain = chain
        self.address = address
        self.identity = identity
        # (agent_id, client) -> list of feedback dicts, index = position + 1
        self.feedback: dict[tuple[int, str], list[dict[str, Any]]] = {}
        self.clients: dict[int, list[str]] = {}

    def _event(self, name: str, **args) -> dict[str, Any]:
        return {"address": self.address, "event": name, "args": args}

    def _check_auth(self, sender: str, agent_id: int, blob: bytes) -> None:
        if len(blob) != AUTH_LENGTH:
            raise ContractLogicError("execution reverted: invalid feedbackAuth length")
        auth = FeedbackAuthorization.decode(bytes(blob))
        owner = self.identity.call_ownerOf(agent_id)
        last_index = len(self.feedback.get((agent_id, sender), []))
        if auth.agent_id != agent_id:
            raise ContractLogicError("execution reverted: agent mismatch")
        if auth.client_address != sender:
            raise ContractLogicError("execution reverted: client mismatch")
        if auth.chain_id != self.chain.chain_id:
            raise ContractLogicError("execution reverted: chain mismatch")
        if _addr(auth.identity_registry) != _addr(self.identity.address):
            raise ContractLogicError("execution reverted: registry mismatch")
        if auth.expiry <= int(time.time()):
            raise ContractLogicError("execution reverted: authorization expired")
        if last_index + 1 > auth.index_limit:
            raise ContractLogicError("execution reverted: index limit exceeded")
        if auth.recover_signer() != auth.signer_address or auth.signer_address != owner:
            raise ContractLogicError("execution reverted: invalid signer")

    def tx_giveFeedback(
        self, sender, agent_id, score, tag1, tag2, feedback_uri, feedback_hash, feedback_auth
    ) -> list[dict]:
        if score > 100:
            raise ContractLogicError("execution reverted: score > 100")
        self._check_auth(sender, agent_id, feedback_auth)
        entries = self.feedback.setdefault((agent_id, sender), [])
        entries.append(
            {"score": score, "tag1": _b32(tag1), "tag2": _b32(tag2), "revoked": False}
        )
        clients = self.clients.setdefault(agent_id, [])
        if sender not in clients:
            clients.append(sender)
        return [
            self._event(
                "NewFeedback",
                agentId=agent_id,
                clientAddress=sender,
                score=score,
                tag1=_b32(tag1),
                tag2=_b32(tag2),
                feedbackUri=feedback_uri,
                feedbackHash=_b32(feedback_hash),
            )
        ]

    def _entry(self, agent_id: int, client: str, index: int) -> dict[str, Any]:
        entries = self.feedback.get((agent_id, _addr(client)), [])
        if index < 1 or index > len(entries):
            raise ContractLogicError("execution reverted: index out of bounds")
        return entries[index - 1]

    def tx_revokeFeedback(self, sender, agent_id, feedback_index) -> list[dict]:
        self._entry(agent_id, sender, feedback_index)["revoked"] = True
        return [
            self._event(
                "FeedbackRevoked", agentId=agent_id, clientAddress=sender, feedbackIndex=feedback_index
            )
        ]

    def tx_appendResponse(
        self, sender, agent_id, client, feedback_index, response_uri, response_hash
    ) -> list[dict]:
        self._entry(agent_id, client, feedback_index)
        return [
            self._event(
                "ResponseAppended",
                agentId=agent_id,
                clientAddress=_addr(client),
                feedbackIndex=feedback_index,
                responder=sender,
                responseUri=response_uri,
                responseHash=_b32(response_hash),
            )
        ]

    def _matching(self, agent_id, clients, tag1, tag2, include_revoked):
        clients = [_addr(c) for c in clients] or self.clients.get(agent_id, [])
        tag1, tag2 = _b32(tag1), _b32(tag2)
        for client in clients:
            for entry in self.feedback.get((agent_id, client), []):
                if entry["revoked"] and not include_revoked:
                    continue
                if tag1 != ZERO_BYTES32 and entry["tag1"] != tag1:
                    continue
                if tag2 != ZERO_BYTES32 and entry["tag2"] != tag2:
                    continue
                yield client, entry

    def call_getSummary(self, agent_id, clients, tag1, tag2):
        scores = [e["score"] for _, e in self._matching(agent_id, clients, tag1, tag2, False)]
        if not scores:
            return (0, 0)
        return (len(scores), sum(scores) // len(scores))

    def call_readFeedback(self, agent_id, client, index):
        entry = self._entry(agent_id, client, index)
        return (entry["score"], entry["tag1"], entry["tag2"], entry["revoked"])

    def call_readAllFeedback(self, agent_id, clients, tag1, tag2, include_revoked):
        rows = list(self._matching(agent_id, clients, tag1, tag2, include_revoked))
        return (
            [client for client, _ in rows],
            [e["score"] for _, e in rows],
            [e["tag1"] for _, e in rows],
            [e["tag2"] for _, e in rows],
            [e["revoked"] for _, e in rows],
        )

    def call_getClients(self, agent_id):
        return list(self.clients.get(agent_id, []))

    def call_getLastIndex(self, agent_id, client):
        return len(self.feedback.get((agent_id, _addr(client)), []))

    def call_getIdentityRegistry(self):
        return self.identity.address


class MockValidationRegistry:
    """Validation registry keyed by request hash."""

    def __init__(self, chain: MockChain, address: str, identity: MockIdentityRegistry):
        self.chain = chain
        self.address = address
        self.identity = identity
        self.requests: dict[bytes, dict[str, Any]] = {}

    def _event(self, name: str, **args) -> dict[str, Any]:
        return {"address": self.address, "event": name, "args": args}

    def tx_validationRequest(self, sender, validator, agent_id, request_uri, request_hash):
        if self.identity.call_ownerOf(agent_id) != sender:
            raise ContractLogicError("execution reverted: not agent owner")
        key = _b32(request_hash)
        self.requests[key] = {
            "validator": _addr(validator),
            "agent_id": agent_id,
            "response": 0,
            "response_hash": ZERO_BYTES32,
            "tag": ZERO_BYTES32,
            "last_update": int(time.time()),
            "has_response": False,
        }
        return [
            self._event(
                "ValidationRequest",
                validatorAddress=_addr(validator),
                agentId=agent_id,
                requestUri=request_uri,
                requestHash=key,
            )
        ]

    def tx_validationResponse(self, sender, request_hash, response, response_uri, response_hash, tag):
        request = self.requests.get(_b32(request_hash))
        if request is None:
            raise ContractLogicError("execution reverted: unknown request")
        if request["validator"] != sender:
            raise ContractLogicError("execution reverted: not validator")
        if response > 100:
            raise ContractLogicError("execution reverted: response > 100")
        request.update(
            response=response,
            response_hash=_b32(response_hash),
            tag=_b32(tag),
            last_update=int(time.time()),
            has_response=True,
        )
        return [
            self._event(
                "ValidationResponse",
                validatorAddress=sender,
                agentId=request["agent_id"],
                requestHash=_b32(request_hash),
                response=response,
                responseUri=response_uri,
                responseHash=_b32(response_hash),
                tag=_b32(tag),
            )
        ]

    def call_getValidationStatus(self, request_hash):
        request = self.requests.get(_b32(request_hash))
        if request is None:
            return (ZERO_ADDRESS, 0, 0, ZERO_BYTES32, ZERO_BYTES32, 0)
        return (
            request["validator"],
            request["agent_id"],
            request["response"],
            request["response_hash"],
            request["tag"],
            request["last_update"],
        )

    def call_getSummary(self, agent_id, validators, tag):
        validators = {_addr(v) for v in validators}
        tag = _b32(tag)
        responses = [
            r["response"]
            for r in self.requests.values()
            if r["agent_id"] == agent_id
            and r["has_response"]
            and (not validators or r["validator"] in validators)
            and (tag == ZERO_BYTES32 or r["tag"] == tag)
        ]
        if not responses:
            return (0, 0)
        return (len(responses), sum(responses) // len(responses))

    def call_getAgentValidations(self, agent_id):
        return [h for h, r in self.requests.items() if r["agent_id"] == agent_id]

    def call_getValidatorRequests(self, validator):
        return [h for h, r in self.requests.items() if r["validator"] == _addr(validator)]

    def call_getIdentityRegistry(self):
        return self.identity.address


class MockERC20:
    """Minimal ERC-20 token."""

    def __init__(self, chain: MockChain, address: str, symbol: str = "USDC", decimals: int = 6):
        self.chain = chain
        self.address = address
        self.symbol = symbol
        self.decimals = decimals
        self.balances: dict[str, int] = {}
        self.allowances: dict[tuple[str, str], int] = {}

    def mint(self, address: str, amount: int) -> None:
        address = _addr(address)
        self.balances[address] = self.balances.get(address, 0) + amount

    def tx_transfer(self, sender, to, amount):
        self.chain.check_recipient(to)
        if self.balances.get(sender, 0) < amount:
            raise ContractLogicError("execution reverted: ERC20InsufficientBalance")
        self.balances[sender] -= amount
        self.mint(to, amount)
        return [
            {
                "address": self.address,
                "event": "Transfer",
                "args": {"from": sender, "to": _addr(to), "value": amount},
            }
        ]

    def tx_approve(self, sender, spender, amount):
        self.allowances[(sender, _addr(spender))] = amount
        return [
            {
                "address": self.address,
                "event": "Approval",
                "args": {"owner": sender, "spender": _addr(spender), "value": amount},
            }
        ]

    def call_balanceOf(self, account):
        return self.balances.get(_addr(account), 0)

    def call_allowance(self, owner, spender):
        return self.allowances.get((_addr(owner), _addr(spender)), 0)

    def call_decimals(self):
        return self.decimals

    def call_symbol(self):
        return self.symbol

    def call_name(self):
        return "USD Coin" if self.symbol == "USDC" else self.symbol


class MockFunction:
    """A bound contract function: ``.call()`` or ``.build_transaction()``."""

    def __init__(self, eth: "MockEth", impl: Any, name: str, args: tuple):
        self._eth = eth
        self._impl = impl
        self._name = name
        self._args = args

    def call(self, *_args, **_kwargs):
        method = getattr(self._impl, f"call_{self._name}", None)
        if method is None:
            raise ContractLogicError(f"execution reverted: {self._name} is not a view")
        return method(*self._args)

    def build_transaction(self, params: dict[str, Any]) -> dict[str, Any]:
        if not hasattr(self._impl, f"tx_{self._name}"):
            raise ContractLogicError(f"execution reverted: {self._name} is not a transaction")
        data = self._eth.register_call(self._impl, self._name, self._args)
        return {
            "from": params["from"],
            "to": self._impl.address,
            "data": data,
            "value": params.get("value", 0),
            "gas": params.get("gas", 500000),
            "gasPrice": params.get("gasPrice", self._eth.gas_price),
            "nonce": params.get("nonce", 0),
            "chainId": params.get("chainId", self._eth.chain_id),
        }


class MockContractFunctions:
    def __init__(self, eth: "MockEth", impl: Any):
        self._eth = eth
        self._impl = impl

    def __getattr__(self, name: str) -> Callable[..., MockFunction]:
        return lambda *args: MockFunction(self._eth, self._impl, name, args)


class MockEvent:
    """Event filter supporting ``process_receipt`` and ``get_logs``."""

    def __init__(self, chain: MockChain, address: str, name: str):
        self._chain = chain
        self._address = address
        self._name = name

    def _matches(self, log: dict[str, Any]) -> bool:
        return log["event"] == self._name and _addr(log["address"]) == _addr(self._address)

    def process_receipt(self, receipt: dict[str, Any], errors: Any = None) -> list[dict]:
        return [log for log in receipt["logs"] if self._matches(log)]

    def get_logs(self, from_block: Optional[int] = None, to_block: Optional[int] = None, **_kw):
        low = from_block if from_block is not None else 0
        high = to_block if to_block is not None else self._chain.block_number
        return [
            log for log in self._chain.logs if self._matches(log) and low <= log["blockNumber"] <= high
        ]


class MockContractEvents:
    def __init__(self, chain: MockChain, address: str):
        self._chain = chain
        self._address = address

    def __getattr__(self, name: str) -> Callable[[], MockEvent]:
        return lambda: MockEvent(self._chain, self._address, name)


class MockContract:
    """Contract instance returned by ``MockEth.contract``."""

    def __init__(self, eth: "MockEth", impl: Any):
        self.address = impl.address
        self.functions = MockContractFunctions(eth, impl)
        self.events = MockContractEvents(eth.chain, impl.address)


class MockAccountModule:
    """Stands in for ``web3.eth.account``: signs by remembering the transaction."""

    def __init__(self, eth: "MockEth"):
        self._eth = eth

    def sign_transaction(self, transaction: dict[str, Any], private_key: Any):
        sender = Account.from_key(private_key).address
        if "from" in transaction and _addr(transaction["from"]) != sender:
            raise ValueError("from field must match key's address")
        raw = self._eth.register_signed(transaction, sender)
        return SimpleNamespace(raw_transaction=raw, hash=HexBytes(Web3.keccak(raw)))

    def sign_message(self, signable, private_key):
        return Account.sign_message(signable, private_key=private_key)


class MockEth:
    """Mock ``web3.eth`` module."""

    def __init__(self, chain: MockChain, contracts: dict[str, Any]):
        self.chain = chain
        self.gas_price = 1_000_000_000
        self.account = MockAccountModule(self)
        self._contracts = contracts
        self._calls: dict[str, tuple[Any, str, tuple]] = {}
        self._signed: dict[bytes, tuple[dict[str, Any], str]] = {}
        self._counter = itertools.count(1)

    @property
    def chain_id(self) -> int:
        return self.chain.chain_id

    @property
    def block_number(self) -> int:
        return self.chain.block_number

    def contract(self, address: str, abi: list) -> MockContract:
        impl = self._contracts.get(_addr(address))
        if impl is None:
            impl = MockERC20(self.chain, _addr(address))
            self._contracts[_addr(address)] = impl
        return MockContract(self, impl)

    def register_call(self, impl: Any, name: str, args: tuple) -> str:
        data = "0x" + next(self._counter).to_bytes(8, "big").hex()
        self._calls[data] = (impl, name, args)
        return data

    def register_signed(self, transaction: dict[str, Any], sender: str) -> HexBytes:
        raw = HexBytes(b"\x02" + next(self._counter).to_bytes(31, "big"))
        self._signed[bytes(raw)] = (dict(transaction), sender)
        return raw

    def get_transaction_count(self, address: str, block_identifier: Any = None) -> int:
        return self.chain.next_nonce(address)

    def get_balance(self, address: str, block_identifier: Any = None) -> int:
        return self.chain.balances.get(_addr(address), 0)

    def send_raw_transaction(self, raw: bytes) -> HexBytes:
        tx, sender = self._signed.pop(bytes(raw))
        value = tx.get("value", 0)
        events: list[dict[str, Any]] = []

        call = self._calls.pop(tx.get("data", ""), None)
        if call is not None:
            impl, name, args = call
            events = getattr(impl, f"tx_{name}")(sender, *args)
        else:
            self.chain.check_recipient(tx["to"])

        if value:
            if self.chain.balances.get(sender, 0) < value:
                raise ValueError("insufficient funds for transfer")
            self.chain.balances[sender] -= value
            self.chain.fund(tx["to"], value)

        tx_hash = bytes(Web3.keccak(bytes(raw)))
        self.chain.bump_nonce(sender)
        self.chain.mine(tx_hash, dict(tx, **{"from": sender}), events)
        return HexBytes(tx_hash)

    def wait_for_transaction_receipt(self, tx_hash: bytes, timeout: float = 120, poll_latency: float = 0.1):
        return self.get_transaction_receipt(tx_hash)

    def get_transaction_receipt(self, tx_hash: Any) -> dict[str, Any]:
        receipt = self.chain.receipts.get(bytes(HexBytes(tx_hash)))
        if receipt is None:
            raise TransactionNotFound(f"Transaction {tx_hash} not found")
        return receipt

    def get_transaction(self, tx_hash: Any) -> dict[str, Any]:
        tx = self.chain.transactions.get(bytes(HexBytes(tx_hash)))
        if tx is None:
            raise TransactionNotFound(f"Transaction {tx_hash} not found")
        return tx


class MockWeb3:
    """Mock Web3 instance wired to the three registries and a USDC token."""

    def __init__(
        self,
        identity_address: str,
        reputation_address: str,
        validation_address: str,
        usdc_address: Optional[str] = None,
        chain_id: int = 84532,
    ):
        self.chain = MockChain(chain_id=chain_id)
        self.identity = MockIdentityRegistry(self.chain, _addr(identity_address))
        self.reputation = MockReputationRegistry(
            self.chain, _addr(reputation_address), self.identity
        )
        self.validation = MockValidationRegistry(
            self.chain, _addr(validation_address), self.identity
        )
        contracts: dict[str, Any] = {
            self.identity.address: self.identity,
            self.reputation.address: self.reputation,
            self.validation.address: self.validation,
        }
        self.usdc: Optional[MockERC20] = None
        if usdc_address and int(usdc_address, 16) != 0:
            self.usdc = MockERC20(self.chain, _addr(usdc_address))
            contracts[self.usdc.address] = self.usdc
        self.eth = MockEth(self.chain, contracts)

    @classmethod
    def for_network(cls, network_info) -> "MockWeb3":
        """Build a mock chain using a NetworkInfo's addresses and chain id."""
        return cls(
            identity_address=network_info.contracts.identity,
            reputation_address=network_info.contracts.reputation,
            validation_address=network_info.contracts.validation,
            usdc_address=network_info.usdc_address,
            chain_id=network_info.chain_id,
        )

    def is_connected(self) -> bool:
        return True

    @staticmethod
    def to_checksum_address(address: str) -> str:
        return _addr(address)

