"""ABIs for the ERC-8004 v1.0 registries and ERC-20 tokens."""

from typing import Any


def _param(name: str, type_: str, indexed: bool | None = None) -> dict[str, Any]:
    param: dict[str, Any] = {"name": name, "type": type_}
    if indexed is not None:
        param["indexed"] = indexed
    return param


def _function(
    name: str,
    inputs: list[tuple[str, str]],
    outputs: list[tuple[str, str]],
    mutability: str = "view",
) -> dict[str, Any]:
    return {
        "inputs": [_param(n, t) for n, t in inputs],
        "name": name,
        "outputs": [_param(n, t) for n, t in outputs],
        "stateMutability": mutability,
        "type": "function",
    }


def _event(name: str, inputs: list[tuple[str, str, bool]]) -> dict[str, Any]:
    return {
        "anonymous": False,
        "inputs": [_param(n, t, i) for n, t, i in inputs],
        "name": name,
        "type": "event",
    }


# Identity Registry (ERC-721 based)
IDENTITY_REGISTRY_ABI = [
    {
        "inputs": [
            {"name": "tokenURI_", "type": "string"},
            {
                "name": "metadata",
                "type": "tuple[]",
                "components": [
                    {"name": "key", "type": "string"},
                    {"name": "value", "type": "bytes"},
                ],
            },
        ],
        "name": "register",
        "outputs": [{"name": "agentId", "type": "uint256"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    _function("register", [("tokenURI_", "string")], [("agentId", "uint256")], "nonpayable"),
    _function("register", [], [("agentId", "uint256")], "nonpayable"),
    _function("ownerOf", [("tokenId", "uint256")], [("owner", "address")]),
    _function("balanceOf", [("owner", "address")], [("balance", "uint256")]),
    _function("tokenURI", [("tokenId", "uint256")], [("", "string")]),
    _function(
        "transferFrom",
        [("from", "address"), ("to", "address"), ("tokenId", "uint256")],
        [],
        "nonpayable",
    ),
    _function(
        "setMetadata",
        [("agentId", "uint256"), ("key", "string"), ("value", "bytes")],
        [],
        "nonpayable",
    ),
    _function("getMetadata", [("agentId", "uint256"), ("key", "string")], [("value", "bytes")]),
    _function("setAgentUri", [("agentId", "uint256"), ("newUri", "string")], [], "nonpayable"),
    _function("totalAgents", [], [("", "uint256")]),
    _event(
        "Registered",
        [("agentId", "uint256", True), ("tokenURI", "string", False), ("owner", "address", True)],
    ),
    _event(
        "MetadataSet",
        [
            ("agentId", "uint256", True),
            ("indexedKey", "string", True),
            ("key", "string", False),
            ("value", "bytes", False),
        ],
    ),
    _event(
        "Transfer",
        [("from", "address", True), ("to", "address", True), ("tokenId", "uint256", True)],
    ),
    _event(
        "UriUpdated",
        [("agentId", "uint256", True), ("newUri", "string", False), ("updatedBy", "address", True)],
    ),
]

# Reputation Registry (signature-authorized feedback)
REPUTATION_REGISTRY_ABI = [
    _function(
        "giveFeedback",
        [
            ("agentId", "uint256"),
            ("score", "uint8"),
            ("tag1", "bytes32"),
            ("tag2", "bytes32"),
            ("feedbackUri", "string"),
            ("feedbackHash", "bytes32"),
            ("feedbackAuth", "bytes"),
        ],
        [],
        "nonpayable",
    ),
    _function(
        "revokeFeedback", [("agentId", "uint256"), ("feedbackIndex", "uint64")], [], "nonpayable"
    ),
    _function(
        "appendResponse",
        [
            ("agentId", "uint256"),
            ("clientAddress", "address"),
            ("feedbackIndex", "uint64"),
            ("responseUri", "string"),
            ("responseHash", "bytes32"),
        ],
        [],
        "nonpayable",
    ),
    _function(
        "getSummary",
        [
            ("agentId", "uint256"),
            ("clientAddresses", "address[]"),
            ("tag1", "bytes32"),
            ("tag2", "bytes32"),
        ],
        [("count", "uint64"), ("averageScore", "uint8")],
    ),
    _function(
        "readFeedback",
        [("agentId", "uint256"), ("clientAddress", "address"), ("index", "uint64")],
        [("score", "uint8"), ("tag1", "bytes32"), ("tag2", "bytes32"), ("isRevoked", "bool")],
    ),
    _function(
        "readAllFeedback",
        [
            ("agentId", "uint256"),
            ("clientAddresses", "address[]"),
            ("tag1", "bytes32"),
            ("tag2", "bytes32"),
            ("includeRevoked", "bool"),
        ],
        [
            ("clients", "address[]"),
            ("scores", "uint8[]"),
            ("tag1s", "bytes32[]"),
            ("tag2s", "bytes32[]"),
            ("revokedStatuses", "bool[]"),
        ],
    ),
    _function("getClients", [("agentId", "uint256")], [("clientList", "address[]")]),
    _function(
        "getLastIndex",
        [("agentId", "uint256"), ("clientAddress", "address")],
        [("lastIndex", "uint64")],
    ),
    _function("getIdentityRegistry", [], [("registry", "address")]),
    _event(
        "NewFeedback",
        [
            ("agentId", "uint256", True),
            ("clientAddress", "address", True),
            ("score", "uint8", False),
            ("tag1", "bytes32", True),
            ("tag2", "bytes32", False),
            ("feedbackUri", "string", False),
            ("feedbackHash", "bytes32", False),
        ],
    ),
    _event(
        "FeedbackRevoked",
        [
            ("agentId", "uint256", True),
            ("clientAddress", "address", True),
            ("feedbackIndex", "uint64", True),
        ],
    ),
    _event(
        "ResponseAppended",
        [
            ("agentId", "uint256", True),
            ("clientAddress", "address", True),
            ("feedbackIndex", "uint64", False),
            ("responder", "address", True),
            ("responseUri", "string", False),
            ("responseHash", "bytes32", False),
        ],
    ),
]

# Validation Registry
VALIDATION_REGISTRY_ABI = [
    _function(
        "validationRequest",
        [
            ("validatorAddress", "address"),
            ("agentId", "uint256"),
            ("requestUri", "string"),
            ("requestHash", "bytes32"),
        ],
        [],
        "nonpayable",
    ),
    _function(
        "validationResponse",
        [
            ("requestHash", "bytes32"),
            ("response", "uint8"),
            ("responseUri", "string"),
            ("responseHash", "bytes32"),
            ("tag", "bytes32"),
        ],
        [],
        "nonpayable",
    ),
    _function(
        "getValidationStatus",
        [("requestHash", "bytes32")],
        [
            ("validatorAddress", "address"),
            ("agentId", "uint256"),
            ("response", "uint8"),
            ("responseHash", "bytes32"),
            ("tag", "bytes32"),
            ("lastUpdate", "uint256"),
        ],
    ),
    _function(
        "getSummary",
        [("agentId", "uint256"), ("validatorAddresses", "address[]"), ("tag", "bytes32")],
        [("count", "uint64"), ("avgResponse", "uint8")],
    ),
    _function("getAgentValidations", [("agentId", "uint256")], [("requestHashes", "bytes32[]")]),
    _function(
        "getValidatorRequests", [("validatorAddress", "address")], [("requestHashes", "bytes32[]")]
    ),
    _function("getIdentityRegistry", [], [("registry", "address")]),
    _event(
        "ValidationRequest",
        [
            ("validatorAddress", "address", True),
            ("agentId", "uint256", True),
            ("requestUri", "string", False),
            ("requestHash", "bytes32", True),
        ],
    ),
    _event(
        "ValidationResponse",
        [
            ("validatorAddress", "address", True),
            ("agentId", "uint256", True),
            ("requestHash", "bytes32", True),
            ("response", "uint8", False),
            ("responseUri", "string", False),
            ("responseHash", "bytes32", False),
            ("tag", "bytes32", False),
        ],
    ),
]

# ERC-20 (USDC settlement)
ERC20_ABI = [
    _function("balanceOf", [("account", "address")], [("", "uint256")]),
    _function("transfer", [("to", "address"), ("amount", "uint256")], [("", "bool")], "nonpayable"),
    _function("approve", [("spender", "address"), ("amount", "uint256")], [("", "bool")], "nonpayable"),
    _function("allowance", [("owner", "address"), ("spender", "address")], [("", "uint256")]),
    _function("decimals", [], [("", "uint8")]),
    _function("symbol", [], [("", "string")]),
    _function("name", [], [("", "string")]),
    _event("Transfer", [("from", "address", True), ("to", "address", True), ("value", "uint256", False)]),
    _event(
        "Approval",
        [("owner", "address", True), ("spender", "address", True), ("value", "uint256", False)],
    ),
]

# Events that ChaosAgent.subscribe can follow, by registry
REGISTRY_EVENTS = {
    "identity": ("Registered", "MetadataSet", "Transfer", "UriUpdated"),
    "reputation": ("NewFeedback", "FeedbackRevoked", "ResponseAppended"),
    "validation": ("ValidationRequest", "ValidationResponse"),
}
