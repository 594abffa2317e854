"""
Static caching policy for contract reads.

Every supported view function is a member of :class:`ContractFunction` and has
exactly one :class:`FunctionPolicy` entry describing its TTL, the query
parameters it consumes (in the positional order the contract expects) and its
ABI outputs. Monitored on-chain events and the cached functions they stale
live here as well, so the request path and the event monitor share one table.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional
from urllib.parse import quote

from web3 import Web3

from cache_api.core.exceptions.errors import UnsupportedFunctionError

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR


class ContractFunction(str, Enum):
    # Standard ERC721
    NAME = "name"
    SYMBOL = "symbol"
    TOTAL_SUPPLY = "totalSupply"
    BALANCE_OF = "balanceOf"
    OWNER_OF = "ownerOf"
    GET_APPROVED = "getApproved"
    IS_APPROVED_FOR_ALL = "isApprovedForAll"
    TOKEN_URI = "tokenURI"
    TOKEN_BY_INDEX = "tokenByIndex"
    TOKEN_OF_OWNER_BY_INDEX = "tokenOfOwnerByIndex"
    SUPPORTS_INTERFACE = "supportsInterface"

    # Collection contract, no parameters
    INVERSE_BASIS_POINT = "INVERSE_BASIS_POINT"
    LAST_ID = "_lastId"
    MAX_FEE_RATE = "_maxFeeRate"
    MINT_FEE = "_mintFee"
    CONTRACT_OWNER = "_owner"
    TOTAL_BURNED_VAR = "_totalBurned"
    GET_CREATOR_COUNT = "getCreatorCount"
    GET_CREATORS = "getCreators"
    GET_TOTAL_BURNED = "getTotalBurned"

    # Collection contract, with parameters
    IMPORTERS = "_importers"
    ORIGINAL_TOKEN_INFO = "_originalTokenInfo"
    SBT_FLAG = "_sbtFlag"
    TOTAL_DONATIONS = "_totalDonations"
    GET_CREATOR_NAME = "getCreatorName"
    GET_CREATOR_TOKEN_COUNT = "getCreatorTokenCount"
    GET_CREATOR_TOKENS = "getCreatorTokens"
    GET_TOKEN_CREATOR = "getTokenCreator"
    ROYALTIES = "royalties"
    ROYALTY_INFO = "royaltyInfo"

    # Token-bound account
    OWNER = "owner"
    TOKEN = "token"
    NONCE = "nonce"
    IS_VALID_SIGNATURE = "isValidSignature"

    # Token-bound account registry
    ACCOUNT = "account"


@dataclass(frozen=True)
class Param:
    query_name: str
    abi_type: str


@dataclass(frozen=True)
class FunctionPolicy:
    function: ContractFunction
    ttl_seconds: int
    params: tuple[Param, ...] = ()
    outputs: tuple[tuple[str, str], ...] = ()

    @property
    def name(self) -> str:
        return self.function.value

    def abi(self) -> dict[str, Any]:
        return {
            "type": "function",
            "name": self.name,
            "stateMutability": "view",
            "inputs": [{"name": p.query_name, "type": p.abi_type} for p in self.params],
            "outputs": [{"name": n, "type": t} for n, t in self.outputs],
        }


TOKEN_ID = Param("tokenId", "uint256")
ADDRESS = Param("address", "address")


def _policy(function, ttl, params=(), outputs=()):
    # outputs given as bare types are unnamed
    outputs = tuple(o if isinstance(o, tuple) else ("", o) for o in outputs)
    return FunctionPolicy(function, ttl, tuple(params), outputs)


F = ContractFunction

POLICY_TABLE: dict[ContractFunction, FunctionPolicy] = {
    p.function: p
    for p in (
        _policy(F.NAME, DAY, outputs=["string"]),
        _policy(F.SYMBOL, DAY, outputs=["string"]),
        _policy(F.TOTAL_SUPPLY, 5 * MINUTE, outputs=["uint256"]),
        _policy(F.BALANCE_OF, MINUTE, [ADDRESS], ["uint256"]),
        _policy(F.OWNER_OF, 5 * MINUTE, [TOKEN_ID], ["address"]),
        _policy(F.GET_APPROVED, 5 * MINUTE, [TOKEN_ID], ["address"]),
        _policy(
            F.IS_APPROVED_FOR_ALL,
            5 * MINUTE,
            [Param("owner", "address"), Param("operator", "address")],
            ["bool"],
        ),
        _policy(F.TOKEN_URI, HOUR, [TOKEN_ID], ["string"]),
        _policy(F.TOKEN_BY_INDEX, 5 * MINUTE, [TOKEN_ID], ["uint256"]),
        _policy(
            F.TOKEN_OF_OWNER_BY_INDEX,
            MINUTE,
            [Param("owner", "address"), Param("index", "uint256")],
            ["uint256"],
        ),
        _policy(
            F.SUPPORTS_INTERFACE, DAY, [Param("interfaceId", "bytes4")], ["bool"]
        ),
        _policy(F.INVERSE_BASIS_POINT, DAY, outputs=["uint16"]),
        _policy(F.LAST_ID, MINUTE, outputs=["uint256"]),
        _policy(F.MAX_FEE_RATE, HOUR, outputs=["uint256"]),
        _policy(F.MINT_FEE, HOUR, outputs=["uint256"]),
        _policy(F.CONTRACT_OWNER, HOUR, outputs=["address"]),
        _policy(F.TOTAL_BURNED_VAR, 5 * MINUTE, outputs=["uint256"]),
        _policy(F.GET_CREATOR_COUNT, 5 * MINUTE, outputs=["uint256"]),
        _policy(F.GET_CREATORS, 5 * MINUTE, outputs=["address[]"]),
        _policy(F.GET_TOTAL_BURNED, 5 * MINUTE, outputs=["uint256"]),
        _policy(F.IMPORTERS, HOUR, [ADDRESS], ["bool"]),
        _policy(F.ORIGINAL_TOKEN_INFO, HOUR, [TOKEN_ID], ["string"]),
        _policy(F.SBT_FLAG, HOUR, [TOKEN_ID], ["bool"]),
        _policy(F.TOTAL_DONATIONS, 5 * MINUTE, [ADDRESS], ["uint256"]),
        _policy(F.GET_CREATOR_NAME, HOUR, [ADDRESS], ["string"]),
        _policy(F.GET_CREATOR_TOKEN_COUNT, 5 * MINUTE, [ADDRESS], ["uint256"]),
        _policy(F.GET_CREATOR_TOKENS, 5 * MINUTE, [ADDRESS], ["uint256[]"]),
        _policy(F.GET_TOKEN_CREATOR, DAY, [TOKEN_ID], ["address"]),
        _policy(
            F.ROYALTIES,
            DAY,
            [TOKEN_ID],
            [("recipient", "address"), ("feeRate", "uint16")],
        ),
        _policy(
            F.ROYALTY_INFO,
            DAY,
            [TOKEN_ID, Param("salePrice", "uint256")],
            [("receiver", "address"), ("royaltyAmount", "uint256")],
        ),
        _policy(F.OWNER, 5 * MINUTE, outputs=["address"]),
        _policy(
            F.TOKEN,
            DAY,
            outputs=[
                ("chainId", "uint256"),
                ("tokenContract", "address"),
                ("tokenId", "uint256"),
            ],
        ),
        _policy(F.NONCE, MINUTE, outputs=["uint256"]),
        _policy(
            F.IS_VALID_SIGNATURE,
            5 * MINUTE,
            [Param("hash", "bytes32"), Param("signature", "bytes")],
            ["bytes4"],
        ),
        _policy(
            F.ACCOUNT,
            DAY,
            [
                Param("implementation", "address"),
                Param("chainId", "uint256"),
                Param("tokenContract", "address"),
                TOKEN_ID,
                Param("salt", "uint256"),
            ],
            ["address"],
        ),
    )
}

SUPPORTED_FUNCTIONS = frozenset(f.value for f in POLICY_TABLE)


def lookup(function_name: str) -> FunctionPolicy:
    """Return the policy for ``function_name`` or raise UnsupportedFunctionError."""
    try:
        return POLICY_TABLE[ContractFunction(function_name)]
    except ValueError:
        raise UnsupportedFunctionError(
            f"Unsupported function: {function_name}"
        ) from None


def ttl_for(function_name: str) -> int:
    return lookup(function_name).ttl_seconds


def extract_parameters(function_name: str, query: Mapping[str, str]) -> list[str]:
    """Pull the function's parameters out of ``query`` in positional order.

    Returns an empty list when any required field is absent or empty.
    """
    policy = lookup(function_name)
    values = [query.get(p.query_name) for p in policy.params]
    if not all(values):
        return []
    return [str(v) for v in values]


def build_key(
    chain_id: str, contract_address: str, function_name: str, parameters: list[str]
) -> str:
    parts = [str(chain_id), contract_address.lower(), function_name]
    parts.extend(quote(str(p), safe="") for p in parameters)
    return ":".join(parts)


class MonitoredEvent(str, Enum):
    TRANSFER = "Transfer"
    APPROVAL = "Approval"
    APPROVAL_FOR_ALL = "ApprovalForAll"
    OWNERSHIP_TRANSFERRED = "OwnershipTransferred"

    @property
    def signature(self) -> str:
        return EVENT_SIGNATURES[self]

    @property
    def topic(self) -> str:
        return EVENT_TOPICS[self]


EVENT_SIGNATURES: dict[MonitoredEvent, str] = {
    MonitoredEvent.TRANSFER: "Transfer(address,address,uint256)",
    MonitoredEvent.APPROVAL: "Approval(address,address,uint256)",
    MonitoredEvent.APPROVAL_FOR_ALL: "ApprovalForAll(address,address,bool)",
    MonitoredEvent.OWNERSHIP_TRANSFERRED: "OwnershipTransferred(address,address)",
}

EVENT_TOPICS: dict[MonitoredEvent, str] = {
    event: Web3.to_hex(Web3.keccak(text=sig)).lower()
    for event, sig in EVENT_SIGNATURES.items()
}

INVALIDATION_TARGETS: dict[MonitoredEvent, frozenset[ContractFunction]] = {
    MonitoredEvent.TRANSFER: frozenset({F.OWNER_OF, F.BALANCE_OF, F.TOTAL_SUPPLY}),
    MonitoredEvent.APPROVAL: frozenset({F.GET_APPROVED}),
    MonitoredEvent.APPROVAL_FOR_ALL: frozenset({F.IS_APPROVED_FOR_ALL}),
    MonitoredEvent.OWNERSHIP_TRANSFERRED: frozenset({F.OWNER, F.CONTRACT_OWNER}),
}


def invalidation_targets(event: MonitoredEvent | str) -> frozenset[ContractFunction]:
    return INVALIDATION_TARGETS[MonitoredEvent(event)]


def topic_hex(topic: Any) -> str:
    if isinstance(topic, str):
        topic = topic if topic.startswith("0x") else "0x" + topic
        return topic.lower()
    return Web3.to_hex(topic).lower()


_EVENTS_BY_TOPIC = {topic: event for event, topic in EVENT_TOPICS.items()}


def classify_log(log: Mapping[str, Any]) -> Optional[MonitoredEvent]:
    """Match a raw log's topic0 against the monitored event signatures."""
    topics = log.get("topics") or []
    if not topics:
        return None
    try:
        return _EVENTS_BY_TOPIC.get(topic_hex(topics[0]))
    except (TypeError, ValueError):
        return None
