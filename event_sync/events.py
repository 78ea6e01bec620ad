"""
Bounty Event ABI and Decoding.

Wire contract with the log source. Indexed addresses are read from
topics[1..2]; every other field is ABI-decoded from the log data.

    BountyCreated(address indexed bountyAddress, address indexed creator,
                  bytes32 titleHash, uint8 proofType, uint256 rewardAmount,
                  uint64 deadline)
    BountyClaimed(address indexed bountyAddress, address indexed executor,
                  uint256 payout)
    BountyWithdrawn(address indexed bountyAddress, address indexed creator,
                    uint256 amount)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from eth_abi import decode as abi_decode, encode as abi_encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak

from onchain_adapters.models import LogEntry
from event_sync.exceptions import EventDecodeError


def event_topic(signature: str) -> str:
    """topic0 for a canonical event signature."""
    return "0x" + keccak(text=signature).hex()


class EventKind(Enum):
    """The three ingested event kinds, in processing order."""
    CREATED = "created"
    CLAIMED = "claimed"
    WITHDRAWN = "withdrawn"

    @property
    def signature(self) -> str:
        return _SIGNATURES[self]

    @property
    def topic0(self) -> str:
        return _TOPICS[self]

    @property
    def event_name(self) -> str:
        return self.signature.split("(", 1)[0]


_SIGNATURES = {
    EventKind.CREATED: "BountyCreated(address,address,bytes32,uint8,uint256,uint64)",
    EventKind.CLAIMED: "BountyClaimed(address,address,uint256)",
    EventKind.WITHDRAWN: "BountyWithdrawn(address,address,uint256)",
}

_TOPICS = {kind: event_topic(sig) for kind, sig in _SIGNATURES.items()}

# Non-indexed fields carried in log data
_DATA_TYPES = {
    EventKind.CREATED: ["bytes32", "uint8", "uint256", "uint64"],
    EventKind.CLAIMED: ["uint256"],
    EventKind.WITHDRAWN: ["uint256"],
}

# Fixed processing order within a cycle
EVENT_ORDER = (EventKind.CREATED, EventKind.CLAIMED, EventKind.WITHDRAWN)


# =============================================================
# DECODED EVENTS
# =============================================================

@dataclass(frozen=True)
class BountyCreated:
    bounty_address: str
    creator: str
    title_hash: str
    proof_type: int
    reward_amount: str
    deadline: int
    block_number: int
    tx_hash: str
    log_index: int

    def to_row(self) -> dict[str, Any]:
        return {
            "address": self.bounty_address,
            "creator": self.creator,
            "title_hash": self.title_hash,
            "proof_type": self.proof_type,
            "reward_amount": self.reward_amount,
            "deadline": self.deadline,
            "block_number": self.block_number,
            "tx_hash": self.tx_hash,
        }


@dataclass(frozen=True)
class BountyClaimed:
    bounty_address: str
    executor: str
    payout: str
    block_number: int
    tx_hash: str
    log_index: int

    def to_row(self) -> dict[str, Any]:
        return {
            "bounty_address": self.bounty_address,
            "executor": self.executor,
            "payout": self.payout,
            "block_number": self.block_number,
            "tx_hash": self.tx_hash,
        }


@dataclass(frozen=True)
class BountyWithdrawn:
    bounty_address: str
    creator: str
    amount: str
    block_number: int
    tx_hash: str
    log_index: int

    def to_row(self) -> dict[str, Any]:
        return {
            "bounty_address": self.bounty_address,
            "creator": self.creator,
            "amount": self.amount,
            "block_number": self.block_number,
            "tx_hash": self.tx_hash,
            "log_index": self.log_index,
        }


DecodedEvent = Union[BountyCreated, BountyClaimed, BountyWithdrawn]


# =============================================================
# DECODING
# =============================================================

def _hex_to_bytes(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


def topic_to_address(topic: str) -> str:
    """Indexed address topic (32 bytes, left-padded) to lower-case address."""
    raw = topic[2:] if topic.startswith("0x") else topic
    if len(raw) != 64:
        raise ValueError(f"address topic must be 32 bytes, got {len(raw) // 2}")
    return "0x" + raw[-40:].lower()


def has_event_layout(kind: EventKind, log: LogEntry) -> bool:
    """
    True if a log can be this event: topic0 plus two indexed
    topics, and one 32-byte word per non-indexed field.

    A contract declaring the same signature with other fields
    indexed shares topic0 but fails this check.
    """
    if len(log.topics) != 3 or log.topics[0] != kind.topic0:
        return False
    data = log.data[2:] if log.data.startswith("0x") else log.data
    return len(data) == 64 * len(_DATA_TYPES[kind])


def decode_log(kind: EventKind, log: LogEntry) -> DecodedEvent:
    """
    Decode a raw log of the given kind.

    Amounts come back as decimal strings; addresses lower-cased.

    Raises:
        EventDecodeError: wrong topic0, missing topics or bad data
    """
    if not log.topics or log.topics[0] != kind.topic0:
        raise EventDecodeError(
            f"topic0 does not match {kind.event_name}",
            event_name=kind.event_name,
            tx_hash=log.tx_hash,
            log_index=log.log_index,
        )
    if len(log.topics) < 3:
        raise EventDecodeError(
            f"{kind.event_name} expects 2 indexed topics, got {len(log.topics) - 1}",
            event_name=kind.event_name,
            tx_hash=log.tx_hash,
            log_index=log.log_index,
        )

    try:
        first = topic_to_address(log.topics[1])
        second = topic_to_address(log.topics[2])
        values = abi_decode(_DATA_TYPES[kind], _hex_to_bytes(log.data))
    except (DecodingError, ValueError) as e:
        raise EventDecodeError(
            f"cannot decode {kind.event_name}: {e}",
            event_name=kind.event_name,
            tx_hash=log.tx_hash,
            log_index=log.log_index,
        ) from e

    if kind is EventKind.CREATED:
        title_hash, proof_type, reward_amount, deadline = values
        return BountyCreated(
            bounty_address=first,
            creator=second,
            title_hash="0x" + title_hash.hex(),
            proof_type=int(proof_type),
            reward_amount=str(reward_amount),
            deadline=int(deadline),
            block_number=log.block_number,
            tx_hash=log.tx_hash,
            log_index=log.log_index,
        )

    if kind is EventKind.CLAIMED:
        (payout,) = values
        return BountyClaimed(
            bounty_address=first,
            executor=second,
            payout=str(payout),
            block_number=log.block_number,
            tx_hash=log.tx_hash,
            log_index=log.log_index,
        )

    (amount,) = values
    return BountyWithdrawn(
        bounty_address=first,
        creator=second,
        amount=str(amount),
        block_number=log.block_number,
        tx_hash=log.tx_hash,
        log_index=log.log_index,
    )


# =============================================================
# ENCODING (test fixtures, local tooling)
# =============================================================

def address_topic(address: str) -> str:
    """Left-pad an address into a 32-byte topic."""
    raw = address[2:] if address.startswith("0x") else address
    return "0x" + raw.lower().rjust(64, "0")


def encode_log_data(kind: EventKind, *values: Any) -> str:
    """ABI-encode the non-indexed fields of an event."""
    return "0x" + abi_encode(_DATA_TYPES[kind], list(values)).hex()
