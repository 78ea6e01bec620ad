"""
Shared fixtures.

Every test gets a fresh in-memory SQLite store and a scripted chain.
No test touches the network.
"""

import pytest

from database.engine import (
    create_database_engine,
    get_session_factory,
    initialize_database,
    reset_engine,
)
from onchain_adapters.providers.mock import MockConfig, MockLogSource
from event_sync.events import EventKind, address_topic, encode_log_data


# ============================================================
# STORE
# ============================================================

@pytest.fixture
def engine():
    """Fresh in-memory store with all tables."""
    engine = create_database_engine("sqlite://")
    initialize_database(engine)
    yield engine
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


# ============================================================
# CHAIN
# ============================================================

class ChainScript:
    """Writes well-formed bounty logs onto a MockLogSource."""

    FACTORY = "0x" + "f" * 40
    BOUNTY_A = "0x" + "a" * 40
    BOUNTY_B = "0x" + "b" * 40
    CREATOR = "0x" + "c" * 40
    EXECUTOR = "0x" + "e" * 40
    EXECUTOR_2 = "0x" + "d" * 40
    TITLE_HASH = "0x" + "12" * 32

    def __init__(self, chain: MockLogSource):
        self.chain = chain

    def created(self, bounty=BOUNTY_A, block=100, creator=CREATOR,
                reward=10**18, deadline=1_900_000_000, proof_type=0,
                emitter=FACTORY, **kwargs):
        return self.chain.add_log(
            address=emitter,
            topics=[EventKind.CREATED.topic0, address_topic(bounty), address_topic(creator)],
            data=encode_log_data(
                EventKind.CREATED,
                bytes.fromhex(self.TITLE_HASH[2:]), proof_type, reward, deadline,
            ),
            block_number=block,
            **kwargs,
        )

    def claimed(self, bounty=BOUNTY_A, block=105, executor=EXECUTOR,
                payout=5 * 10**17, **kwargs):
        return self.chain.add_log(
            address=bounty,
            topics=[EventKind.CLAIMED.topic0, address_topic(bounty), address_topic(executor)],
            data=encode_log_data(EventKind.CLAIMED, payout),
            block_number=block,
            **kwargs,
        )

    def withdrawn(self, bounty=BOUNTY_A, block=110, creator=CREATOR,
                  amount=5 * 10**17, **kwargs):
        return self.chain.add_log(
            address=bounty,
            topics=[EventKind.WITHDRAWN.topic0, address_topic(bounty), address_topic(creator)],
            data=encode_log_data(EventKind.WITHDRAWN, amount),
            block_number=block,
            **kwargs,
        )


@pytest.fixture
def chain():
    """Scripted chain with no provider range cap."""
    return MockLogSource(MockConfig(initial_height=0))


@pytest.fixture
def script(chain):
    return ChainScript(chain)
