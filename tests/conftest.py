import asyncio

import pytest
from event_bus import EventBus

from tipminer.messages import NewBlock
from tipminer.session import BlockTemplate

GENESIS_MERKLE_ROOT = "4a5e1e4baab89f3a32518a88c31bc87f618f76673e2cc77ab2127b7afdeda33b"
GENESIS_HASH = "000000000019d6689c085ae165831e934ff763ae46a2a6c172b3f1b60a8ce26f"
GENESIS_TIME = 1231006505
GENESIS_BITS = 0x1D00FFFF
GENESIS_NONCE = 2083236893

# exponent 32, about every second nonce meets it
EASY_BITS = 0x207FFFFF
# target of 1, practically impossible to meet
IMPOSSIBLE_BITS = 0x03000001


class FakeConnection:
    """Stands in for the websocket session"""

    def __init__(self, frames=(), uid="fake"):
        self.uid = uid
        self.frames = list(frames)
        self.sent = []
        self.connected = True

    async def send_msg(self, msg):
        self.sent.append(msg)

    async def receive(self):
        if not self.frames:
            self.connected = False
            return None
        return self.frames.pop(0)

    def is_connected(self):
        return self.connected


def make_template(bits=EASY_BITS, merkle_byte="11", previous=None, time=GENESIS_TIME):
    msg = NewBlock(
        hash=merkle_byte * 32,
        time=time,
        version=0x20000000,
        bits=bits,
        merkle_root=merkle_byte * 32,
    )
    if previous is None:
        previous = BlockTemplate(hash=bytes(32))
    return BlockTemplate.from_notification(msg, previous)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def run():
    return asyncio.run
