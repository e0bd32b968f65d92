# operations of the blockchain.info websocket feed (wss://ws.blockchain.info/inv)

import json

import stringcase


class Message:
    """Generic message that accepts visitors and dispatches their processing."""

    class VisitorMethodNotImplemented(Exception):
        """Custom handling to report if visitor method is missing"""

        def __init__(self, method_name):
            self.method_name = method_name

        def __str__(self):
            return self.method_name

    class MalformedMessage(Exception):
        """Frame that is not a JSON object with an 'op' field"""

    op = None

    def accept(self, visitor):
        """Call visitor method based on the actual message type."""
        method_name = "visit_{}".format(stringcase.snakecase(type(self).__name__))

        try:
            visit_method = getattr(visitor, method_name)
        except AttributeError:
            raise self.VisitorMethodNotImplemented(method_name)

        visit_method(self)

    def _format(self, content):
        return "{}({})".format(type(self).__name__, content)

    def __str__(self):
        return self._format("op={}".format(self.op))

    def to_dict(self):
        return {"op": self.op}

    def to_json(self):
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @staticmethod
    def from_json(raw):
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise Message.MalformedMessage("cannot decode frame: {}".format(e))
        if not isinstance(data, dict) or not isinstance(data.get("op"), str):
            raise Message.MalformedMessage("frame without op: {!r}".format(raw))

        msg_class = msg_op_class_map.get(data["op"])
        if msg_class is None:
            return UnknownMessage(data["op"], data)
        return msg_class.from_dict(data)

    @classmethod
    def from_dict(cls, data):
        return cls()


# Subscribes to notifications about new blocks
class BlocksSubscribe(Message):
    op = "blocks_sub"


# Keeps the session alive, answered with a Pong
class Ping(Message):
    op = "ping"


class Pong(Message):
    op = "pong"


# Notification about a block that has just been found by the network.
# Numeric fields are integers, hashes are big-endian (display order) hex.
class NewBlock(Message):
    op = "block"

    def __init__(self, hash, time, version, bits, merkle_root, height=None):
        self.hash = hash
        self.time = time
        self.version = version
        self.bits = bits
        self.merkle_root = merkle_root
        self.height = height
        super().__init__()

    def __str__(self):
        return self._format(
            "hash={}, height={}, time={}, version={}, bits={}, merkle_root={}".format(
                self.hash,
                self.height,
                self.time,
                self.version,
                self.bits,
                self.merkle_root,
            )
        )

    @classmethod
    def from_dict(cls, data):
        x = data.get("x")
        if not isinstance(x, dict):
            raise Message.MalformedMessage("block notification without payload")
        return cls(
            hash=x.get("hash"),
            time=x.get("time"),
            version=x.get("version"),
            bits=x.get("bits"),
            merkle_root=x.get("mrklRoot"),
            height=x.get("height"),
        )

    def to_dict(self):
        return {
            "op": self.op,
            "x": {
                "hash": self.hash,
                "time": self.time,
                "version": self.version,
                "bits": self.bits,
                "mrklRoot": self.merkle_root,
                "height": self.height,
            },
        }


# Any operation the miner has no use for (e.g. unconfirmed transactions)
class UnknownMessage(Message):
    def __init__(self, op, payload):
        self.op = op
        self.payload = payload
        super().__init__()


msg_op_class_map = {
    BlocksSubscribe.op: BlocksSubscribe,
    Ping.op: Ping,
    Pong.op: Pong,
    NewBlock.op: NewBlock,
}
