"""Block templates and the store that hands them over to the search loop"""
import copy
import threading

import tipminer.coins as coins
import tipminer.mining_params as mining_params
from tipminer.errors import FieldOverflow, IncompleteTemplate
from tipminer.message_types import field_to_wire, reverse_hex


class BlockTemplate:
    """Unit of work for the search loop.

    All header fields are kept in header byte order (reversed with respect to
    the display order of the feed), ready to be concatenated. A template is
    never modified once built, newer templates replace it.
    """

    field_widths = {
        "version": 4,
        "previous_block_hash": 32,
        "merkle_root": 32,
        "timestamp": 4,
        "bits": 4,
    }
    header_fields = tuple(field_widths)

    def __init__(
        self,
        hash: bytes = None,
        version: bytes = None,
        previous_block_hash: bytes = None,
        merkle_root: bytes = None,
        timestamp: bytes = None,
        bits: bytes = None,
        target: coins.Target = None,
    ):
        """
        :param hash: network supplied hash of the block this template was built
         from, it becomes previous_block_hash of the next template
        :param target: decoded from bits once, reused for every nonce
        """
        self.hash = hash
        self.version = version
        self.previous_block_hash = previous_block_hash
        self.merkle_root = merkle_root
        self.timestamp = timestamp
        self.bits = bits
        self.target = target

    @staticmethod
    def from_tip(tip_hash: str):
        """Initial template, only the chain tip is known at this point"""
        return BlockTemplate(hash=reverse_hex(tip_hash.strip(), 32, "hash"))

    @staticmethod
    def from_notification(msg, previous=None):
        """Builds a complete template out of a new block notification.

        :param msg: NewBlock message
        :param previous: template being replaced, provides the chain link
        :raises TemplateError: when any of the fields is malformed, in which case
         no template is produced at all
        """
        bits = field_to_wire(msg.bits, 4, "bits")
        target = coins.Target.from_bits(
            int.from_bytes(bits, byteorder="little"), mining_params.diff_1_target
        )
        return BlockTemplate(
            hash=field_to_wire(msg.hash, 32, "hash"),
            version=field_to_wire(msg.version, 4, "version"),
            previous_block_hash=previous.hash if previous is not None else None,
            merkle_root=field_to_wire(msg.merkle_root, 32, "merkle_root"),
            timestamp=field_to_wire(msg.time, 4, "time"),
            bits=bits,
            target=target,
        )

    def missing_fields(self):
        missing = [name for name in self.header_fields if getattr(self, name) is None]
        if self.target is None:
            missing.append("target")
        return missing

    def is_complete(self):
        return not self.missing_fields()

    def ensure_complete(self):
        """
        :raises IncompleteTemplate: some field has not been set yet
        :raises FieldOverflow: some field does not have its header width
        """
        missing = self.missing_fields()
        if missing:
            raise IncompleteTemplate(missing)
        for name, width in self.field_widths.items():
            if len(getattr(self, name)) != width:
                raise FieldOverflow(
                    "{}: expected {} bytes, got {}".format(
                        name, width, len(getattr(self, name))
                    )
                )

    @property
    def block_hash_hex(self):
        return self.hash[::-1].hex() if self.hash is not None else None

    def _format(self, content):
        return "{}({})".format(type(self).__name__, content)

    def __str__(self):
        return self._format(
            "hash={}, complete={}, target={}".format(
                self.block_hash_hex, self.is_complete(), self.target
            )
        )


class TemplateStore:
    """Single slot holding the current block template.

    The producer replaces the template wholesale, consumers take copies. The
    lock is held only for the copy or the swap, never while hashing.
    """

    def __init__(self, initial: BlockTemplate = None):
        self._cond = threading.Condition()
        self._template = initial
        self._generation = 0

    @property
    def generation(self):
        return self._generation

    def replace(self, template: BlockTemplate):
        with self._cond:
            self._template = template
            self._generation += 1
            self._cond.notify_all()

    def snapshot(self):
        with self._cond:
            return copy.copy(self._template)

    def checkout(self):
        """Snapshot of the template together with its generation"""
        with self._cond:
            return copy.copy(self._template), self._generation

    def is_current(self, generation: int) -> bool:
        # lock-free, called before every nonce attempt
        return self._generation == generation

    def wait_for_change(
        self, generation: int, timeout: float = None, cancelled: threading.Event = None
    ) -> bool:
        """Blocks until a template newer than generation arrives.

        :param cancelled: optional event that ends the wait early, it is checked
         whenever the store is notified
        :return True when the store changed, False on timeout or cancellation
        """
        with self._cond:
            self._cond.wait_for(
                lambda: self._generation != generation
                or (cancelled is not None and cancelled.is_set()),
                timeout=timeout,
            )
            return self._generation != generation

    def notify(self):
        """Wakes up waiters without changing the template"""
        with self._cond:
            self._cond.notify_all()
