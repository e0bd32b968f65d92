"""Helper module with generic coin algorithms"""
from tipminer.errors import ArithmeticUnderflow, FieldOverflow


def hash_meets_target(raw_digest: bytes, target: bytes) -> bool:
    """Checks a raw double-sha256 digest against a big-endian target.

    The digest comes out of the hash function in header (little-endian) order
    and is reversed first. Comparing two 32 byte strings compares them byte by
    byte from the most significant end, stopping at the first difference.
    A digest equal to the target is accepted.
    """
    return raw_digest[::-1] <= target


class Target:
    def __init__(self, target: int, diff_1_target: int, bits: int = None):
        self.target = target
        self.diff_1_target = diff_1_target
        self.bits = bits
        self._target_bytes = None

    @staticmethod
    def from_bits(bits: int, diff_1_target: int):
        """Decodes the compact 'bits' representation used in block headers.

        The most significant byte is an exponent, the remaining 3 bytes are a
        coefficient, target = coefficient * 256 ** (exponent - 3). Serialized on
        32 bytes the coefficient lands at byte offset 32 - exponent.
        """
        if type(bits) is not int or not 0 <= bits < 2 ** 32:
            raise FieldOverflow("bits: {!r} is not a 32 bit value".format(bits))

        exponent = bits >> 24
        coefficient = bits & 0xFFFFFF
        if exponent < 3:
            raise ArithmeticUnderflow(
                "bits: exponent {} of {:08x} is below 3".format(exponent, bits)
            )
        if exponent > 32:
            raise FieldOverflow(
                "bits: exponent {} of {:08x} exceeds 32 bytes".format(exponent, bits)
            )

        return Target(coefficient << (8 * (exponent - 3)), diff_1_target, bits)

    def to_difficulty(self):
        """Converts target to difficulty at the network specified by diff_1_target"""
        return self.diff_1_target // self.target

    @staticmethod
    def from_difficulty(diff, diff_1_target):
        """Converts difficulty to target at the network specified by diff_1_target"""
        return Target(diff_1_target // diff, diff_1_target)

    def to_bytes(self):
        """32 byte big-endian magnitude, computed once"""
        if self._target_bytes is None:
            self._target_bytes = self.target.to_bytes(32, byteorder="big")
        return self._target_bytes

    def is_met_by(self, raw_digest: bytes) -> bool:
        return hash_meets_target(raw_digest, self.to_bytes())

    def __str__(self):
        return "{}(diff={}, target={})".format(
            type(self).__name__,
            self.to_difficulty() if self.target else "inf",
            self.to_bytes().hex(),
        )
