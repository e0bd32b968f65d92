"""Header field encodings.

Block explorers and the notification feed display hashes and numbers
big-endian, while the header that gets hashed carries every field in the
reverse (little-endian) order. Each field is reversed on its own before the
header is concatenated.
"""
import binascii

from tipminer.errors import FieldOverflow, MalformedHexInput


def reverse_bytes(data: bytes) -> bytes:
    return bytes(data[::-1])


def hex_to_bytes(hex_str: str, length: int = None, field: str = "hex") -> bytes:
    """Strictly decodes a hex string.

    :param length: expected number of decoded bytes, if known
    :raises MalformedHexInput: on odd length, non-hex characters or a length
     mismatch
    """
    if not isinstance(hex_str, str):
        raise MalformedHexInput(field, hex_str, "not a hex string")
    if len(hex_str) % 2:
        raise MalformedHexInput(field, hex_str, "odd length")
    try:
        raw = binascii.unhexlify(hex_str)
    except (binascii.Error, ValueError):
        raise MalformedHexInput(field, hex_str, "non-hex character")
    if length is not None and len(raw) != length:
        raise MalformedHexInput(
            field, hex_str, "expected {} bytes, got {}".format(length, len(raw))
        )
    return raw


def reverse_hex(hex_str: str, length: int = None, field: str = "hex") -> bytes:
    """Decodes display-order hex and returns the bytes in header order"""
    return reverse_bytes(hex_to_bytes(hex_str, length, field))


def U32(inter, field: str = "U32"):
    if type(inter) is not int:
        raise FieldOverflow("{}: not an integer ({!r})".format(field, inter))

    if inter < 0 or inter >= 2 ** 32:
        raise FieldOverflow("{}: {} does not fit in 32 bits".format(field, inter))

    return inter.to_bytes(4, byteorder="little")


def U256(inter, field: str = "U256"):
    if type(inter) is bytes:
        if len(inter) != 32:
            raise FieldOverflow("{}: expected 32 bytes, got {}".format(field, len(inter)))
        return inter

    if type(inter) is not int:
        raise FieldOverflow("{}: not an integer ({!r})".format(field, inter))

    if inter < 0 or inter >= 2 ** 256:
        raise FieldOverflow("{}: {} does not fit in 256 bits".format(field, inter))

    return inter.to_bytes(32, byteorder="little")


def field_to_wire(value, length: int, field: str) -> bytes:
    """Converts a feed field into header byte order.

    The feed delivers numbers either as integers or as display-order hex
    strings, hashes always as display-order hex.
    """
    if isinstance(value, bool):
        raise FieldOverflow("{}: not an integer ({!r})".format(field, value))
    if isinstance(value, int):
        if length == 4:
            return U32(value, field)
        if length == 32:
            return U256(value, field)
        raise FieldOverflow("{}: unsupported field width {}".format(field, length))
    return reverse_hex(value, length, field)
