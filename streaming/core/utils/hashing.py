"""
Stable string hashing.

Machine and user identifiers are turned into well-distributed integers so
that anything derived from them (map positions, addresses, synthetic
identities) is a pure function of the identifier.
"""

_MASK_32 = 0xFFFFFFFF


def _imul(a: int, b: int) -> int:
    """32-bit integer multiply, wrapping like C."""
    return (a * b) & _MASK_32


def cyrb53(value: str, seed: int = 0) -> int:
    """
    53-bit cyrb53 hash of a string.

    Args:
        value: String to hash
        seed: Optional seed for independent hash streams

    Returns:
        Non-negative integer below 2**53
    """
    h1 = (0xDEADBEEF ^ seed) & _MASK_32
    h2 = (0x41C6CE57 ^ seed) & _MASK_32

    for char in value:
        ch = ord(char)
        h1 = _imul(h1 ^ ch, 2654435761)
        h2 = _imul(h2 ^ ch, 1597334677)

    h1 = _imul(h1 ^ (h1 >> 16), 2246822507) ^ _imul(h2 ^ (h2 >> 13), 3266489909)
    h2 = _imul(h2 ^ (h2 >> 16), 2246822507) ^ _imul(h1 ^ (h1 >> 13), 3266489909)

    return 4294967296 * (0x1FFFFF & h2) + h1
