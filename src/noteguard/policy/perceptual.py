"""
Perceptual hash (blurhash) helpers for the `hasLikelyBlurhash` predicate.

Two blurhashes are compared by decoding both to the same small pixel grid
and summing the absolute per-component differences. Smaller means more
alike; identical hashes have distance 0.
"""

from collections.abc import Callable, Sequence

import blurhash

from noteguard.errors import BlurhashDecodeError

# (hash, width, height) -> flat component array
BlurhashDecoder = Callable[[str, int, int], Sequence[float]]


def decode_blurhash(hash_str: str, width: int, height: int) -> list[float]:
    """
    Decode a blurhash into a flat list of colour components.

    The pixel grid is flattened row by row, pixel by pixel, channel by
    channel, so two decodes at the same size line up index for index.

    Raises:
        BlurhashDecodeError: If the hash is malformed
    """
    try:
        pixels = blurhash.decode(hash_str, width, height)
    except (ValueError, IndexError, TypeError) as e:
        raise BlurhashDecodeError(blurhash=str(hash_str), underlying_error=str(e)) from e

    return [float(channel) for row in pixels for pixel in row for channel in pixel]


def blurhash_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Sum of absolute differences between two decoded component arrays."""
    if len(a) != len(b):
        raise ValueError(f"Component count mismatch: {len(a)} != {len(b)}")
    return sum(abs(x - y) for x, y in zip(a, b))
