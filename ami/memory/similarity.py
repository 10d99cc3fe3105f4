"""Vector similarity and fixed-width float32 embedding encoding."""

import base64
import binascii
import math
import struct
from typing import List, Optional, Sequence, Union

_FLOAT32 = 4


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors.

    Returns 0.0 when either vector has zero norm instead of producing NaN.
    """
    if len(a) != len(b):
        raise ValueError(f"dimension mismatch: {len(a)} != {len(b)}")

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    # Rounding can push |similarity| a hair past 1
    return max(-1.0, min(1.0, similarity))


def encode_embedding(vector: Sequence[float]) -> bytes:
    """Pack a vector as little-endian float32 bytes for BLOB storage."""
    return struct.pack(f"<{len(vector)}f", *vector)


def decode_embedding(data: Union[bytes, bytearray, memoryview, str, None]) -> Optional[List[float]]:
    """Unpack little-endian float32 bytes into a list of floats.

    Accepts raw bytes or base64 text (how JSON exports carry BLOB columns).
    Returns None for empty, missing, or malformed input.
    """
    if data is None:
        return None
    if isinstance(data, str):
        try:
            data = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError):
            return None
    data = bytes(data)
    if not data or len(data) % _FLOAT32:
        return None
    return list(struct.unpack(f"<{len(data) // _FLOAT32}f", data))
