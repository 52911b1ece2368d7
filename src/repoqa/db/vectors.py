"""Embedding vector encoding for sqlite-vec distance functions.

Vectors are stored as packed float32 BLOBs, the compact format that
``vec_distance_cosine()`` accepts directly.
"""

from __future__ import annotations

import struct

from sqlite_vec import serialize_float32


def to_blob(embedding: list[float]) -> bytes:
    """Encode *embedding* as a float32 BLOB.

    Raises:
        ValueError: If the vector is empty.
    """
    if not embedding:
        raise ValueError("Cannot store an empty embedding vector.")
    return serialize_float32(list(embedding))


def from_blob(blob: bytes) -> list[float]:
    """Decode a float32 BLOB written by :func:`to_blob`."""
    count = len(blob) // 4
    return list(struct.unpack(f"{count}f", blob))


def check_dimensions(embedding: list[float], dimensions: int | None) -> None:
    """Raise ValueError if *embedding* does not have *dimensions* entries.

    ``dimensions=None`` disables the check.
    """
    if dimensions is not None and len(embedding) != dimensions:
        raise ValueError(
            f"Embedding has {len(embedding)} dimensions, expected {dimensions}."
        )
