"""Vector math and storage conversion for embeddings."""

from typing import Sequence, Union

import numpy as np

from ..exceptions import DimensionMismatchError

VectorLike = Union[Sequence[float], np.ndarray]


def as_vector(values: VectorLike) -> np.ndarray:
    """Convert to a 1-D float32 array."""
    return np.asarray(values, dtype=np.float32).reshape(-1)


def to_bytes(vector: VectorLike) -> bytes:
    """Serialize a vector to little-endian float32 bytes."""
    return as_vector(vector).astype("<f4").tobytes()


def from_bytes(data: bytes) -> np.ndarray:
    """Inverse of to_bytes."""
    if len(data) % 4:
        raise ValueError(f"Byte length {len(data)} is not a multiple of 4")
    return np.frombuffer(data, dtype="<f4").astype(np.float32)


def _check_dimensions(a: np.ndarray, b: np.ndarray) -> None:
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatchError(
            f"Vectors must have the same dimensions ({a.shape[0]} != {b.shape[0]})"
        )


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """Cosine similarity in [-1, 1].

    Returns 0.0 when either vector has zero norm.

    Raises:
        DimensionMismatchError: if the vectors differ in length
    """
    va = as_vector(a).astype(np.float64)
    vb = as_vector(b).astype(np.float64)
    _check_dimensions(va, vb)

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a <= 0 or norm_b <= 0:
        return 0.0
    similarity = float(np.dot(va, vb) / (norm_a * norm_b))
    # Rounding can push |v|.|v| slightly past 1
    return max(-1.0, min(1.0, similarity))
