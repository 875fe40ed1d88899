"""All-of-n secret sharing over bytes.

A file is split into ``n`` pieces of the same length: ``n - 1`` of them are
uniformly random pads and the last one is the data XORed with every pad.
Any subset smaller than ``n`` is indistinguishable from random noise, and
XORing all ``n`` pieces together yields the original bytes.
"""

from __future__ import annotations

import secrets
import uuid
from typing import Sequence

from .models import Share


def new_share_id() -> str:
    """Allocate a globally unique share identifier."""

    return uuid.uuid4().hex


def _xor(left: bytes, right: bytes) -> bytes:
    return (int.from_bytes(left, "big") ^ int.from_bytes(right, "big")).to_bytes(len(left), "big")


def split(data: bytes, n: int) -> list[bytes]:
    """Split ``data`` into ``n`` pieces that are all required to recombine."""

    if n < 2:
        raise ValueError("At least two pieces are required")

    pads = [secrets.token_bytes(len(data)) for _ in range(n - 1)]
    last = data
    for pad in pads:
        last = _xor(last, pad)
    return [*pads, last]


def combine(pieces: Sequence[bytes]) -> bytes:
    """Recombine every piece produced by :func:`split`."""

    if not pieces:
        raise ValueError("No pieces provided")

    length = len(pieces[0])
    if any(len(piece) != length for piece in pieces):
        raise ValueError("Pieces have inconsistent lengths")

    result = pieces[0]
    for piece in pieces[1:]:
        result = _xor(result, piece)
    return result


def create_shares(data: bytes, share_id: str, n: int) -> list[Share]:
    return [Share(share_id=share_id, data=piece) for piece in split(data, n)]
