from __future__ import annotations

import pytest

from shardbak.sharing import combine, create_shares, new_share_id, split


def test_split_yields_one_piece_per_backend() -> None:
    data = b"the quick brown fox" * 10

    pieces = split(data, 4)

    assert len(pieces) == 4
    assert all(len(piece) == len(data) for piece in pieces)
    assert data not in pieces
    assert combine(pieces) == data


def test_every_piece_is_required() -> None:
    data = b"\x00\x01" + b"secret material" * 4

    pieces = split(data, 3)

    assert combine(pieces[:2]) != data
    assert combine(pieces[1:]) != data


def test_empty_data_round_trips() -> None:
    assert combine(split(b"", 2)) == b""


def test_split_rejects_single_backend() -> None:
    with pytest.raises(ValueError):
        split(b"data", 1)


def test_combine_rejects_mismatched_pieces() -> None:
    with pytest.raises(ValueError):
        combine([b"abc", b"ab"])
    with pytest.raises(ValueError):
        combine([])


def test_create_shares_carries_identifier() -> None:
    share_id = new_share_id()

    shares = create_shares(b"payload", share_id, 2)

    assert [share.share_id for share in shares] == [share_id, share_id]
    assert new_share_id() != share_id
