import pytest

from labkit.linearizability.bitset import Bitset


def test_set_and_get_across_chunks():
    b = Bitset(130)
    b.set(0).set(64).set(129)
    assert b.get(0) and b.get(64) and b.get(129)
    assert not b.get(1)
    assert not b.get(65)
    assert b.popcount() == 3


def test_set_returns_same_object():
    b = Bitset(10)
    assert b.set(3) is b
    assert b.clear(3) is b


def test_clear_removes_bit():
    b = Bitset(100)
    b.set(70)
    b.clear(70)
    assert not b.get(70)
    assert b.popcount() == 0


def test_clone_is_independent():
    b = Bitset(20)
    b.set(5)
    c = b.clone()
    c.set(6)
    assert not b.get(6)
    assert c.get(5) and c.get(6)
    assert b != c


def test_equality_depends_on_chunks():
    assert Bitset(1) == Bitset(64)
    assert Bitset(64) != Bitset(65)
    assert Bitset(10).set(2) == Bitset(10).set(2)
    assert Bitset(10).set(2) != Bitset(10).set(3)


def test_equality_with_other_types():
    assert (Bitset(5) == 5) is False


def test_fingerprint_matches_for_equal_sets():
    a = Bitset(200).set(1).set(150)
    b = Bitset(200).set(150).set(1)
    assert a.fingerprint() == b.fingerprint()


def test_fingerprint_of_empty_is_zero():
    assert Bitset(128).fingerprint() == 0


def test_zero_size_has_no_positions():
    with pytest.raises(IndexError):
        Bitset(0).get(0)


def test_out_of_range_positions():
    b = Bitset(64)
    with pytest.raises(IndexError):
        b.set(64)
    with pytest.raises(IndexError):
        b.get(-1)


def test_positions_within_last_chunk_are_usable():
    b = Bitset(10)
    b.set(63)
    assert b.get(63)


def test_not_hashable():
    with pytest.raises(TypeError):
        hash(Bitset(3))