import pytest

from miniredis.sorted_set import Direction, SortedSet, SSElem


@pytest.fixture
def pis():
    s = SortedSet()
    s.set(3.1415, "pi")
    s.set(2 * 3.1415, "2pi")
    s.set(3 * 3.1415, "3pi")
    return s


def test_card_counts_members():
    s = SortedSet()
    assert s.card() == 0
    s.set(3.1415, "pi")
    s.set(2 * 3.1415, "2pi")
    s.set(3 * 3.1415, "3pi")
    assert s.card() == 3


def test_replace_keeps_card(pis):
    pis.set(3.141592, "pi")
    assert pis.card() == 3
    assert len(pis) == 3


def test_get(pis):
    pis.set(3.141592, "pi")
    assert pis.get("pi") == 3.141592
    assert pis.get("nosuch") is None


def test_by_score_ascending(pis):
    pis.set(3.141592, "pi")
    elems = pis.by_score(Direction.ASC)
    assert len(elems) == 3
    assert elems == [
        SSElem(3.141592, "pi"),
        SSElem(2 * 3.1415, "2pi"),
        SSElem(3 * 3.1415, "3pi"),
    ]


def test_by_score_descending_is_reverse(pis):
    assert pis.by_score(Direction.DESC) == list(reversed(pis.by_score(Direction.ASC)))


def test_rank_by_score(pis):
    pis.set(3.141592, "pi")
    assert pis.rank_by_score("pi", Direction.ASC) == 0
    assert pis.rank_by_score("3pi", Direction.DESC) == 0
    assert pis.rank_by_score("3pi", Direction.ASC) == 2
    assert pis.rank_by_score("nosuch", Direction.ASC) is None


def test_sort_order_ties_by_member():
    s = SortedSet()
    assert s.card() == 0
    s.set(1, "one")
    s.set(1, "1")
    s.set(1, "eins")
    s.set(2, "two")
    s.set(2, "2")
    s.set(2, "zwei")
    s.set(3, "three")
    s.set(3, "3")
    s.set(3, "drei")
    assert s.card() == 9

    elems = s.by_score(Direction.ASC)
    assert len(elems) == 9
    assert elems == [
        SSElem(1, "1"),
        SSElem(1, "eins"),
        SSElem(1, "one"),
        SSElem(2, "2"),
        SSElem(2, "two"),
        SSElem(2, "zwei"),
        SSElem(3, "3"),
        SSElem(3, "drei"),
        SSElem(3, "three"),
    ]


def test_elems_match_contents(pis):
    assert sorted(e.member for e in pis.elems()) == sorted(pis)
    assert "pi" in pis
    del pis["pi"]
    assert "pi" not in pis
    assert pis.get("pi") is None