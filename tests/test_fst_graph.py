import pytest

from siftstore.fst_graph import (
    FSTConfig,
    GraphWriter,
    WordGraph,
    check_over_limits,
    load_graph,
    typo_factor,
)
from siftstore.generic import StoreError

WORDS = ["valerian", "valerien", "valley", "apple", "banana", "value"]


def _write(path, words):
    with GraphWriter(path) as writer:
        for word in sorted(w.encode("utf-8") for w in words):
            writer.insert(word)
    return writer


def test_graph_orders_and_dedups():
    graph = WordGraph(["b", "a", "b", "c"])
    assert list(graph) == [b"a", b"b", b"c"]
    assert len(graph) == 3


def test_contains_str_and_bytes():
    graph = WordGraph(WORDS)
    assert "apple" in graph
    assert b"banana" in graph
    assert "cherry" not in graph
    assert 42 not in graph


def test_round_trip(tmp_path):
    path = tmp_path / "g.fst"
    _write(path, WORDS)
    graph = load_graph(path)
    assert list(graph) == sorted(w.encode() for w in WORDS)


def test_size_matches_bytes_written(tmp_path):
    path = tmp_path / "g.fst"
    writer = _write(path, WORDS)
    assert WordGraph(WORDS).size() == writer.bytes_written()
    assert path.stat().st_size == writer.bytes_written()


def test_missing_file_gives_empty_graph(tmp_path):
    graph = load_graph(tmp_path / "absent.fst")
    assert len(graph) == 0
    assert list(graph) == []


def test_out_of_order_insert_rejected(tmp_path):
    writer = GraphWriter(tmp_path / "g.fst")
    writer.insert("b")
    with pytest.raises(ValueError):
        writer.insert("a")
    with pytest.raises(ValueError):
        writer.insert("b")
    writer.close()


def test_insert_after_finish_fails(tmp_path):
    writer = GraphWriter(tmp_path / "g.fst")
    writer.finish()
    with pytest.raises(StoreError):
        writer.insert("a")


def test_unfinished_graph_rejected(tmp_path):
    path = tmp_path / "g.fst"
    writer = GraphWriter(path)
    writer.insert("a")
    writer.close()
    with pytest.raises(StoreError):
        load_graph(path)


def test_garbage_file_rejected(tmp_path):
    path = tmp_path / "g.fst"
    path.write_bytes(b"not a graph")
    with pytest.raises(StoreError):
        load_graph(path)


def test_writer_exception_leaves_file_unfinished(tmp_path):
    path = tmp_path / "g.fst"
    with pytest.raises(RuntimeError):
        with GraphWriter(path) as writer:
            writer.insert("a")
            raise RuntimeError("boom")
    with pytest.raises(StoreError):
        load_graph(path)


def test_starting_with():
    graph = WordGraph(WORDS)
    assert list(graph.starting_with("val")) == [
        b"valerian", b"valerien", b"valley", b"value",
    ]
    assert list(graph.starting_with("apple")) == [b"apple"]
    assert list(graph.starting_with("zzz")) == []


def test_within_distance():
    graph = WordGraph(WORDS)
    assert list(graph.within_distance("valerien", 1)) == [b"valerian", b"valerien"]
    assert list(graph.within_distance("valerien", 0)) == [b"valerien"]
    for match in graph.within_distance("value", 2):
        assert match in graph


def test_within_distance_negative():
    with pytest.raises(ValueError):
        list(WordGraph(WORDS).within_distance("x", -1))


@pytest.mark.parametrize(
    "word, expected",
    [("abc", 0), ("abcd", 1), ("abcdef", 1), ("abcdefg", 2), ("abcdefghi", 2),
     ("abcdefghij", 3), ("", 3)],
)
def test_typo_factor(word, expected):
    assert typo_factor(word) == expected


def test_typo_factor_capped():
    assert typo_factor("valerien", 1) == 1
    assert typo_factor("abc", 2) == 0


def test_check_over_limits():
    config = FSTConfig(max_size=1, max_words=10)
    assert check_over_limits(config, 1024, 0) is True
    assert check_over_limits(config, 1023, 10) is True
    assert check_over_limits(config, 1023, 9) is False