import pytest

from starvalues.iteration import StringCodepoints, StringElems, iterate, length
from starvalues.values import NONE, Bytes, Int, StarlarkError, String


def test_elems_yields_one_byte_substrings():
    result = list(StringElems(String("abc")))
    assert result == [String("a"), String("b"), String("c")]


def test_elem_ords_yield_byte_values():
    result = list(StringElems(String("abc"), ords=True))
    assert result == [Int(b) for b in b"abc"]


def test_elems_of_multibyte_string_count_bytes():
    s = String("héllo")
    elems = StringElems(s)
    assert len(elems) == len("héllo".encode("utf-8"))
    assert len(list(elems)) == len(elems)


def test_elems_index_matches_iteration():
    elems = StringElems(String("xyz"), ords=True)
    assert [elems.index(i) for i in range(len(elems))] == list(elems)


def test_elems_index_out_of_range():
    with pytest.raises(IndexError):
        StringElems(String("ab")).index(2)


def test_codepoints_yield_characters():
    text = "héllo, 世界"
    result = list(StringCodepoints(String(text)))
    assert result == [String(c) for c in text]


def test_codepoint_ords_yield_code_points():
    text = "aé世"
    result = list(StringCodepoints(String(text), ords=True))
    assert result == [Int(ord(c)) for c in text]


def test_codepoints_replace_invalid_bytes():
    s = String(b"a\xff".decode("utf-8", errors="surrogateescape"))
    assert list(StringCodepoints(s)) == [String("a"), String("\ufffd")]
    assert list(StringCodepoints(s, ords=True)) == [Int(ord("a")), Int(0xFFFD)]


def test_elems_of_invalid_byte_roundtrip():
    s = String(b"\xff".decode("utf-8", errors="surrogateescape"))
    elems = list(StringElems(s))
    assert elems == [s]
    assert list(StringElems(s, ords=True)) == [Int(0xFF)]


def test_repr_forms():
    s = String("ab")
    assert StringElems(s).repr() == '"ab".elems()'
    assert StringElems(s, ords=True).repr() == '"ab".elem_ords()'
    assert StringCodepoints(s).repr() == '"ab".codepoints()'
    assert StringCodepoints(s, ords=True).repr() == '"ab".codepoint_ords()'


def test_type_names_and_truth():
    empty = String("")
    assert StringElems(empty).type_name() == "string.elems"
    assert StringCodepoints(empty).type_name() == "string.codepoints"
    assert StringElems(empty).truth() is True
    assert StringCodepoints(empty).truth() is True


def test_views_are_unhashable():
    with pytest.raises(StarlarkError, match="unhashable: string.elems"):
        StringElems(String("a")).hash_value()
    with pytest.raises(StarlarkError, match="unhashable: string.codepoints"):
        StringCodepoints(String("a")).hash_value()


def test_length_of_string_is_byte_count():
    assert length(String("héllo")) == len("héllo".encode("utf-8"))
    assert length(String("")) == 0


def test_length_of_bytes():
    assert length(Bytes(b"\x00\x01\x02")) == 3


def test_length_of_non_sequence_is_negative():
    assert length(Int(5)) == -1
    assert length(NONE) == -1


def test_length_of_elems_view():
    assert length(StringElems(String("abcd"))) == 4


def test_iterate_returns_none_for_non_iterables():
    assert iterate(Int(1)) is None
    assert iterate(String("abc")) is None
    assert iterate(Bytes(b"abc")) is None


def test_iterate_over_view():
    it = iterate(StringCodepoints(String("ab")))
    assert it is not None
    assert list(it) == [String("a"), String("b")]


def test_iterate_returns_fresh_iterators():
    view = StringElems(String("ab"))
    first = iterate(view)
    second = iterate(view)
    assert next(first) == String("a")
    assert list(second) == [String("a"), String("b")]