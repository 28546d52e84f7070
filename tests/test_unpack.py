import collections.abc

import pytest

from starvalues.containers import Dict, List, Tuple
from starvalues.unpack import Unpacker, unpack_args, unpack_one, unpack_positional_args
from starvalues.values import (
    NONE,
    TRUE,
    Builtin,
    Float,
    Int,
    StarlarkError,
    String,
    Value,
)


class EvenInt(Unpacker):
    def unpack(self, value):
        if not isinstance(value, Int) or value.value % 2:
            raise StarlarkError("want even int")
        return value.value


def _noop(thread, b, args, kwargs):
    return NONE


# ---- unpack_one ----


def test_value_kind_returns_argument_itself():
    v = List([Int(1)])
    assert unpack_one(v, Value) is v


def test_str_kind():
    assert unpack_one(String("abc"), str) == "abc"
    with pytest.raises(StarlarkError) as excinfo:
        unpack_one(Int(1), str)
    assert str(excinfo.value) == "got int, want string"


def test_bool_kind():
    assert unpack_one(TRUE, bool) is True
    with pytest.raises(StarlarkError) as excinfo:
        unpack_one(Int(1), bool)
    assert str(excinfo.value) == "got int, want bool"


def test_int_kind():
    assert unpack_one(Int(7), int) == 7
    with pytest.raises(StarlarkError) as excinfo:
        unpack_one(TRUE, int)
    assert str(excinfo.value) == "got bool, want int"


def test_float_kind():
    assert unpack_one(Float(2.5), float) == 2.5
    with pytest.raises(StarlarkError) as excinfo:
        unpack_one(Int(2), float)
    assert str(excinfo.value) == "got int, want float"


def test_list_and_dict_kinds():
    lst, d = List(), Dict()
    assert unpack_one(lst, List) is lst
    assert unpack_one(d, Dict) is d
    with pytest.raises(StarlarkError) as excinfo:
        unpack_one(Tuple(), List)
    assert str(excinfo.value) == "got tuple, want list"
    with pytest.raises(StarlarkError) as excinfo:
        unpack_one(lst, Dict)
    assert str(excinfo.value) == "got list, want dict"


def test_value_subclass_kind_reports_starlark_type_name():
    t = Tuple([Int(1)])
    assert unpack_one(t, Tuple) is t
    with pytest.raises(StarlarkError) as excinfo:
        unpack_one(String("x"), Int)
    assert str(excinfo.value) == "got string, want int"


def test_iterable_kind():
    lst = List([Int(1)])
    assert unpack_one(lst, collections.abc.Iterable) is lst
    with pytest.raises(StarlarkError) as excinfo:
        unpack_one(String("abc"), collections.abc.Iterable)
    assert str(excinfo.value) == "got string, want iterable"


def test_callable_kind():
    b = Builtin("f", _noop)
    assert unpack_one(b, collections.abc.Callable) is b
    with pytest.raises(StarlarkError) as excinfo:
        unpack_one(Int(1), collections.abc.Callable)
    assert str(excinfo.value) == "got int, want callable"


def test_unpacker_kind():
    assert unpack_one(Int(4), EvenInt()) == 4
    with pytest.raises(StarlarkError) as excinfo:
        unpack_one(Int(3), EvenInt())
    assert str(excinfo.value) == "want even int"


def test_unknown_kind_is_internal_error():
    with pytest.raises(TypeError):
        unpack_one(Int(1), object())


# ---- unpack_args ----


def test_mixed_positional_and_keyword():
    result = unpack_args(
        "f", [Int(1)], [(String("b"), String("x"))], "a", int, "b?", str, "c?", Value
    )
    assert result == [1, "x", None]


def test_keyword_pairs_may_be_starlark_tuples():
    result = unpack_args("f", [], [Tuple([String("a"), Int(5)])], "a", int)
    assert result == [5]


def test_too_many_positional():
    with pytest.raises(StarlarkError) as excinfo:
        unpack_args("f", [Int(1), Int(2), Int(3)], [], "a", int, "b?", int)
    assert str(excinfo.value) == "f: got 3 arguments, want at most 2"


def test_multiple_values_for_keyword():
    with pytest.raises(StarlarkError) as excinfo:
        unpack_args("f", [Int(1)], [(String("a"), Int(2))], "a", int)
    assert str(excinfo.value) == 'f: got multiple values for keyword argument "a"'


def test_unexpected_keyword():
    with pytest.raises(StarlarkError) as excinfo:
        unpack_args("f", [], [(String("zzz"), Int(2))], "a?", int)
    assert str(excinfo.value) == 'f: unexpected keyword argument "zzz"'


def test_unexpected_keyword_suggests_nearest():
    with pytest.raises(StarlarkError) as excinfo:
        unpack_args(
            "sorted",
            [],
            [(String("revers"), TRUE)],
            "iterable?",
            Value,
            "key?",
            Value,
            "reverse?",
            bool,
        )
    assert str(excinfo.value).endswith("(did you mean reverse?)")


def test_missing_required_argument():
    with pytest.raises(StarlarkError) as excinfo:
        unpack_args("f", [], [], "a", int, "b?", int)
    assert str(excinfo.value) == "f: missing argument for a"


def test_optional_makes_later_parameters_optional():
    assert unpack_args("f", [], [], "a?", int, "b", int) == [None, None]


def test_double_question_mark_skips_none():
    assert unpack_args("f", [NONE], [], "a??", int) == [None]
    assert unpack_args("f", [], [(String("a"), NONE)], "a??", int) == [None]


def test_single_question_mark_does_not_skip_none():
    with pytest.raises(StarlarkError) as excinfo:
        unpack_args("f", [NONE], [], "a?", int)
    assert str(excinfo.value) == "f: for parameter a: got NoneType, want int"


def test_keyword_conversion_error_names_parameter():
    with pytest.raises(StarlarkError) as excinfo:
        unpack_args("f", [], [(String("a"), String("x"))], "a", int)
    assert str(excinfo.value) == 'f: for parameter "a": got string, want int'


def test_result_length_matches_parameter_count():
    result = unpack_args("f", [Int(1)], [], "a", int, "b?", str, "c?", bool, "d?", Value)
    assert len(result) == 4
    assert result[0] == 1


# ---- unpack_positional_args ----


def test_positional_rejects_keywords():
    with pytest.raises(StarlarkError) as excinfo:
        unpack_positional_args("f", [], [(String("a"), Int(1))], 0, int)
    assert str(excinfo.value) == "f: unexpected keyword arguments"


def test_positional_too_few():
    with pytest.raises(StarlarkError) as excinfo:
        unpack_positional_args("f", [], [], 1, int, int)
    assert str(excinfo.value) == "f: got 0 arguments, want at least 1"
    with pytest.raises(StarlarkError) as excinfo:
        unpack_positional_args("f", [], [], 1, int)
    assert str(excinfo.value) == "f: got 0 arguments, want 1"


def test_positional_too_many():
    with pytest.raises(StarlarkError) as excinfo:
        unpack_positional_args("f", [Int(1), Int(2), Int(3)], [], 1, int, int)
    assert str(excinfo.value) == "f: got 3 arguments, want at most 2"
    with pytest.raises(StarlarkError) as excinfo:
        unpack_positional_args("f", [Int(1), Int(2), Int(3)], [], 2, int, int)
    assert str(excinfo.value) == "f: got 3 arguments, want 2"


def test_positional_conversion_error_numbers_parameter():
    with pytest.raises(StarlarkError) as excinfo:
        unpack_positional_args("f", [Int(1), Int(2)], [], 1, int, str)
    assert str(excinfo.value) == "f: for parameter 2: got int, want string"


def test_positional_pads_missing_with_none():
    lst = List()
    result = unpack_positional_args("f", [String("s")], [], 1, str, List, int)
    assert result == ["s", None, None]
    result = unpack_positional_args("f", [String("s"), lst], [], 1, str, List, int)
    assert result[1] is lst