from fractions import Fraction

import pytest

from nreplrun import edn
from nreplrun.edn import Char, Keyword, Symbol, Tagged, kw


def test_reads_test_summary_map() -> None:
    value = edn.loads("{:test 3, :pass 5, :fail 1, :error 0, :type :summary}")
    assert value == {kw("test"): 3, kw("pass"): 5, kw("fail"): 1, kw("error"): 0, kw("type"): kw("summary")}


def test_reads_scalars() -> None:
    assert edn.loads("nil") is None
    assert edn.loads("true") is True
    assert edn.loads("false") is False
    assert edn.loads("42N") == 42
    assert edn.loads("-7") == -7
    assert edn.loads("1.5M") == 1.5
    assert edn.loads("1e3") == 1000.0
    assert edn.loads("1/3") == Fraction(1, 3)
    assert edn.loads(r"\a") == Char("a")
    assert edn.loads(r"\newline") == Char("\n")
    assert edn.loads(":my.ns/key") == Keyword("my.ns/key")
    assert edn.loads("foo.bar/baz") == Symbol("foo.bar/baz")


def test_reads_string_escapes() -> None:
    assert edn.loads(r'"a\"b\\c\ndA"') == 'a"b\\c\ndA'


def test_collections_map_to_python_types() -> None:
    assert edn.loads("(= 1 2)") == (Symbol("="), 1, 2)
    assert edn.loads("[1 [2 3]]") == [1, [2, 3]]
    assert edn.loads("#{1 2}") == frozenset({1, 2})
    assert edn.loads("{[1 2] :pair}") == {(1, 2): kw("pair")}


def test_skips_comments_and_discards() -> None:
    assert edn.loads("; leading comment\n[1 #_ 2 3]") == [1, 3]


def test_unknown_tags_become_tagged_values() -> None:
    value = edn.loads('#object[Error Error: boom]')
    assert isinstance(value, Tagged)
    assert value.tag == "object"
    assert value.value == [Symbol("Error"), Symbol("Error:"), Symbol("boom")]
    assert edn.loads("#inst \"2024-01-01\"") == Tagged("inst", "2024-01-01")


def test_var_quote_reads_as_symbol() -> None:
    assert edn.loads("#'my.ns/my-test") == Symbol("#'my.ns/my-test")


def test_double_printed_value_reads_as_string() -> None:
    inner = edn.loads('"{:test 1, :pass 1}"')
    assert inner == "{:test 1, :pass 1}"
    assert edn.loads(inner) == {kw("test"): 1, kw("pass"): 1}


@pytest.mark.parametrize("text", ["", "{:a}", "[1 2", "\"open", "1 2", ")", "12abc"])
def test_malformed_input_raises(text: str) -> None:
    with pytest.raises(edn.EdnError):
        edn.loads(text)


def test_dumps_prints_clojure_notation() -> None:
    value = edn.loads('{:expected (= 1 (inc 1)), :actual (not (= 1 2)), :msg "hi", :v [nil true]}')
    assert edn.dumps(value) == '{:expected (= 1 (inc 1)), :actual (not (= 1 2)), :msg "hi", :v [nil true]}'
    assert edn.dumps(edn.loads("#error {:message \"boom\"}")) == '#error {:message "boom"}'


def test_dumps_prints_symbolic_floats() -> None:
    assert edn.dumps(float("inf")) == "##Inf"
    assert edn.dumps(float("-inf")) == "##-Inf"
    assert edn.dumps(float("nan")) == "##NaN"
    assert edn.dumps([1.5, float("inf")]) == "[1.5 ##Inf]"
    assert edn.loads(edn.dumps(float("-inf"))) == float("-inf")


def test_to_text_leaves_strings_unquoted() -> None:
    assert edn.to_text("plain") == "plain"
    assert edn.to_text(kw("fail")) == ":fail"
    assert edn.to_text(None) == "nil"
