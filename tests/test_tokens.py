import pytest

from jplcomp.tokens import Token, TokenType


def test_keyword_token_text():
    assert str(Token(TokenType.ARRAY, 0, "array")) == "ARRAY 'array'"


def test_eof_and_newline_print_without_value():
    assert str(Token(TokenType.EOF, 10)) == "END_OF_FILE"
    assert str(Token(TokenType.NEWLINE, 3, "\n")) == "NEWLINE"


def test_float_value_token():
    assert str(Token(TokenType.FLOATVAL, 5, "1.5")) == "FLOATVAL '1.5'"


def test_default_value_is_empty():
    tok = Token(TokenType.OP, 7)
    assert tok.value == ""
    assert str(tok) == "OP ''"


@pytest.mark.parametrize(
    "kind", [t for t in TokenType if t not in (TokenType.EOF, TokenType.NEWLINE)]
)
def test_valued_tokens_show_label_and_quoted_value(kind):
    text = str(Token(kind, 0, "xyz"))
    label, quoted = text.split(" ", 1)
    assert label == kind.value
    assert quoted == "'xyz'"


def test_labels_are_unique():
    printed = [str(Token(t, 0, "v")) for t in TokenType]
    assert len(printed) == len(TokenType)
    assert len(printed) == len(set(printed))


def test_token_keeps_position_and_compares_by_value():
    a = Token(TokenType.VARIABLE, 42, "foo")
    assert a.start == 42
    assert a == Token(TokenType.VARIABLE, 42, "foo")
    assert a != Token(TokenType.VARIABLE, 43, "foo")