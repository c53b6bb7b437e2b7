import pytest

from hypothesis import given
from hypothesis.strategies import integers, lists, sampled_from, tuples

from pushdown import Lexer, Token, TokenError, tokenize


PATTERNS = [
    ("KEYWORD", r"(?:let|print)\b"),
    ("NAME", r"[a-z_][a-z_0-9]*"),
    ("NUMBER", r"[0-9]+"),
    ("ARROW", r"->"),
    ("PUNCT", r"[-+=;(){}]"),
    ("BLANK", r"[ \t\n]+"),
]


def test_positions():
    tokens = tokenize("ab + 12\n  cd", PATTERNS, skip=["BLANK"])
    assert tokens == [
        Token("ab", "NAME", 1, 1),
        Token("+", "PUNCT", 1, 4),
        Token("12", "NUMBER", 1, 6),
        Token("cd", "NAME", 2, 3),
    ]


def test_first_pattern_wins():
    tokens = tokenize("let letter -> -", PATTERNS, skip=["BLANK"])
    assert [(t.kind, t.lexeme) for t in tokens] == [
        ("KEYWORD", "let"),
        ("NAME", "letter"),
        ("ARROW", "->"),
        ("PUNCT", "-"),
    ]


def test_skipped_tokens_are_kept_without_skip():
    tokens = tokenize("a b", PATTERNS)
    assert [t.kind for t in tokens] == ["NAME", "BLANK", "NAME"]


def test_multiline_skip_tracks_lines():
    tokens = tokenize("a\n\n\n   b", PATTERNS, skip=["BLANK"])
    assert tokens[1] == Token("b", "NAME", 4, 4)


def test_unexpected_character():
    with pytest.raises(TokenError) as info:
        tokenize("ab $", PATTERNS, skip=["BLANK"])

    assert info.value.line == 1
    assert info.value.column == 4
    assert str(info.value) == "1:4: Unexpected character '$'"


def test_empty_match_is_an_error():
    with pytest.raises(TokenError):
        tokenize("x", [("EMPTY", r"y*"), ("NAME", r"x")])


def test_bad_patterns():
    with pytest.raises(ValueError):
        Lexer([])

    with pytest.raises(ValueError):
        Lexer([("not a name", "x")])

    with pytest.raises(ValueError):
        Lexer([("NAME", "[a-z]+"), ("NAME", "[A-Z]+")])


def test_token_str():
    assert str(Token("a\nb", "STRING", 3, 7)) == "STRING:'a\\nb' 3:7"


@given(lists(tuples(sampled_from(["x", "yy", "42", "+", "="]), integers(min_value=1, max_value=3))))
def test_columns_follow_the_text(words):
    text = ""
    expected = []
    for word, gap in words:
        text += " " * gap
        expected.append((word, len(text) + 1))
        text += word

    lexer = Lexer(PATTERNS, skip=["BLANK"])
    tokens = lexer.tokenize(text)

    assert [(t.lexeme, t.column) for t in tokens] == expected
    assert all(t.line == 1 for t in tokens)
