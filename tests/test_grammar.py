import pytest

from pushdown import Grammar, Nothing, Optional, Terminal, Token, alt, opt, rule, seq


def test_productions_in_order():
    @rule
    def E():
        return seq(T, "+", E) | T

    @rule
    def T():
        return seq("(", E, ")") | ID

    ID = Terminal(kind="ID")

    G = Grammar(start=E)

    productions = G.productions_of("E")
    assert len(productions) == 2
    assert productions[0] == (T, Terminal("+"), E)
    assert productions[1] == (T,)

    assert G.productions_of("T") == [(Terminal("("), E, Terminal(")")), (ID,)]
    assert [nt.name for nt in G.non_terminals()] == ["E", "T"]
    assert set(G.terminals()) == {Terminal("+"), Terminal("("), Terminal(")"), ID}


def test_format():
    @rule
    def S():
        return seq("x", opt(T), "y") | Nothing

    @rule
    def T():
        return alt("z", "w")

    G = Grammar(start=S)
    assert G.format() == "\n".join(
        [
            'S -> "x" [T] "y"',
            "S -> ε",
            'T -> "z"',
            'T -> "w"',
        ]
    )


def test_first_sets():
    """FIRST['z'] is ("C", "D"), FIRST['y'] is ("B", "C", "D"), and since y
    can be empty, FIRST['x'] is ("A", "B", "C", "D").
    """

    @rule
    def x():
        return seq(y, "A")

    @rule
    def y():
        return z | seq("B", x) | Nothing

    @rule
    def z():
        return "C" | seq("D", x)

    G = Grammar(start=x)

    assert G.first("z") == {Terminal("C"), Terminal("D")}
    assert G.first("y") == {Terminal("B"), Terminal("C"), Terminal("D")}
    assert G.first("x") == {Terminal("A"), Terminal("B"), Terminal("C"), Terminal("D")}

    assert G.nullable("y")
    assert not G.nullable("x")
    assert not G.nullable("z")


def test_optional_elements_are_nullable():
    @rule
    def S():
        return seq(opt("a"), opt(T))

    @rule
    def T():
        return "b"

    G = Grammar(start=S)
    assert G.nullable("S")
    assert G.first("S") == {Terminal("a"), Terminal("b")}


def test_left_recursion_has_no_first():
    @rule
    def A():
        return seq(A, "x")

    G = Grammar(start=A)
    assert G.first("A") == set()
    assert not G.could_start_with("A", Token("x", "WORD"))


def test_could_start_with():
    NAME = Terminal(kind="NAME")

    @rule
    def statement():
        return seq("print", value) | seq(NAME, "=", value)

    @rule
    def value():
        return NAME | "0"

    G = Grammar(start=statement)

    assert G.could_start_with("statement", Token("print", "KEYWORD"))
    assert G.could_start_with("statement", Token("x", "NAME"))
    assert not G.could_start_with("statement", Token("=", "PUNCT"))
    assert G.could_start_with("value", Token("0", "NUMBER"))
    assert not G.could_start_with("value", Token("1", "NUMBER"))


def test_unknown_nonterminal():
    @rule
    def S():
        return "x"

    G = Grammar(start=S)
    with pytest.raises(ValueError):
        G.productions_of("nope")
    with pytest.raises(ValueError):
        G.could_start_with("nope", Token("x", "WORD"))


def test_terminal_may_share_a_rule_name():
    """Literal terminals and nonterminals are told apart by what they are, so
    a keyword can be spelled like a rule."""

    @rule
    def program():
        return seq("program", NAME, ";")

    NAME = Terminal(kind="NAME")

    G = Grammar(start=program)
    assert G.productions_of("program") == [(Terminal("program"), NAME, Terminal(";"))]
    assert G.could_start_with("program", Token("program", "KEYWORD"))


def test_duplicate_rule_names():
    @rule("thing")
    def first():
        return seq("x", second)

    @rule("thing")
    def second():
        return "y"

    with pytest.raises(ValueError) as info:
        Grammar(start=first)

    # Both locations point here, where the rules were written.
    assert str(info.value).count("test_grammar.py:") == 2


def test_duplicate_terminal_names():
    @rule
    def S():
        return seq(Terminal("if"), Terminal(kind="KEYWORD", name="if"))

    with pytest.raises(ValueError):
        Grammar(start=S)


def test_terminals_compare_by_value():
    assert Terminal("x") == Terminal("x")
    assert Terminal("x") != Terminal(kind="x")
    assert Terminal("x", kind="NAME") != Terminal("x")
    assert len({Terminal("x"), Terminal("x"), Terminal(kind="NAME")}) == 2


def test_terminal_matches():
    assert Terminal("if").matches(Token("if", "KEYWORD"))
    assert not Terminal("if").matches(Token("iff", "NAME"))
    assert Terminal(kind="NAME").matches(Token("iff", "NAME"))
    assert Terminal("if", kind="KEYWORD").matches(Token("if", "KEYWORD"))
    assert not Terminal("if", kind="KEYWORD").matches(Token("if", "NAME"))


def test_bad_terminals_and_optionals():
    with pytest.raises(ValueError):
        Terminal()

    with pytest.raises(ValueError):
        Optional(seq("a", "b"))  # type: ignore

    with pytest.raises(ValueError):
        seq("a", 3)  # type: ignore


def test_start_must_be_a_rule():
    with pytest.raises(ValueError):
        Grammar(start=Terminal("x"))  # type: ignore


def test_empty_opt():
    @rule
    def S():
        return seq("a", opt())

    G = Grammar(start=S)
    (production,) = G.productions_of("S")
    assert production[0] == Terminal("a")
    assert isinstance(production[1], Optional)
    assert production[1].inner is None
