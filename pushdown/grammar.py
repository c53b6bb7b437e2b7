"""Grammars for the pushdown automaton.

A grammar is a set of nonterminals, each of which expands into an ordered list
of productions. A production is a flat sequence of elements, and every element
is one of three things:

- a `Terminal`, which must match the token under the cursor,
- a `NonTerminal`, which is expanded in place, or
- an `Optional`, which wraps a single terminal or nonterminal (or nothing at
  all) that may or may not be present.

Order matters: the automaton tries productions in the order they are written,
so put the most specific alternatives first.

## Making Grammars

Define terminals (with `Terminal`, or just use plain strings for literal
lexemes) and rules (as functions decorated with `@rule`), and then pass the
starting rule to the constructor of a `Grammar` object:

    @rule
    def statement():
        return seq("print", expression, ";") | seq(NAME, "=", expression, ";")

    @rule
    def expression():
        return seq(NAME, opt(suffix)) | NUMBER

    @rule
    def suffix():
        return seq("+", expression)

    NAME = Terminal(kind="NAME")
    NUMBER = Terminal(kind="NUMBER")

    grammar = Grammar(start=statement)

Rules are evaluated lazily, the first time the grammar asks for their body, so
they can refer to each other (and to terminals defined further down the file)
freely.

## A note on repetition

There is no explicit "zero or more" combinator. A nonterminal slot in a
production is re-expanded for as long as each expansion consumes input, so

    @rule
    def block():
        return seq("{", statement, "}")

accepts one or more statements between the braces. Wrap the slot in `opt` to
accept zero or one.
"""

import abc
import inspect
import typing


###############################################################################
# Sugar for constructing grammars
###############################################################################
def _definition_location() -> str:
    """The first place on the stack outside this module: where the grammar
    author wrote the rule or terminal, even when `seq` or `@rule` built it."""
    for frame in inspect.stack(context=0)[2:]:
        if frame.filename != __file__:
            return f"{frame.filename}:{frame.lineno}"
    return "<unknown>"


class Rule:
    """A token (terminal), production (nonterminal), or some other
    combination thereof. Rules are composed and then flattened into
    productions.
    """

    def __or__(self, other) -> "Rule":
        return AlternativeRule(self, as_rule(other))

    def __ror__(self, other) -> "Rule":
        return AlternativeRule(as_rule(other), self)

    def __add__(self, other) -> "Rule":
        return SequenceRule(self, as_rule(other))

    def __radd__(self, other) -> "Rule":
        return SequenceRule(as_rule(other), self)

    @abc.abstractmethod
    def flatten(self) -> typing.Generator[list["Element"], None, None]:
        """Convert this potentially nested and branching set of rules into a
        series of nice, flat element lists.

        e.g., if this rule is (X + (A | (B + C | D))) then flattening will
        yield something like:

            [X, A]
            [X, B, C]
            [X, B, D]

        Terminals, nonterminals and optionals are leaves: they flatten to
        themselves.
        """
        raise NotImplementedError()


class Terminal(Rule):
    """A token, or terminal symbol in the grammar.

    A terminal with a `lexeme` matches tokens with exactly that text. A
    terminal with a `kind` matches tokens of that category, whatever their
    text. If both are given, both must match.
    """

    lexeme: str | None
    kind: str | None
    name: str
    definition_location: str

    def __init__(
        self,
        lexeme: str | None = None,
        *,
        kind: str | None = None,
        name: str | None = None,
    ):
        if lexeme is None and kind is None:
            raise ValueError("A terminal needs a lexeme, a kind, or both")

        self.lexeme = lexeme
        self.kind = kind
        if name is None:
            name = kind if lexeme is None else lexeme
        assert name is not None
        self.name = name

        self.definition_location = _definition_location()

    def matches(self, token) -> bool:
        """Return True if the token (anything with `lexeme` and `kind`) is one
        of ours."""
        if self.lexeme is not None and token.lexeme != self.lexeme:
            return False
        if self.kind is not None and token.kind != self.kind:
            return False
        return True

    def flatten(self) -> typing.Generator[list["Element"], None, None]:
        # We are just ourselves when flattened.
        yield [self]

    def __eq__(self, other) -> bool:
        if not isinstance(other, Terminal):
            return NotImplemented
        return self.lexeme == other.lexeme and self.kind == other.kind

    def __hash__(self) -> int:
        return hash((Terminal, self.lexeme, self.kind))

    def __str__(self) -> str:
        if self.lexeme is not None:
            return f'"{self.lexeme}"'
        assert self.kind is not None
        return self.kind

    def __repr__(self) -> str:
        return f"Terminal({str(self)})"


_CURRENT_DEFINITION: str = "__global"
_CURRENT_GEN_INDEX: int = 0


class NonTerminal(Rule):
    """A non-terminal, or a production, in the grammar.

    You probably don't want to create this directly; instead you probably want
    to use the `@rule` decorator to associate this with a function in your
    grammar.
    """

    fn: typing.Callable[[], Rule]
    name: str
    definition_location: str
    _body: "list[Production] | None"

    def __init__(self, fn: typing.Callable[[], Rule], name: str | None = None):
        """Create a new NonTerminal.

        `fn` is the function that will yield the `Rule` which is the
        right-hand-side of this production; it will be flattened with `flatten`.
        `name` is the name of the production- if unspecified (or `None`) it will
        be replaced with the `__name__` of the provided fn.
        """
        self.fn = fn
        self.name = name or fn.__name__
        self._body = None

        self.definition_location = _definition_location()

    @property
    def body(self) -> "list[Production]":
        """The flattened body of the nonterminal: a list of productions where
        each production is a tuple of elements.
        """
        global _CURRENT_DEFINITION
        global _CURRENT_GEN_INDEX

        if self._body is None:
            prev_defn = _CURRENT_DEFINITION
            prev_idx = _CURRENT_GEN_INDEX
            try:
                _CURRENT_DEFINITION = self.name
                _CURRENT_GEN_INDEX = 0
                body = as_rule(self.fn())
                self._body = [tuple(production) for production in body.flatten()]
            finally:
                _CURRENT_DEFINITION = prev_defn
                _CURRENT_GEN_INDEX = prev_idx

        return self._body

    def flatten(self) -> typing.Generator[list["Element"], None, None]:
        # Although we contain multitudes, when flattened we're being asked in
        # the context of some other production. Yield ourselves, and trust that
        # in time we will be asked to generate our body.
        yield [self]

    def __repr__(self) -> str:
        return self.name


class Optional(Rule):
    """An element that may or may not be present.

    Wraps exactly one terminal or nonterminal, or nothing at all. Use `opt` to
    build these; it takes care of wrapping longer sequences.
    """

    inner: "Terminal | NonTerminal | None"

    def __init__(self, inner: "Terminal | NonTerminal | None" = None):
        if inner is not None and not isinstance(inner, (Terminal, NonTerminal)):
            raise ValueError(f"Optional can only wrap a terminal or a nonterminal, not {inner!r}")
        self.inner = inner

    def flatten(self) -> typing.Generator[list["Element"], None, None]:
        yield [self]

    def __repr__(self) -> str:
        return f"[{self.inner!r}]" if self.inner is not None else "[]"


class AlternativeRule(Rule):
    """A rule that matches if one or another rule matches."""

    def __init__(self, left: Rule, right: Rule):
        self.left = left
        self.right = right

    def flatten(self) -> typing.Generator[list["Element"], None, None]:
        # All the things from the left of the alternative, then all the things
        # from the right, never intermingled.
        yield from self.left.flatten()
        yield from self.right.flatten()


class SequenceRule(Rule):
    """A rule that matches if a first part matches, followed by a second part.
    Two things in order.
    """

    def __init__(self, first: Rule, second: Rule):
        self.first = first
        self.second = second

    def flatten(self) -> typing.Generator[list["Element"], None, None]:
        # All the things in the prefix....
        for first in self.first.flatten():
            # ...potentially followed by all the things in the suffix.
            for second in self.second.flatten():
                yield first + second


class NothingRule(Rule):
    """A rule that matches no input. Nothing, the void. Don't make a new one of
    these, you're probably better off just using the singleton `Nothing`.
    """

    def flatten(self) -> typing.Generator[list["Element"], None, None]:
        # It's quiet in here.
        yield []


Nothing = NothingRule()

Element = Terminal | NonTerminal | Optional
Production = typing.Tuple[Element, ...]


def as_rule(value: "Rule | str") -> Rule:
    """Plain strings in a rule body are literal terminals."""
    if isinstance(value, Rule):
        return value
    if isinstance(value, str):
        return Terminal(value)
    raise ValueError(f"Cannot use {value!r} in a grammar rule")


def alt(*args: "Rule | str") -> Rule:
    """A rule that matches one of a series of alternatives.

    (A helper function that combines its arguments into nested alternatives.)
    """
    result = as_rule(args[0])
    for rule in args[1:]:
        result = AlternativeRule(result, as_rule(rule))
    return result


def seq(*args: "Rule | str") -> Rule:
    """A rule that matches a sequence of rules.

    (A helper function that combines its arguments into nested sequences.)
    """
    result = as_rule(args[0])
    for rule in args[1:]:
        result = SequenceRule(result, as_rule(rule))
    return result


def opt(*args: "Rule | str") -> Rule:
    """Mark a sequence as optional.

    A single terminal or nonterminal is wrapped directly. Anything else is
    first wrapped in a generated nonterminal, since an optional element holds
    exactly one symbol.
    """
    global _CURRENT_GEN_INDEX

    if len(args) == 0:
        return Optional(None)

    rules = [as_rule(arg) for arg in args]
    if len(rules) == 1 and isinstance(rules[0], (Terminal, NonTerminal)):
        return Optional(rules[0])

    body = seq(*rules)
    group = NonTerminal(
        fn=lambda: body,
        name=f"__opt_{_CURRENT_DEFINITION}_{_CURRENT_GEN_INDEX}",
    )
    _CURRENT_GEN_INDEX = _CURRENT_GEN_INDEX + 1

    return Optional(group)


@typing.overload
def rule(f: typing.Callable, /) -> NonTerminal: ...


@typing.overload
def rule(name: str | None = None) -> typing.Callable[[typing.Callable[[], Rule]], NonTerminal]: ...


def rule(
    name: str | None | typing.Callable = None,
) -> NonTerminal | typing.Callable[[typing.Callable[[], Rule]], NonTerminal]:
    """The decorator that marks a function as a nonterminal rule.

    As with all the best decorators, it can be called with or without arguments.
    If called with one argument, that argument is a name that overrides the name
    of the nonterminal, which defaults to the name of the function.
    """
    if callable(name):
        return rule()(name)

    def wrapper(f: typing.Callable[[], Rule]):
        nonlocal name

        if name is None:
            name = f.__name__
        assert isinstance(name, str)

        return NonTerminal(f, name)

    return wrapper


###############################################################################
# The grammar table
###############################################################################
def gather_grammar(start: NonTerminal) -> tuple[dict[str, NonTerminal], dict[str, Terminal]]:
    """Starting from the given NonTerminal, gather all of the symbols
    (NonTerminals and Terminals) that make up the grammar.
    """
    # NOTE: We use a dummy dictionary here to preserve insertion order.
    #       That way the first element in named_rules is always the start
    #       symbol!
    rules: dict[NonTerminal, int] = {}
    terminals: dict[Terminal, int] = {}

    queue: list[NonTerminal] = [start]
    while len(queue) > 0:
        nt = queue.pop(0)
        if nt in rules:
            continue

        rules[nt] = len(rules)

        for production in nt.body:
            for element in production:
                symbol = element.inner if isinstance(element, Optional) else element
                if isinstance(symbol, NonTerminal):
                    if symbol not in rules:
                        queue.append(symbol)

                elif isinstance(symbol, Terminal):
                    terminals.setdefault(symbol, len(terminals))

                elif symbol is not None:
                    typing.assert_never(symbol)

    named_rules: dict[str, NonTerminal] = {}
    for nt in rules:
        existing = named_rules.get(nt.name)
        if existing is not None:
            raise ValueError(
                f"""Found more than one rule named {nt.name}:
- {existing.definition_location}
- {nt.definition_location}"""
            )
        named_rules[nt.name] = nt

    named_terminals: dict[str, Terminal] = {}
    for terminal in terminals:
        existing = named_terminals.get(terminal.name)
        if existing is not None:
            raise ValueError(
                f"""Found more than one terminal named {terminal.name}:
- {existing.definition_location}
- {terminal.definition_location}"""
            )

        named_terminals[terminal.name] = terminal

    return (named_rules, named_terminals)


def update_changed(items: set[Terminal], other: set[Terminal]) -> bool:
    """Merge the `other` set into the `items` set, and return True if this
    changed the items set.
    """
    old_len = len(items)
    items.update(other)
    return old_len != len(items)


class Grammar:
    """A container that holds all the terminals and nonterminals for a
    given grammar, and answers the two questions the automaton asks of it:
    what are the productions of a nonterminal, and could a nonterminal start
    with a given token.

    The terminals and nonterminals are defined elsewhere; provide the starting
    rule and this object will build the grammar from everything accessible.
    """

    start: NonTerminal
    name: str
    _nonterminals: dict[str, NonTerminal]
    _terminals: dict[str, Terminal]
    _productions: dict[str, list[Production]]
    _firsts: dict[str, set[Terminal]]
    _nullable: dict[str, bool]

    def __init__(self, start: NonTerminal, name: str | None = None):
        if not isinstance(start, NonTerminal):
            raise ValueError(f"The start rule must be a nonterminal, not {start!r}")

        if name is None:
            name = "unknown"

        self.start = start
        self.name = name
        self._nonterminals, self._terminals = gather_grammar(start)
        self._productions = {name: nt.body for name, nt in self._nonterminals.items()}
        self._compute_firsts()

    def _compute_firsts(self):
        """FIRST sets and nullability for every nonterminal.

        Iterate to a fixed point: rules are recursive and mutually recursive,
        and naive recursion would never finish. Optional elements are always
        nullable, and so is an empty production.
        """
        firsts: dict[str, set[Terminal]] = {name: set() for name in self._productions}
        nullable: dict[str, bool] = {name: False for name in self._productions}

        def element_first(element: Element) -> tuple[set[Terminal], bool]:
            match element:
                case Terminal():
                    return {element}, False
                case NonTerminal(name=name):
                    return firsts[name], nullable[name]
                case Optional(inner=None):
                    return set(), True
                case Optional(inner=inner):
                    inner_firsts, _ = element_first(inner)
                    return inner_firsts, True
                case _:
                    typing.assert_never(element)

        changed = True
        while changed:
            changed = False
            for name, productions in self._productions.items():
                f = firsts[name]
                for production in productions:
                    for element in production:
                        element_firsts, element_nullable = element_first(element)
                        changed = update_changed(f, element_firsts) or changed
                        if not element_nullable:
                            break
                    else:
                        # Every element can be empty, so I can be empty.
                        if not nullable[name]:
                            nullable[name] = True
                            changed = True

        self._firsts = firsts
        self._nullable = nullable

    def _check(self, name: str):
        if name not in self._productions:
            raise ValueError(f"Unknown non-terminal {name} in grammar {self.name}")

    def productions_of(self, name: str) -> list[Production]:
        self._check(name)
        return self._productions[name]

    def could_start_with(self, name: str, token) -> bool:
        """Could the nonterminal derive a sequence that starts with this token?"""
        self._check(name)
        return any(terminal.matches(token) for terminal in self._firsts[name])

    def first(self, name: str) -> set[Terminal]:
        self._check(name)
        return set(self._firsts[name])

    def nullable(self, name: str) -> bool:
        self._check(name)
        return self._nullable[name]

    def terminals(self) -> list[Terminal]:
        return list(self._terminals.values())

    def non_terminals(self) -> list[NonTerminal]:
        return list(self._nonterminals.values())

    def format(self) -> str:
        """Format the grammar so pretty, one production per line."""
        lines = []
        for name, productions in self._productions.items():
            for production in productions:
                body = " ".join(format_element(element) for element in production)
                lines.append(f"{name} -> {body or 'ε'}")
        return "\n".join(lines)


def format_element(element: Element) -> str:
    match element:
        case Terminal():
            return str(element)
        case NonTerminal(name=name):
            return name
        case Optional(inner=None):
            return "[]"
        case Optional(inner=inner):
            return f"[{format_element(inner)}]"
        case _:
            typing.assert_never(element)
