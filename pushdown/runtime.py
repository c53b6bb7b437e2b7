"""The parsing automaton, and a parser built on top of it.

The automaton is a predictive pushdown machine with backtracking. It keeps a
stack of frames, one for each nonterminal being expanded, and a cursor into a
fixed list of tokens. On each step it looks at the frame on top of the stack
and does one thing: picks a production, matches a terminal, pushes a
nonterminal, or pops a finished frame. When a step fails it backtracks to the
nearest frame with an untried alternative.

Some things to know when writing grammars for it:

- Tokens are never un-consumed. Once a frame has consumed a token it is
  committed to its production: backtracking will abandon it rather than try
  its other alternatives. Order alternatives so that the first one to consume
  input is the right one.

- A nonterminal slot repeats. When a child expansion finishes the parent does
  not move past the slot; it looks at the slot again, and if the child
  consumed input it expands the same nonterminal again. The slot is done when
  an expansion consumes nothing, or when a repeated expansion fails without
  consuming anything.

- Left recursion never terminates. The stack is capped at `MAX_STACK_DEPTH`
  frames (configurable), and going past it raises `StackDepthExceeded`, which
  is never retried.
"""

import enum
import logging
import typing
from dataclasses import dataclass, field

from . import grammar
from .tokens import Token


MAX_STACK_DEPTH = 50

# The production index of a frame that has not picked a production yet. The
# next alternative after it is production 0.
UNSELECTED = -1


@dataclass
class TokenValue:
    kind: str
    lexeme: str
    start: int
    end: int


@dataclass
class Tree:
    name: str
    start: int
    end: int
    children: typing.Tuple["Tree | TokenValue", ...]

    def format_lines(self) -> list[str]:
        lines = []

        def format_node(node: Tree | TokenValue, indent: int):
            match node:
                case Tree(name=name, start=start, end=end, children=children):
                    lines.append((" " * indent) + f"{name} [{start}, {end})")
                    for child in children:
                        format_node(child, indent + 2)

                case TokenValue(kind=kind, lexeme=lexeme, start=start, end=end):
                    lines.append((" " * indent) + f"{kind}:'{lexeme}' [{start}, {end})")

        format_node(self, 0)
        return lines

    def format(self) -> str:
        return "\n".join(self.format_lines())


class GrammarTable(typing.Protocol):
    def productions_of(self, name: str) -> list[grammar.Production]:
        """The productions of the named nonterminal, in the order to try them."""
        ...

    def could_start_with(self, name: str, token: Token) -> bool:
        """True if the named nonterminal could derive something starting with
        the token."""
        ...

    def first(self, name: str) -> set[grammar.Terminal]:
        """The terminals that can start the named nonterminal."""
        ...


class StackDepthExceeded(RuntimeError):
    """The derivation stack grew past its limit.

    This almost always means the grammar recurses without consuming input,
    e.g., a rule whose every production starts with itself.
    """

    max_depth: int
    cursor: int
    symbols: list[str]

    def __init__(self, max_depth: int, cursor: int, symbols: list[str]):
        super().__init__(f"Maximum parser stack depth exceeded ({max_depth} frames)")
        self.max_depth = max_depth
        self.cursor = cursor
        self.symbols = symbols


class Origin(enum.Enum):
    """Why a frame was pushed."""

    GOAL = "goal"
    EXPAND = "expand"
    REPEAT = "repeat"
    OPTIONAL = "optional"


MarkerKey = typing.Tuple[str, int, typing.Tuple[str, ...]]


@dataclass
class Frame:
    symbol: str
    key: MarkerKey
    start: int
    origin: Origin
    production: int = UNSELECTED
    element: int = 0
    # Whether the last child to complete for the current element consumed
    # any input; None if no child has completed for it yet.
    child_progressed: bool | None = None
    children: list[Tree | TokenValue] = field(default_factory=list)

    @property
    def tentative(self) -> bool:
        return self.origin in (Origin.REPEAT, Origin.OPTIONAL)


@dataclass
class Failure:
    """The furthest point the automaton got to before a step failed."""

    position: int
    symbols: list[str]
    expected: set[str]


action_log = logging.getLogger("pushdown.action")
backtrack_log = logging.getLogger("pushdown.backtrack")


class Automaton:
    grammar: GrammarTable
    max_depth: int
    tokens: list[Token] | None
    cursor: int
    stack: list[Frame]
    markers: set[MarkerKey]
    trace: list[typing.Tuple[str, int, int]]
    result: Tree | None
    failure: Failure | None

    def __init__(self, grammar: GrammarTable, *, max_depth: int = MAX_STACK_DEPTH):
        if max_depth < 1:
            raise ValueError(f"max_depth must be at least 1, not {max_depth}")

        self.grammar = grammar
        self.max_depth = max_depth
        self.tokens = None
        self.cursor = 0
        self.stack = []
        self.markers = set()
        self.trace = []
        self.result = None
        self.failure = None

    def initialize(self, tokens: typing.Sequence[Token]):
        """Install a token sequence and forget everything about the last run."""
        self.tokens = list(tokens)
        self.cursor = 0
        self.stack = []
        self.markers = set()
        self.trace = []
        self.result = None
        self.failure = None

    def _check_initialized(self) -> list[Token]:
        if self.tokens is None:
            raise ValueError("The automaton must be initialized with tokens first")
        return self.tokens

    @property
    def lookahead(self) -> Token | None:
        tokens = self._check_initialized()
        return tokens[self.cursor] if self.cursor < len(tokens) else None

    @property
    def current_state(self) -> str | None:
        return self.stack[-1].symbol if len(self.stack) > 0 else None

    def marker_key(self, symbol: str) -> MarkerKey:
        return (symbol, self.cursor, tuple(frame.symbol for frame in self.stack))

    def push_goal(self, symbol: str):
        self._check_initialized()
        self.push(symbol, Origin.GOAL)

    def push(self, symbol: str, origin: Origin) -> bool:
        """Push a frame for the nonterminal, unless it is already being
        expanded at this position in this context. Returns True if a frame was
        pushed.
        """
        key = self.marker_key(symbol)
        if key in self.markers:
            backtrack_log.debug(f"{symbol} already expanded at {self.cursor}")
            return False

        if len(self.stack) >= self.max_depth:
            raise StackDepthExceeded(
                self.max_depth,
                self.cursor,
                [frame.symbol for frame in self.stack],
            )

        self.markers.add(key)
        self.stack.append(Frame(symbol=symbol, key=key, start=self.cursor, origin=origin))
        return True

    def pop(self) -> Frame:
        frame = self.stack.pop()
        self.markers.remove(frame.key)
        return frame

    def run(self) -> bool:
        """Step until the stack is empty.

        Returns True if the goal was derived and every token was consumed.
        """
        tokens = self._check_initialized()
        while len(self.stack) > 0:
            if not self.step():
                if not self.backtrack():
                    break

        if self.result is None:
            return False

        if self.cursor < len(tokens):
            # The goal is complete but there's input left over.
            self._fail([self.result.name], {"end of input"})
            return False

        return True

    def step(self) -> bool:
        """Take one step. Returns False if the step failed and the automaton
        needs to backtrack.
        """
        frame = self.stack[-1]
        productions = self.grammar.productions_of(frame.symbol)
        token = self.lookahead

        al = action_log
        if al.isEnabledFor(logging.INFO):
            al.info(
                "{stack: <30} {input: <15} {position}".format(
                    stack=repr([f.symbol for f in self.stack[-5:]]),
                    input=token.lexeme if token is not None else "$",
                    position=f"{frame.production}:{frame.element}",
                )
            )

        if frame.production == UNSELECTED and token is not None:
            for index, production in enumerate(productions):
                if self._predicts(production, token):
                    self._select(frame, index)
                    break

        if not 0 <= frame.production < len(productions):
            self._fail([f.symbol for f in self.stack], self._expected(frame.symbol))
            return False

        production = productions[frame.production]
        if frame.element >= len(production):
            self._complete()
            return True

        element = production[frame.element]
        match element:
            case grammar.Terminal():
                if token is not None and element.matches(token):
                    self._shift(frame, token)
                    self._advance(frame)
                    return True

            case grammar.NonTerminal(name=name):
                if frame.child_progressed is False:
                    # The last expansion of this slot consumed nothing, so
                    # there is nothing left to repeat.
                    self._advance(frame)
                    return True

                origin = Origin.REPEAT if frame.child_progressed else Origin.EXPAND
                frame.child_progressed = None
                if self.push(name, origin):
                    return True

            case grammar.Optional(inner=inner):
                self._advance(frame)
                match inner:
                    case None:
                        pass
                    case grammar.Terminal():
                        if token is not None and inner.matches(token):
                            self._shift(frame, token)
                    case grammar.NonTerminal(name=name):
                        self.push(name, Origin.OPTIONAL)
                    case _:
                        typing.assert_never(inner)
                return True

            case _:
                typing.assert_never(element)

        self._fail([f.symbol for f in self.stack], self._expected(element))
        return False

    def backtrack(self) -> bool:
        """Find the nearest frame that can try something else.

        Returns False if there is no such frame, in which case the stack is
        now empty and the run has failed.
        """
        bl = backtrack_log
        while len(self.stack) > 0:
            frame = self.stack[-1]
            productions = self.grammar.productions_of(frame.symbol)

            # A frame that has consumed tokens can't try another production:
            # they would have to start from where the frame started.
            committed = self.cursor > frame.start
            if not committed and frame.production + 1 < len(productions):
                bl.info(f"{frame.symbol}: trying production {frame.production + 1}")
                self._select(frame, frame.production + 1)
                return True

            self.pop()
            bl.info(f"{frame.symbol}: abandoned at {self.cursor}")

            if frame.tentative and not committed:
                # An optional or repeated element that isn't there. That's
                # fine, the parent carries on without it.
                if frame.origin == Origin.REPEAT:
                    self._advance(self.stack[-1])
                bl.info(f"{frame.symbol}: {frame.origin.value} element absent")
                return True

        return False

    def _predicts(self, production: grammar.Production, token: Token) -> bool:
        if len(production) == 0:
            return False

        first = production[0]
        if isinstance(first, grammar.Optional):
            if first.inner is None:
                return False
            first = first.inner

        match first:
            case grammar.Terminal():
                return first.matches(token)
            case grammar.NonTerminal(name=name):
                return self.grammar.could_start_with(name, token)
            case _:
                typing.assert_never(first)

    def _expected(self, element: grammar.Element | str) -> set[str]:
        """The tokens that would have let `element` go on, for diagnostics. A
        nonterminal, given as an element or by name, stands for its FIRST set.
        """
        match element:
            case str():
                return {str(terminal) for terminal in self.grammar.first(element)}
            case grammar.Terminal():
                return {str(element)}
            case grammar.NonTerminal(name=name):
                return self._expected(name)
            case grammar.Optional():
                # Optional elements never fail.
                return set()
            case _:
                typing.assert_never(element)

    def _select(self, frame: Frame, production: int):
        frame.production = production
        frame.element = 0
        frame.child_progressed = None
        frame.children = []
        self.trace.append((frame.symbol, production, self.cursor))

    def _advance(self, frame: Frame):
        frame.element += 1
        frame.child_progressed = None

    def _shift(self, frame: Frame, token: Token):
        frame.children.append(
            TokenValue(
                kind=token.kind,
                lexeme=token.lexeme,
                start=self.cursor,
                end=self.cursor + 1,
            )
        )
        self.cursor += 1

    def _complete(self):
        """The frame on top of the stack has finished its production."""
        frame = self.pop()
        tree = Tree(
            name=frame.symbol,
            start=frame.start,
            end=self.cursor,
            children=tuple(frame.children),
        )

        if len(self.stack) == 0:
            self.result = tree
            return

        parent = self.stack[-1]
        progressed = self.cursor > frame.start
        if frame.origin != Origin.OPTIONAL:
            # The parent is still looking at the slot that pushed this frame
            # and will decide whether to repeat it.
            parent.child_progressed = progressed

        if progressed or frame.origin != Origin.REPEAT:
            parent.children.append(tree)

    def _fail(self, symbols: list[str], expected: set[str]):
        if self.failure is None or self.cursor > self.failure.position:
            self.failure = Failure(position=self.cursor, symbols=symbols, expected=set(expected))
        elif self.cursor == self.failure.position:
            self.failure.symbols = symbols
            self.failure.expected.update(expected)


def _location(tokens: typing.Sequence[Token], position: int) -> str:
    if position < len(tokens):
        token = tokens[position]
        return f"{token.line}:{token.column}"
    if len(tokens) > 0:
        last = tokens[-1]
        return f"{last.line}:{last.column + len(last.lexeme)}"
    return "1:1"


class Parser:
    grammar: grammar.Grammar
    max_depth: int

    def __init__(self, grammar: grammar.Grammar, *, max_depth: int = MAX_STACK_DEPTH):
        self.grammar = grammar
        self.max_depth = max_depth

    def parse(self, tokens: typing.Sequence[Token]) -> typing.Tuple[Tree | None, list[str]]:
        """Parse a token sequence into a tree, returning both the root of the
        tree (if the parse succeeded) and a list of errors.

        There is no error recovery: a failed parse produces exactly one error,
        describing the furthest point the parse reached.
        """
        automaton = Automaton(self.grammar, max_depth=self.max_depth)
        automaton.initialize(tokens)
        automaton.push_goal(self.grammar.start.name)

        try:
            if automaton.run():
                return (automaton.result, [])
        except StackDepthExceeded as e:
            return (None, [f"{_location(tokens, e.cursor)}: Critical parsing error: {e}"])

        failure = automaton.failure
        assert failure is not None

        if failure.position < len(tokens):
            unexpected = f"'{tokens[failure.position].lexeme}'"
        else:
            unexpected = "end of file"

        error_message = f"Syntax Error: Unexpected {unexpected}"
        if automaton.result is not None:
            error_message = f"{error_message}. Expected end of input"
        else:
            expected = ", ".join(sorted(failure.expected))
            error_message = f"{error_message} while parsing {failure.symbols[-1]}. Expected one of: {expected}"

        return (None, [f"{_location(tokens, failure.position)}: {error_message}"])


def parse(
    grammar: grammar.Grammar,
    tokens: typing.Sequence[Token],
) -> typing.Tuple[Tree | None, list[str]]:
    """Parse the provided tokens with the grammar."""
    return Parser(grammar).parse(tokens)
