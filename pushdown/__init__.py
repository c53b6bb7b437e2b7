"""A predictive, backtracking pushdown parser.

Describe a grammar with the helpers in the [grammar] module, turn source text
into tokens with the [tokens] module (or bring your own), and run them through
the automaton in the [runtime] module.
"""
from . import grammar
from . import runtime
from . import tokens

from .grammar import (
    Grammar,
    NonTerminal,
    Nothing,
    Optional,
    Rule,
    Terminal,
    alt,
    opt,
    rule,
    seq,
)
from .runtime import (
    MAX_STACK_DEPTH,
    Automaton,
    Parser,
    StackDepthExceeded,
    Tree,
    TokenValue,
    parse,
)
from .tokens import Lexer, Token, TokenError, tokenize
