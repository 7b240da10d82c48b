"""
Lexer and parser for TERMITE source text.

A program is a sequence of lines. Each line holds either a single term,
which is used directly, or several terms, which are wrapped in a list:

    (factorial 3)        -> ["factorial", 3]
    1 + 2                -> [1, "+", 2]
    hello                -> "hello"

Newlines inside parentheses and braces are insignificant, so a term may
span several lines. Comments start with ';' and run to the end of line.

Token syntax:
    ( )                  - list delimiters
    { }                  - object delimiters: { key value key value ... }
    123  -1.5  0x1f      - numbers
    "text\\n"            - quoted strings with backslash escapes
    true false null undefined
    ?name  ?name:type    - lazy register
    !name  !name:type    - eager register
    ?*name  !*name       - splat register (last element of a list pattern)
    anything-else        - bare string
"""

import re
from typing import List, Tuple, Union

from .errors import IncompleteInputError, ParseError
from .terms import KEYWORDS, NUMBER_RE, UNDEFINED, Register, TermType

# Type aliases
Program = List[TermType]


class SyntaxToken:
    """A punctuation token produced by the lexer."""

    __slots__ = ('name',)

    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return self.name


BEGIN_LIST = SyntaxToken("'('")
END_LIST = SyntaxToken("')'")
BEGIN_OBJECT = SyntaxToken("'{'")
END_OBJECT = SyntaxToken("'}'")
END_OF_LINE = SyntaxToken("end of line")
END_OF_INPUT = SyntaxToken("end of input")

Token = Union[SyntaxToken, TermType]

_DELIMITERS = {
    "(": BEGIN_LIST,
    ")": END_LIST,
    "{": BEGIN_OBJECT,
    "}": END_OBJECT,
}

_LITERALS = dict(zip(KEYWORDS, (True, False, None, UNDEFINED)))

_TOKEN_RE = re.compile(r'''
    (?P<newline>\n)
  | (?P<space>[^\S\n]+)
  | (?P<comment>;[^\n]*)
  | (?P<delim>[(){}])
  | (?P<string>"(?:[^"\\]|\\.)*")
  | (?P<word>[^\s(){}";]+)
''', re.VERBOSE | re.DOTALL)

_ESCAPE_RE = re.compile(
    r'\\(x[0-9a-fA-F]{2}|u\{[0-9a-fA-F]+\}|u[0-9a-fA-F]{4}|.)', re.DOTALL
)

_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}


# ============================================================
# Lexing
# ============================================================

def interpret_escapes(text: str) -> str:
    """
    Interpret backslash escapes in the body of a quoted string.

    Supports \\n \\t \\r \\b \\f \\v \\0, \\xHH, \\uHHHH and \\u{H...};
    any other escaped character stands for itself.
    """
    def replace(m):
        seq = m.group(1)
        if seq in _SIMPLE_ESCAPES:
            return _SIMPLE_ESCAPES[seq]
        if seq.startswith("x") and len(seq) == 3:
            return chr(int(seq[1:], 16))
        if seq.startswith("u{"):
            code = int(seq[2:-1], 16)
            if code > 0x10FFFF:
                raise ParseError(f"invalid code point in escape: \\{seq}")
            return chr(code)
        if seq.startswith("u") and len(seq) == 5:
            return chr(int(seq[1:], 16))
        return seq

    return _ESCAPE_RE.sub(replace, text)


def _parse_number(word: str) -> Union[int, float]:
    body = word.lstrip("+-")
    if body[:2].lower() in ("0x", "0o", "0b"):
        return int(word, 0)
    if any(c in body for c in ".eE"):
        return float(word)
    return int(word)


def _word_token(word: str) -> Token:
    if word in _LITERALS:
        return _LITERALS[word]
    if NUMBER_RE.match(word):
        return _parse_number(word)
    register = Register.parse(word)
    if register is not None:
        return register
    return word


def tokenize(text: str) -> List[Tuple[Token, int]]:
    """
    Split source text into (token, offset) pairs.

    Runs of newlines collapse into a single END_OF_LINE token and the
    list always ends with END_OF_INPUT.

    Raises:
        IncompleteInputError: If a quoted string is not terminated
    """
    tokens: List[Tuple[Token, int]] = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            # Only an unterminated string can fail to match.
            raise IncompleteInputError("unterminated string", pos)
        kind = m.lastgroup
        if kind == "newline":
            if not tokens or tokens[-1][0] is not END_OF_LINE:
                tokens.append((END_OF_LINE, pos))
        elif kind == "delim":
            tokens.append((_DELIMITERS[m.group()], pos))
        elif kind == "string":
            tokens.append((interpret_escapes(m.group()[1:-1]), pos))
        elif kind == "word":
            tokens.append((_word_token(m.group()), pos))
        pos = m.end()
    tokens.append((END_OF_INPUT, len(text)))
    return tokens


def lex(text: str) -> List[Token]:
    """
    Lex source text into a list of tokens.

    Examples:
        lex("(f ?x)") -> [BEGIN_LIST, "f", Register("x"), END_LIST, END_OF_INPUT]
        lex('"a b" 1') -> ["a b", 1, END_OF_INPUT]
    """
    return [token for token, _ in tokenize(text)]


# ============================================================
# Parsing
# ============================================================

class Tokenizer:
    """Cursor over a token list."""

    def __init__(self, tokens: List[Tuple[Token, int]]):
        self._tokens = tokens
        self._index = 0

    @property
    def current(self) -> Token:
        """The current token; END_OF_INPUT once the tokens are exhausted."""
        if self._index >= len(self._tokens):
            return END_OF_INPUT
        return self._tokens[self._index][0]

    @property
    def offset(self) -> int:
        if self._index >= len(self._tokens):
            return self._tokens[-1][1] if self._tokens else 0
        return self._tokens[self._index][1]

    def skip(self, token: SyntaxToken) -> None:
        """Advance past any run of `token`."""
        while self.current is token:
            self._index += 1

    def consume(self) -> Token:
        """Return the current token and advance."""
        current = self.current
        self._index += 1
        return current


def _unexpected(token: Token, offset: int) -> ParseError:
    if token is END_OF_INPUT:
        return IncompleteInputError("unexpected end of input", offset)
    return ParseError(f"unexpected {token!r}", offset)


def _parse_object(tokenizer: Tokenizer) -> dict:
    term = {}
    tokenizer.skip(END_OF_LINE)
    while tokenizer.current is not END_OBJECT:
        offset = tokenizer.offset
        key = tokenizer.consume()
        if key is END_OF_INPUT:
            raise _unexpected(key, offset)
        if not isinstance(key, str):
            raise ParseError("expected string key in object", offset)
        term[key] = parse_term(tokenizer)
        tokenizer.skip(END_OF_LINE)
    tokenizer.consume()
    return term


def _parse_list(tokenizer: Tokenizer) -> list:
    term = []
    tokenizer.skip(END_OF_LINE)
    while tokenizer.current is not END_LIST:
        term.append(parse_term(tokenizer))
        tokenizer.skip(END_OF_LINE)
    tokenizer.consume()
    return term


def parse_term(tokenizer: Tokenizer) -> TermType:
    """Parse a single term; newlines before it are ignored."""
    tokenizer.skip(END_OF_LINE)
    offset = tokenizer.offset
    token = tokenizer.consume()
    if token is BEGIN_OBJECT:
        return _parse_object(tokenizer)
    if token is BEGIN_LIST:
        return _parse_list(tokenizer)
    if isinstance(token, SyntaxToken):
        raise _unexpected(token, offset)
    return token


def parse_line(tokenizer: Tokenizer) -> TermType:
    """
    Parse one top-level line.

    A line with a single term yields that term; otherwise the terms are
    wrapped in a list, so that `1 2` parses to [1, 2].
    """
    terms = []
    while True:
        token = tokenizer.current
        if token is BEGIN_LIST or token is BEGIN_OBJECT:
            terms.append(parse_term(tokenizer))
        elif token is END_LIST or token is END_OBJECT:
            raise _unexpected(token, tokenizer.offset)
        elif token is END_OF_LINE or token is END_OF_INPUT:
            tokenizer.consume()
            if len(terms) == 1:
                return terms[0]
            return terms
        else:
            terms.append(tokenizer.consume())


def parse_program(tokenizer: Tokenizer) -> Program:
    program = []
    while True:
        tokenizer.skip(END_OF_LINE)
        if tokenizer.current is END_OF_INPUT:
            break
        program.append(parse_line(tokenizer))
    return program


def parse(text: str) -> Program:
    """
    Parse source text into a program (a list of top-level terms).

    Examples:
        parse("(1 + (2 * 3))") -> [[1, "+", [2, "*", 3]]]
        parse("1 2\\nhi")       -> [[1, 2], "hi"]

    Raises:
        IncompleteInputError: If the input ends inside a term or string
        ParseError: For any other syntax error, including nesting too
            deep for the recursive parser
    """
    try:
        return parse_program(Tokenizer(tokenize(text)))
    except RecursionError:
        raise ParseError("nesting too deep") from None
