"""
Term model for TERMITE.

Terms are plain Python values:

    int, float          - numbers (bool is *not* a number)
    str                 - strings
    bool                - booleans
    None                - null
    UNDEFINED           - the "absent" value
    Symbol              - unique symbols, compared by identity
    callable            - host functions, compared by identity
    list                - ordered lists of terms
    dict                - objects (exact type dict, string keys)
    Register            - pattern variables

Anything else (tuples, class instances, rules, contexts, exceptions) is an
opaque host value and only ever equal to itself.
"""

import re
from typing import Any, Dict, List, Optional, Union

# Type aliases
TermType = Any
ListTerm = List[Any]
ObjectTerm = Dict[str, Any]

LAZY = "lazy"
EAGER = "eager"

# Shared with the lexer so formatting and parsing agree on what is bare.
NUMBER_RE = re.compile(
    r"^[+-]?(?:0[xX][0-9a-fA-F]+|0[oO][0-7]+|0[bB][01]+"
    r"|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)$"
)
REGISTER_RE = re.compile(r"^([?!])(\*)?([A-Za-z0-9_.\-]+)(?::(.+))?$")
KEYWORDS = ("true", "false", "null", "undefined")
_BARE_RE = re.compile(r'^[^\s(){}";]+$')


# ============================================================
# Special primitives
# ============================================================

class _Undefined:
    """
    Singleton representing the absent value.

    Distinct from None (null); an unbound register instantiates to it.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "undefined"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


# Singleton instance
UNDEFINED = _Undefined()


class Symbol:
    """A unique token; two symbols are equal only if they are the same object."""

    __slots__ = ('description',)

    def __init__(self, description: str = ""):
        self.description = description

    def __repr__(self) -> str:
        return f"Symbol({self.description})"


# ============================================================
# Registers
# ============================================================

class Register:
    """
    A named pattern variable.

    Args:
        name: Binding name; repeated names in one pattern must bind equal values
        type: Optional runtime kind the matched value must have
        splat: If True, captures the remaining elements of a list
        kind: "lazy" binds the raw subterm, "eager" binds its normal form

    Examples:
        Register("x")                      # ?x
        Register("n", "number")            # ?n:number
        Register("rest", splat=True)       # ?*rest
        Register("v", kind="eager")        # !v
    """

    __slots__ = ('name', 'type', 'splat', 'kind')

    def __init__(self, name: str, type: Optional[str] = None,
                 splat: bool = False, kind: str = LAZY):
        if kind not in (LAZY, EAGER):
            raise ValueError(f"Unknown register kind: {kind}. Valid options: lazy, eager")
        self.name = name
        self.type = type
        self.splat = splat
        self.kind = kind

    @property
    def eager(self) -> bool:
        return self.kind == EAGER

    def accepts(self, value: TermType) -> bool:
        """Check the register's type constraint against a value."""
        if self.type is None:
            return True
        return kind_of(value) == self.type

    @classmethod
    def parse(cls, text: str) -> Optional['Register']:
        """
        Parse register syntax, returning None if `text` is not a register.

        Examples:
            Register.parse("?x")        -> Register("x")
            Register.parse("!*xs:array") -> Register("xs", "array", True, "eager")
            Register.parse("!=")        -> None
        """
        m = REGISTER_RE.match(text.strip())
        if not m:
            return None
        sigil, star, name, type_ = m.groups()
        return cls(name, type_, star == "*", LAZY if sigil == "?" else EAGER)

    def __eq__(self, other):
        if isinstance(other, Register):
            return (self.name, self.type, self.splat, self.kind) == \
                   (other.name, other.type, other.splat, other.kind)
        return NotImplemented

    def __hash__(self):
        return hash((self.name, self.type, self.splat, self.kind))

    def __repr__(self) -> str:
        sigil = "?" if self.kind == LAZY else "!"
        star = "*" if self.splat else ""
        type_part = f":{self.type}" if self.type else ""
        return f"{sigil}{star}{self.name}{type_part}"


def reg(name: str, type: Optional[str] = None, splat: bool = False,
        kind: str = LAZY) -> Register:
    """Convenience constructor for registers."""
    return Register(name, type, splat, kind)


# ============================================================
# Classification
# ============================================================

def is_number(term: TermType) -> bool:
    """Numbers are ints and floats, but never bools."""
    return isinstance(term, (int, float)) and not isinstance(term, bool)


def is_list(term: TermType) -> bool:
    return isinstance(term, list)


def is_plain_object(term: TermType) -> bool:
    """Only exact dicts take part in structural matching; subclasses are opaque."""
    return type(term) is dict


def is_host_function(term: TermType) -> bool:
    return callable(term) and not isinstance(term, (Register, Symbol, _Undefined))


def is_primitive(term: TermType) -> bool:
    return (term is None or term is UNDEFINED
            or isinstance(term, (bool, str, Symbol))
            or is_number(term))


def is_opaque(term: TermType) -> bool:
    """True for host values the core never looks inside (compared by identity)."""
    return not (is_primitive(term) or isinstance(term, (list, Register))
                or is_plain_object(term) or is_host_function(term))


def kind_of(term: TermType) -> str:
    """
    Return the runtime kind name of a term.

    One of: number, string, boolean, null, undefined, symbol, function,
    array, object, register, or the class name of an opaque host value.
    """
    if is_opaque(term):
        return type(term).__name__
    if term is None:
        return "null"
    if term is UNDEFINED:
        return "undefined"
    if isinstance(term, bool):
        return "boolean"
    if is_number(term):
        return "number"
    if isinstance(term, str):
        return "string"
    if isinstance(term, Symbol):
        return "symbol"
    if isinstance(term, Register):
        return "register"
    if isinstance(term, list):
        return "array"
    if is_plain_object(term):
        return "object"
    return "function"


# ============================================================
# Equality and copying
# ============================================================

def terms_equal(a: TermType, b: TermType) -> bool:
    """
    Strict structural equality.

    Booleans never equal numbers, lists and objects compare structurally,
    registers compare by their fields, everything else by identity.
    """
    if a is b:
        return True
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if is_number(a) and is_number(b):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    if isinstance(a, Register) and isinstance(b, Register):
        return a == b
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(terms_equal(x, y) for x, y in zip(a, b))
    if is_plain_object(a) and is_plain_object(b):
        if a.keys() != b.keys():
            return False
        return all(terms_equal(a[key], b[key]) for key in a)
    return False


def copy_term(term: TermType) -> TermType:
    """Copy the list/object structure of a term; leaves are shared."""
    if isinstance(term, list):
        return [copy_term(item) for item in term]
    if is_plain_object(term):
        return {key: copy_term(value) for key, value in term.items()}
    return term


# ============================================================
# Formatting
# ============================================================

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\t": "\\t",
    "\r": "\\r",
    "\b": "\\b",
    "\f": "\\f",
    "\v": "\\v",
    "\0": "\\0",
}


def _format_string(s: str) -> str:
    if (_BARE_RE.match(s) and s not in KEYWORDS
            and not NUMBER_RE.match(s) and not REGISTER_RE.match(s)):
        return s
    return '"' + "".join(_ESCAPES.get(c, c) for c in s) + '"'


def format_term(term: TermType) -> str:
    """
    Format a term in surface syntax.

    Examples:
        ["+", 1, ["f", "x"]] -> "(+ 1 (f x))"
        {"a": 1}             -> "{a 1}"
        "hello world"        -> '"hello world"'
        Register("n", "number") -> "?n:number"
    """
    if is_opaque(term):
        return repr(term)
    if term is None:
        return "null"
    if term is UNDEFINED:
        return "undefined"
    if isinstance(term, bool):
        return "true" if term else "false"
    if is_number(term):
        return repr(term)
    if isinstance(term, str):
        return _format_string(term)
    if isinstance(term, list):
        return "(" + " ".join(format_term(item) for item in term) + ")"
    if is_plain_object(term):
        parts = [f"{_format_string(str(key))} {format_term(value)}"
                 for key, value in term.items()]
        return "{" + " ".join(parts) + "}"
    if isinstance(term, Register):
        return repr(term)
    name = getattr(term, "__name__", None) or type(term).__name__
    return f"<function {name}>"
