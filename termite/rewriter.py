"""
Pattern matching, instantiation and subterm traversal for TERMITE.

This module holds the pure pieces of the rewrite engine:

    match(pattern, term)          -> Bindings or NoMatch
    instantiate(template, bindings) -> term
    subterms(term, strategy)      -> iterator of Subterm(term, location)

None of these functions mutate their arguments. In-place replacement is
done by the engine through Location.replace().
"""

from enum import Enum
from typing import Any, Dict, Iterator, Optional, Union

from .errors import InvariantError, PatternError
from .terms import (
    UNDEFINED, Register, TermType, is_plain_object, kind_of, terms_equal,
)


class Strategy(str, Enum):
    """Order in which subterms are tried for rewriting."""

    OUTERMOST_LEFTMOST = "outermost-leftmost"
    INNERMOST_LEFTMOST = "innermost-leftmost"

    @classmethod
    def coerce(cls, value: Union[str, 'Strategy']) -> 'Strategy':
        """Accept a Strategy or its string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"Unknown strategy: {value}. Valid options: {valid}") from None


# ============================================================
# Bindings
# ============================================================

class Binding:
    """The value a register matched, plus the register's flags."""

    __slots__ = ('value', 'eager', 'splat')

    def __init__(self, value: TermType, eager: bool = False, splat: bool = False):
        self.value = value
        self.eager = eager
        self.splat = splat

    def __eq__(self, other):
        if isinstance(other, Binding):
            return (terms_equal(self.value, other.value)
                    and self.eager == other.eager and self.splat == other.splat)
        return NotImplemented

    def __repr__(self) -> str:
        flags = "".join(f for f, on in ((" eager", self.eager), (" splat", self.splat)) if on)
        return f"Binding({self.value!r}{flags})"


class Bindings:
    """
    Dict-like result of a successful match.

    Indexing returns the bound *value*; use binding() to reach the
    Binding record with its eager/splat flags:

        if bindings := match([reg("a"), "+", reg("b")], [1, "+", 2]):
            bindings["a"]                 # => 1
            bindings.binding("a").eager   # => False

    Bindings objects are truthy, even when empty. Use NoMatch (which is
    falsy) to represent failed matches.
    """

    __slots__ = ('_dict',)

    def __init__(self, entries: Optional[Dict[str, Binding]] = None):
        self._dict: Dict[str, Binding] = dict(entries) if entries else {}

    @classmethod
    def of(cls, **values) -> 'Bindings':
        """Build lazy, non-splat bindings from keyword values."""
        return cls({name: Binding(value) for name, value in values.items()})

    def __bool__(self) -> bool:
        return True

    def __getitem__(self, key: str):
        return self._dict[key].value

    def get(self, key: str, default=None):
        """Get a bound value with optional default."""
        entry = self._dict.get(key)
        return default if entry is None else entry.value

    def binding(self, key: str) -> Binding:
        """Get the Binding record for a name."""
        return self._dict[key]

    def bind(self, key: str, binding: Binding) -> None:
        self._dict[key] = binding

    def __contains__(self, key: str) -> bool:
        return key in self._dict

    def keys(self):
        return self._dict.keys()

    def values(self):
        return [entry.value for entry in self._dict.values()]

    def items(self):
        return [(name, entry.value) for name, entry in self._dict.items()]

    def records(self):
        """Return (name, Binding) pairs."""
        return self._dict.items()

    def __iter__(self):
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._dict)

    def __repr__(self) -> str:
        return f"Bindings({self._dict})"

    def __eq__(self, other):
        if isinstance(other, Bindings):
            return self._dict == other._dict
        return False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary of values."""
        return {name: entry.value for name, entry in self._dict.items()}


class _NoMatch:
    """
    Singleton representing a failed pattern match.

    NoMatch is falsy, allowing natural use in conditionals:

        if bindings := match(pattern, term):
            # matched
        else:
            # NoMatch
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NoMatch"

    def __getitem__(self, key: str):
        raise KeyError(f"NoMatch has no binding for '{key}'")

    def get(self, key: str, default=None):
        return default

    def __contains__(self, key: str) -> bool:
        return False

    def __len__(self) -> int:
        return 0

    def __iter__(self):
        return iter([])


# Singleton instance
NoMatch = _NoMatch()

MatchResult = Union[Bindings, _NoMatch]


# ============================================================
# Pattern validation
# ============================================================

def validate_pattern(pattern: TermType) -> None:
    """
    Check that splat registers only appear as the last element of a list.

    Raises:
        PatternError: If a splat register is found anywhere else
    """
    def walk(term, position):
        if isinstance(term, Register):
            if term.splat and position != "tail":
                raise PatternError(
                    f"splat register {term!r} must be the last element of a list pattern")
        elif isinstance(term, list):
            last = len(term) - 1
            for i, item in enumerate(term):
                walk(item, "tail" if i == last else "element")
        elif is_plain_object(term):
            for value in term.values():
                walk(value, "value")

    walk(pattern, "root")


# ============================================================
# Pattern Matching
# ============================================================

def _bind(register: Register, value: TermType, bindings: Bindings) -> bool:
    if register.name in bindings:
        # Repeated names must see the same value again.
        return terms_equal(bindings[register.name], value)
    bindings.bind(register.name, Binding(value, eager=register.eager, splat=register.splat))
    return True


def _match_list(pattern: list, term: TermType, bindings: Bindings) -> bool:
    if not isinstance(term, list):
        return False

    last = len(pattern) - 1
    for i, element in enumerate(pattern):
        if isinstance(element, Register) and element.splat:
            if i != last:
                raise InvariantError(
                    f"splat register {element!r} must be the last element of a list pattern")
            rest = term[i:]
            if element.type is not None and not all(element.accepts(item) for item in rest):
                return False
            return _bind(element, rest, bindings)

        # Pattern is longer than the input.
        if i >= len(term):
            return False

        if not _match(element, term[i], bindings):
            return False

    # No splat: the input must not be longer than the pattern.
    return len(term) == len(pattern)


def _match_object(pattern: dict, term: TermType, bindings: Bindings) -> bool:
    if not is_plain_object(term):
        return False
    for key, value in pattern.items():
        if key not in term:
            return False
        if not _match(value, term[key], bindings):
            return False
    return True


def _match(pattern: TermType, term: TermType, bindings: Bindings) -> bool:
    if isinstance(pattern, Register):
        if pattern.splat:
            raise InvariantError(
                f"splat register {pattern!r} must be the last element of a list pattern")
        if pattern.name not in bindings and not pattern.accepts(term):
            return False
        return _bind(pattern, term, bindings)

    if isinstance(pattern, list):
        return _match_list(pattern, term, bindings)

    if is_plain_object(pattern):
        return _match_object(pattern, term, bindings)

    # Primitives, host functions and opaque values.
    return terms_equal(pattern, term)


def match(pattern: TermType, term: TermType) -> MatchResult:
    """
    Match a pattern against a term.

    Matching is applicative: neither argument is mutated.

    Pattern semantics:
        Register            - binds any term its type constraint accepts;
                              a name seen before must match an equal term
        splat Register      - as the last list element, binds the remaining
                              elements (possibly none) as a list
        list                - element-wise, lengths must agree unless a
                              splat takes the tail
        dict                - subset match, extra input keys are ignored
        anything else       - strict equality (identity for host values)

    Args:
        pattern: The pattern to match
        term: The term to match against

    Returns:
        Bindings on success, NoMatch on failure

    Raises:
        InvariantError: If a splat register is not in trailing position
    """
    bindings = Bindings()
    if _match(pattern, term, bindings):
        return bindings
    return NoMatch


# ============================================================
# Instantiation
# ============================================================

def instantiate(template: TermType, bindings: Bindings) -> TermType:
    """
    Instantiate a template with bindings.

    Registers are replaced by their bound values (UNDEFINED when unbound);
    a splat register inside a list splices its bound list into the result.
    Lists and objects in the template are always rebuilt, so the result
    never shares structure with the template. Bound values are spliced in
    as they are, without copying: a register used twice puts the same
    object in both places, and later in-place rewrites of one are seen
    through the other.

    Raises:
        InvariantError: If a splat register is bound to something other than a list
    """
    if isinstance(template, Register):
        return bindings.get(template.name, UNDEFINED)

    if isinstance(template, list):
        result = []
        for item in template:
            if isinstance(item, Register) and item.splat:
                elements = bindings.get(item.name, [])
                if not isinstance(elements, list):
                    raise InvariantError(
                        f"expected list binding for splat {item!r}, got {kind_of(elements)}")
                result.extend(instantiate(element, bindings) for element in elements)
            else:
                result.append(instantiate(item, bindings))
        return result

    if is_plain_object(template):
        return {key: instantiate(value, bindings) for key, value in template.items()}

    return template


# ============================================================
# Subterm traversal
# ============================================================

class Location:
    """A slot in a parent container: the list index or object key of a subterm."""

    __slots__ = ('parent', 'key')

    def __init__(self, parent: Union[list, dict], key: Union[int, str]):
        self.parent = parent
        self.key = key

    def get(self) -> TermType:
        return self.parent[self.key]

    def replace(self, value: TermType) -> None:
        """Overwrite the slot in place."""
        self.parent[self.key] = value

    def __repr__(self) -> str:
        return f"Location({self.key!r})"


class Subterm:
    """A subterm paired with its location (None for the root)."""

    __slots__ = ('term', 'location')

    def __init__(self, term: TermType, location: Optional[Location] = None):
        self.term = term
        self.location = location

    def __repr__(self) -> str:
        return f"Subterm({self.term!r}, {self.location!r})"


def subterms(term: TermType,
             strategy: Union[str, Strategy] = Strategy.OUTERMOST_LEFTMOST) -> Iterator[Subterm]:
    """
    Yield every subterm of `term` exactly once, with its location.

    outermost-leftmost yields a parent before its children (pre-order);
    innermost-leftmost yields children first (post-order). Children are
    visited left to right for lists and in key order for objects.

    The traversal does not mutate the term; callers that rewrite the
    term should start a fresh traversal afterwards.

    Examples:
        [s.term for s in subterms([1, [2]])]
            -> [[1, [2]], 1, [2], 2]
        [s.term for s in subterms([1, [2]], "innermost-leftmost")]
            -> [1, 2, [2], [1, [2]]]
    """
    pre_order = Strategy.coerce(strategy) is Strategy.OUTERMOST_LEFTMOST

    def walk(current: TermType, location: Optional[Location]) -> Iterator[Subterm]:
        if pre_order:
            yield Subterm(current, location)
        if isinstance(current, list):
            for i, child in enumerate(current):
                yield from walk(child, Location(current, i))
        elif is_plain_object(current):
            for key, child in current.items():
                yield from walk(child, Location(current, key))
        if not pre_order:
            yield Subterm(current, location)

    return walk(term, None)
