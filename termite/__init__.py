"""
TERMITE - term rewriting with mutable rules

A small rewriting language: programs are terms, and evaluation rewrites
each term with an ordered, mutable list of rules until no rule applies.
Rules may add or remove other rules while a term is being evaluated.

Quick Start:
    from termite import Context, parse, evaluate

    context = Context.with_builtins()
    evaluate(parse('''
        (#add-rule (factorial 0) 1)
        (#add-rule (factorial ?n:number) (?n * (factorial (?n - 1))))
        (factorial 3)
    '''), context)[-1]  # => 6

Syntax:
    ; Comments start with ;
    (a b c)             - list
    {key value ...}     - object
    ?x  ?x:number       - lazy register, optionally typed
    !x                  - eager register (evaluated before use)
    ?*rest              - splat register (last element of a list pattern)

Python API:
    rule(pattern, replacement)    - template rule
    builtin(pattern, fn)          - rule computed by fn(bindings, context)
    match(pattern, term)          - Bindings or NoMatch
    instantiate(template, bindings)
    subterms(term, strategy)
"""

__version__ = "0.1.0"

# Terms
from .terms import (
    TermType,
    LAZY,
    EAGER,
    UNDEFINED,
    Symbol,
    Register,
    reg,
    kind_of,
    is_opaque,
    terms_equal,
    copy_term,
    format_term,
)

# Errors
from .errors import (
    TermiteError,
    ParseError,
    IncompleteInputError,
    EvaluationError,
    NonTerminationError,
    ThrownError,
    BuiltinError,
    PatternError,
    InvariantError,
)

# Surface syntax
from .parser import lex, parse, tokenize

# Matching and traversal
from .rewriter import (
    Strategy,
    Binding,
    Bindings,
    NoMatch,
    match,
    instantiate,
    validate_pattern,
    Location,
    Subterm,
    subterms,
)

# Engine
from .engine import (
    Rule,
    Derivation,
    Context,
    rule,
    builtin,
    constant,
    constants,
    find_redex,
    evaluate_term,
    evaluate_term_async,
    evaluate_terms,
    evaluate_terms_async,
    evaluate,
    execute,
)

# Builtins
from .builtins import (
    CORE_BUILTINS,
    OPERATOR_BUILTINS,
    OBJECT_BUILTINS,
    EXCEPTION_BUILTINS,
    IO_BUILTINS,
    BUILTINS,
    BUILTIN_PRELUDES,
)

# Public API
__all__ = [
    # Version
    "__version__",
    # Terms
    "TermType",
    "LAZY",
    "EAGER",
    "UNDEFINED",
    "Symbol",
    "Register",
    "reg",
    "kind_of",
    "is_opaque",
    "terms_equal",
    "copy_term",
    "format_term",
    # Errors
    "TermiteError",
    "ParseError",
    "IncompleteInputError",
    "EvaluationError",
    "NonTerminationError",
    "ThrownError",
    "BuiltinError",
    "PatternError",
    "InvariantError",
    # Syntax
    "lex",
    "parse",
    "tokenize",
    # Matching
    "Strategy",
    "Binding",
    "Bindings",
    "NoMatch",
    "match",
    "instantiate",
    "validate_pattern",
    "Location",
    "Subterm",
    "subterms",
    # Engine
    "Rule",
    "Derivation",
    "Context",
    "rule",
    "builtin",
    "constant",
    "constants",
    "find_redex",
    "evaluate_term",
    "evaluate_term_async",
    "evaluate_terms",
    "evaluate_terms_async",
    "evaluate",
    "execute",
    # Builtins
    "CORE_BUILTINS",
    "OPERATOR_BUILTINS",
    "OBJECT_BUILTINS",
    "EXCEPTION_BUILTINS",
    "IO_BUILTINS",
    "BUILTINS",
    "BUILTIN_PRELUDES",
]
