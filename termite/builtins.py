"""
Builtin rules for TERMITE.

Builtins come in two flavours:

    builtin(pattern, fn)            - fn(bindings, context) computes the
                                      replacement directly
    rule(pattern, [fn, [args...]])  - rewrites to a *call form*, which the
                                      "call" rule then invokes as fn(*args)

Rule sets:
    CORE_BUILTINS       call, #add-rule, #remove-rule, #context
    OPERATOR_BUILTINS   === !== == != + - * / % and unary + - ! ~
    OBJECT_BUILTINS     #get, #set
    EXCEPTION_BUILTINS  #try, #throw
    IO_BUILTINS         #read, #write, #print, #include (not part of BUILTINS)
    BUILTINS            core + operators + objects + exceptions
"""

import operator
from pathlib import Path
from typing import Any, Callable, Dict, List

from .engine import (
    Context, Rule, builtin, constants, evaluate_term, evaluate_term_async, rule,
)
from .errors import EvaluationError, InvariantError, ThrownError
from .parser import parse
from .rewriter import Bindings
from .terms import (
    EAGER, UNDEFINED, format_term, is_host_function, is_plain_object, reg,
    terms_equal,
)


# ============================================================
# Operator builders
# ============================================================

def binary_numeric(op: str, fn: Callable[[Any, Any], Any]) -> Rule:
    """(?a:number op ?b:number) => fn(a, b)"""
    return rule([reg("a", "number"), op, reg("b", "number")],
                [fn, [reg("a"), reg("b")]], op)


def binary_eager(op: str, fn: Callable[[Any, Any], Any]) -> Rule:
    """(!a op !b) => fn(a, b), with both operands evaluated first."""
    return rule([reg("a", kind=EAGER), op, reg("b", kind=EAGER)],
                [fn, [reg("a"), reg("b")]], op)


def unary_eager(op: str, fn: Callable[[Any], Any]) -> Rule:
    """(op !a) => fn(a), with the operand evaluated first."""
    return rule([op, reg("a", kind=EAGER)], [fn, [reg("a")]], op)


def _divide(a, b):
    result = a / b
    # Preserve integer type when possible
    if isinstance(result, float) and result.is_integer():
        return int(result)
    return result


# ============================================================
# Core
# ============================================================

def _call(bindings: Bindings, context: Context) -> Any:
    fn = bindings["fn"]
    if not is_host_function(fn):
        raise InvariantError(f"expected function, got {format_term(fn)}")
    return fn(*bindings["args"])


def _add_rule(bindings: Bindings, context: Context) -> Rule:
    return context.add_rule(bindings["pattern"], bindings["replacement"],
                            bindings.get("name"))


def _remove_rule(bindings: Bindings, context: Context) -> bool:
    return context.remove_rule(bindings["rule"])


CORE_BUILTINS: List[Rule] = [
    builtin([reg("fn", "function"), reg("args", "array")], _call, "call"),
    builtin(["#add-rule", reg("pattern"), reg("replacement")], _add_rule, "#add-rule"),
    builtin(["#add-rule", reg("pattern"), reg("replacement"), reg("name", "string")],
            _add_rule, "#add-rule (named)"),
    builtin(["#remove-rule", reg("rule", kind=EAGER)], _remove_rule, "#remove-rule"),
    builtin("#context", lambda bindings, context: context, "#context"),
]


# ============================================================
# Operators
# ============================================================

OPERATOR_BUILTINS: List[Rule] = [
    # Comparisons
    binary_eager("===", terms_equal),
    binary_eager("!==", lambda a, b: not terms_equal(a, b)),
    binary_eager("==", operator.eq),
    binary_eager("!=", operator.ne),

    # Arithmetic
    binary_eager("+", operator.add),
    binary_numeric("-", operator.sub),
    binary_numeric("*", operator.mul),
    binary_numeric("/", _divide),
    binary_numeric("%", operator.mod),

    unary_eager("+", operator.pos),
    unary_eager("-", operator.neg),
    unary_eager("!", operator.not_),
    unary_eager("~", operator.invert),
]


# ============================================================
# Objects
# ============================================================

def _get(target, key):
    if is_plain_object(target):
        return target.get(key, UNDEFINED)
    if isinstance(target, list):
        return target[key]
    return getattr(target, key, UNDEFINED)


def _set(target, key, value):
    if is_plain_object(target) or isinstance(target, list):
        target[key] = value
    else:
        setattr(target, key, value)
    return value


OBJECT_BUILTINS: List[Rule] = [
    rule(["#get", reg("object", kind=EAGER), reg("key", kind=EAGER)],
         [_get, [reg("object"), reg("key")]], "#get"),
    rule(["#set", reg("object", kind=EAGER), reg("key", kind=EAGER), reg("value", kind=EAGER)],
         [_set, [reg("object"), reg("key"), reg("value")]], "#set"),
]


# ============================================================
# Exceptions
# ============================================================

def _try(bindings: Bindings, context: Context) -> Any:
    if context.asynchronous:
        return _try_async(bindings["term"], context)
    try:
        return evaluate_term(bindings["term"], context)
    except ThrownError as e:
        return e.value
    except EvaluationError as e:
        return e


async def _try_async(term, context: Context) -> Any:
    try:
        return await evaluate_term_async(term, context)
    except ThrownError as e:
        return e.value
    except EvaluationError as e:
        return e


def _throw(bindings: Bindings, context: Context) -> Any:
    raise ThrownError(bindings["error"])


EXCEPTION_BUILTINS: List[Rule] = [
    builtin(["#try", reg("term")], _try, "#try"),
    builtin(["#throw", reg("error", kind=EAGER)], _throw, "#throw"),
]


# ============================================================
# Input/output
# ============================================================

def _print(value):
    print(format_term(value))
    return value


def _include(bindings: Bindings, context: Context) -> Any:
    program = parse(Path(bindings["filename"]).read_text())
    if context.asynchronous:
        return _include_async(program, context)
    for term in program:
        evaluate_term(term, context)
    return UNDEFINED


async def _include_async(program, context: Context) -> Any:
    for term in program:
        await evaluate_term_async(term, context)
    return UNDEFINED


def _read(filename):
    return Path(filename).read_text()


def _write(filename, value):
    Path(filename).write_text(value)
    return UNDEFINED


IO_BUILTINS: List[Rule] = [
    # Call-form constants: (#read (filename)), (#write (filename text))
    *constants({"#read": _read, "#write": _write}),
    rule(["#print", reg("value", kind=EAGER)], [_print, [reg("value")]], "#print"),
    builtin(["#include", reg("filename", "string", kind=EAGER)], _include, "#include"),
]


BUILTINS: List[Rule] = [
    *CORE_BUILTINS,
    *OPERATOR_BUILTINS,
    *OBJECT_BUILTINS,
    *EXCEPTION_BUILTINS,
]

# Named rule sets for front ends
BUILTIN_PRELUDES: Dict[str, List[Rule]] = {
    "none": [],
    "core": CORE_BUILTINS,
    "io": IO_BUILTINS,
    "default": BUILTINS,
    "full": [*BUILTINS, *IO_BUILTINS],
}
