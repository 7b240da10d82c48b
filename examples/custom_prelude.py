"""
Example custom prelude for TERMITE.

A prelude file defines RULES, the rule list a new context starts with.

Usage:
    termite -p examples/custom_prelude.py -e "(gcd 12 8)"
"""

import math
from termite import BUILTINS, IO_BUILTINS, constants, reg, rule


def binary(name, fn):
    """(name ?a:number ?b:number) => fn(a, b)"""
    return rule([name, reg("a", "number"), reg("b", "number")],
                [fn, [reg("a"), reg("b")]], name)


def unary(name, fn):
    """(name ?x:number) => fn(x)"""
    return rule([name, reg("x", "number")], [fn, [reg("x")]], name)


# Start with the default builtins and extend them
RULES = [
    *BUILTINS,
    *IO_BUILTINS,

    # Number theory
    binary("gcd", math.gcd),
    binary("lcm", lambda a, b: a * b // math.gcd(a, b)),
    unary("factorial", math.factorial),

    # Rounding
    unary("floor", math.floor),
    unary("ceil", math.ceil),
    unary("sqrt", math.sqrt),

    # Comparison
    binary("min", min),
    binary("max", max),
    rule([reg("a", "number"), "<", reg("b", "number")],
         [lambda a, b: a < b, [reg("a"), reg("b")]], "<"),
    rule([reg("a", "number"), ">", reg("b", "number")],
         [lambda a, b: a > b, [reg("a"), reg("b")]], ">"),

    # Predicates
    rule(["even?", reg("x", "number")], [lambda x: x % 2 == 0, [reg("x")]], "even?"),
    rule(["odd?", reg("x", "number")], [lambda x: x % 2 == 1, [reg("x")]], "odd?"),

    *constants({"pi": math.pi, "e": math.e}),
]
