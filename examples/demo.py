#!/usr/bin/env python3
"""
TERMITE Feature Demonstration

This script walks through the major features of the TERMITE library.
"""

import asyncio

from termite import (
    Context, builtin, evaluate, evaluate_term_async, execute, format_term,
    match, parse, reg, rule,
)


def section(title: str):
    """Print a section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print('='*60)


def show(source: str, context: Context):
    for line, value in zip(source.strip().splitlines(), evaluate(parse(source), context)):
        print(f"  {line.strip()} => {format_term(value)}")


def demo_arithmetic():
    """Builtin operators."""
    section("Arithmetic")
    show("""
        (1 + (2 * 3))
        (7 / 2)
        ((1 + 1) === 2)
        (true == 1)
        (true === 1)
    """, Context.with_builtins())


def demo_patterns():
    """Matching with registers."""
    section("Pattern Matching")

    examples = [
        ([reg("a"), "+", reg("b")], [1, "+", [2, "*", 3]]),
        (["f", reg("n", "number")], ["f", "x"]),
        (["list", reg("rest", splat=True)], ["list", 1, 2, 3]),
        ({"name": reg("n")}, {"name": "ada", "age": 36}),
    ]

    for pattern, term in examples:
        bindings = match(pattern, term)
        result = bindings.to_dict() if bindings else "no match"
        print(f"  {format_term(pattern)} ~ {format_term(term)} => {result}")


def demo_rules():
    """Rules added and removed by the program itself."""
    section("Self-Modifying Rules")
    context = Context.with_builtins()
    show("""
        (#add-rule (factorial 0) 1)
        (#add-rule (factorial ?n:number) (?n * (factorial (?n - 1))) factorial)
        (factorial 5)
        (#remove-rule factorial)
        (factorial 5)
    """, context)
    print(f"  derivations: {[len(d) for d in context.derivations]}")


def demo_exceptions():
    """#try and #throw."""
    section("Exceptions")
    show("""
        (#try (#throw (1 + 1)))
        (#try (1 / 0))
    """, Context.with_builtins())


def demo_python_rules():
    """Rules written in Python."""
    section("Python Rules")

    context = Context.with_builtins()
    context.add(rule(["square", reg("n", "number")], [reg("n"), "*", reg("n")], "square"))
    context.add(builtin(["upper", reg("s", "string")], lambda b, c: b["s"].upper(), "upper"))

    print(f"  (square 12) => {execute([['square', 12]], context)}")
    print(f"  (upper hi) => {execute([['upper', 'hi']], context)}")


def demo_async():
    """Builtins that await."""
    section("Async Builtins")

    async def lookup(bindings, context):
        await asyncio.sleep(0)
        return {"key": bindings["k"], "found": True}

    context = Context([builtin(["lookup", reg("k")], lookup, "lookup")])
    result = asyncio.run(evaluate_term_async(["lookup", "user"], context))
    print(f"  (lookup user) => {format_term(result)}")


if __name__ == "__main__":
    demo_arithmetic()
    demo_patterns()
    demo_rules()
    demo_exceptions()
    demo_python_rules()
    demo_async()
