"""Tests for the asynchronous evaluator."""

import asyncio

import pytest
from termite import (
    BUILTINS, IO_BUILTINS, UNDEFINED, BuiltinError, Context, NonTerminationError,
    ThrownError, builtin, evaluate_term, evaluate_term_async, evaluate_terms_async,
    parse, reg, rule,
)


async def fetch(bindings, context):
    await asyncio.sleep(0)
    return ["fetched", bindings["key"]]


class TestEvaluateTermAsync:
    """Tests for evaluate_term_async()."""

    def test_sync_rules_work(self):
        """Plain rules behave as in the synchronous evaluator."""
        context = Context.with_builtins()
        assert asyncio.run(evaluate_term_async(parse("(1 + (2 * 3))")[0], context)) == 7

    def test_awaits_builtin_result(self):
        """An async builtin's result is awaited before replacement."""
        context = Context([builtin(["fetch", reg("key")], fetch)])
        assert asyncio.run(evaluate_term_async(["fetch", "k"], context)) == ["fetched", "k"]

    def test_awaits_host_function_in_call_form(self):
        """Coroutine functions work through the call rule."""
        async def add(a, b):
            await asyncio.sleep(0)
            return a + b

        context = Context.with_builtins()
        assert asyncio.run(evaluate_term_async([add, [2, 3]], context)) == 5

    def test_eager_bindings_use_async_evaluator(self):
        """Eager forcing awaits nested async builtins."""
        context = Context([
            builtin(["fetch", reg("key")], fetch),
            builtin(["first", reg("x", kind="eager")], lambda b, c: b["x"][0]),
        ])
        assert asyncio.run(evaluate_term_async(["first", ["fetch", "k"]], context)) == "fetched"

    def test_async_exception_wrapped(self):
        """Exceptions from awaited builtins become BuiltinError."""
        async def fail(bindings, context):
            raise RuntimeError("down")

        context = Context([builtin("x", fail, "fail")])
        with pytest.raises(BuiltinError, match="down"):
            asyncio.run(evaluate_term_async("x", context))

    def test_async_thrown_error_propagates(self):
        """ThrownError from an awaited builtin is not wrapped."""
        async def throw(bindings, context):
            raise ThrownError("payload")

        with pytest.raises(ThrownError):
            asyncio.run(evaluate_term_async("x", Context([builtin("x", throw)])))

    def test_budget_applies(self):
        """The iteration budget is enforced."""
        context = Context([rule("a", "b"), rule("b", "a")], max_iterations=5)
        with pytest.raises(NonTerminationError):
            asyncio.run(evaluate_term_async("a", context))

    def test_input_not_mutated(self):
        """The caller's term is copied first."""
        term = ["a"]
        asyncio.run(evaluate_term_async(term, Context([rule("a", "b")])))
        assert term == ["a"]


class TestEvaluateTermsAsync:
    """Tests for evaluate_terms_async()."""

    def test_program(self):
        """Each term is evaluated in order against one context."""
        context = Context.with_builtins()
        program = parse('(#add-rule (double ?n:number) (?n * 2))\n(double 4)')
        results = asyncio.run(evaluate_terms_async(program, context))
        assert results[1] == 8
        assert len(context.derivations) == 2


class TestAsyncBuiltins:
    """Builtins that evaluate subterms follow the running evaluator."""

    def test_try_awaits_async_builtin(self):
        """#try under the async evaluator awaits the wrapped term."""
        async def later(bindings, context):
            await asyncio.sleep(0)
            return 5

        context = Context([*BUILTINS, builtin(["wait"], later, "wait")])
        assert asyncio.run(evaluate_term_async(["#try", ["wait"]], context)) == 5

    def test_try_catches_async_throw(self):
        """A throw raised while awaiting inside #try yields its payload."""
        async def throw(bindings, context):
            await asyncio.sleep(0)
            raise ThrownError("late")

        context = Context([*BUILTINS, builtin(["boom"], throw, "boom")])
        assert asyncio.run(evaluate_term_async(["#try", ["boom"]], context)) == "late"

    def test_include_awaits_async_builtin(self, tmp_path):
        """#include under the async evaluator awaits the included terms."""
        seen = []

        async def record(bindings, context):
            await asyncio.sleep(0)
            seen.append(bindings["x"])
            return bindings["x"]

        library = tmp_path / "lib.tmt"
        library.write_text("(record a)\n(record b)\n")
        context = Context([*BUILTINS, *IO_BUILTINS, builtin(["record", reg("x")], record)])
        result = asyncio.run(evaluate_term_async(["#include", str(library)], context))
        assert result is UNDEFINED
        assert seen == ["a", "b"]

    def test_flag_restored(self):
        """The async flag is cleared once evaluation finishes."""
        context = Context.with_builtins()
        asyncio.run(evaluate_term_async(["#try", [1, "+", 2]], context))
        assert context.asynchronous is False
        assert evaluate_term(["#try", [1, "+", 2]], context) == 3
