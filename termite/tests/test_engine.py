"""Tests for the rewrite engine: rules, contexts and evaluation."""

import pytest
from termite import (
    Context, Rule, Strategy, Symbol, UNDEFINED, builtin, constant, constants,
    evaluate, evaluate_term, evaluate_terms, execute, find_redex, parse, reg, rule,
    BuiltinError, NonTerminationError, PatternError, ThrownError,
)


class TestRule:
    """Tests for Rule construction."""

    def test_default_name_is_pattern(self):
        """rule() names a rule after its pattern."""
        assert rule(["f", reg("x")], 1).name == "(f ?x)"

    def test_explicit_name(self):
        """An explicit name wins."""
        assert rule("a", "b", "a-to-b").name == "a-to-b"

    def test_invalid_pattern_rejected(self):
        """A misplaced splat fails at construction."""
        with pytest.raises(PatternError):
            rule([reg("xs", splat=True), "x"], 1)

    def test_is_builtin(self):
        """builtin() rules are flagged as builtins."""
        assert builtin("x", lambda b, c: 1).is_builtin
        assert not rule("x", 1).is_builtin

    def test_str(self):
        """str() shows pattern and replacement."""
        assert str(rule(["f", reg("x")], [reg("x")])) == "(f ?x) => (?x)"

    def test_rules_compare_by_identity(self):
        """Two rules built alike are still different rules."""
        assert rule("a", "b") != rule("a", "b")


class TestContextRules:
    """Tests for the context's rule store."""

    def test_add_rule_appends(self):
        """New rules go to the end of the list."""
        context = Context([rule("a", 1, "first")])
        added = context.add_rule("b", 2)
        assert context.rules[-1] is added
        assert len(context) == 2

    def test_default_rule_names(self):
        """Unnamed rules are named after the rule count."""
        context = Context()
        assert context.add_rule("a", 1).name == "rule-0"
        assert context.add_rule("b", 2).name == "rule-1"

    def test_remove_by_rule(self):
        """Removing a rule returns True once, then False."""
        context = Context()
        handle = context.add_rule(1, "Hello!")
        assert context.remove_rule(handle) is True
        assert context.remove_rule(handle) is False
        assert len(context) == 0

    def test_remove_by_name(self):
        """Rules can be removed by name."""
        context = Context()
        context.add_rule(1, "one", "one")
        assert "one" in context
        assert context.remove_rule("one") is True
        assert "one" not in context

    def test_remove_unknown(self):
        """Removing something that isn't there returns False."""
        assert Context().remove_rule("nope") is False
        assert Context().remove_rule(rule("a", 1)) is False

    def test_remove_only_that_rule(self):
        """Removal is by identity, not structure."""
        first = rule("a", 1)
        second = rule("a", 1)
        context = Context([first, second])
        context.remove_rule(second)
        assert context.rules == [first]

    def test_constructor_copies_rules(self):
        """The context owns its own rule list."""
        rules = [rule("a", 1)]
        context = Context(rules)
        context.add_rule("b", 2)
        assert len(rules) == 1

    def test_copy(self):
        """copy() shares rules and settings but not the list."""
        context = Context([rule("a", 1)], strategy="innermost-leftmost", max_iterations=5)
        clone = context.copy()
        clone.add_rule("b", 2)
        assert len(context) == 1
        assert clone.strategy is Strategy.INNERMOST_LEFTMOST
        assert clone.max_iterations == 5

    def test_get_and_list_rules(self):
        """Rules can be looked up and listed."""
        context = Context()
        context.add_rule(["f", reg("x")], reg("x"), "unwrap")
        assert context.get_rule("unwrap").name == "unwrap"
        assert context.get_rule("missing") is None
        assert context.list_rules() == ["unwrap: (f ?x) => ?x"]

    def test_clear(self):
        """clear() empties the rule list."""
        context = Context.with_builtins()
        context.clear()
        assert len(context) == 0

    def test_iteration_is_snapshot(self):
        """Iterating while adding rules doesn't loop forever."""
        context = Context([rule("a", 1)])
        for existing in context:
            context.add_rule("b", 2)
        assert len(context) == 2


class TestEvaluateTerm:
    """Tests for rewriting to a fixed point."""

    def test_no_rules_is_identity(self):
        """With no rules a term is already a fixed point."""
        assert evaluate_term(["f", 1], Context()) == ["f", 1]

    def test_chain(self):
        """Rules apply until nothing matches."""
        context = Context([
            rule("a", ["b"]),
            rule(["b"], ["c"]),
            rule(["c"], "done"),
        ])
        assert evaluate_term("a", context) == "done"

    def test_rewrites_inside_objects(self):
        """Object values are subterms too."""
        context = Context([rule("x", 1)])
        assert evaluate_term({"k": ["x", "x"]}, context) == {"k": [1, 1]}

    def test_input_not_mutated(self):
        """The caller's term is copied before rewriting."""
        context = Context([rule("a", "b")])
        term = ["a", ["a"]]
        assert evaluate_term(term, context) == ["b", ["b"]]
        assert term == ["a", ["a"]]

    def test_result_is_fixed_point(self):
        """No rule matches anywhere in the result."""
        context = Context([rule(["s", reg("n", "number")], reg("n"))])
        result = evaluate_term(["s", ["s", ["s", 0]]], context)
        assert result == 0
        assert find_redex(result, context) is None

    def test_find_redex(self):
        """find_redex() returns rule, bindings and location."""
        target = rule(["g", reg("x")], reg("x"))
        found = find_redex(["f", ["g", 1]], Context([target]))
        applied, bindings, location = found
        assert applied is target
        assert bindings["x"] == 1
        assert location.key == 1

    def test_iteration_budget(self):
        """A looping rule set raises NonTerminationError."""
        context = Context([rule("a", "b"), rule("b", "a")], max_iterations=10)
        with pytest.raises(NonTerminationError) as info:
            evaluate_term("a", context)
        assert info.value.max_iterations == 10

    def test_self_rewrite_hits_budget(self):
        """A rule that rewrites a term to itself still stops."""
        context = Context([rule("x", "x")], max_iterations=25)
        with pytest.raises(NonTerminationError):
            evaluate_term("x", context)
        assert context.iteration == 25

    def test_budget_allows_exact_count(self):
        """Exactly max_iterations rewrites succeed."""
        context = Context([rule("a", "b"), rule("b", "c")], max_iterations=2)
        assert evaluate_term("a", context) == "c"

    def test_growing_term_hits_budget(self):
        """A rule that keeps growing the term is stopped."""
        context = Context([rule(["grow", reg("x")], ["grow", ["grow", reg("x")]])],
                          max_iterations=50)
        with pytest.raises(NonTerminationError):
            evaluate_term(["grow", 0], context)

    def test_unbound_template_register(self):
        """Registers missing from the pattern instantiate to undefined."""
        context = Context([rule(["f"], ["g", reg("nope")])])
        assert evaluate_term(["f"], context) == ["g", UNDEFINED]

    def test_splat_rule(self):
        """Splat registers move tails between lists."""
        context = Context([rule(["list", reg("xs", splat=True)], ["vec", reg("xs", splat=True)])])
        assert evaluate_term(["list", 1, 2, 3], context) == ["vec", 1, 2, 3]


class TestEagerRegisters:
    """Tests for eager evaluation of bindings."""

    def test_eager_binding_is_normalised(self):
        """An eager register binds the normal form of its subterm."""
        seen = []

        def record(bindings, context):
            seen.append(bindings["x"])
            return "done"

        context = Context([
            rule("a", "b"),
            builtin(["show", reg("x", kind="eager")], record),
        ])
        assert evaluate_term(["show", ["a", "a"]], context) == "done"
        assert seen == [["b", "b"]]

    def test_lazy_binding_is_raw(self):
        """A lazy register binds the subterm as found."""
        seen = []

        def record(bindings, context):
            seen.append(bindings["x"])
            return "done"

        context = Context([
            builtin(["show", reg("x")], record),
            rule("a", "b"),
        ])
        evaluate_term(["show", "a"], context)
        assert seen == ["a"]

    def test_eager_forcing_counts_against_budget(self):
        """Rewrites inside eager forcing are counted with the outer ones."""
        context = Context([
            rule("a", "b"),
            builtin(["show", reg("x", kind="eager")], lambda b, c: b["x"]),
        ])
        assert evaluate_term(["show", "a"], context) == "b"
        assert context.iteration == 2

    def test_self_reference_hits_depth_limit(self):
        """Unbounded eager nesting stops at max_depth."""
        context = Context([
            rule(["loop", reg("x", kind="eager")], "never"),
            rule("seed", ["loop", "seed"]),
        ], max_depth=20)
        with pytest.raises(NonTerminationError, match="depth"):
            evaluate_term(["loop", "seed"], context)
        assert context.depth == 0


class TestBuiltinInvocation:
    """Tests for builtin rules and host functions."""

    def test_builtin_receives_bindings_and_context(self):
        """fn(bindings, context) computes the replacement."""
        context = Context([builtin(["double", reg("n", "number")],
                                   lambda b, c: b["n"] * 2)])
        assert evaluate_term(["double", 21], context) == 42

    def test_builtin_result_is_not_a_template(self):
        """Registers in a builtin's result are left as they are."""
        context = Context([builtin("r", lambda b, c: reg("x"))])
        assert evaluate_term("r", context) == reg("x")

    def test_builtin_may_return_host_values(self):
        """Opaque host values pass through unchanged."""
        token = Symbol("token")
        context = Context([builtin("t", lambda b, c: token)])
        assert evaluate_term("t", context) is token

    def test_host_exception_wrapped(self):
        """Host exceptions become BuiltinError naming the rule."""
        def boom(bindings, context):
            raise KeyError("missing")

        context = Context([builtin("x", boom, "boom")])
        with pytest.raises(BuiltinError, match="boom") as info:
            evaluate_term("x", context)
        assert isinstance(info.value.__cause__, KeyError)
        assert info.value.rule_name == "boom"

    def test_termite_errors_propagate_unwrapped(self):
        """ThrownError from a builtin is not wrapped."""
        def throw(bindings, context):
            raise ThrownError("oops")

        with pytest.raises(ThrownError):
            evaluate_term("x", Context([builtin("x", throw)]))

    def test_sync_rejects_awaitable(self):
        """The synchronous evaluator refuses async builtins."""
        async def later(bindings, context):
            return 1

        with pytest.raises(BuiltinError, match="evaluate_term_async"):
            evaluate_term("x", Context([builtin("x", later)]))

    def test_builtin_mutating_rules_takes_effect_immediately(self):
        """A rule added mid-evaluation is used on the next step."""
        def install(bindings, context):
            context.add_rule("later", "installed")
            return "later"

        context = Context([builtin("now", install)])
        assert evaluate_term("now", context) == "installed"

    def test_rule_removed_mid_evaluation(self):
        """A rule removed mid-evaluation no longer fires."""
        def uninstall(bindings, context):
            context.remove_rule("x-to-y")
            return ["x"]

        context = Context([
            builtin("go", uninstall),
            rule("x", "y", "x-to-y"),
        ])
        assert evaluate_term("go", context) == ["x"]


class TestConstants:
    """Tests for constant rules."""

    def test_constant_via_call_form(self):
        """constant() rewrites a name to a value through the call rule."""
        context = Context.with_builtins()
        context.add(constant("pi", 3.14159))
        assert evaluate_term(["pi", "*", 2], context) == pytest.approx(6.28318)

    def test_constant_host_value(self):
        """Constants can hold opaque host values."""
        marker = object()
        context = Context.with_builtins()
        context.add(constant("marker", marker))
        assert evaluate_term("marker", context) is marker

    def test_constants(self):
        """constants() builds one rule per entry."""
        made = constants({"one": 1, "two": 2})
        assert [r.name for r in made] == ["one", "two"]
        assert all(isinstance(r, Rule) for r in made)


class TestEvaluatePrograms:
    """Tests for program-level evaluation."""

    def test_evaluate_default_context(self):
        """evaluate() without a context uses the builtins."""
        assert evaluate(parse("(1 + (2 * 3))")) == [7]

    def test_evaluate_terms_resets_budget(self):
        """Each top-level term gets a fresh iteration budget."""
        context = Context([rule("a", "b"), rule("b", "c")], max_iterations=2)
        assert evaluate_terms(["a", "a", "a"], context) == ["c", "c", "c"]

    def test_one_derivation_per_term(self):
        """Each top-level term opens its own derivation."""
        context = Context([rule("a", "b", "a-b")])
        evaluate_terms(["a", "x", "a"], context)
        assert [len(d) for d in context.derivations] == [1, 0, 1]

    def test_rule_changes_persist(self):
        """Rules added by one term apply to the next."""
        context = Context.with_builtins()
        results = evaluate(parse('(#add-rule 1 "Hello!")\n1'), context)
        assert isinstance(results[0], Rule)
        assert results[1] == "Hello!"

    def test_execute_returns_last(self):
        """execute() returns the value of the last term."""
        assert execute(parse("(1 + 1)\n(2 + 2)")) == 4

    def test_execute_empty(self):
        """execute() of an empty program is None."""
        assert execute([]) is None
