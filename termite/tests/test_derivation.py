"""Tests for derivation recording and formatting."""

import pytest
from termite import Context, Derivation, evaluate, evaluate_term, parse, rule


@pytest.fixture
def chain_context():
    return Context([
        rule("a", "b", "a-to-b"),
        rule("b", "c", "b-to-c"),
        rule(["pair", "c", "c"], "done", "pair"),
    ])


class TestDerivationRecording:
    """Tests for what gets recorded."""

    def test_rules_in_order(self, chain_context):
        """Applied rules are recorded in application order."""
        evaluate_term(["pair", "a", "a"], chain_context)
        assert chain_context.current_derivation.rules_applied() == \
            ["a-to-b", "b-to-c", "a-to-b", "b-to-c", "pair"]

    def test_no_rewrites(self):
        """A term that is already normal records nothing."""
        context = Context([rule("a", "b")])
        evaluate(["z"], context)
        assert not context.current_derivation
        assert len(context.current_derivation) == 0

    def test_no_derivation_before_evaluation(self):
        """A fresh context has no current derivation."""
        assert Context().current_derivation is None

    def test_eager_and_builtin_steps_recorded(self):
        """Steps taken while forcing eager registers are recorded too."""
        context = Context.with_builtins()
        evaluate(parse("(1 + (2 * 3))"), context)
        # The inner product is rewritten while "+" forces its operand.
        assert context.current_derivation.rules_applied() == ["*", "call", "+", "call"]

    def test_new_derivation_per_term(self, chain_context):
        """evaluate() keeps one derivation per top-level term."""
        evaluate(["a", "b"], chain_context)
        assert [d.rules_applied() for d in chain_context.derivations] == \
            [["a-to-b", "b-to-c"], ["b-to-c"]]

    def test_extend_derivation_creates_one(self):
        """extend_derivation() opens a derivation if needed."""
        context = Context()
        applied = rule("x", "y")
        context.extend_derivation(applied)
        assert list(context.current_derivation) == [applied]


class TestDerivationFormatting:
    """Tests for derivation output."""

    def make_derivation(self):
        derivation = Derivation()
        for name in ["a", "b", "a"]:
            derivation.extend(rule(name, "z", name))
        return derivation

    def test_rules_style(self):
        """The rules style joins names with arrows."""
        assert self.make_derivation().format("rules") == "a -> b -> a"

    def test_compact_style(self):
        """The compact style prefixes the step count."""
        assert self.make_derivation().format("compact") == "[3 steps] a -> b -> a"

    def test_str_is_rules_style(self):
        """str() uses the rules style."""
        assert str(self.make_derivation()) == "a -> b -> a"

    def test_empty(self):
        """An empty derivation says so."""
        assert Derivation().format() == "(no rules applied)"
        assert Derivation().summary() == "No rewriting performed"

    def test_unknown_style(self):
        """Unknown styles raise ValueError."""
        with pytest.raises(ValueError, match="Unknown derivation style"):
            Derivation().format("verbose")

    def test_rule_counts(self):
        """rule_counts() tallies by name."""
        assert self.make_derivation().rule_counts() == {"a": 2, "b": 1}

    def test_summary(self):
        """summary() reports steps, unique rules and the most used rule."""
        assert self.make_derivation().summary() == \
            "3 steps using 2 unique rules. Most used: a (2x)"

    def test_to_dict(self):
        """to_dict() is JSON-friendly."""
        assert self.make_derivation().to_dict() == {"rules": ["a", "b", "a"], "step_count": 3}
