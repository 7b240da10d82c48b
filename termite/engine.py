"""
Rewrite engine for TERMITE.

A Context owns an ordered, mutable list of rules plus the evaluation
settings (strategy, iteration budget). evaluate_term() rewrites a term
to a fixed point:

    1. walk the subterms in strategy order; at the first subterm some
       rule matches, take the first matching rule
    2. force eager bindings (evaluate them to their own fixed point)
    3. instantiate the rule's template, or invoke its builtin
    4. overwrite the matched slot with the result and record the rule
    5. repeat until no subterm matches anything

The rule list is read afresh on every iteration, so builtins that add or
remove rules affect the very next step of the same evaluation.

Example:
    from termite import Context, parse, evaluate, reg

    context = Context.with_builtins()
    context.add_rule(["double", reg("n", "number")], [reg("n"), "*", 2])
    evaluate(parse("(double 21)"), context)  # => [42]
"""

import contextlib
import inspect
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .errors import BuiltinError, NonTerminationError, TermiteError
from .rewriter import (
    Bindings, Location, MatchResult, Strategy, instantiate, match, subterms,
    validate_pattern,
)
from .terms import TermType, copy_term, format_term

logger = logging.getLogger(__name__)

# A builtin receives the match's bindings and the owning context.
BuiltinType = Callable[[Bindings, 'Context'], Any]


# ============================================================
# Rules
# ============================================================

class TermReplacement:
    """Replacement that instantiates a template term."""

    __slots__ = ('term',)

    def __init__(self, term: TermType):
        self.term = term

    def __call__(self, bindings: Bindings, context: 'Context') -> TermType:
        return instantiate(self.term, bindings)

    def __repr__(self) -> str:
        return format_term(self.term)


class BuiltinReplacement:
    """Replacement computed by a host function."""

    __slots__ = ('builtin',)

    def __init__(self, builtin: BuiltinType):
        self.builtin = builtin

    def __call__(self, bindings: Bindings, context: 'Context') -> Any:
        return self.builtin(bindings, context)

    def __repr__(self) -> str:
        return f"builtin {getattr(self.builtin, '__name__', None) or '(anonymous)'}"


Replacement = Union[TermReplacement, BuiltinReplacement]


class Rule:
    """
    A rewrite rule: a pattern and what to replace matches with.

    Rules are compared by identity. The pattern is validated on
    construction.

    Raises:
        PatternError: If a splat register is not the last element of a list
    """

    __slots__ = ('pattern', 'replacement', 'name')

    def __init__(self, pattern: TermType, replacement: Replacement, name: str):
        validate_pattern(pattern)
        self.pattern = pattern
        self.replacement = replacement
        self.name = name

    @property
    def is_builtin(self) -> bool:
        return isinstance(self.replacement, BuiltinReplacement)

    def match(self, term: TermType) -> MatchResult:
        return match(self.pattern, term)

    def evaluate(self, bindings: Bindings, context: 'Context') -> Any:
        """Compute the replacement for a match."""
        return self.replacement(bindings, context)

    def __str__(self) -> str:
        return f"{format_term(self.pattern)} => {self.replacement!r}"

    def __repr__(self) -> str:
        return f"Rule({self.name}: {self})"


def rule(pattern: TermType, replacement: TermType, name: Optional[str] = None) -> Rule:
    """
    Create a rule that rewrites `pattern` to the template `replacement`.

    The name defaults to the formatted pattern and is what derivations show.
    """
    return Rule(pattern, TermReplacement(replacement),
                name if name is not None else format_term(pattern))


def builtin(pattern: TermType, fn: BuiltinType, name: Optional[str] = None) -> Rule:
    """Create a rule that invokes `fn(bindings, context)` on a match."""
    return Rule(pattern, BuiltinReplacement(fn),
                name if name is not None else format_term(pattern))


def constant(name: str, value: Any, derivation_name: Optional[str] = None) -> Rule:
    """
    Create a rule that rewrites the string `name` to `value`.

    The replacement is a call form, so `value` can be any host object and
    is never instantiated as a template.
    """
    return rule(name, [lambda: value, []], derivation_name if derivation_name is not None else name)


def constants(values: Dict[str, Any]) -> List[Rule]:
    """Create one constant() rule per entry."""
    return [constant(name, value) for name, value in values.items()]


# ============================================================
# Derivations
# ============================================================

class Derivation:
    """
    The rules applied, in order, while evaluating one top-level term.

    Only rules are recorded: terms are rewritten in place, so earlier
    intermediate terms are not kept.
    """

    def __init__(self):
        self.rules: List[Rule] = []

    def extend(self, rule: Rule) -> None:
        self.rules.append(rule)

    def rules_applied(self) -> List[str]:
        """Get list of rule names in order of application."""
        return [r.name for r in self.rules]

    def rule_counts(self) -> Dict[str, int]:
        """Count how many times each rule was applied."""
        counts: Dict[str, int] = {}
        for r in self.rules:
            counts[r.name] = counts.get(r.name, 0) + 1
        return counts

    def summary(self) -> str:
        """Get a brief summary of the derivation."""
        if not self.rules:
            return "No rewriting performed"
        counts = self.rule_counts()
        most_used = max(counts.items(), key=lambda x: x[1])
        return (f"{len(self.rules)} steps using {len(counts)} unique rules. "
                f"Most used: {most_used[0]} ({most_used[1]}x)")

    def format(self, style: str = "rules") -> str:
        """
        Format the derivation.

        Args:
            style: "rules" for the rule chain ("a -> b"), or "compact"
                   for the chain prefixed with the step count

        Returns:
            Formatted string representation of the derivation.
        """
        chain = " -> ".join(self.rules_applied()) if self.rules else "(no rules applied)"
        if style == "rules":
            return chain
        if style == "compact":
            return f"[{len(self.rules)} steps] {chain}"
        raise ValueError(f"Unknown derivation style: {style}. Valid options: rules, compact")

    def to_dict(self) -> Dict:
        """Convert derivation to dictionary for JSON serialization."""
        return {
            "rules": self.rules_applied(),
            "step_count": len(self.rules),
        }

    def __str__(self) -> str:
        return self.format("rules")

    def __repr__(self) -> str:
        return f"Derivation({self.format('rules')})"

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(self.rules)

    def __bool__(self) -> bool:
        """True if any rewriting was done."""
        return len(self.rules) > 0


# ============================================================
# Context
# ============================================================

class Context:
    """
    Evaluation context: the live rule list and evaluation settings.

    Args:
        rules: Initial rules, highest priority first (copied)
        strategy: "outermost-leftmost" (default) or "innermost-leftmost"
        max_iterations: Rewrites allowed per top-level term
        max_depth: Nesting allowed for eager and builtin-driven sub-evaluations

    Example:
        context = Context.with_builtins(max_iterations=500)
        hello = context.add_rule(1, "Hello!")
        context.remove_rule(hello)  # => True
    """

    def __init__(self, rules: Optional[Iterable[Rule]] = None,
                 strategy: Union[str, Strategy] = Strategy.OUTERMOST_LEFTMOST,
                 max_iterations: int = 1000, max_depth: int = 200,
                 iteration: int = 0):
        self.rules: List[Rule] = list(rules) if rules is not None else []
        self.strategy = strategy
        self.max_iterations = max_iterations
        self.max_depth = max_depth
        self.iteration = iteration
        self.depth = 0
        # True while the innermost running evaluation loop is the async one
        self.asynchronous = False
        self.derivations: List[Derivation] = []

    @classmethod
    def with_builtins(cls, **kwargs) -> 'Context':
        """Create a context preloaded with the default builtins."""
        from .builtins import BUILTINS
        return cls(BUILTINS, **kwargs)

    @property
    def strategy(self) -> Strategy:
        return self._strategy

    @strategy.setter
    def strategy(self, value: Union[str, Strategy]) -> None:
        self._strategy = Strategy.coerce(value)

    # ------------------------------------------------------------
    # Rule store
    # ------------------------------------------------------------

    def add(self, new_rule: Rule) -> Rule:
        """Append an existing Rule (lowest priority) and return it."""
        self.rules.append(new_rule)
        logger.debug("added rule %s", new_rule.name)
        return new_rule

    def add_rule(self, pattern: TermType, replacement: TermType,
                 name: Optional[str] = None) -> Rule:
        """
        Append a term rule to the end of the rule list.

        New rules are tried after every existing rule.

        Returns:
            The new Rule, usable as a handle for remove_rule()
        """
        if name is None:
            name = f"rule-{len(self.rules)}"
        return self.add(rule(pattern, replacement, name))

    def remove_rule(self, target: Union[Rule, str]) -> bool:
        """
        Remove a rule by identity, or the first rule with the given name.

        Returns:
            True if a rule was removed, False otherwise
        """
        if isinstance(target, str):
            target = self.get_rule(target)
        if not isinstance(target, Rule):
            return False
        for i, existing in enumerate(self.rules):
            if existing is target:
                del self.rules[i]
                logger.debug("removed rule %s", target.name)
                return True
        return False

    def get_rule(self, name: str) -> Optional[Rule]:
        """Get the first rule with the given name."""
        for existing in self.rules:
            if existing.name == name:
                return existing
        return None

    def list_rules(self) -> List[str]:
        """List all rules as 'name: pattern => replacement'."""
        return [f"{r.name}: {r}" for r in self.rules]

    def clear(self) -> 'Context':
        """Remove all rules."""
        self.rules.clear()
        return self

    def copy(self) -> 'Context':
        """Create a context with the same rules and settings and no history."""
        return Context(self.rules, strategy=self.strategy,
                       max_iterations=self.max_iterations, max_depth=self.max_depth)

    # ------------------------------------------------------------
    # Iterations and derivations
    # ------------------------------------------------------------

    def reset_iteration(self) -> None:
        self.iteration = 0

    def new_derivation(self) -> Derivation:
        derivation = Derivation()
        self.derivations.append(derivation)
        return derivation

    @property
    def current_derivation(self) -> Optional[Derivation]:
        return self.derivations[-1] if self.derivations else None

    def extend_derivation(self, applied: Rule) -> None:
        """Record an applied rule in the current derivation."""
        if not self.derivations:
            self.new_derivation()
        self.derivations[-1].extend(applied)

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(list(self.rules))

    def __contains__(self, name: str) -> bool:
        """Check if a named rule exists: 'rule-0' in context."""
        return self.get_rule(name) is not None

    def __repr__(self) -> str:
        return f"Context({len(self.rules)} rules, {self.strategy.value})"


# ============================================================
# Evaluation
# ============================================================

Redex = Tuple[Rule, Bindings, Optional[Location]]


def find_redex(term: TermType, context: Context) -> Optional[Redex]:
    """
    Find the first rule match under the context's strategy.

    Returns:
        (rule, bindings, location) for the first subterm that some rule
        matches, using the first such rule; None at a fixed point
    """
    for subterm in subterms(term, context.strategy):
        for candidate in context.rules:
            bindings = candidate.match(subterm.term)
            if bindings:
                return candidate, bindings, subterm.location
    return None


@contextlib.contextmanager
def _nested(context: Context, asynchronous: bool = False):
    if context.depth >= context.max_depth:
        raise NonTerminationError(
            context.max_iterations, f"maximum evaluation depth reached ({context.max_depth})")
    outer = context.asynchronous
    context.depth += 1
    context.asynchronous = asynchronous
    try:
        yield
    finally:
        context.depth -= 1
        context.asynchronous = outer


def _check_budget(context: Context) -> None:
    if context.iteration >= context.max_iterations:
        logger.debug("iteration budget of %d exhausted", context.max_iterations)
        raise NonTerminationError(context.max_iterations)


def _invoke(applied: Rule, bindings: Bindings, context: Context) -> Any:
    try:
        return applied.evaluate(bindings, context)
    except TermiteError:
        raise
    except Exception as e:
        raise BuiltinError(applied.name, f"{type(e).__name__}: {e}") from e


def _apply(term: TermType, location: Optional[Location], replacement: TermType,
           applied: Rule, context: Context) -> TermType:
    context.extend_derivation(applied)
    context.iteration += 1
    logger.debug("iteration %d: applied %s", context.iteration, applied.name)
    if location is None:
        return replacement
    location.replace(replacement)
    return term


def _evaluate(term: TermType, context: Context) -> TermType:
    with _nested(context):
        while True:
            redex = find_redex(term, context)
            if redex is None:
                return term
            _check_budget(context)
            applied, bindings, location = redex

            for name, binding in bindings.records():
                if binding.eager:
                    logger.debug("forcing eager binding %s", name)
                    binding.value = _evaluate(binding.value, context)

            replacement = _invoke(applied, bindings, context)
            if inspect.isawaitable(replacement):
                if inspect.iscoroutine(replacement):
                    replacement.close()
                raise BuiltinError(applied.name,
                                   "returned an awaitable; use evaluate_term_async")

            term = _apply(term, location, replacement, applied, context)


async def _evaluate_async(term: TermType, context: Context) -> TermType:
    with _nested(context, asynchronous=True):
        while True:
            redex = find_redex(term, context)
            if redex is None:
                return term
            _check_budget(context)
            applied, bindings, location = redex

            for name, binding in bindings.records():
                if binding.eager:
                    logger.debug("forcing eager binding %s", name)
                    binding.value = await _evaluate_async(binding.value, context)

            replacement = _invoke(applied, bindings, context)
            if inspect.isawaitable(replacement):
                try:
                    replacement = await replacement
                except TermiteError:
                    raise
                except Exception as e:
                    raise BuiltinError(applied.name, f"{type(e).__name__}: {e}") from e

            term = _apply(term, location, replacement, applied, context)


def evaluate_term(term: TermType, context: Context) -> TermType:
    """
    Rewrite `term` under `context` until no rule applies.

    The term's lists and objects are copied first, so the caller's value
    is left untouched. The iteration counter is *not* reset; sub-evaluations
    started by eager registers or builtins share the budget of the
    top-level term.

    Raises:
        NonTerminationError: If the iteration budget runs out; the partial
            result is discarded
        ThrownError: If #throw is evaluated outside #try
        BuiltinError: If a builtin or host function fails
    """
    return _evaluate(copy_term(term), context)


async def evaluate_term_async(term: TermType, context: Context) -> TermType:
    """
    Like evaluate_term(), but awaits builtins that return awaitables.

    Only eager forcing and builtin invocation suspend; matching,
    instantiation and traversal stay synchronous. Builtins that evaluate
    subterms themselves (#try, #include) check `context.asynchronous` and
    return a coroutine that uses this evaluator instead.
    """
    return await _evaluate_async(copy_term(term), context)


def evaluate_terms(terms: Iterable[TermType], context: Context) -> List[TermType]:
    """
    Evaluate each term independently against the same context.

    The iteration counter is reset and a new derivation opened before
    each term, so rule changes made by one term persist for the next.
    """
    results = []
    for term in terms:
        context.reset_iteration()
        context.new_derivation()
        results.append(evaluate_term(term, context))
    return results


async def evaluate_terms_async(terms: Iterable[TermType], context: Context) -> List[TermType]:
    """Async counterpart of evaluate_terms()."""
    results = []
    for term in terms:
        context.reset_iteration()
        context.new_derivation()
        results.append(await evaluate_term_async(term, context))
    return results


def evaluate(program: Iterable[TermType], context: Optional[Context] = None) -> List[TermType]:
    """
    Evaluate a program under `context`, or a fresh context with the
    default builtins.

    Example:
        evaluate(parse("(1 + (2 * 3))"))  # => [7]
    """
    if context is None:
        context = Context.with_builtins()
    return evaluate_terms(program, context)


def execute(program: Iterable[TermType], context: Optional[Context] = None) -> TermType:
    """Evaluate a program and return the value of its last term (None if empty)."""
    results = evaluate(program, context)
    if results:
        return results[-1]
    return None
