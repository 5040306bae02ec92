"""
Rule Engine

Registry of accessibility rules keyed by their stable id. Evaluation runs
every registered rule independently against one content tree; a rule that
raises is logged and skipped so the remaining rules still report.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Tuple

from app.features.accessibility.exceptions import RuleEvaluationError
from app.features.accessibility.services.content_tree import ContentTree
from app.features.accessibility.services.rules import BUILTIN_RULES, Finding, Rule
from app.platform.config import settings

logger = logging.getLogger(__name__)


class RuleEngine:
    def __init__(self, rules: Optional[Iterable[Rule]] = None, max_workers: int = 1):
        self._rules: Dict[str, Rule] = {}
        self.max_workers = max(1, max_workers)
        for rule in rules or ():
            self.register_rule(rule)

    def register_rule(self, rule: Rule) -> None:
        """Register a rule; a rule with the same id is replaced."""
        if not getattr(rule, "id", None):
            raise ValueError(f"Rule {rule!r} has no id")
        if rule.id in self._rules:
            logger.info(f"Replacing accessibility rule '{rule.id}'")
        self._rules[rule.id] = rule

    def unregister_rule(self, rule_id: str) -> None:
        self._rules.pop(rule_id, None)

    @property
    def rules(self) -> List[Rule]:
        return [self._rules[rule_id] for rule_id in sorted(self._rules)]

    @property
    def rule_ids(self) -> List[str]:
        return sorted(self._rules)

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        return self._rules.get(rule_id)

    def evaluate(self, tree: ContentTree) -> List[Finding]:
        """
        Run all registered rules against a tree.

        Args:
            tree: parsed resource content

        Returns:
            Findings of every rule that completed, grouped by rule id
        """
        findings, _ = self.evaluate_with_errors(tree)
        return findings

    def evaluate_with_errors(self, tree: ContentTree) -> Tuple[List[Finding], List[RuleEvaluationError]]:
        rules = self.rules
        if self.max_workers > 1 and len(rules) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="a11y-rule") as pool:
                outcomes = list(pool.map(lambda rule: self._run_rule(rule, tree), rules))
        else:
            outcomes = [self._run_rule(rule, tree) for rule in rules]

        findings: List[Finding] = []
        errors: List[RuleEvaluationError] = []
        for outcome in outcomes:
            if isinstance(outcome, RuleEvaluationError):
                errors.append(outcome)
            else:
                findings.extend(outcome)
        return findings, errors

    @staticmethod
    def _run_rule(rule: Rule, tree: ContentTree):
        try:
            # Materialize inside the guard so lazy rules fail here too
            return list(rule.apply(tree))
        except Exception as e:
            logger.exception(f"Accessibility rule '{rule.id}' failed; skipping it")
            return RuleEvaluationError(rule.id, e)


def default_rule_engine(max_workers: int = 1) -> RuleEngine:
    """Engine with every built-in rule registered."""
    return RuleEngine([rule_cls() for rule_cls in BUILTIN_RULES], max_workers=max_workers)


@lru_cache(maxsize=1)
def shared_rule_engine() -> RuleEngine:
    """Process-wide engine with the built-in rules."""
    return default_rule_engine(max_workers=settings.A11Y_RULE_WORKERS)
