"""
Routing of document change events to the rules registered for them.
"""

import logging
from typing import Callable

from .models import Change, ChangeKind
from .services import DocumentStore

__all__ = ["TriggerRegistry", "Rule"]

logger = logging.getLogger(__name__)

Rule = Callable[[DocumentStore, Change], None]

ALL_KINDS = frozenset(ChangeKind)


class _Registration:  # pylint: disable=too-few-public-methods
    def __init__(self, pattern: str, kinds: frozenset, rule: Rule) -> None:
        self.pattern = tuple(s for s in pattern.strip("/").split("/") if s)
        self.kinds = kinds
        self.rule = rule

    def matches(self, change: Change) -> bool:
        if change.kind not in self.kinds:
            return False
        segments = change.path.segments
        if len(segments) != len(self.pattern):
            return False
        return all(
            p.startswith("{") or p == s for p, s in zip(self.pattern, segments)
        )


class TriggerRegistry:
    """
    Holds rules keyed by document path pattern, e.g.
    ``groups/{groupId}/expenses/{expenseId}``.
    """

    def __init__(self) -> None:
        self._registrations: list[_Registration] = []

    def _register(self, pattern: str, kinds: frozenset) -> Callable[[Rule], Rule]:
        def decorator(rule: Rule) -> Rule:
            self._registrations.append(_Registration(pattern, kinds, rule))
            return rule

        return decorator

    def on_write(self, pattern: str) -> Callable[[Rule], Rule]:
        """Run the rule on create, update and delete."""
        return self._register(pattern, ALL_KINDS)

    def on_create(self, pattern: str) -> Callable[[Rule], Rule]:
        return self._register(pattern, frozenset({ChangeKind.CREATE}))

    def on_update(self, pattern: str) -> Callable[[Rule], Rule]:
        return self._register(pattern, frozenset({ChangeKind.UPDATE}))

    def on_delete(self, pattern: str) -> Callable[[Rule], Rule]:
        return self._register(pattern, frozenset({ChangeKind.DELETE}))

    def rules_for(self, change: Change) -> list[Rule]:
        return [r.rule for r in self._registrations if r.matches(change)]

    def dispatch(self, store: DocumentStore, change: Change) -> int:
        """Run every rule matching the change, in registration order."""
        rules = self.rules_for(change)
        if not rules:
            logger.debug("No rules registered for %r", change)
        for rule in rules:
            logger.info("Running %s for %r", rule.__name__, change)
            rule(store, change)
        return len(rules)
