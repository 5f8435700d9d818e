"""
Rule engine: compiles rules once and resolves a context in canonical order.

Canonical order is priority descending, then insertion order ascending, so
two rules with equal priority always resolve to the one registered first.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import AbstractSet, Iterable, Optional

from .config import Rule, RuleKind
from .errors import RuleError
from .globbing import (
    compile_path_pattern,
    compile_remote_pattern,
    normalize_context_path,
    normalize_remote_url,
)


@dataclass(frozen=True, slots=True)
class MatchContext:
    path: Optional[Path] = None
    remote_url: Optional[str] = None


@dataclass(frozen=True, slots=True)
class RuleSet:
    """Immutable, insertion-ordered snapshot of the configured rules."""

    rules: tuple[Rule, ...] = ()

    @classmethod
    def of(cls, rules: Iterable[Rule]) -> "RuleSet":
        return cls(tuple(rules))

    def canonical(self) -> list[tuple[int, Rule]]:
        return sorted(enumerate(self.rules), key=lambda item: (-item[1].priority, item[0]))

    def __len__(self) -> int:
        return len(self.rules)


@dataclass(frozen=True, slots=True)
class CompiledRule:
    index: int
    rule: Rule
    matcher: re.Pattern[str]

    @property
    def identity(self) -> str:
        return self.rule.identity

    def matches(self, path_key: Optional[str], remote_key: Optional[str]) -> bool:
        match self.rule.kind:
            case RuleKind.PATH:
                subject = path_key
            case RuleKind.REMOTE:
                subject = remote_key
            case _:
                raise ValueError(f"Unknown rule kind: {self.rule.kind!r}")
        if subject is None:
            return False
        return self.matcher.fullmatch(subject) is not None


@dataclass(frozen=True, slots=True)
class CompiledRuleSet:
    rules: tuple[CompiledRule, ...] = ()
    dangling: tuple[int, ...] = ()
    disabled: tuple[int, ...] = ()

    def __len__(self) -> int:
        return len(self.rules)


def compile_pattern(kind: RuleKind, pattern: str) -> re.Pattern[str]:
    match kind:
        case RuleKind.PATH:
            return compile_path_pattern(pattern)
        case RuleKind.REMOTE:
            return compile_remote_pattern(pattern)
        case _:
            raise RuleError(f"Unknown rule kind: {kind!r}")


def validate_pattern(kind: RuleKind, pattern: str) -> None:
    compile_pattern(kind, pattern)


def compile_rules(rule_set: RuleSet, known_ids: AbstractSet[str]) -> CompiledRuleSet:
    compiled: list[CompiledRule] = []
    dangling: list[int] = []
    disabled: list[int] = []
    for index, rule in rule_set.canonical():
        if not rule.enabled:
            disabled.append(index)
            continue
        if rule.identity not in known_ids:
            dangling.append(index)
            continue
        compiled.append(CompiledRule(index, rule, compile_pattern(rule.kind, rule.pattern)))
    return CompiledRuleSet(tuple(compiled), tuple(sorted(dangling)), tuple(sorted(disabled)))


def context_keys(context: MatchContext) -> tuple[Optional[str], Optional[str]]:
    path_key = normalize_context_path(context.path) if context.path is not None else None
    return path_key, normalize_remote_url(context.remote_url)


def first_match(compiled: CompiledRuleSet, context: MatchContext) -> Optional[CompiledRule]:
    path_key, remote_key = context_keys(context)
    for rule in compiled.rules:
        if rule.matches(path_key, remote_key):
            return rule
    return None


def match_all(compiled: CompiledRuleSet, context: MatchContext) -> list[CompiledRule]:
    path_key, remote_key = context_keys(context)
    return [rule for rule in compiled.rules if rule.matches(path_key, remote_key)]


def resolve(compiled: CompiledRuleSet, context: MatchContext) -> Optional[str]:
    matched = first_match(compiled, context)
    return matched.identity if matched else None
