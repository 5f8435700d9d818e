"""
Composes the project override, rule matches and the global default into one
identity decision.

Resolution is a pure function of the identity snapshot, the compiled rules,
the default id and the ``ResolutionContext``; reading the ``.gid`` marker and
the remote URL happens beforehand in ``context_for_repository``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Mapping, Optional

from .config import Identity
from .errors import ResolutionError
from .project import read_project_override
from .repository import GitRepository
from .rules import CompiledRule, CompiledRuleSet, MatchContext, compile_rules, first_match

logger = logging.getLogger(__name__)


class ResolutionSource(str, Enum):
    OVERRIDE = "override"
    RULE = "rule"
    DEFAULT = "default"


@dataclass(frozen=True, slots=True)
class ResolutionContext:
    path: Path
    remote_url: Optional[str] = None
    override: Optional[str] = None

    def match_context(self) -> MatchContext:
        return MatchContext(path=self.path, remote_url=self.remote_url)


@dataclass(frozen=True, slots=True)
class Resolution:
    identity: Identity
    source: ResolutionSource
    rule: Optional[CompiledRule] = None

    def describe(self) -> str:
        match self.source:
            case ResolutionSource.OVERRIDE:
                return "project override (.gid)"
            case ResolutionSource.RULE:
                rule = self.rule.rule if self.rule else None
                if rule is None:
                    return "rule"
                return f"{rule.kind.value} rule {rule.pattern!r} (priority {rule.priority})"
            case ResolutionSource.DEFAULT:
                return "default identity"
        return self.source.value


class Resolver:
    def __init__(
        self,
        identities: Mapping[str, Identity] | Iterable[Identity],
        compiled: CompiledRuleSet,
        default_identity: Optional[str] = None,
    ) -> None:
        if isinstance(identities, Mapping):
            self._identities = dict(identities)
        else:
            self._identities = {identity.id: identity for identity in identities}
        self.compiled = compiled
        self.default_identity = default_identity

    @classmethod
    def from_store(cls, store) -> "Resolver":
        compiled = compile_rules(store.rule_set(), store.known_ids)
        return cls(store.identities, compiled, store.default_identity)

    def resolve_identity(self, context: ResolutionContext) -> Resolution:
        if context.override:
            identity = self._identities.get(context.override)
            if identity is not None:
                return Resolution(identity, ResolutionSource.OVERRIDE)
            logger.warning(
                "Project override names unknown identity '%s'; falling back to rules",
                context.override,
            )
        matched = first_match(self.compiled, context.match_context())
        if matched is not None:
            return Resolution(self._identities[matched.identity], ResolutionSource.RULE, matched)
        if self.default_identity:
            identity = self._identities.get(self.default_identity)
            if identity is not None:
                return Resolution(identity, ResolutionSource.DEFAULT)
        raise ResolutionError(f"No identity resolved for {context.path}")

    def try_resolve(self, context: ResolutionContext) -> Optional[Resolution]:
        try:
            return self.resolve_identity(context)
        except ResolutionError:
            return None


def context_for_repository(repo: GitRepository) -> ResolutionContext:
    root = repo.working_dir
    return ResolutionContext(
        path=root,
        remote_url=repo.origin_url(),
        override=read_project_override(root),
    )
