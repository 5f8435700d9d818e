"""
Pre-commit identity enforcement.

A check moves ``unchecked -> checking -> allowed | blocked``. An unresolved
context is allowed (fail-open); a mismatch is blocked unless bypassed.
Enforcement never writes git configuration.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from .config import Identity, Settings
from .errors import ResolutionError
from .resolver import Resolution, ResolutionContext, Resolver

logger = logging.getLogger(__name__)

BYPASS_ENV = "GID_SKIP"
_TRUTHY = {"1", "true", "yes", "on"}


class HookState(str, Enum):
    UNCHECKED = "unchecked"
    CHECKING = "checking"
    ALLOWED = "allowed"
    BLOCKED = "blocked"


@dataclass(frozen=True, slots=True)
class HookDecision:
    state: HookState
    message: str
    resolution: Optional[Resolution] = None
    actual_email: Optional[str] = None
    bypassed: bool = False

    @property
    def allowed(self) -> bool:
        return self.state is HookState.ALLOWED

    @property
    def expected(self) -> Optional[Identity]:
        return self.resolution.identity if self.resolution else None


def bypass_requested(flag: bool = False, environ: Optional[Mapping[str, str]] = None) -> bool:
    env = os.environ if environ is None else environ
    return flag or env.get(BYPASS_ENV, "").strip().lower() in _TRUTHY


def _same(a: Optional[str], b: Optional[str]) -> bool:
    if a is None or b is None:
        return False
    return a.strip().lower() == b.strip().lower()


class EnforcementCheck:
    def __init__(self, resolver: Resolver, settings: Optional[Settings] = None) -> None:
        self.resolver = resolver
        self.settings = settings or Settings()
        self.state = HookState.UNCHECKED

    def run(
        self,
        context: ResolutionContext,
        actual_email: Optional[str],
        actual_name: Optional[str] = None,
        *,
        bypass: bool = False,
    ) -> HookDecision:
        if self.state is not HookState.UNCHECKED:
            raise RuntimeError(f"Enforcement check already ran (state={self.state.value})")
        self.state = HookState.CHECKING
        decision = self._decide(context, actual_email, actual_name, bypass)
        self.state = decision.state
        return decision

    def _decide(
        self,
        context: ResolutionContext,
        actual_email: Optional[str],
        actual_name: Optional[str],
        bypass: bool,
    ) -> HookDecision:
        if not self.settings.pre_commit_check:
            return HookDecision(HookState.ALLOWED, "Identity check disabled (pre_commit_check=false)")
        try:
            resolution = self.resolver.resolve_identity(context)
        except ResolutionError:
            return HookDecision(
                HookState.ALLOWED,
                "No identity resolved for this repository; nothing to enforce",
                actual_email=actual_email,
            )
        expected = resolution.identity
        mismatches = []
        if not _same(actual_email, expected.email):
            mismatches.append(f"email <{actual_email or 'unset'}>")
        if self.settings.strict_mode and not _same(actual_name, expected.name):
            mismatches.append(f"name '{actual_name or 'unset'}'")
        if not mismatches:
            return HookDecision(
                HookState.ALLOWED,
                f"Identity {expected.label()} matches ({resolution.describe()})",
                resolution=resolution,
                actual_email=actual_email,
            )
        message = (
            f"Expected identity {expected.label()} from {resolution.describe()}, "
            f"but git is configured with {' and '.join(mismatches)}"
        )
        if bypass:
            logger.warning("Identity check bypassed: %s", message)
            return HookDecision(
                HookState.ALLOWED,
                f"Bypassed: {message}",
                resolution=resolution,
                actual_email=actual_email,
                bypassed=True,
            )
        return HookDecision(
            HookState.BLOCKED,
            f"{message}. Run `gid switch {expected.id}` or bypass with {BYPASS_ENV}=1.",
            resolution=resolution,
            actual_email=actual_email,
        )
