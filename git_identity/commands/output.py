from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..config import Identity

STATUS_COLORS = {
    "OK": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "BLOCKED": "\033[31m",
}
C_RESET = "\033[0m"


@dataclass(frozen=True, slots=True)
class CheckLine:
    label: str
    status: str
    detail: Optional[str] = None

    def render(self, color: bool = False) -> str:
        status = self.status
        if color and status in STATUS_COLORS:
            status = f"{STATUS_COLORS[status]}{status}{C_RESET}"
        if self.detail:
            return f"{self.label}: {status} ({self.detail})"
        return f"{self.label}: {status}"


def ok(label: str, detail: Optional[str] = None) -> str:
    return CheckLine(label, "OK", detail).render()


def warning(label: str, detail: Optional[str] = None) -> str:
    return CheckLine(label, "WARNING", detail).render()


def error(label: str, detail: Optional[str] = None) -> str:
    return CheckLine(label, "ERROR", detail).render()


def skipped(label: str, detail: Optional[str] = None) -> str:
    return CheckLine(label, "SKIPPED", detail).render()


def enabled(label: str, detail: Optional[str] = None) -> str:
    return CheckLine(label, "ENABLED", detail).render()


def disabled(label: str, detail: Optional[str] = None) -> str:
    return CheckLine(label, "DISABLED", detail).render()


def identity_lines(identity: Identity, *, marker: str = " ") -> list[str]:
    lines = [f"{marker} {identity.label()}"]
    if identity.description:
        lines.append(f"    {identity.description}")
    if identity.ssh_key_path:
        lines.append(f"    ssh: {identity.ssh_key_path}")
    if identity.gpg_key_id:
        signing = "signing" if identity.gpg_sign else "not signing"
        lines.append(f"    gpg: {identity.gpg_key_id} ({signing})")
    return lines
