"""
Glob compilation for path and remote-URL rule patterns.

Patterns are split on ``/`` into segments:
- ``**`` as a whole segment matches zero or more complete segments
- ``*`` matches any run of characters inside one segment
- ``?`` matches one character inside one segment
- ``[abc]`` / ``[!abc]`` match one character from (or outside) a class

Compiled patterns are anchored regular expressions used with ``fullmatch``.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

from .errors import RuleError

GLOB_MAGIC = frozenset("*?[")

_SCHEME_RE = re.compile(r"^(?P<scheme>[A-Za-z][A-Za-z0-9+.-]*)://(?P<rest>.*)$")
_SCP_RE = re.compile(r"^(?:(?P<user>[^@/]+)@)?(?P<host>[^:/]+):(?P<path>.*)$")


def has_magic(segment: str) -> bool:
    return any(ch in GLOB_MAGIC for ch in segment)


def _translate_segment(segment: str, pattern: str) -> str:
    if "**" in segment:
        raise RuleError(f"'**' must be a whole path segment in pattern {pattern!r}")
    out: list[str] = []
    i = 0
    n = len(segment)
    while i < n:
        ch = segment[i]
        i += 1
        if ch == "*":
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        elif ch == "[":
            j = i
            if j < n and segment[j] in "!^":
                j += 1
            if j < n and segment[j] == "]":
                j += 1
            while j < n and segment[j] != "]":
                j += 1
            if j >= n:
                raise RuleError(f"unterminated character class in pattern {pattern!r}")
            body = segment[i:j]
            i = j + 1
            negate = body[:1] in ("!", "^")
            if negate:
                body = body[1:]
            if not body:
                raise RuleError(f"empty character class in pattern {pattern!r}")
            escaped = "".join("-" if c == "-" else re.escape(c) for c in body)
            out.append(f"[^/{escaped}]" if negate else f"[{escaped}]")
        else:
            out.append(re.escape(ch))
    return "".join(out)


def translate(pattern: str) -> str:
    """Translate a glob into a regular expression body (without anchors)."""
    segments: list[str] = []
    for segment in pattern.split("/"):
        # a run of ``**`` matches the same paths as one
        if segment == "**" and segments and segments[-1] == "**":
            continue
        segments.append(segment)
    last = len(segments) - 1
    out: list[str] = []
    after_globstar = False
    for idx, segment in enumerate(segments):
        if segment == "**":
            if idx == last:
                out.append(".*" if idx == 0 else "(?:/.*)?")
            elif idx == 0:
                out.append("(?:.*/)?")
            else:
                out.append("/(?:[^/]+/)*")
            after_globstar = idx != last
            continue
        sep = "" if idx == 0 or after_globstar else "/"
        out.append(sep + _translate_segment(segment, pattern))
        after_globstar = False
    return "".join(out)


def compile_glob(pattern: str) -> re.Pattern[str]:
    if not pattern:
        raise RuleError("pattern cannot be empty")
    return re.compile(translate(pattern))


def _resolve_literal_prefix(pattern: str) -> str:
    segments = pattern.split("/")
    cut = len(segments)
    for idx, segment in enumerate(segments):
        if has_magic(segment):
            cut = idx
            break
    prefix = "/".join(segments[:cut])
    if not prefix or not os.path.isabs(prefix):
        return pattern
    resolved = os.path.realpath(prefix)
    rest = segments[cut:]
    if not rest:
        return resolved
    return "/".join([resolved.rstrip("/"), *rest]) if resolved != "/" else "/" + "/".join(rest)


def normalize_path_pattern(pattern: str) -> str:
    pattern = pattern.strip()
    if not pattern:
        raise RuleError("path pattern cannot be empty")
    if pattern.startswith("~"):
        pattern = os.path.expanduser(pattern)
    if pattern.startswith("~"):
        raise RuleError(f"cannot expand home directory in pattern {pattern!r}")
    if not (pattern.startswith("/") or pattern.startswith("**")):
        raise RuleError(
            f"path pattern {pattern!r} must be absolute, start with '~' or start with '**'"
        )
    if len(pattern) > 1:
        pattern = pattern.rstrip("/")
    return _resolve_literal_prefix(pattern)


def compile_path_pattern(pattern: str) -> re.Pattern[str]:
    return compile_glob(normalize_path_pattern(pattern))


def normalize_context_path(path: Path | str) -> str:
    return str(Path(path).expanduser().resolve())


def _strip_repo_suffix(path: str) -> str:
    path = path.rstrip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    return path.rstrip("/")


def _strip_port(authority: str) -> str:
    if authority.startswith("["):
        end = authority.find("]")
        return authority[: end + 1] if end != -1 else authority
    return authority.split(":", 1)[0]


def normalize_remote_url(url: Optional[str]) -> Optional[str]:
    """
    Reduce a remote URL to ``host/path`` (or a bare local path).

    Scheme, credentials, port and a trailing ``.git`` are removed and the host
    is lower-cased; the path keeps its case.
    """
    if url is None:
        return None
    url = url.strip()
    if not url:
        return None
    match = _SCHEME_RE.match(url)
    if match:
        scheme = match.group("scheme").lower()
        rest = match.group("rest")
        if scheme == "file":
            return _strip_repo_suffix(rest) or None
        authority, _, path = rest.partition("/")
        host = _strip_port(authority.rpartition("@")[2]).lower()
        path = _strip_repo_suffix(path.lstrip("/"))
        return f"{host}/{path}" if path else host
    scp = _SCP_RE.match(url)
    if scp and len(scp.group("host")) > 1:
        host = scp.group("host").lower()
        path = _strip_repo_suffix(scp.group("path").lstrip("/"))
        return f"{host}/{path}" if path else host
    return _strip_repo_suffix(url) or None


def normalize_remote_pattern(pattern: str) -> str:
    pattern = pattern.strip()
    if not pattern:
        raise RuleError("remote pattern cannot be empty")
    if _SCHEME_RE.match(pattern) or (
        (scp := _SCP_RE.match(pattern)) and len(scp.group("host")) > 1
    ):
        normalized = normalize_remote_url(pattern)
    else:
        normalized = _strip_repo_suffix(pattern)
        if normalized and not normalized.startswith("/"):
            host, sep, rest = normalized.partition("/")
            normalized = host.lower() + sep + rest
    if not normalized:
        raise RuleError(f"remote pattern {pattern!r} is empty after normalization")
    return normalized


def compile_remote_pattern(pattern: str) -> re.Pattern[str]:
    return compile_glob(normalize_remote_pattern(pattern))
