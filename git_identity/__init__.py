"""Per-repository git author identities: resolve, apply, enforce and audit."""

from importlib import metadata

DISTRIBUTION = "git-identity"

__all__ = ["DISTRIBUTION", "__version__", "package_version"]


def package_version() -> str:
    try:
        return metadata.version(DISTRIBUTION)
    except metadata.PackageNotFoundError:  # pragma: no cover - running from a source checkout
        return "0.0.0"


def __getattr__(name: str) -> str:
    if name == "__version__":
        return package_version()
    raise AttributeError(name)
