"""Process-scoped release credentials.

Secrets are read once from the environment when a run starts and passed
explicitly to each pipeline. Nothing here is cached at module level.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

__all__ = ["RegistryCredentials", "Secrets", "load_secrets"]

_PACKAGE_TOKEN_VARS = ("CRATES_TOKEN", "PACKAGE_REGISTRY_TOKEN")
_IMAGE_USERNAME_VARS = ("DOCKERHUB_USERNAME", "IMAGE_REGISTRY_USERNAME")
_IMAGE_TOKEN_VARS = ("DOCKERHUB_TOKEN", "IMAGE_REGISTRY_TOKEN")
_PLATFORM_TOKEN_VARS = ("GITHUB_TOKEN", "GH_TOKEN")


def _redact(value: str) -> str:
    return "***" if value else "<unset>"


@dataclass(frozen=True, slots=True)
class RegistryCredentials:
    username: str = field(default="")
    token: str = field(default="", repr=False)

    @property
    def is_complete(self) -> bool:
        return bool(self.username and self.token)

    def __repr__(self) -> str:
        return f"RegistryCredentials(username={self.username!r}, token={_redact(self.token)})"


@dataclass(frozen=True, slots=True)
class Secrets:
    package_token: str = field(default="", repr=False)
    image: RegistryCredentials = field(default_factory=RegistryCredentials)
    platform_token: str = field(default="", repr=False)

    def __repr__(self) -> str:
        return (
            f"Secrets(package_token={_redact(self.package_token)}, image={self.image!r}, "
            f"platform_token={_redact(self.platform_token)})"
        )

    def redact(self, text: str) -> str:
        """Replace every known secret value in `text`."""
        for value in (self.package_token, self.image.token, self.platform_token):
            if value:
                text = text.replace(value, "***")
        return text


def _first(env: Mapping[str, str], names: tuple[str, ...]) -> str:
    for name in names:
        value = env.get(name, "").strip()
        if value:
            return value
    return ""


def load_secrets(env: Mapping[str, str]) -> Secrets:
    """Read release credentials from an environment mapping.

    Missing values are left empty; each pipeline decides whether the absence
    is fatal for it.
    """
    return Secrets(
        package_token=_first(env, _PACKAGE_TOKEN_VARS),
        image=RegistryCredentials(
            username=_first(env, _IMAGE_USERNAME_VARS),
            token=_first(env, _IMAGE_TOKEN_VARS),
        ),
        platform_token=_first(env, _PLATFORM_TOKEN_VARS),
    )
