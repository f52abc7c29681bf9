"""Typed loading of `tagship.toml`.

The config file is optional: every section has defaults that reproduce the
historical release job (cargo publish, Docker Hub image, placeholder release
notes). The loaded Config is immutable and injected at run start.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_bool, get_float, get_int, get_str, get_table

__all__ = [
    "CONFIG_FILE_NAME",
    "Config",
    "ConfigError",
    "ImageConfig",
    "PackageConfig",
    "PackageTool",
    "ProjectConfig",
    "ReleaseNoteConfig",
    "RetryConfig",
    "load_config",
    "load_config_or_default",
]

CONFIG_FILE_NAME = "tagship.toml"

DEFAULT_RELEASE_TITLE = "{name} {tag}"
DEFAULT_RELEASE_BODY = "⚠️ Changelog not yet provided."

PackageTool = Literal["cargo", "twine"]
_PACKAGE_TOOLS: tuple[PackageTool, ...] = ("cargo", "twine")


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    # Display name used in release titles; defaults to the repository name.
    name: str | None = None
    # owner/name on the hosting platform
    repository: str | None = None


@dataclass(frozen=True, slots=True)
class PackageConfig:
    enabled: bool = True
    tool: PackageTool = "cargo"
    path: str = "."
    # Publish without re-running the registry's verification build.
    skip_verify: bool = False


@dataclass(frozen=True, slots=True)
class ReleaseNoteConfig:
    title: str = DEFAULT_RELEASE_TITLE
    body: str = DEFAULT_RELEASE_BODY


@dataclass(frozen=True, slots=True)
class ImageConfig:
    enabled: bool = True
    # Image repository (owner/name); defaults to project.repository.
    repository: str | None = None
    # Registry host, e.g. "ghcr.io". None means Docker Hub.
    registry: str | None = None
    context: str = "."
    dockerfile: str | None = None
    latest: bool = False
    semver_aliases: bool = False
    description: str | None = None
    licenses: str | None = None


@dataclass(frozen=True, slots=True)
class RetryConfig:
    attempts: int = 3
    delay_seconds: float = 1.0
    backoff: float = 2.0


@dataclass(frozen=True, slots=True)
class Config:
    project: ProjectConfig = field(default_factory=ProjectConfig)
    package: PackageConfig = field(default_factory=PackageConfig)
    release: ReleaseNoteConfig = field(default_factory=ReleaseNoteConfig)
    image: ImageConfig = field(default_factory=ImageConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)

    @property
    def image_repository(self) -> str | None:
        return self.image.repository or self.project.repository

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Config:
        """Create Config from parsed TOML.

        Raises:
            ValueError: on values that parse but are out of range.
        """
        project: StrDict = get_table(data, "project") or {}
        package: StrDict = get_table(data, "package") or {}
        release: StrDict = get_table(data, "release") or {}
        image: StrDict = get_table(data, "image") or {}
        retry: StrDict = get_table(data, "retry") or {}

        tool = get_str(package, "tool") or "cargo"
        if tool not in _PACKAGE_TOOLS:
            raise ValueError(f"package.tool must be one of {', '.join(_PACKAGE_TOOLS)}: {tool}")

        attempts = get_int(retry, "attempts")
        if attempts is not None and attempts < 1:
            raise ValueError(f"retry.attempts must be >= 1: {attempts}")
        delay = get_float(retry, "delay_seconds")
        if delay is not None and delay < 0:
            raise ValueError(f"retry.delay_seconds must be >= 0: {delay}")
        backoff = get_float(retry, "backoff")
        if backoff is not None and backoff < 1:
            raise ValueError(f"retry.backoff must be >= 1: {backoff}")

        enabled_pkg = get_bool(package, "enabled")
        enabled_img = get_bool(image, "enabled")

        return cls(
            project=ProjectConfig(
                name=get_str(project, "name"),
                repository=get_str(project, "repository"),
            ),
            package=PackageConfig(
                enabled=True if enabled_pkg is None else enabled_pkg,
                tool="twine" if tool == "twine" else "cargo",
                path=get_str(package, "path") or ".",
                skip_verify=get_bool(package, "skip_verify") or False,
            ),
            release=ReleaseNoteConfig(
                title=get_str(release, "title") or DEFAULT_RELEASE_TITLE,
                body=get_str(release, "body") or DEFAULT_RELEASE_BODY,
            ),
            image=ImageConfig(
                enabled=True if enabled_img is None else enabled_img,
                repository=get_str(image, "repository"),
                registry=get_str(image, "registry"),
                context=get_str(image, "context") or ".",
                dockerfile=get_str(image, "dockerfile"),
                latest=get_bool(image, "latest") or False,
                semver_aliases=get_bool(image, "semver_aliases") or False,
                description=get_str(image, "description"),
                licenses=get_str(image, "licenses"),
            ),
            retry=RetryConfig(
                attempts=attempts or 3,
                delay_seconds=1.0 if delay is None else delay,
                backoff=2.0 if backoff is None else backoff,
            ),
        )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    import tomllib

    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Err(ConfigError(f"{path.name} not found at {path}", path=path))
    except (OSError, UnicodeDecodeError) as e:
        return Err(ConfigError(f"cannot read {path}: {e}", path=path))

    try:
        data_obj: object = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML in {path.name}: {e}", path=path))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(ConfigError(f"{path.name}: top level must be a table", path=path))
    return Ok(data)


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and validate `tagship.toml`.

    Args:
        path: Path to the config file.

    Returns:
        Ok(Config) on success, Err(ConfigError) on failure.
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(Config.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"{path.name}: {e}", path=path))


def load_config_or_default(path: Path) -> Result[Config, ConfigError]:
    """Like load_config, but a missing file yields the default Config.

    A file that exists but does not parse is still an error: silently
    releasing with defaults would publish to the wrong place.
    """
    if not path.exists():
        return Ok(Config())
    return load_config(path)
