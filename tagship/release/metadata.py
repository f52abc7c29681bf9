"""Image tags and OCI labels derived from repository identity and version tag.

Everything here is a pure function of its inputs: re-running for the same
tag yields identical metadata, so rebuilt images carry identical labels. The
build timestamp follows the SOURCE_DATE_EPOCH convention and is only emitted
when the caller supplies it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, datetime

from tagship.core.result import Err, Ok, Result
from tagship.release.errors import ReleaseError
from tagship.release.model import ImageMetadata, RepositoryIdentity
from tagship.release.semver import parse_version_tag

OCI_PREFIX = "org.opencontainers.image"

# OCI distribution path component grammar, after lower-casing.
_NAME_COMPONENT_RE = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_HOST_RE = re.compile(r"^[a-z0-9](?:[a-z0-9.-]*[a-z0-9])?(?::[0-9]+)?$")
_TAG_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")


@dataclass(frozen=True, slots=True)
class ImageTagOptions:
    latest: bool = False
    # Also tag `MAJOR.MINOR` and `MAJOR` (no bare major for 0.x).
    semver_aliases: bool = False
    description: str | None = None
    licenses: str | None = None


def is_valid_image_tag(tag: str) -> bool:
    return _TAG_RE.match(tag) is not None


def _metadata_error(message: str, hint: str | None = None) -> Err[ReleaseError]:
    return Err(ReleaseError(kind="metadata", message=message, hint=hint))


def parse_repository(
    text: str, *, host: str | None = None
) -> Result[RepositoryIdentity, ReleaseError]:
    """Parse `owner/name` into a RepositoryIdentity.

    Image names must be lower-case; mixed-case owners (common on GitHub) are
    normalized rather than rejected.
    """
    parts = text.strip().lower().split("/")
    if len(parts) != 2 or not all(parts):
        return _metadata_error(
            f"repository must be owner/name: {text!r}",
            hint="set project.repository in tagship.toml or pass --repository",
        )

    identity = RepositoryIdentity(owner=parts[0], name=parts[1], host=_normalize_host(host))
    valid = validate_identity(identity)
    if isinstance(valid, Err):
        return valid
    return Ok(identity)


def _normalize_host(host: str | None) -> str | None:
    if host is None:
        return None
    host = host.strip().lower().removeprefix("https://").rstrip("/")
    return host or None


def validate_identity(identity: RepositoryIdentity) -> Result[None, ReleaseError]:
    for label, part in (("owner", identity.owner), ("name", identity.name)):
        if not _NAME_COMPONENT_RE.match(part):
            return _metadata_error(f"invalid image {label}: {part!r}")
    if identity.host is not None and not _HOST_RE.match(identity.host):
        return _metadata_error(f"invalid registry host: {identity.host!r}")
    return Ok(None)


def derive_tags(tag: str, options: ImageTagOptions) -> tuple[str, ...]:
    tags = [tag]
    if options.semver_aliases:
        ver = parse_version_tag(tag)
        if ver is not None:
            tags.append(f"{ver.major}.{ver.minor}")
            if ver.major > 0:
                tags.append(str(ver.major))
    if options.latest:
        tags.append("latest")
    return tuple(dict.fromkeys(tags))


def format_created(created: datetime) -> str:
    return created.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def created_from_epoch(epoch: int) -> datetime:
    return datetime.fromtimestamp(epoch, tz=UTC)


def derive_labels(
    identity: RepositoryIdentity,
    tag: str,
    *,
    revision: str | None,
    created: datetime | None,
    options: ImageTagOptions,
) -> dict[str, str]:
    labels = {f"{OCI_PREFIX}.title": identity.name}
    if options.description:
        labels[f"{OCI_PREFIX}.description"] = options.description
    labels[f"{OCI_PREFIX}.url"] = identity.url
    labels[f"{OCI_PREFIX}.source"] = identity.url
    labels[f"{OCI_PREFIX}.version"] = tag
    if created is not None:
        labels[f"{OCI_PREFIX}.created"] = format_created(created)
    labels[f"{OCI_PREFIX}.revision"] = revision or tag
    if options.licenses:
        labels[f"{OCI_PREFIX}.licenses"] = options.licenses
    return labels


def derive_metadata(
    identity: RepositoryIdentity | str,
    tag: str,
    *,
    revision: str | None = None,
    created: datetime | None = None,
    options: ImageTagOptions = ImageTagOptions(),
) -> Result[ImageMetadata, ReleaseError]:
    """Compute the image tags and provenance labels for a release.

    Args:
        identity: Repository identity, or its `owner/name` text.
        tag: Released version tag; always the first image tag.
        revision: Source revision (commit SHA); defaults to the tag.
        created: Build timestamp (SOURCE_DATE_EPOCH); omitted when None.
        options: Extra tags and descriptive labels.

    Returns:
        Ok(ImageMetadata), or Err(kind="metadata") for a malformed identity.
    """
    if isinstance(identity, str):
        parsed = parse_repository(identity)
        if isinstance(parsed, Err):
            return parsed
        identity = parsed.value
    else:
        valid = validate_identity(identity)
        if isinstance(valid, Err):
            return valid

    tags = derive_tags(tag, options)
    bad = [t for t in tags if not is_valid_image_tag(t)]
    if bad:
        return _metadata_error(f"invalid image tag: {bad[0]!r}")

    return Ok(
        ImageMetadata(
            image=identity.image,
            tags=tags,
            labels=derive_labels(
                identity, tag, revision=revision, created=created, options=options
            ),
        )
    )
