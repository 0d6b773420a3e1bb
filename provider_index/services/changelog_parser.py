"""Parse CHANGELOG.md into releases and keyed release entries"""

import logging
import re
from datetime import datetime

from provider_index.config import config
from provider_index.models.release import ParsedRelease, ReleaseEntry, ReleaseSection

logger = logging.getLogger(__name__)

DEFAULT_MAX_RELEASES = 40
OTHER_SECTION = "Other"
DATE_FORMATS = ("%Y-%m-%d", "%B %d, %Y", "%b %d, %Y", "%d %B %Y")

MARKDOWN_LINK_PATTERN = re.compile(r"\[([^\]]+)\]\([^)]+\)")
ALL_CAPS_HEADER_PATTERN = re.compile(r"^[A-Z][A-Z ]*:$")

SECTION_CHANGE_TYPES = {
    "enhancements": "enhancement",
    "improvements": "enhancement",
    "bug fixes": "bugfix",
    "bugfixes": "bugfix",
    "bugs": "bugfix",
    "breaking changes": "breaking_change",
    "security": "security",
}


def normalize_version(raw: str) -> str:
    raw = raw.strip()
    if raw[:1] in ("v", "V"):
        raw = raw[1:]
    if raw.lower() == "unreleased":
        return ""
    return raw


def normalize_tag_name(tag: str) -> str:
    """Lower-cased, v-prefixed tag name used for tag lookups"""
    tag = tag.strip()
    if not tag:
        return ""
    if tag[0] not in ("v", "V"):
        tag = f"v{tag}"
    return tag.lower()


def normalize_date(raw: str) -> str | None:
    """Parse a heading date into ISO form; unknown layouts yield None"""
    raw = raw.strip()
    for date_format in DATE_FORMATS:
        try:
            return datetime.strptime(raw, date_format).date().isoformat()
        except ValueError:
            continue
    return None


def extract_release_date(heading: str) -> str | None:
    """Date from the last parenthesized group of a heading"""
    open_index = heading.rfind("(")
    close_index = heading.rfind(")")
    if open_index < 0 or close_index <= open_index:
        return None

    candidate = heading[open_index + 1 : close_index].strip()
    if not candidate or candidate.lower() == "unreleased":
        return None
    return normalize_date(candidate)


def parse_release_heading(line: str) -> ParsedRelease | None:
    """
    Parse a `## ` heading into an empty release

    Accepts `## 1.2.3 (June 1, 2024)`, `## [v1.2.3] - (2024-06-01)` and similar.
    Returns None for `unreleased` versions and empty headings.
    """
    heading = line.removeprefix("##").strip()
    if not heading:
        return None

    version_part = heading
    if version_part.startswith("["):
        closing = version_part.find("]")
        if closing > 0:
            version_part = version_part[1:closing]
    else:
        version_part = version_part.split(maxsplit=1)[0]

    version = normalize_version(version_part)
    if not version:
        return None

    return ParsedRelease(
        version=version,
        tag=f"v{version}",
        release_date=extract_release_date(heading),
    )


def is_all_caps_header(line: str) -> bool:
    return bool(ALL_CAPS_HEADER_PATTERN.match(line))


def is_list_entry(line: str) -> bool:
    return line.startswith(("-", "*"))


def clean_bullet_text(line: str) -> str:
    """Strip the bullet marker, collapse markdown links and drop backticks"""
    text = line.strip()[1:].strip()
    text = MARKDOWN_LINK_PATTERN.sub(r"\1", text)
    return text.replace("`", "").strip()


def parse_changelog(
    text: str, max_releases: int = DEFAULT_MAX_RELEASES
) -> list[ParsedRelease]:
    """
    Parse changelog text into releases, newest first

    Args:
        text: Full CHANGELOG.md content
        max_releases: Maximum number of releases retained

    Returns:
        Releases with non-empty version and tag, in document order
    """
    releases: list[ParsedRelease] = []
    current: ParsedRelease | None = None
    section: ReleaseSection | None = None

    for raw_line in text.splitlines():
        line = raw_line.strip()

        if line.startswith("## "):
            if current is not None:
                releases.append(current)
                if len(releases) >= max_releases:
                    current = None
                    break
            current = parse_release_heading(line)
            section = None
            continue

        if current is None:
            continue

        if line.startswith("### ") or is_all_caps_header(line):
            name = line.removeprefix("### ").strip().rstrip(":").strip()
            section = ReleaseSection(name=name)
            current.sections.append(section)
            continue

        if is_list_entry(line):
            if section is None:
                section = ReleaseSection(name=OTHER_SECTION)
                current.sections.append(section)
            entry = clean_bullet_text(line)
            if entry:
                section.entries.append(entry)

    if current is not None and len(releases) < max_releases:
        releases.append(current)

    return [release for release in releases if release.version and release.tag]


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]", "-", value.strip().lower()).strip("-")
    return slug or "item"


def change_type_for_section(section: str, text: str) -> str | None:
    """Classify an entry by its section name (and, for features, its text)"""
    lower = section.strip().lower()
    if lower == "features":
        text = text.lower()
        if "new resource" in text:
            return "new_resource"
        if "new data source" in text:
            return "new_data_source"
        return "feature"
    return SECTION_CHANGE_TYPES.get(lower)


def build_release_entries(
    release: ParsedRelease, resource_prefix: str | None = None
) -> list[ReleaseEntry]:
    """Flatten a release into entries keyed <section>-<version>-<index>"""
    prefix = resource_prefix or config.resource_prefix
    identifier_pattern = re.compile(rf"{re.escape(prefix.lower())}_[a-z0-9_]+")

    entries = []
    order = 0
    for section in release.sections:
        name = section.name or OTHER_SECTION
        for raw in section.entries:
            text = raw.strip()
            if not text:
                continue

            match = identifier_pattern.search(text.lower())
            identifier = match.group(0) if match else None
            entries.append(
                ReleaseEntry(
                    section=name,
                    entry_key=f"{slugify(name)}-{slugify(release.version)}-{order:03d}",
                    title=text,
                    resource_name=identifier,
                    identifier=identifier,
                    change_type=change_type_for_section(name, text),
                    order_index=order,
                )
            )
            order += 1
    return entries
