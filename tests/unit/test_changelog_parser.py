"""Unit tests for the changelog parser"""

import pytest

from provider_index.models.release import ParsedRelease, ReleaseSection
from provider_index.services.changelog_parser import (
    build_release_entries,
    change_type_for_section,
    clean_bullet_text,
    extract_release_date,
    is_all_caps_header,
    normalize_tag_name,
    parse_changelog,
    parse_release_heading,
    slugify,
)


class TestParseChangelog:
    """Test the line-oriented release parser"""

    def test_parses_releases_in_order(self, changelog_md):
        releases = parse_changelog(changelog_md)

        assert [r.version for r in releases] == ["4.2.0", "4.1.0", "4.0.0"]
        assert [r.tag for r in releases] == ["v4.2.0", "v4.1.0", "v4.0.0"]

    def test_release_dates(self, changelog_md):
        releases = parse_changelog(changelog_md)

        assert releases[0].release_date is None
        assert releases[1].release_date == "2024-08-22"
        assert releases[2].release_date == "2024-08-01"

    def test_all_caps_and_markdown_sections(self, changelog_md):
        release = parse_changelog(changelog_md)[1]

        assert [s.name for s in release.sections] == ["FEATURES", "ENHANCEMENTS", "BUG FIXES"]
        assert release.sections[1].entries == [
            "azurerm_resource_group - support for the managed_by property"
        ]

        breaking = parse_changelog(changelog_md)[2]
        assert breaking.sections[0].name == "Breaking Changes"

    def test_unreleased_heading_is_dropped(self):
        """Test that an Unreleased version suppresses the release and orphans its lines"""
        text = "\n".join(
            [
                "## Unreleased",
                "* pending change",
                "## [v1.2.3] (2024-01-05)",
                "* shipped change",
            ]
        )

        releases = parse_changelog(text)

        assert len(releases) == 1
        assert releases[0].version == "1.2.3"
        assert releases[0].tag == "v1.2.3"
        assert releases[0].sections[0].entries == ["shipped change"]

    def test_bullet_without_section_opens_other(self):
        releases = parse_changelog("## 1.0.0\n- first\n* second\n")

        assert releases[0].sections == [ReleaseSection(name="Other", entries=["first", "second"])]

    def test_lines_before_first_heading_are_ignored(self):
        releases = parse_changelog("# Changelog\n* stray\n## 1.0.0\n* kept\n")

        assert len(releases) == 1
        assert releases[0].sections[0].entries == ["kept"]

    def test_max_releases(self):
        text = "\n".join(f"## 1.0.{i}\n* change {i}" for i in range(10, 0, -1))

        releases = parse_changelog(text, max_releases=3)

        assert [r.version for r in releases] == ["1.0.10", "1.0.9", "1.0.8"]

    def test_empty_bullets_dropped(self):
        releases = parse_changelog("## 1.0.0\n### Fixes\n-\n* ``\n* real\n")

        assert releases[0].sections[0].entries == ["real"]


class TestHeadingHelpers:
    """Test heading, date and tag normalization"""

    @pytest.mark.parametrize(
        "heading,expected",
        [
            ("1.0.0 (2024-06-01)", "2024-06-01"),
            ("1.0.0 (June 1, 2024)", "2024-06-01"),
            ("1.0.0 (Jun 1, 2024)", "2024-06-01"),
            ("1.0.0 (01 June 2024)", "2024-06-01"),
            ("1.0.0 (Unreleased)", None),
            ("1.0.0 (sometime soon)", None),
            ("1.0.0", None),
        ],
    )
    def test_extract_release_date(self, heading, expected):
        assert extract_release_date(heading) == expected

    def test_last_paren_group_wins(self):
        assert extract_release_date("1.0.0 (beta) (2024-02-03)") == "2024-02-03"

    def test_heading_version_forms(self):
        assert parse_release_heading("## V2.0.0 (2024-01-01)").version == "2.0.0"
        assert parse_release_heading("## [3.1.0] - 2024-01-01").tag == "v3.1.0"
        assert parse_release_heading("## unreleased") is None
        assert parse_release_heading("##") is None

    def test_normalize_tag_name(self):
        assert normalize_tag_name("V4.1.0") == "v4.1.0"
        assert normalize_tag_name("4.1.0") == "v4.1.0"
        assert normalize_tag_name("  ") == ""

    def test_is_all_caps_header(self):
        assert is_all_caps_header("BUG FIXES:")
        assert not is_all_caps_header("Bug Fixes:")
        assert not is_all_caps_header("NOTES")
        assert not is_all_caps_header("NOTES::")

    def test_clean_bullet_text(self):
        line = "* `azurerm_thing` - see [docs](https://example.com) for details"
        assert clean_bullet_text(line) == "azurerm_thing - see docs for details"


class TestBuildReleaseEntries:
    """Test entry keys, identifiers and change types"""

    def test_entry_key_shape(self):
        release = ParsedRelease(
            version="1.2.3",
            tag="v1.2.3",
            sections=[ReleaseSection(name="BUG FIXES", entries=["fix a", "fix b"])],
        )

        entries = build_release_entries(release, "azurerm")

        assert [e.entry_key for e in entries] == ["bug-fixes-1-2-3-000", "bug-fixes-1-2-3-001"]
        assert [e.order_index for e in entries] == [0, 1]
        assert all(e.change_type == "bugfix" for e in entries)

    def test_order_index_spans_sections(self, changelog_md):
        release = parse_changelog(changelog_md)[1]

        entries = build_release_entries(release, "azurerm")

        assert [e.entry_key for e in entries] == [
            "features-4-1-0-000",
            "enhancements-4-1-0-001",
            "bug-fixes-4-1-0-002",
        ]
        assert [e.change_type for e in entries] == ["new_data_source", "enhancement", "bugfix"]
        assert [e.identifier for e in entries] == [
            "azurerm_widget",
            "azurerm_resource_group",
            "azurerm_virtual_network",
        ]
        assert entries[0].resource_name == entries[0].identifier

    def test_entries_without_identifier(self):
        release = ParsedRelease(
            version="1.0.0",
            tag="v1.0.0",
            sections=[ReleaseSection(name="NOTES", entries=["general improvements"])],
        )

        entries = build_release_entries(release, "azurerm")

        assert entries[0].identifier is None
        assert entries[0].change_type is None

    @pytest.mark.parametrize(
        "section,text,expected",
        [
            ("FEATURES", "**New Resource:** azurerm_x", "new_resource"),
            ("Features", "New Data Source: azurerm_y", "new_data_source"),
            ("features", "support for tags", "feature"),
            ("Improvements", "", "enhancement"),
            ("bugfixes", "", "bugfix"),
            ("Bugs", "", "bugfix"),
            ("BREAKING CHANGES", "", "breaking_change"),
            ("Security", "", "security"),
            ("Dependencies", "", None),
        ],
    )
    def test_change_type_for_section(self, section, text, expected):
        assert change_type_for_section(section, text) == expected

    def test_slugify(self):
        assert slugify("BUG FIXES") == "bug-fixes"
        assert slugify("  ") == "item"
        assert slugify("***") == "item"
