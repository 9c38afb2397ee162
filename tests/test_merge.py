"""Tests for merge module."""

import codecs
from pathlib import Path
from xml.etree import ElementTree as ET

import pytest

from platform_updater.constants import MSBUILD_NAMESPACE
from platform_updater.merge import (
    DEFAULT_RULES,
    MergeRules,
    PatchParseError,
    ProjectPatchError,
    local_name,
    merge,
    merge_document,
    name_predicate,
    parse_document,
    patch_project_file,
    wrap_fragment,
)

TWO_GROUPS = """<Project Sdk="Microsoft.NET.Sdk">
  <PropertyGroup>
    <TargetFramework>net472</TargetFramework>
  </PropertyGroup>
  <PropertyGroup>
    <TargetFramework>net6.0-windows</TargetFramework>
  </PropertyGroup>
</Project>
"""

MULTI_TARGETS = "<TargetFrameworks>net6.0;net6.0-windows</TargetFrameworks>"


def _groups(text: str) -> list[ET.Element]:
    return [child for child in ET.fromstring(text) if local_name(child) == "PropertyGroup"]


def _names(group: ET.Element) -> list[str]:
    return [local_name(child) for child in group]


def _count_matches(text: str) -> int:
    return sum(
        1 for group in _groups(text) for child in group if local_name(child) in DEFAULT_RULES.property_names
    )


class TestMergeDocument:
    """Tests for merge_document and merge."""

    def test_replaces_first_and_removes_duplicates(self) -> None:
        """First declaration takes the patch, the one in the second group goes away."""
        merged = merge_document(TWO_GROUPS, MULTI_TARGETS)

        first, second = _groups(merged)
        assert _names(first) == ["TargetFrameworks"]
        assert first[0].text == "net6.0;net6.0-windows"
        assert len(second) == 0

    def test_keeps_layout_of_untouched_content(self) -> None:
        """Indentation of the surrounding document survives the merge."""
        merged = merge_document(TWO_GROUPS, MULTI_TARGETS)

        assert merged == (
            '<Project Sdk="Microsoft.NET.Sdk">\n'
            "  <PropertyGroup>\n"
            "    <TargetFrameworks>net6.0;net6.0-windows</TargetFrameworks>\n"
            "  </PropertyGroup>\n"
            "  <PropertyGroup>\n"
            "  </PropertyGroup>\n"
            "</Project>\n"
        )

    def test_single_match_replacement(self) -> None:
        """A single declaration is replaced at the same position."""
        source = (
            "<Project><PropertyGroup>"
            "<OutputType>Library</OutputType>"
            "<TargetFramework>net472</TargetFramework>"
            "<LangVersion>latest</LangVersion>"
            "</PropertyGroup></Project>"
        )

        merged = merge_document(source, "<TargetFramework>net6.0</TargetFramework>")

        (group,) = _groups(merged)
        assert _names(group) == ["OutputType", "TargetFramework", "LangVersion"]
        assert group[1].text == "net6.0"
        assert group[0].text == "Library"
        assert group[2].text == "latest"

    def test_multiple_patch_properties_inserted_in_order(self) -> None:
        """Every matching patch property lands at the single replacement point."""
        source = (
            "<Project><PropertyGroup>"
            "<A>1</A><TargetFramework>net472</TargetFramework><B>2</B>"
            "</PropertyGroup></Project>"
        )
        fragment = "<TargetFrameworks>net6.0</TargetFrameworks><Other>x</Other><TargetFramework>net472</TargetFramework>"

        merged = merge_document(source, fragment)

        (group,) = _groups(merged)
        assert _names(group) == ["A", "TargetFrameworks", "TargetFramework", "B"]

    def test_no_match_in_source_is_noop(self) -> None:
        """Without any declaration to anchor on, the document stays as it was."""
        source = "<Project>\n  <PropertyGroup>\n    <OutputType>Exe</OutputType>\n  </PropertyGroup>\n</Project>\n"

        result = merge(source, MULTI_TARGETS)

        assert result.replaced is False
        assert result.changed is False
        assert ET.canonicalize(result.text) == ET.canonicalize(source)

    def test_patch_without_match_deletes_setting(self) -> None:
        """An empty replacement removes every declaration."""
        source = (
            "<Project>"
            "<PropertyGroup><TargetFramework>a</TargetFramework><X>1</X></PropertyGroup>"
            "<PropertyGroup><TargetFrameworks>b;c</TargetFrameworks></PropertyGroup>"
            "<PropertyGroup><TargetFramework>d</TargetFramework></PropertyGroup>"
            "</Project>"
        )

        result = merge(source, "<Other>ignored</Other>")

        assert _count_matches(result.text) == 0
        assert result.replaced is True
        assert result.inserted == 0
        assert result.removed == 2
        assert "Other" not in result.text
        assert _names(_groups(result.text)[0]) == ["X"]

    def test_non_matching_properties_keep_relative_order(self) -> None:
        """Unrelated properties are neither moved nor reordered."""
        source = (
            "<Project>"
            "<PropertyGroup><A/><TargetFramework>x</TargetFramework><B/></PropertyGroup>"
            "<ItemGroup><Compile Include='a.cs'/></ItemGroup>"
            "<PropertyGroup><C/><TargetFrameworks>y</TargetFrameworks><D/></PropertyGroup>"
            "</Project>"
        )

        merged = merge_document(source, MULTI_TARGETS)

        root = ET.fromstring(merged)
        assert [local_name(child) for child in root] == ["PropertyGroup", "ItemGroup", "PropertyGroup"]
        first, second = _groups(merged)
        assert _names(first) == ["A", "TargetFrameworks", "B"]
        assert _names(second) == ["C", "D"]
        assert root[1][0].get("Include") == "a.cs"

    def test_result_counts(self) -> None:
        """MergeResult reports what changed."""
        result = merge(TWO_GROUPS, MULTI_TARGETS)

        assert result.replaced is True
        assert result.inserted == 1
        assert result.removed == 1
        assert result.changed is True

    def test_nested_groups_are_ignored(self) -> None:
        """Only groups directly under the root take part."""
        source = (
            "<Project>"
            "<Choose><When Condition='true'><PropertyGroup><TargetFramework>a</TargetFramework>"
            "</PropertyGroup></When></Choose>"
            "<PropertyGroup><TargetFramework>b</TargetFramework></PropertyGroup>"
            "</Project>"
        )

        merged = merge_document(source, "<TargetFramework>c</TargetFramework>")

        root = ET.fromstring(merged)
        assert root.find("Choose/When/PropertyGroup/TargetFramework").text == "a"
        assert root.find("PropertyGroup/TargetFramework").text == "c"

    def test_comments_are_preserved(self) -> None:
        """Comments inside groups stay where they were."""
        source = (
            "<Project><PropertyGroup><!-- frameworks -->"
            "<TargetFramework>net472</TargetFramework></PropertyGroup></Project>"
        )

        merged = merge_document(source, "<TargetFramework>net6.0</TargetFramework>")

        assert "<!-- frameworks --><TargetFramework>net6.0</TargetFramework>" in merged

    def test_xml_declaration_is_kept(self) -> None:
        """A source declaration is written back; none is added otherwise."""
        source = '<?xml version="1.0" encoding="utf-8"?>\n' + TWO_GROUPS

        assert merge_document(source, MULTI_TARGETS).startswith('<?xml version="1.0" encoding="utf-8"?>\n<Project')
        assert merge_document(TWO_GROUPS, MULTI_TARGETS).startswith("<Project")

    def test_crlf_line_endings_are_kept(self) -> None:
        """Windows line endings survive the merge."""
        source = TWO_GROUPS.replace("\n", "\r\n")

        merged = merge_document(source, MULTI_TARGETS)

        assert "\r\n" in merged
        assert "\n" not in merged.replace("\r\n", "")

    def test_msbuild_namespace(self) -> None:
        """Legacy namespaced projects keep their default namespace."""
        source = (
            '<?xml version="1.0" encoding="utf-8"?>\n'
            f'<Project ToolsVersion="15.0" xmlns="{MSBUILD_NAMESPACE}">\n'
            "  <PropertyGroup Condition=\" '$(Configuration)' == '' \">\n"
            "    <Configuration>Debug</Configuration>\n"
            "    <TargetFramework>net461</TargetFramework>\n"
            "  </PropertyGroup>\n"
            "</Project>\n"
        )

        merged = merge_document(source, MULTI_TARGETS)

        assert "ns0:" not in merged
        assert f'xmlns="{MSBUILD_NAMESPACE}"' in merged
        root = ET.fromstring(merged.split("\n", 1)[1])
        group = root.find(f"{{{MSBUILD_NAMESPACE}}}PropertyGroup")
        assert group is not None
        assert group.get("Condition") == " '$(Configuration)' == '' "
        assert group.find(f"{{{MSBUILD_NAMESPACE}}}TargetFrameworks").text == "net6.0;net6.0-windows"
        assert group.find(f"{{{MSBUILD_NAMESPACE}}}TargetFramework") is None

    def test_unqualified_element_in_namespaced_project(self) -> None:
        """Elements outside the root's namespace stay outside it."""
        source = (
            '<Project xmlns="urn:a">'
            "<PropertyGroup><TargetFramework>x</TargetFramework></PropertyGroup>"
            '<Extra xmlns=""><Item/></Extra>'
            "</Project>"
        )

        merged = merge_document(source, MULTI_TARGETS)

        root = ET.fromstring(merged)
        assert root.tag == "{urn:a}Project"
        assert root.find("Extra/Item") is not None
        assert root.find("{urn:a}Extra") is None
        assert root.find("{urn:a}PropertyGroup/{urn:a}TargetFrameworks").text == "net6.0;net6.0-windows"

    def test_serialization_leaves_global_prefixes_alone(self) -> None:
        """Merging a namespaced project does not change how ElementTree writes that namespace elsewhere."""
        source = f'<Project xmlns="{MSBUILD_NAMESPACE}"><PropertyGroup><TargetFramework>x</TargetFramework></PropertyGroup></Project>'

        merge_document(source, MULTI_TARGETS)

        assert ET.tostring(ET.Element(f"{{{MSBUILD_NAMESPACE}}}Other"), encoding="unicode").startswith("<ns0:Other")

    def test_inserted_properties_are_indented_like_siblings(self) -> None:
        """Several copies replacing the last property keep the group's indentation."""
        source = (
            "<Project>\n"
            "  <PropertyGroup>\n"
            "    <OutputType>Exe</OutputType>\n"
            "    <TargetFramework>net472</TargetFramework>\n"
            "  </PropertyGroup>\n"
            "  <PropertyGroup>\n"
            "    <TargetFramework>net48</TargetFramework>\n"
            "  </PropertyGroup>\n"
            "</Project>\n"
        )
        fragment = "<TargetFramework>net6.0</TargetFramework><TargetFrameworks>net6.0;net7.0</TargetFrameworks>"

        merged = merge_document(source, fragment)

        assert merged == (
            "<Project>\n"
            "  <PropertyGroup>\n"
            "    <OutputType>Exe</OutputType>\n"
            "    <TargetFramework>net6.0</TargetFramework>\n"
            "    <TargetFrameworks>net6.0;net7.0</TargetFrameworks>\n"
            "  </PropertyGroup>\n"
            "  <PropertyGroup>\n"
            "  </PropertyGroup>\n"
            "</Project>\n"
        )

    def test_inserted_properties_indented_in_single_child_group(self) -> None:
        """Without a previous sibling the group's leading whitespace is used."""
        source = "<Project>\n  <PropertyGroup>\n    <TargetFramework>net472</TargetFramework>\n  </PropertyGroup>\n</Project>"
        fragment = "<TargetFramework>net6.0</TargetFramework><TargetFrameworks>net6.0;net7.0</TargetFrameworks>"

        merged = merge_document(source, fragment)

        assert merged == (
            "<Project>\n"
            "  <PropertyGroup>\n"
            "    <TargetFramework>net6.0</TargetFramework>\n"
            "    <TargetFrameworks>net6.0;net7.0</TargetFrameworks>\n"
            "  </PropertyGroup>\n"
            "</Project>"
        )

    def test_custom_predicate(self) -> None:
        """Any replace-first, delete-rest policy can be expressed with a predicate."""
        source = (
            "<Project>"
            "<PropertyGroup><LangVersion>7.3</LangVersion><TargetFramework>a</TargetFramework></PropertyGroup>"
            "<PropertyGroup><LangVersion>8.0</LangVersion></PropertyGroup>"
            "</Project>"
        )

        merged = merge_document(source, "<LangVersion>latest</LangVersion>", predicate=name_predicate("LangVersion"))

        first, second = _groups(merged)
        assert _names(first) == ["LangVersion", "TargetFramework"]
        assert first[0].text == "latest"
        assert _names(second) == []

    def test_custom_rules(self) -> None:
        """Group and root names come from the rules."""
        rules = MergeRules(group_name="Settings", property_names=("Mode",), root_name="Config")
        source = "<Config><Settings><Mode>a</Mode></Settings><Settings><Mode>b</Mode></Settings></Config>"

        merged = merge_document(source, "<Mode>c</Mode>", rules=rules)

        assert merged == "<Config><Settings><Mode>c</Mode></Settings><Settings /></Config>"


class TestMergeErrors:
    """Tests for merge failures."""

    def test_malformed_source(self) -> None:
        """A broken project raises PatchParseError."""
        with pytest.raises(PatchParseError, match="project document"):
            merge_document("<Project><PropertyGroup>", MULTI_TARGETS)

    def test_malformed_fragment(self) -> None:
        """A broken fragment raises PatchParseError."""
        with pytest.raises(PatchParseError, match="patch fragment"):
            merge_document(TWO_GROUPS, "<TargetFramework>net6.0")

    def test_empty_source(self) -> None:
        """An empty document has no root to patch."""
        with pytest.raises(PatchParseError):
            merge_document("", MULTI_TARGETS)

    def test_unexpected_root_when_checked(self) -> None:
        """A root name in the rules turns other roots into errors."""
        rules = MergeRules(root_name="Project")

        with pytest.raises(PatchParseError, match="expected <Project>"):
            merge_document("<Root><PropertyGroup/></Root>", MULTI_TARGETS, rules=rules)

    def test_any_root_accepted_by_default(self) -> None:
        """Without an expected root name any well-formed root is merged."""
        merged = merge_document(
            "<Root><PropertyGroup><TargetFramework>a</TargetFramework></PropertyGroup></Root>",
            "<TargetFramework>b</TargetFramework>",
        )

        assert merged == "<Root><PropertyGroup><TargetFramework>b</TargetFramework></PropertyGroup></Root>"

    def test_parse_error_is_project_patch_error(self) -> None:
        """PatchParseError derives from ProjectPatchError."""
        assert issubclass(PatchParseError, ProjectPatchError)


class TestHelpers:
    """Tests for merge helpers."""

    def test_wrap_fragment(self) -> None:
        """Fragments are wrapped in a root and one group."""
        assert wrap_fragment("<A/>") == "<Project><PropertyGroup><A/></PropertyGroup></Project>"

    def test_local_name(self) -> None:
        """Namespaces are stripped; comments have no name."""
        assert local_name(ET.Element(f"{{{MSBUILD_NAMESPACE}}}PropertyGroup")) == "PropertyGroup"
        assert local_name(ET.Element("PropertyGroup")) == "PropertyGroup"
        assert local_name(ET.Comment("note")) == ""

    def test_name_predicate_requires_names(self) -> None:
        """An empty predicate would match nothing and is refused."""
        with pytest.raises(ValueError):
            name_predicate()

    def test_parse_document_keeps_comments(self) -> None:
        """Comments become child nodes."""
        root = parse_document("<Project><!-- c --><A/></Project>")

        assert len(root) == 2
        assert root[0].tag is ET.Comment


class TestPatchProjectFile:
    """Tests for patch_project_file."""

    def test_writes_merged_project(self, tmp_path: Path) -> None:
        """The file on disk holds the merged document."""
        project = tmp_path / "Game.csproj"
        project.write_text(TWO_GROUPS, encoding="utf-8")

        result = patch_project_file(project, MULTI_TARGETS)

        assert project.read_text(encoding="utf-8") == result.text
        assert result.text == merge_document(TWO_GROUPS, MULTI_TARGETS)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["Game.csproj"]

    def test_dry_run_leaves_file_alone(self, tmp_path: Path) -> None:
        """A dry run computes the result without writing."""
        project = tmp_path / "Game.csproj"
        project.write_text(TWO_GROUPS, encoding="utf-8")

        result = patch_project_file(project, MULTI_TARGETS, dry_run=True)

        assert project.read_text(encoding="utf-8") == TWO_GROUPS
        assert "TargetFrameworks" in result.text

    def test_backup(self, tmp_path: Path) -> None:
        """The original is copied to a .bak sibling before writing."""
        project = tmp_path / "Game.csproj"
        project.write_text(TWO_GROUPS, encoding="utf-8")

        patch_project_file(project, MULTI_TARGETS, backup=True)

        assert (tmp_path / "Game.csproj.bak").read_text(encoding="utf-8") == TWO_GROUPS
        assert "TargetFrameworks" in project.read_text(encoding="utf-8")

    def test_parse_error_leaves_file_untouched(self, tmp_path: Path) -> None:
        """A bad fragment never reaches the disk."""
        project = tmp_path / "Game.csproj"
        project.write_text(TWO_GROUPS, encoding="utf-8")

        with pytest.raises(PatchParseError):
            patch_project_file(project, "<TargetFramework>", backup=True)

        assert project.read_text(encoding="utf-8") == TWO_GROUPS
        assert sorted(p.name for p in tmp_path.iterdir()) == ["Game.csproj"]

    def test_missing_file_raises_oserror(self, tmp_path: Path) -> None:
        """Read failures surface as OSError."""
        with pytest.raises(OSError):
            patch_project_file(tmp_path / "missing.csproj", MULTI_TARGETS)

    def test_utf8_bom_is_kept(self, tmp_path: Path) -> None:
        """Projects saved with a BOM keep it."""
        project = tmp_path / "Game.csproj"
        project.write_bytes(codecs.BOM_UTF8 + TWO_GROUPS.encode("utf-8"))

        patch_project_file(project, MULTI_TARGETS)

        data = project.read_bytes()
        assert data.startswith(codecs.BOM_UTF8)
        assert data.count(codecs.BOM_UTF8) == 1
        assert b"<TargetFrameworks>" in data

    def test_invalid_utf8(self, tmp_path: Path) -> None:
        """Undecodable bytes are a parse error."""
        project = tmp_path / "Game.csproj"
        project.write_bytes(b"<Project>\xff\xfe</Project>")

        with pytest.raises(PatchParseError):
            patch_project_file(project, MULTI_TARGETS)
