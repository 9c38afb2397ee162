"""Property merge for MSBuild-style project files.

A freshly rendered fragment of properties (for instance a new
``<TargetFrameworks>`` declaration) is merged into an existing project:
the first matching property found in the project's property groups is
replaced by every matching property of the fragment, later matches are
removed, and everything else is left where it was.

The merge itself works on text and element trees only. File access lives
in :func:`patch_project_file`.
"""

import codecs
import copy
import logging
import re
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from xml.etree import ElementTree as ET

from pydantic import BaseModel, ConfigDict, Field

from .constants import (
    PROJECT_BACKUP_SUFFIX,
    PROJECT_ROOT_NAME,
    PROPERTY_GROUP_NAME,
    TARGET_FRAMEWORK_PROPERTIES,
)
from .utils import atomic_write_text

logger = logging.getLogger(__name__)

ElementPredicate = Callable[[ET.Element], bool]

XML_DECLARATION_PATTERN = re.compile(r"^\s*(<\?xml[^>]*\?>)")


class ProjectPatchError(Exception):
    """
    Raised when a project file cannot be patched.

    Base class for merge failures. I/O failures are not wrapped and surface
    as OSError so callers can tell a bad document from a bad disk.
    """

    pass


class PatchParseError(ProjectPatchError):
    """Raised when the project or the patch fragment is not well-formed XML."""

    pass


class MergeRules(BaseModel):
    """Names that drive the merge.

    Groups and properties are matched by local name, so projects with and
    without the legacy MSBuild namespace are handled alike. The root name is
    only checked when set.
    """

    model_config = ConfigDict(frozen=True)

    group_name: str = PROPERTY_GROUP_NAME
    property_names: tuple[str, ...] = Field(default=TARGET_FRAMEWORK_PROPERTIES, min_length=1)
    root_name: str | None = None

    def matches_group(self, element: ET.Element) -> bool:
        """Return True when element is a property group."""
        return local_name(element) == self.group_name

    def matches_property(self, element: ET.Element) -> bool:
        """Return True when element is one of the merged properties."""
        return local_name(element) in self.property_names


DEFAULT_RULES = MergeRules()


@dataclass
class MergeResult:
    """Outcome of a merge: the merged text and what changed."""

    text: str
    replaced: bool = False
    inserted: int = 0
    removed: int = 0

    @property
    def changed(self) -> bool:
        """Whether any declaration was replaced or removed."""
        return self.replaced or self.removed > 0


def local_name(element: ET.Element) -> str:
    """
    Get an element's tag without its namespace.

    Comments and processing instructions have no name and yield "".
    """
    tag = element.tag
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def namespace_of(element: ET.Element) -> str | None:
    """Get the namespace URI of an element, or None when unqualified."""
    tag = element.tag
    if isinstance(tag, str) and tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return None


def name_predicate(*names: str) -> ElementPredicate:
    """
    Build a predicate matching elements by local name.

    Args:
        names: Accepted local names

    Returns:
        Predicate usable as the merge key
    """
    if not names:
        raise ValueError("At least one property name is required")
    wanted = frozenset(names)

    def predicate(element: ET.Element) -> bool:
        return local_name(element) in wanted

    return predicate


def wrap_fragment(fragment_text: str, rules: MergeRules = DEFAULT_RULES) -> str:
    """Wrap a property fragment in a root element and a single group."""
    root_name = rules.root_name or PROJECT_ROOT_NAME
    group = rules.group_name
    return f"<{root_name}><{group}>{fragment_text}</{group}></{root_name}>"


def parse_document(text: str, what: str = "document") -> ET.Element:
    """
    Parse XML text, keeping comments and processing instructions.

    Args:
        text: XML text
        what: Description used in error messages

    Returns:
        Root element

    Raises:
        PatchParseError: If text is not well-formed XML
    """
    parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True, insert_pis=True))
    try:
        return ET.fromstring(text, parser=parser)
    except ET.ParseError as e:
        raise PatchParseError(f"{what} is not well-formed XML: {e}") from e


def _properties(group: ET.Element) -> list[ET.Element]:
    return [child for child in group if isinstance(child.tag, str)]


def _qualify(element: ET.Element, namespace: str | None) -> ET.Element:
    if namespace is None:
        return element
    for node in element.iter():
        if isinstance(node.tag, str) and not node.tag.startswith("{"):
            node.tag = f"{{{namespace}}}{node.tag}"
    return element


def _detach(group: ET.Element, element: ET.Element) -> None:
    """Remove element, handing its tail to whatever precedes it when it is last."""
    children = list(group)
    index = children.index(element)
    if index == len(children) - 1:
        if index > 0:
            children[index - 1].tail = element.tail
        else:
            group.text = element.tail
    group.remove(element)


def merge_property_groups(
    source_root: ET.Element,
    patch_root: ET.Element,
    predicate: ElementPredicate | None = None,
    rules: MergeRules = DEFAULT_RULES,
) -> tuple[bool, int, int]:
    """
    Merge matching properties of patch_root into source_root in place.

    Only property groups that are direct children of each root take part.
    The first matching property of the source is replaced by copies of all
    matching properties of the patch (patch order kept); every later match
    in the source is removed. Non-matching nodes are never touched.

    Args:
        source_root: Root of the document being patched (mutated)
        patch_root: Root of the wrapped patch fragment
        predicate: Merge key; defaults to rules.matches_property
        rules: Group and property names

    Returns:
        Tuple of (replaced, inserted_count, removed_count)
    """
    matches = predicate or rules.matches_property
    namespace = namespace_of(source_root)

    new_groups = [group for group in patch_root if rules.matches_group(group)]
    replacements = [prop for group in new_groups for prop in _properties(group) if matches(prop)]

    current_groups = [group for group in source_root if rules.matches_group(group)]
    flattened = [(group, prop) for group in current_groups for prop in _properties(group)]

    replaced = False
    inserted = 0
    removed = 0
    for group, prop in flattened:
        if not matches(prop):
            continue

        if replaced:
            _detach(group, prop)
            removed += 1
            continue

        if replacements:
            index = list(group).index(prop)
            # Copies before the last one take the indentation of a sibling, not of the closing tag
            separator = group[index - 1].tail if index > 0 else group.text
            last = len(replacements) - 1
            for offset, replacement in enumerate(replacements):
                element = _qualify(copy.deepcopy(replacement), namespace)
                element.tail = prop.tail if offset == last else separator
                group.insert(index + offset, element)
            group.remove(prop)
        else:
            _detach(group, prop)
        replaced = True
        inserted = len(replacements)

    if not replaced:
        logger.warning(f"No matching property found in any {rules.group_name}; document left unchanged")

    return replaced, inserted, removed


def _with_default_namespace(root: ET.Element) -> ET.Element:
    """
    Rewrite a namespaced tree so its namespace is written as the default one.

    Tags in the root's namespace lose their qualifier and the root gets an
    explicit xmlns attribute. When any element is unqualified the tree is
    returned as is and ElementTree writes prefixes instead, since such an
    element would otherwise land in the default namespace.
    """
    namespace = namespace_of(root)
    if namespace is None or "xmlns" in root.attrib:
        return root

    elements = [node for node in root.iter() if isinstance(node.tag, str)]
    if any(not node.tag.startswith("{") for node in elements):
        return root

    qualifier = f"{{{namespace}}}"
    rewritten = copy.deepcopy(root)
    for node in rewritten.iter():
        if isinstance(node.tag, str) and node.tag.startswith(qualifier):
            node.tag = node.tag[len(qualifier) :]
    # Keep the declaration first, as the source wrote it
    attributes = {"xmlns": namespace, **rewritten.attrib}
    rewritten.attrib.clear()
    rewritten.attrib.update(attributes)
    return rewritten


def _serialize(root: ET.Element, source_text: str) -> str:
    body = ET.tostring(_with_default_namespace(root), encoding="unicode")

    declaration = XML_DECLARATION_PATTERN.match(source_text)
    if declaration:
        body = f"{declaration.group(1)}\n{body}"
    if source_text.endswith(("\n", "\r\n")):
        body += "\n"
    if "\r\n" in source_text:
        body = body.replace("\r\n", "\n").replace("\n", "\r\n")
    return body


def merge(
    source_text: str,
    fragment_text: str,
    predicate: ElementPredicate | None = None,
    rules: MergeRules = DEFAULT_RULES,
) -> MergeResult:
    """
    Merge a property fragment into a project document.

    Both inputs are parsed before anything is changed, so a parse failure
    never produces a partial merge. Formatting is kept where the parser
    allows it; only element and attribute structure is guaranteed.

    Args:
        source_text: Existing project document
        fragment_text: Bare properties, without any enclosing group
        predicate: Merge key; defaults to rules.matches_property
        rules: Group, property and root names

    Returns:
        MergeResult with the merged document text

    Raises:
        PatchParseError: If either input is not well-formed, or the source
            root is not the expected element
    """
    patch_root = parse_document(wrap_fragment(fragment_text, rules), "patch fragment")
    source_root = parse_document(source_text, "project document")

    if rules.root_name is not None and local_name(source_root) != rules.root_name:
        raise PatchParseError(
            f"project document root is <{local_name(source_root)}>, expected <{rules.root_name}>"
        )

    replaced, inserted, removed = merge_property_groups(source_root, patch_root, predicate, rules)
    return MergeResult(
        text=_serialize(source_root, source_text),
        replaced=replaced,
        inserted=inserted,
        removed=removed,
    )


def merge_document(
    source_text: str,
    fragment_text: str,
    predicate: ElementPredicate | None = None,
    rules: MergeRules = DEFAULT_RULES,
) -> str:
    """Merge a property fragment into a project document and return the text."""
    return merge(source_text, fragment_text, predicate, rules).text


def read_document_text(path: Path) -> tuple[str, bool]:
    """
    Read a project file as text.

    Args:
        path: Project file

    Returns:
        Tuple of (text, had_utf8_bom)

    Raises:
        PatchParseError: If the file is not valid UTF-8
        OSError: If the file cannot be read
    """
    raw = path.read_bytes()
    try:
        return raw.decode("utf-8-sig"), raw.startswith(codecs.BOM_UTF8)
    except UnicodeDecodeError as e:
        raise PatchParseError(f"{path} is not valid UTF-8: {e}") from e


def patch_project_file(
    project_path: Path,
    fragment_text: str,
    predicate: ElementPredicate | None = None,
    rules: MergeRules = DEFAULT_RULES,
    backup: bool = False,
    dry_run: bool = False,
) -> MergeResult:
    """
    Merge a property fragment into a project file on disk.

    The merged document replaces the file through a temporary sibling and a
    rename, so readers never observe a half-written project. A file that
    fails to parse is left untouched. There is no locking: concurrent
    writers to the same project must be serialized by the caller.

    Args:
        project_path: Project file to patch
        fragment_text: Bare properties to merge
        predicate: Merge key; defaults to rules.matches_property
        rules: Group, property and root names
        backup: Copy the original to <name>.bak before writing
        dry_run: Compute the result without writing anything

    Returns:
        MergeResult describing the merge

    Raises:
        PatchParseError: If either input is not well-formed
        OSError: If the project cannot be read or written
    """
    source_text, had_bom = read_document_text(project_path)
    result = merge(source_text, fragment_text, predicate, rules)

    if dry_run:
        logger.debug(f"Dry run: {project_path} not written")
        return result

    if backup:
        backup_path = project_path.with_name(project_path.name + PROJECT_BACKUP_SUFFIX)
        shutil.copy2(project_path, backup_path)
        logger.info(f"Backed up {project_path} to {backup_path}")

    atomic_write_text(project_path, result.text, encoding="utf-8-sig" if had_bom else "utf-8")
    logger.info(
        f"Patched {project_path} (replaced={result.replaced}, inserted={result.inserted}, removed={result.removed})"
    )
    return result
