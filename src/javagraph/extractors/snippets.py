"""Attach literal source text to extracted elements."""

import logging
from pathlib import Path
from typing import Optional

from ..graph.model import FIELD, AstNode

logger = logging.getLogger(__name__)

JAVADOC_LOOKBACK = 20


def slice_lines(lines: list[str], start_line: int, end_line: int) -> Optional[str]:
    """Return lines start..end (1-based, inclusive), or None if out of range."""
    if start_line <= 0 or end_line <= 0 or start_line > end_line or end_line > len(lines):
        return None
    return "\n".join(lines[start_line - 1:end_line])


def enrich_nodes(nodes: list[AstNode], source: str) -> int:
    """Set source_code on every node whose span lies inside the source.

    Nodes with an out-of-range span are left untouched.

    Returns:
        Number of nodes enriched
    """
    lines = source.splitlines()
    enriched = 0
    for node in nodes:
        snippet = slice_lines(lines, node.start_line, node.end_line)
        if snippet is None:
            logger.debug("No source span for %s (%d-%d)", node.key, node.start_line, node.end_line)
            continue
        node.source_code = snippet
        enriched += 1
    return enriched


def enrich_file(nodes: list[AstNode], file_path: Path) -> int:
    """Read a file and enrich the nodes extracted from it."""
    source = Path(file_path).read_text(encoding="utf-8")
    return enrich_nodes(nodes, source)


def extract_javadoc(lines: list[str], line_number: int) -> Optional[str]:
    """Find the Javadoc block directly above a declaration line.

    Annotations, blank lines and line comments between the comment and the
    declaration are skipped. Looks back at most JAVADOC_LOOKBACK lines.
    """
    i = line_number - 2
    lowest = max(0, line_number - 1 - JAVADOC_LOOKBACK)

    while i >= lowest:
        line = lines[i].strip()
        if line.endswith("*/"):
            javadoc_lines = []
            while i >= lowest:
                line = lines[i].strip()
                javadoc_lines.insert(0, line)
                if line.startswith("/**"):
                    return "\n".join(javadoc_lines)
                if line.startswith("/*"):
                    return None
                i -= 1
            return None
        elif line.startswith("@") or not line or line.startswith("//"):
            i -= 1
        else:
            break

    return None


def extract_imports(lines: list[str]) -> list[str]:
    """Import statements as written, in order."""
    return [line.strip() for line in lines if line.strip().startswith("import ")]


def declaration_line(lines: list[str], node: AstNode) -> str:
    """The declaration's first line with any opening brace removed."""
    if node.start_line <= 0 or node.start_line > len(lines):
        return f"{node.kind} {node.name}"
    text = lines[node.start_line - 1].strip()
    if text.endswith("{"):
        text = text[:-1].rstrip()
    return text


def extract_method_signatures(lines: list[str], type_node: AstNode) -> list[str]:
    """Declaration lines of a type's methods and constructors."""
    return [
        declaration_line(lines, child)
        for child in type_node.children
        if child.kind != FIELD
    ]


def create_class_summary(source: str, type_node: AstNode) -> str:
    """Build a compact outline of a class: package, imports, members."""
    lines = source.splitlines()
    parts = []

    if type_node.package:
        parts.append(f"package {type_node.package};")
        parts.append("")

    imports = extract_imports(lines)
    if imports:
        parts.extend(imports)
        parts.append("")

    javadoc = extract_javadoc(lines, type_node.start_line)
    if javadoc:
        parts.append(javadoc)

    parts.append(declaration_line(lines, type_node) + " {")

    fields = [c for c in type_node.children if c.kind == FIELD]
    for field in fields:
        parts.append(f"    {declaration_line(lines, field)}")
    if fields:
        parts.append("")

    for signature in extract_method_signatures(lines, type_node):
        parts.append(f"    {signature}")

    parts.append("}")
    return "\n".join(parts)
