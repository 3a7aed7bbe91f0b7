"""Java element and dependency extraction using javalang parser."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

import javalang

from ..exceptions import ParseError, SourceRootError
from ..graph.model import (
    CALLS,
    CLASS,
    CONSTRUCTOR,
    CREATES,
    EXTENDS,
    FIELD,
    IMPLEMENTS,
    IMPORT,
    INTERFACE,
    METHOD,
    PACKAGE_PRIVATE,
    USES,
    AstNode,
    CodeDependency,
    node_key,
)

logger = logging.getLogger(__name__)

# Directories never descended into when looking for sources
SKIP_DIRS = {".git", ".svn", ".hg", ".idea", ".gradle", "build", "target", "out", "node_modules"}

_TYPE_DECLARATIONS = (
    javalang.tree.ClassDeclaration,
    javalang.tree.InterfaceDeclaration,
    javalang.tree.EnumDeclaration,
)


@dataclass
class ExtractionResult:
    """Elements and same-file edges extracted from one Java file."""

    file_path: str
    package: str = ""
    nodes: list[AstNode] = field(default_factory=list)
    dependencies: list[CodeDependency] = field(default_factory=list)
    error: Optional[ParseError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def primary(self) -> Optional[AstNode]:
        """First class or interface declared in the file."""
        for node in self.nodes:
            if node.is_type:
                return node
        return None


def find_java_files(root: Union[str, Path]) -> list[Path]:
    """Recursively list .java files under root, sorted by path.

    Raises:
        SourceRootError: if root is missing, not a directory or unreadable
    """
    root = Path(root)
    if not root.exists():
        raise SourceRootError(f"Source root does not exist: {root}")
    if not root.is_dir():
        raise SourceRootError(f"Source root is not a directory: {root}")
    if not os.access(root, os.R_OK | os.X_OK):
        raise SourceRootError(f"Source root is not readable: {root}")

    files = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in SKIP_DIRS and not d.startswith(".")]
        for filename in filenames:
            if filename.endswith(".java"):
                files.append(Path(dirpath) / filename)
    return sorted(files)


def mask_non_code(lines: Iterable[str]) -> Iterator[str]:
    """Yield each line with comments and string/char literal contents blanked.

    Quote characters stay in place and everything else that is not code
    becomes spaces, so columns line up with the input. Block comments may
    span lines.
    """
    in_comment = False
    for line in lines:
        out = []
        quote = None
        i = 0
        while i < len(line):
            if in_comment:
                if line.startswith("*/", i):
                    in_comment = False
                    out.append("  ")
                    i += 2
                else:
                    out.append(" ")
                    i += 1
                continue

            char = line[i]
            if quote:
                if char == "\\":
                    out.append(" " * len(line[i:i + 2]))
                    i += 2
                    continue
                if char == quote:
                    quote = None
                    out.append(char)
                else:
                    out.append(" ")
            elif line.startswith("//", i):
                out.append(" " * (len(line) - i))
                break
            elif line.startswith("/*", i):
                in_comment = True
                out.append("  ")
                i += 2
                continue
            else:
                if char in "\"'":
                    quote = char
                out.append(char)
            i += 1
        yield "".join(out)


def find_block_end(lines: list[str], start_line: int, statement: bool = False) -> int:
    """Find the last line of a declaration starting at start_line (1-based).

    For methods and types this is the line that closes the first brace
    block, or the line of a ``;`` met before any brace (abstract methods).
    With ``statement=True`` (fields) only a ``;`` at brace depth zero ends
    the declaration, so array initializers and anonymous classes are kept.
    String and char literals and comments are ignored.

    Returns 0 if start_line is out of range, or the last line of the file if
    the declaration is never closed.
    """
    if start_line <= 0 or start_line > len(lines):
        return 0

    depth = 0
    opened = False

    code_lines = mask_non_code(lines[start_line - 1:])
    for idx, line in enumerate(code_lines, start=start_line - 1):
        for char in line:
            if char == "{":
                depth += 1
                opened = True
            elif char == "}":
                depth -= 1
                if opened and depth == 0 and not statement:
                    return idx + 1
            elif char == ";" and depth == 0 and (statement or not opened):
                return idx + 1

    return len(lines)


def _line_of(node) -> int:
    position = getattr(node, "position", None)
    return position.line if position else 0


def _visibility(modifiers: set) -> str:
    for candidate in ("public", "private", "protected"):
        if candidate in modifiers:
            return candidate
    return PACKAGE_PRIVATE


def _simple_type_name(type_node) -> str:
    """Last segment of a possibly qualified reference type (a.b.C -> C)."""
    while getattr(type_node, "sub_type", None) is not None:
        type_node = type_node.sub_type
    return type_node.name


def _type_name(type_node, with_dimensions: bool = True) -> str:
    """Readable name of a javalang type, qualified segments joined by dots."""
    parts = [type_node.name]
    current = type_node
    while getattr(current, "sub_type", None) is not None:
        current = current.sub_type
        parts.append(current.name)
    name = ".".join(parts)
    dimensions = getattr(type_node, "dimensions", None) or []
    if with_dimensions and dimensions:
        name += "[]" * len(dimensions)
    return name


class JavaExtractor:
    """Extract typed elements and same-file dependency edges from Java files."""

    def __init__(self, max_file_size_kb: int = 1000):
        self.max_file_size_kb = max_file_size_kb

    def extract_file(self, file_path: Union[str, Path]) -> ExtractionResult:
        """Extract all elements and intra-file edges from a Java file.

        Never raises: oversized, unreadable or unparsable files produce an
        empty result carrying a ParseError.

        Args:
            file_path: Path to a .java file

        Returns:
            ExtractionResult with nodes in discovery order
        """
        file_path = Path(file_path)
        result = ExtractionResult(file_path=str(file_path))

        try:
            size = file_path.stat().st_size
            if size > self.max_file_size_kb * 1024:
                return self._fail(result, f"file too large ({size // 1024} KB > {self.max_file_size_kb} KB)")
            source = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return self._fail(result, f"could not read file: {e}")

        try:
            tree = javalang.parse.parse(source)
        except javalang.parser.JavaSyntaxError as e:
            where = f" at {e.at}" if getattr(e, "at", None) else ""
            return self._fail(result, f"syntax error{where}: {e.description}")
        except javalang.tokenizer.LexerError as e:
            return self._fail(result, f"lexer error: {e}")
        except Exception as e:
            # javalang raises bare errors on some truncated inputs
            logger.debug("Unexpected parser failure in %s", file_path, exc_info=True)
            return self._fail(result, f"{type(e).__name__}: {e}")

        lines = source.splitlines()
        result.package = tree.package.name if tree.package else ""

        for type_decl in tree.types:
            if isinstance(type_decl, _TYPE_DECLARATIONS):
                self._extract_type(type_decl, result, lines)

        primary = result.primary
        if primary is not None:
            result.dependencies = self._extract_dependencies(tree, primary, result, lines)

        logger.debug(
            "Extracted %d elements and %d edges from %s",
            len(result.nodes),
            len(result.dependencies),
            file_path,
        )
        return result

    def extract_directory(self, dir_path: Union[str, Path]) -> list[ExtractionResult]:
        """Extract every Java file below a directory."""
        return [self.extract_file(path) for path in find_java_files(dir_path)]

    def _fail(self, result: ExtractionResult, reason: str) -> ExtractionResult:
        result.error = ParseError(result.file_path, reason)
        logger.warning("Skipping %s: %s", result.file_path, reason)
        return result

    # =========================================================================
    # Elements
    # =========================================================================

    def _extract_type(self, type_decl, result: ExtractionResult, lines: list[str]) -> AstNode:
        """Add a type node, then its members and nested types, to the result."""
        modifiers = type_decl.modifiers or set()
        is_interface = isinstance(type_decl, javalang.tree.InterfaceDeclaration)

        start = _line_of(type_decl)
        type_node = AstNode(
            kind=INTERFACE if is_interface else CLASS,
            name=type_decl.name,
            package=result.package,
            file_path=result.file_path,
            line_number=start,
            visibility=_visibility(modifiers),
            is_static="static" in modifiers,
            is_interface=is_interface,
            is_abstract="abstract" in modifiers,
            start_line=start,
            end_line=find_block_end(lines, start),
        )
        result.nodes.append(type_node)

        if isinstance(type_decl, javalang.tree.EnumDeclaration):
            members = type_decl.body.declarations if type_decl.body else []
        else:
            members = type_decl.body or []

        for member in members:
            if isinstance(member, javalang.tree.FieldDeclaration):
                for node in self._extract_fields(member, result, lines):
                    type_node.children.append(node)
                    result.nodes.append(node)
            elif isinstance(member, javalang.tree.MethodDeclaration):
                node = self._extract_method(member, result, lines, is_interface)
                type_node.children.append(node)
                result.nodes.append(node)
            elif isinstance(member, javalang.tree.ConstructorDeclaration):
                node = self._extract_constructor(member, result, lines)
                type_node.children.append(node)
                result.nodes.append(node)
            elif isinstance(member, _TYPE_DECLARATIONS):
                self._extract_type(member, result, lines)

        return type_node

    def _extract_fields(self, field_decl, result: ExtractionResult, lines: list[str]) -> list[AstNode]:
        """One field node per declarator, sharing the declaration's span."""
        modifiers = field_decl.modifiers or set()
        start = _line_of(field_decl)
        end = find_block_end(lines, start, statement=True)
        declared_type = _type_name(field_decl.type, with_dimensions=False)

        return [
            AstNode(
                kind=FIELD,
                name=declarator.name,
                package=result.package,
                file_path=result.file_path,
                line_number=start,
                visibility=_visibility(modifiers),
                is_static="static" in modifiers,
                return_type=declared_type,
                start_line=start,
                end_line=end,
            )
            for declarator in field_decl.declarators
        ]

    def _extract_method(self, method, result: ExtractionResult, lines: list[str], in_interface: bool) -> AstNode:
        modifiers = method.modifiers or set()
        start = _line_of(method)
        return_type = _type_name(method.return_type) if method.return_type else "void"
        is_abstract = "abstract" in modifiers or (
            in_interface and method.body is None and "static" not in modifiers
        )

        return AstNode(
            kind=METHOD,
            name=method.name,
            package=result.package,
            file_path=result.file_path,
            line_number=start,
            visibility=_visibility(modifiers),
            is_static="static" in modifiers,
            is_abstract=is_abstract,
            return_type=return_type,
            start_line=start,
            end_line=find_block_end(lines, start),
        )

    def _extract_constructor(self, constructor, result: ExtractionResult, lines: list[str]) -> AstNode:
        start = _line_of(constructor)
        return AstNode(
            kind=CONSTRUCTOR,
            name=constructor.name,
            package=result.package,
            file_path=result.file_path,
            line_number=start,
            visibility=_visibility(constructor.modifiers or set()),
            start_line=start,
            end_line=find_block_end(lines, start),
        )

    # =========================================================================
    # Same-file dependencies
    # =========================================================================

    def _extract_dependencies(
        self,
        tree,
        primary: AstNode,
        result: ExtractionResult,
        lines: list[str],
    ) -> list[CodeDependency]:
        """Derive import, inheritance, creation, call and usage edges.

        All edges originate from the file's primary type. Targets are left
        as written (simple or imported names) except calls and uses, which
        are only emitted when they match an element of this same file.
        """
        source = primary.key
        dependencies = []

        def edge(kind: str, target: str, line: int, description: str, target_file: str = "") -> None:
            dependencies.append(
                CodeDependency(
                    kind=kind,
                    source=source,
                    target=target,
                    source_file=result.file_path,
                    target_file=target_file,
                    source_line=line,
                    description=description,
                )
            )

        import_lines = self._import_lines(lines)
        for imp in tree.imports:
            line = _line_of(imp) or import_lines.get(imp.path, 0)
            edge(IMPORT, imp.path, line, f"Imports {imp.path}")

        method_names = {n.name for n in result.nodes if n.kind == METHOD}
        field_names = {n.name for n in result.nodes if n.kind == FIELD}

        # Walk in source order; nodes without a position inherit the last seen line
        current_line = 0
        for _, node in tree:
            current_line = _line_of(node) or current_line

            if isinstance(node, _TYPE_DECLARATIONS):
                for kind, supertype in self._supertypes(node):
                    name = _simple_type_name(supertype)
                    label = "Extends" if kind == EXTENDS else "Implements"
                    edge(kind, name, _line_of(supertype) or current_line, f"{label} {name}")

            elif isinstance(node, javalang.tree.ClassCreator):
                name = _simple_type_name(node.type)
                edge(CREATES, name, current_line, f"Creates instance of {name}")

            elif isinstance(node, javalang.tree.MethodInvocation):
                if node.member in method_names:
                    edge(
                        CALLS,
                        node_key(result.package, node.member),
                        current_line,
                        f"Calls method {node.member}",
                        target_file=result.file_path,
                    )

            elif isinstance(node, javalang.tree.MemberReference):
                if not node.qualifier and node.member in field_names:
                    edge(
                        USES,
                        f"{source}.{node.member}",
                        current_line,
                        f"Uses field {node.member}",
                        target_file=result.file_path,
                    )

        return dependencies

    @staticmethod
    def _supertypes(type_decl) -> list[tuple[str, object]]:
        """(kind, reference type) pairs for extends and implements clauses."""
        pairs = []
        extends = getattr(type_decl, "extends", None)
        if extends:
            # Interfaces may extend several types; classes at most one
            for supertype in extends if isinstance(extends, list) else [extends]:
                pairs.append((EXTENDS, supertype))
        for supertype in getattr(type_decl, "implements", None) or []:
            pairs.append((IMPLEMENTS, supertype))
        return pairs

    @staticmethod
    def _import_lines(lines: list[str]) -> dict[str, int]:
        """Map imported names to their declaration line."""
        found = {}
        for number, line in enumerate(lines, 1):
            stripped = line.strip()
            if not stripped.startswith("import "):
                continue
            path = stripped[len("import "):].rstrip(";").strip()
            if path.startswith("static "):
                path = path[len("static "):].strip()
            if path.endswith(".*"):
                path = path[:-2]
            found.setdefault(path, number)
        return found
