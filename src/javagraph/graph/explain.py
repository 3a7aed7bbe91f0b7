"""Explain a method by walking the methods it calls, to a bounded depth."""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

import javalang

from ..extractors.java_extractor import mask_non_code
from .model import CALLS, CONSTRUCTOR, METHOD, AstNode, DependencyGraph

logger = logging.getLogger(__name__)

MAX_DEPTH = 5

_STUB_CLASS = "CallSite"

_CALL_PATTERN = re.compile(r"(?<!\bnew\s)\b([A-Za-z_$][\w$]*)\s*\(")
_NOT_CALLS = {
    "if", "for", "while", "switch", "catch", "synchronized", "return",
    "new", "super", "this", "throw", "assert", "try",
}

# Node states in a call tree
EXPANDED = "expanded"
CYCLE = "cycle"
DEPTH_LIMIT = "depth-limit"
UNRESOLVED = "unresolved"


@dataclass
class CallTree:
    """One method in a call tree and the methods it calls."""

    key: str
    depth: int
    status: str
    node: Optional[AstNode] = None
    calls: list["CallTree"] = field(default_factory=list)

    def walk(self):
        yield self
        for child in self.calls:
            yield from child.walk()


def called_names(source: Optional[str]) -> list[str]:
    """Names invoked inside a method body, in first-seen order.

    The method is parsed with javalang inside a stub class. Snippets that do
    not parse on their own are scanned instead, with comments and literals
    masked out first.
    """
    if not source or "{" not in source:
        return []
    try:
        tree = javalang.parse.parse(f"class {_STUB_CLASS} {{\n{source}\n}}")
    except (javalang.parser.JavaSyntaxError, javalang.tokenizer.LexerError) as e:
        logger.debug("Scanning unparsable method text for calls: %s", e)
        return _scan_called_names(source)

    names = []
    for _, node in tree.filter(javalang.tree.MethodInvocation):
        if node.member not in names:
            names.append(node.member)
    return names


def _scan_called_names(source: str) -> list[str]:
    code = "\n".join(mask_non_code(source.splitlines()))
    body = code[code.index("{") + 1:] if "{" in code else ""
    names = []
    for match in _CALL_PATTERN.finditer(body):
        name = match.group(1)
        if name not in _NOT_CALLS and name not in names:
            names.append(name)
    return names


class CallGraphExplainer:
    """Build call trees for methods and optionally explain them with an LLM."""

    def __init__(self, graph: DependencyGraph, max_depth: int = MAX_DEPTH, completer=None):
        """Initialize the explainer.

        Args:
            graph: Enriched and resolved graph
            max_depth: Deepest level expanded; the target method is depth 0
            completer: Optional text-completion provider with complete(prompt, max_tokens)
        """
        if max_depth < 0:
            raise ValueError(f"max_depth must be >= 0, got {max_depth}")
        self.graph = graph
        self.max_depth = max_depth
        self.completer = completer

    def build_call_tree(self, key: str) -> CallTree:
        """Call tree rooted at a method or constructor.

        Raises:
            NodeNotFoundError: if key is not in the graph
            ValueError: if the node is not a method or constructor
        """
        node = self.graph.get_node(key)
        if node.kind not in (METHOD, CONSTRUCTOR):
            raise ValueError(f"{key} is a {node.kind}, not a method or constructor")
        return self._expand(node, 0, frozenset())

    def _expand(self, node: AstNode, depth: int, visited: frozenset) -> CallTree:
        # visited holds the keys on the current path only; siblings get their own copy
        if node.key in visited:
            return CallTree(key=node.key, depth=depth, status=CYCLE, node=node)
        if depth > self.max_depth:
            return CallTree(key=node.key, depth=depth, status=DEPTH_LIMIT, node=node)

        tree = CallTree(key=node.key, depth=depth, status=EXPANDED, node=node)
        path = visited | {node.key}
        for name in called_names(node.source_code):
            target = self._resolve(node, name)
            if target is None:
                tree.calls.append(CallTree(key=name, depth=depth + 1, status=UNRESOLVED))
            else:
                tree.calls.append(self._expand(target, depth + 1, path))
        return tree

    def _resolve(self, caller: AstNode, name: str) -> Optional[AstNode]:
        """Find the method a call in caller refers to."""
        owner = self.graph.containing_type(caller)
        if owner is None:
            return None

        for child in owner.children:
            if child.kind == METHOD and child.name == name:
                return child

        for dep in owner.dependencies:
            if dep.kind == CALLS and dep.target.endswith("." + name):
                target = self.graph.find_node(dep.target)
                if target is not None and target.kind == METHOD:
                    return target
        return None

    def explain(self, key: str, max_tokens: int = 4000) -> str:
        """Explain a method.

        Without a completer this is an indented outline of the call tree.
        With one, each expanded method is explained bottom-up so callers see
        the summaries of their callees.
        """
        tree = self.build_call_tree(key)
        if self.completer is None:
            return render_call_tree(tree)
        return self._summarize(tree, max_tokens)

    def _summarize(self, tree: CallTree, max_tokens: int) -> str:
        if tree.status == UNRESOLVED:
            return "[External or unresolved call]"
        if tree.status != EXPANDED:
            return "[Explanation omitted due to recursion depth or cycle]"

        summaries = {child.key: self._summarize(child, max_tokens) for child in tree.calls}
        logger.debug("Explaining %s at depth %d", tree.key, tree.depth)
        return self.completer.complete(_explanation_prompt(tree.node, summaries), max_tokens)


def render_call_tree(tree: CallTree) -> str:
    lines = []
    for item in tree.walk():
        label = item.key
        if item.node is not None and item.node.return_type:
            label += f" : {item.node.return_type}"
        if item.status != EXPANDED:
            label += f" [{item.status}]"
        lines.append("  " * item.depth + label)
    return "\n".join(lines)


def _explanation_prompt(node: AstNode, summaries: dict[str, str]) -> str:
    parts = [
        f"Method: {node.key}",
        f"Visibility: {node.visibility}",
    ]
    if node.return_type:
        parts.append(f"Return Type: {node.return_type}")
    parts.append(f"\n```java\n{node.source_code or '[Source code not available]'}\n```")

    if summaries:
        parts.append("\nCalled functions:")
        for key, summary in summaries.items():
            parts.append(f"\nFunction: {key}\nSummary:\n{summary}")
    parts.append("\nExplain what this method does, step by step, then summarize it in one paragraph.")
    return "\n".join(parts)
