"""
Shared fixtures for the javagraph test suite.
"""

import sys
import threading
from pathlib import Path

import numpy as np
import pytest

# Ensure the src/ directory is on the import path so that
# javagraph can be imported without installing the package.
SRC_ROOT = Path(__file__).resolve().parent.parent / "src"
sys.path.insert(0, str(SRC_ROOT))

from javagraph.exceptions import EmbeddingError  # noqa: E402
from javagraph.rag.vector_store import EmbeddingRecord  # noqa: E402


# =============================================================================
# Fixtures: sample Java sources
# =============================================================================

A_JAVA = (
    "package pkg;\n"                                   # 1
    "\n"                                               # 2
    "import pkg.util.B;\n"                             # 3
    "import java.util.List;\n"                         # 4
    "\n"                                               # 5
    "/**\n"                                            # 6
    " * Entry point.\n"                                # 7
    " */\n"                                            # 8
    "public class A extends B implements Runnable {\n" # 9
    "    private int count = 0;\n"                     # 10
    "    private final String name;\n"                 # 11
    "\n"                                               # 12
    "    public A(String name) {\n"                    # 13
    "        this.name = name;\n"                      # 14
    "    }\n"                                          # 15
    "\n"                                               # 16
    "    public void run() {\n"                        # 17
    "        helper();\n"                              # 18
    "        count++;\n"                               # 19
    "    }\n"                                          # 20
    "\n"                                               # 21
    "    private int helper() {\n"                     # 22
    "        B other = new B();\n"                     # 23
    "        return count + other.size();\n"           # 24
    "    }\n"                                          # 25
    "\n"                                               # 26
    "    public static class Inner {\n"                # 27
    "        void noop() {}\n"                         # 28
    "    }\n"                                          # 29
    "}\n"                                              # 30
)

B_JAVA = (
    "package pkg.util;\n"
    "\n"
    "public class B {\n"
    "    protected int size() {\n"
    "        return 0;\n"
    "    }\n"
    "}\n"
)

COLOR_JAVA = (
    "package pkg;\n"
    "\n"
    "public enum Color {\n"
    "    RED, GREEN;\n"
    "\n"
    "    public boolean isRed() {\n"
    "        return this == RED;\n"
    "    }\n"
    "}\n"
)

GREETER_JAVA = (
    "package pkg.service;\n"
    "\n"
    "public interface Greeter {\n"
    "    String greet(String name);\n"
    "}\n"
)

BROKEN_JAVA = (
    "package pkg;\n"
    "\n"
    "public class Broken {\n"
    "    void x( {\n"
    "}\n"
)

CALC_JAVA = (
    "package calc;\n"
    "\n"
    "public class Calc {\n"
    "    public int a() {\n"
    "        return b() + 1;\n"
    "    }\n"
    "\n"
    "    int b() {\n"
    "        return c();\n"
    "    }\n"
    "\n"
    "    int c() {\n"
    "        return a() + missing();\n"
    "    }\n"
    "}\n"
)


def write_java(root: Path, relative: str, source: str) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(source, encoding="utf-8")
    return path


@pytest.fixture
def java_project(tmp_path: Path) -> Path:
    """
    A small source tree: two packages linked by an import, an enum,
    an interface and one file that does not parse.
    """
    root = tmp_path / "project"
    write_java(root, "pkg/A.java", A_JAVA)
    write_java(root, "pkg/Broken.java", BROKEN_JAVA)
    write_java(root, "pkg/Color.java", COLOR_JAVA)
    write_java(root, "pkg/service/Greeter.java", GREETER_JAVA)
    write_java(root, "pkg/util/B.java", B_JAVA)
    # Build output is never indexed
    write_java(root, "target/generated/Gen.java", "package gen;\npublic class Gen {}\n")
    return root


@pytest.fixture
def calc_project(tmp_path: Path) -> Path:
    """Three methods calling each other in a cycle, plus one external call."""
    root = tmp_path / "calc"
    write_java(root, "calc/Calc.java", CALC_JAVA)
    return root


@pytest.fixture
def chain_project(tmp_path: Path) -> Path:
    """Eight methods, each calling the next."""
    body = ["package chain;", "", "public class Chain {"]
    for i in range(8):
        call = f"        m{i + 1}();" if i < 7 else "        return;"
        body.extend([f"    void m{i}() {{", call, "    }", ""])
    body.append("}")
    root = tmp_path / "chain"
    write_java(root, "chain/Chain.java", "\n".join(body) + "\n")
    return root


# =============================================================================
# Fixtures: fake providers
# =============================================================================

class FakeEmbedder:
    """Deterministic embedder: character codes folded into a few buckets."""

    dimensions = 8

    def __init__(self, fail_on=None):
        self.fail_on = set(fail_on or [])
        self.calls = 0
        self._lock = threading.Lock()

    def embed_text(self, text: str) -> list:
        with self._lock:
            self.calls += 1
        for marker in self.fail_on:
            if marker in text:
                raise EmbeddingError(f"provider rejected text containing {marker!r}")
        vector = [0.0] * self.dimensions
        for i, char in enumerate(text):
            vector[i % self.dimensions] += ord(char) % 13 + 1
        return vector


class StaticEmbedder:
    """Returns the same vector for every text."""

    def __init__(self, vector):
        self.vector = list(vector)
        self.calls = 0

    def embed_text(self, text: str) -> list:
        self.calls += 1
        return self.vector


class RecordingCompleter:
    """Completion provider that echoes the method it was asked about."""

    def __init__(self):
        self.prompts = []

    def complete(self, prompt: str, max_tokens: int = 4000) -> str:
        self.prompts.append(prompt)
        first_line = prompt.splitlines()[0]
        return f"summary of {first_line[len('Method: '):]}"


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


def make_record(key: str, vector, kind: str = "method", package: str = "pkg") -> EmbeddingRecord:
    """Embedding record with a chosen vector and no source."""
    return EmbeddingRecord(
        node_key=key,
        file_path=f"{key}.java",
        kind=kind,
        name=key.rsplit(".", 1)[-1],
        package=package,
        snippet=None,
        description="",
        vector=np.asarray(vector, dtype=np.float32),
    )
