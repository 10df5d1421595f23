#!/usr/bin/env python3
"""
Source Cache
=============
In-memory cache of parsed Python source files for one generation run.

A file that contributes handlers to many routes is read and parsed once.
Each entry also carries the module's import table (alias → fully qualified
name) and its top-level class definitions, which analyzers use to resolve
short names without executing code.
"""

import ast
import hashlib
import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Dict, Optional

logger = logging.getLogger("api_docs.cache.source_cache")


@dataclass
class ParsedSource:
    """A parsed module and the static name tables derived from it."""
    path: str
    source: str
    tree: ast.Module
    imports: Dict[str, str] = field(default_factory=dict)
    classes: Dict[str, ast.ClassDef] = field(default_factory=dict)
    module_name: Optional[str] = None

    @property
    def digest(self) -> str:
        return hashlib.sha256(self.source.encode()).hexdigest()

    def qualify(self, dotted_name: str) -> str:
        """
        Resolve a name as written in this module to a fully qualified name.

        Example:
            With `from werkzeug import exceptions as exc` in the module,
            qualify("exc.NotFound") returns "werkzeug.exceptions.NotFound".
        """
        head, _, rest = dotted_name.partition('.')
        if head in self.imports:
            target = self.imports[head]
            return f"{target}.{rest}" if rest else target
        if head in self.classes and self.module_name:
            return f"{self.module_name}.{dotted_name}"
        return dotted_name


def collect_imports(tree: ast.Module, module_name: Optional[str] = None) -> Dict[str, str]:
    """
    Build the alias table for a module from its import statements.

    Relative imports are resolved against `module_name` when it is known.
    """
    imports: Dict[str, str] = {}

    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                if alias.asname:
                    imports[alias.asname] = alias.name
                else:
                    top = alias.name.split('.')[0]
                    imports.setdefault(top, top)

        elif isinstance(node, ast.ImportFrom):
            base = node.module or ''
            if node.level and module_name:
                package_parts = module_name.split('.')[:-node.level]
                base = '.'.join(p for p in package_parts + [base] if p)
            for alias in node.names:
                if alias.name == '*':
                    continue
                imports[alias.asname or alias.name] = f"{base}.{alias.name}" if base else alias.name

    return imports


class SourceCache:
    """
    Thread-safe parse cache.

    Usage:
        cache = SourceCache()
        parsed = cache.get("app/views.py")
        if parsed:
            handler = find_handler(parsed.tree, "UserView", "get")
    """

    def __init__(self):
        self._entries: Dict[str, Optional[ParsedSource]] = {}
        self._lock = threading.Lock()

        # Statistics
        self.stats = {"hits": 0, "misses": 0, "parse_errors": 0}

    def get(self, path: str, module_name: Optional[str] = None) -> Optional[ParsedSource]:
        """
        Return the parsed file, reading and parsing it on first access.

        Unreadable or syntactically invalid files are cached as None and
        logged once.
        """
        key = os.path.abspath(path)

        with self._lock:
            if key in self._entries:
                self.stats["hits"] += 1
                return self._entries[key]

        parsed = self._load(key, module_name)

        with self._lock:
            if key in self._entries:
                # Another worker finished first; keep its entry
                self.stats["hits"] += 1
                return self._entries[key]
            self._entries[key] = parsed
            self.stats["misses"] += 1
            if parsed is None:
                self.stats["parse_errors"] += 1
        return parsed

    def _load(self, path: str, module_name: Optional[str]) -> Optional[ParsedSource]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                source = f.read()
        except OSError as e:
            logger.warning(f"Cannot read source file {path}: {e}")
            return None

        try:
            return parse_source(source, path, module_name)
        except SyntaxError as e:
            logger.warning(f"Failed to parse {path}: {e}")
            return None

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def find_handler(tree: ast.Module, class_name: Optional[str], function_name: str):
    """Locate a function (or a method of a top-level class) in a module tree."""
    scope = tree.body
    if class_name:
        classes = [n for n in tree.body if isinstance(n, ast.ClassDef) and n.name == class_name]
        if not classes:
            return None
        scope = classes[0].body

    for node in scope:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and node.name == function_name:
            return node
    return None


def parse_source(source: str, path: str = "<string>", module_name: Optional[str] = None) -> ParsedSource:
    """
    Parse module source text into a ParsedSource.

    Raises:
        SyntaxError: If the source is not valid Python
    """
    tree = ast.parse(source, filename=path)
    return ParsedSource(
        path=path,
        source=source,
        tree=tree,
        imports=collect_imports(tree, module_name),
        classes={n.name: n for n in tree.body if isinstance(n, ast.ClassDef)},
        module_name=module_name,
    )
