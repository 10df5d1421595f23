#!/usr/bin/env python3
"""
Docstring Parser
=================
Extract summaries, descriptions and documented exceptions from handler
docstrings.

Supports:
- Google style ("Args:", "Returns:", "Raises:")
- Sphinx style (":param x:", ":raises NotFound:")
- Plain text

Lines starting with "@" are annotation tags (see schemas.annotations) and
are not part of the description.
"""

import ast
import logging
import re
from typing import Dict, Any, List, Optional

logger = logging.getLogger("api_docs.extractors.docstring_parser")

GOOGLE_SECTIONS = ['Args:', 'Arguments:', 'Parameters:', 'Returns:', 'Return:',
                   'Yields:', 'Raises:', 'Note:', 'Example:', 'Examples:']


class DocstringParser:
    """Parse Python docstrings without executing code."""

    @staticmethod
    def from_node(node: ast.AST) -> Dict[str, Any]:
        """Parse the docstring of a function or class node (empty dict if none)."""
        try:
            docstring = ast.get_docstring(node)
        except TypeError:
            return {}
        return DocstringParser.parse_docstring(docstring) if docstring else {}

    @staticmethod
    def parse_docstring(docstring: str) -> Dict[str, Any]:
        """
        Parse docstring text.

        Args:
            docstring: Raw docstring text

        Returns:
            Dictionary with summary, description, parameters, returns, raises

        Example:
            >>> DocstringParser.parse_docstring('''List users.
            ...
            ... Raises:
            ...     Forbidden: When the caller is not an admin
            ... ''')
            {'summary': 'List users.', 'raises': [('Forbidden', 'When the caller is not an admin')]}
        """
        if not docstring:
            return {}

        text = '\n'.join(
            line for line in docstring.strip().split('\n') if not line.strip().startswith('@')
        ).strip()
        if not text:
            return {}

        format_type = DocstringParser._detect_format(text)
        if format_type == 'google':
            result = DocstringParser._parse_google_style(text)
        elif format_type == 'sphinx':
            result = DocstringParser._parse_sphinx_style(text)
        else:
            result = DocstringParser._parse_plain_style(text)

        if re.search(r'^\.\. deprecated::', text, re.MULTILINE) or re.search(r'^Deprecated\b', text, re.MULTILINE):
            result['deprecated'] = True

        return result

    @staticmethod
    def _detect_format(docstring: str) -> str:
        if re.search(r'^\s*(Args|Arguments|Parameters|Returns|Raises):\s*$', docstring, re.MULTILINE):
            return 'google'
        if re.search(r':(param|raises?|returns?)\b', docstring):
            return 'sphinx'
        return 'plain'

    @staticmethod
    def _summary_and_description(before: str, result: Dict[str, Any]) -> None:
        paragraphs = [p.strip() for p in re.split(r'\n\s*\n', before.strip()) if p.strip()]
        if not paragraphs:
            return
        result['summary'] = ' '.join(paragraphs[0].split())
        rest = [p for p in paragraphs[1:] if not p.startswith('.. deprecated::')]
        if rest:
            result['description'] = '\n\n'.join(rest)

    @staticmethod
    def _parse_google_style(docstring: str) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        sections = DocstringParser._split_sections(docstring, GOOGLE_SECTIONS)

        DocstringParser._summary_and_description(sections.get('before', ''), result)

        for key in ['Args:', 'Arguments:', 'Parameters:']:
            if key in sections:
                params = DocstringParser._parse_entry_block(sections[key])
                if params:
                    result['parameters'] = dict(params)
                break

        for key in ['Returns:', 'Return:', 'Yields:']:
            if sections.get(key, '').strip():
                result['returns'] = ' '.join(sections[key].split())
                break

        if 'Raises:' in sections:
            raises = DocstringParser._parse_entry_block(sections['Raises:'], name_pattern=r'[\w.]+')
            if raises:
                result['raises'] = raises

        return result

    @staticmethod
    def _parse_sphinx_style(docstring: str) -> Dict[str, Any]:
        result: Dict[str, Any] = {}

        before = re.split(r'^\s*:', docstring, maxsplit=1, flags=re.MULTILINE)[0]
        DocstringParser._summary_and_description(before, result)

        params = {m.group(1): m.group(2).strip() for m in re.finditer(r':param\s+(?:\w+\s+)?(\w+):\s*(.+)', docstring)}
        if params:
            result['parameters'] = params

        return_match = re.search(r':returns?:\s*(.+)', docstring)
        if return_match:
            result['returns'] = return_match.group(1).strip()

        raises = [(m.group(1), m.group(2).strip() or None)
                  for m in re.finditer(r':raises?\s+([\w.]+):\s*(.*)', docstring)]
        if raises:
            result['raises'] = raises

        return result

    @staticmethod
    def _parse_plain_style(docstring: str) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        DocstringParser._summary_and_description(docstring, result)
        return result

    @staticmethod
    def _split_sections(text: str, headers: List[str]) -> Dict[str, str]:
        """Split text into {header: content}; text before any header is under 'before'."""
        pattern = r'^\s*(' + '|'.join(re.escape(h) for h in headers) + r')\s*$'
        parts = re.split(pattern, text, flags=re.MULTILINE)

        sections = {'before': parts[0]}
        for i in range(1, len(parts) - 1, 2):
            sections[parts[i]] = parts[i + 1]
        return sections

    @staticmethod
    def _parse_entry_block(text: str, name_pattern: str = r'\w+') -> List[tuple]:
        """Parse "name: description" entries with indented continuation lines."""
        entries = []
        current: Optional[List[Any]] = None
        base_indent = None

        for line in text.split('\n'):
            if not line.strip():
                continue
            indent = len(line) - len(line.lstrip())
            if base_indent is None:
                base_indent = indent

            match = re.match(r'^(' + name_pattern + r')(?:\s*\([^)]*\))?:\s*(.*)$', line.strip())
            if match and indent <= base_indent:
                current = [match.group(1), match.group(2)]
                entries.append(current)
            elif current is not None:
                current[1] = f"{current[1]} {line.strip()}".strip()

        return [(name, desc or None) for name, desc in entries]
