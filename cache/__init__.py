"""
Source Parse Cache
===================

Per-run cache of parsed Python modules so a source file is parsed once no
matter how many routes it serves.

Usage:
    from cache import SourceCache

    cache = SourceCache()
    parsed = cache.get("app/views.py", module_name="app.views")
    parsed.qualify("NotFound")   # "werkzeug.exceptions.NotFound"
"""

__version__ = "1.0.0"

from .source_cache import SourceCache, ParsedSource, collect_imports, find_handler, parse_source

__all__ = ["SourceCache", "ParsedSource", "collect_imports", "find_handler", "parse_source"]
