from __future__ import annotations

from typing import Dict, Optional

from langchain_text_splitters import Language

# file extension (no dot) -> splitter language
EXT_TO_LANG: Dict[str, str] = {
    "html": "html",
    "htm": "html",
    "c": "c",
    "cpp": "cpp",
    "cc": "cpp",
    "h": "cpp",
    "hpp": "cpp",
    "cs": "csharp",
    "go": "go",
    "java": "java",
    "kt": "kotlin",
    "js": "js",
    "jsx": "js",
    "mjs": "js",
    "ts": "ts",
    "tsx": "ts",
    "php": "php",
    "proto": "proto",
    "py": "python",
    "rst": "rst",
    "rb": "ruby",
    "rs": "rust",
    "scala": "scala",
    "swift": "swift",
    "md": "markdown",
    "tex": "latex",
    "sol": "sol",
    "lua": "lua",
    "hs": "haskell",
    "ex": "elixir",
    "exs": "elixir",
    "ps1": "powershell",
    "pl": "perl",
}

# markdown is prose: it gets the text summary prompt
CODE_LANGUAGES = frozenset(EXT_TO_LANG.values()) - {"markdown"}


def normalize_extension(ext: str) -> str:
    """'.PY' / 'py' -> 'py'"""
    return ext.strip().lower().lstrip(".")


def ext_to_lang(ext: str | None) -> Optional[str]:
    if not ext:
        return None
    return EXT_TO_LANG.get(normalize_extension(ext))


def is_code_language(lang: str | None) -> bool:
    return bool(lang) and lang in CODE_LANGUAGES


def splitter_language(lang: str | None) -> Optional[Language]:
    """Map a stored language name onto LangChain's splitter enum, None if unsupported."""
    if not lang:
        return None
    try:
        return Language(lang)
    except ValueError:
        return None
