import re
import unicodedata

# reasoning models wrap their scratchpad in <think>...</think>
_THINK_BLOCK = re.compile(r"<think>.*?</think>\s*", re.DOTALL | re.IGNORECASE)
_QUOTES = "\"'`"


def normalize_text(s: str) -> str:
    s = unicodedata.normalize("NFKC", s)
    s = s.replace("\u00a0", " ")
    s = re.sub(r"[ \t]+", " ", s)
    s = re.sub(r"\s+\n", "\n", s)
    s = re.sub(r"\n{3,}", "\n\n", s)
    return s.strip()


def strip_reasoning(text: str) -> str:
    """Remove every <think> block a model may emit before its answer."""
    return _THINK_BLOCK.sub("", text).strip()


def clean_llm_output(text: str) -> str:
    return normalize_text(strip_reasoning(str(text)))


def clean_search_query(text: str) -> str:
    """
    The refinement prompt ends with 'Rephrased Search Query:', models tend to
    answer with a quoted one-liner.
    """
    q = clean_llm_output(text)
    first_line = q.splitlines()[0] if q else ""
    return first_line.strip().strip(_QUOTES).strip()
