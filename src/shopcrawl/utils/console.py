"""Console output that survives narrow encodings.

Product titles, shop names and status texts are mostly Chinese; printing
them on a cp1252 or cp437 console must degrade to escapes instead of
raising in the middle of a crawl.
"""

import sys
from typing import Any, Iterable, Optional, TextIO

_DEFAULT_ERRORS = "backslashreplace"


def _get_encoding(stream) -> str:
    return getattr(stream, "encoding", None) or getattr(sys.stdout, "encoding", None) or "utf-8"


def encode_safely(text: str, encoding: str, errors: str = _DEFAULT_ERRORS) -> str:
    """Round-trip ``text`` through ``encoding`` so that writing it cannot fail."""
    try:
        return text.encode(encoding, errors=errors).decode(encoding, errors=errors)
    except LookupError:
        return text.encode("utf-8", errors=errors).decode("utf-8", errors=errors)


def write_safely(stream: TextIO, text: str, errors: str = _DEFAULT_ERRORS) -> None:
    try:
        stream.write(text)
    except UnicodeEncodeError:
        stream.write(encode_safely(text, _get_encoding(stream), errors))


def safe_str(x: Any, encoding: Optional[str] = None, errors: str = _DEFAULT_ERRORS) -> str:
    if isinstance(x, bytes):
        try:
            return x.decode(encoding or "utf-8", errors=errors)
        except LookupError:
            return x.decode("utf-8", errors=errors)

    s = str(x)
    enc = encoding or _get_encoding(sys.stdout)
    try:
        s.encode(enc)
    except (UnicodeEncodeError, LookupError):
        return encode_safely(s, enc, errors)
    return s


def safe_print(
    *args: Any,
    sep: str = " ",
    end: str = "\n",
    file: Optional[TextIO] = None,
    flush: bool = False,
    errors: str = _DEFAULT_ERRORS,
) -> None:
    out = file if file is not None else sys.stdout
    encoding = _get_encoding(out)
    text = safe_str(sep, encoding, errors).join(safe_str(a, encoding, errors) for a in args)
    write_safely(out, text + safe_str(end, encoding, errors), errors)
    if flush:
        out.flush()


def banner(title: str, width: int = 40, file: Optional[TextIO] = None) -> None:
    """Print a ``title`` between two rules, used by the CLI summaries."""
    safe_print("=" * width, file=file)
    safe_print(title, file=file)
    safe_print("=" * width, file=file)


def print_items(items: Iterable, limit: int = 5, file: Optional[TextIO] = None) -> int:
    """Preview the first ``limit`` items as ``price  title  (shop)`` lines.

    Returns how many items were not shown.
    """
    items = list(items)
    for item in items[:limit]:
        title = item.title if len(item.title) <= 40 else item.title[:39] + "…"
        safe_print(f"  ¥{item.price:>9}  {title}  ({item.shop})", file=file)
    hidden = max(len(items) - limit, 0)
    if hidden:
        safe_print(f"  ... {hidden} more", file=file)
    return hidden
