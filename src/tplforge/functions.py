"""
tplforge.functions - Template Function Library
==============================================

Helpers made available to every path and content template, on top of
Jinja2's built-in filters (``upper``, ``lower``, ``replace``, ``join``,
``default``, ``unique``, ...).

Categories
----------
Strings:
    snake_case, kebab_case, camel_case, pascal_case, trunc, nospace,
    quote, squote, has_prefix, has_suffix, regex_replace, regex_match,
    split, repeat, nindent

Collections:
    keys, values, compact, without, has, append, prepend, uniq, pluck

Dates:
    now(), date(fmt), unix_epoch

Hashing / encoding:
    sha1sum, sha256sum, md5sum, adler32sum, b64enc, b64dec, uuidv4()

Example
-------
With the default delimiters a template can say::

    package {{{ name | snake_case }}}
    // generated {{{ now() | date("%Y-%m-%d") }}}
    // checksum {{{ org | sha256sum | trunc(12) }}}
"""

from __future__ import annotations

import base64
import hashlib
import re
import uuid
import zlib
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from jinja2 import Environment


# =============================================================================
# Strings
# =============================================================================

_WORD_BOUNDARY = re.compile(r"[A-Z]?[a-z0-9]+|[A-Z]+(?![a-z])|[0-9]+")


def _words(value: str) -> list[str]:
    return _WORD_BOUNDARY.findall(str(value))


def snake_case(value: str) -> str:
    """``"My-Project Name"`` -> ``"my_project_name"``."""
    return "_".join(w.lower() for w in _words(value))


def kebab_case(value: str) -> str:
    return "-".join(w.lower() for w in _words(value))


def pascal_case(value: str) -> str:
    return "".join(w[:1].upper() + w[1:].lower() for w in _words(value))


def camel_case(value: str) -> str:
    pascal = pascal_case(value)
    return pascal[:1].lower() + pascal[1:]


def trunc(value: str, length: int) -> str:
    """Keep the first ``length`` characters; negative keeps the last ones."""
    value = str(value)
    return value[length:] if length < 0 else value[:length]


def nospace(value: str) -> str:
    return "".join(str(value).split())


def quote(value: Any) -> str:
    return '"' + str(value).replace("\\", "\\\\").replace('"', '\\"') + '"'


def squote(value: Any) -> str:
    return "'" + str(value) + "'"


def has_prefix(value: str, prefix: str) -> bool:
    return str(value).startswith(prefix)


def has_suffix(value: str, suffix: str) -> bool:
    return str(value).endswith(suffix)


def regex_replace(value: str, pattern: str, replacement: str) -> str:
    return re.sub(pattern, replacement, str(value))


def regex_match(value: str, pattern: str) -> bool:
    return re.search(pattern, str(value)) is not None


def split(value: str, sep: str | None = None) -> list[str]:
    return str(value).split(sep)


def repeat(value: str, count: int) -> str:
    return str(value) * count


def nindent(value: str, width: int) -> str:
    """Newline followed by ``value`` with every line indented by ``width``."""
    pad = " " * width
    return "\n" + "\n".join(pad + line if line else line for line in str(value).split("\n"))


# =============================================================================
# Collections
# =============================================================================

def keys(mapping: Mapping[str, Any]) -> list[str]:
    return sorted(mapping)


def values(mapping: Mapping[str, Any]) -> list[Any]:
    return [mapping[k] for k in sorted(mapping)]


def compact(items: Iterable[Any]) -> list[Any]:
    """Drop empty values (``""``, ``None``, ``0``, empty collections)."""
    return [item for item in items if item]


def without(items: Iterable[Any], *excluded: Any) -> list[Any]:
    return [item for item in items if item not in excluded]


def has(items: Iterable[Any], needle: Any) -> bool:
    return needle in items


def append(items: Iterable[Any], item: Any) -> list[Any]:
    return [*items, item]


def prepend(items: Iterable[Any], item: Any) -> list[Any]:
    return [item, *items]


def uniq(items: Iterable[Any]) -> list[Any]:
    seen: list[Any] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


def pluck(mappings: Iterable[Mapping[str, Any]], key: str) -> list[Any]:
    return [m[key] for m in mappings if key in m]


# =============================================================================
# Dates
# =============================================================================

def now() -> datetime:
    return datetime.now(UTC)


def date(value: datetime | int | float, fmt: str = "%Y-%m-%d") -> str:
    """Format a datetime (or unix timestamp) with ``strftime``."""
    if isinstance(value, (int, float)):
        value = datetime.fromtimestamp(value, UTC)
    return value.strftime(fmt)


def unix_epoch(value: datetime) -> int:
    return int(value.timestamp())


# =============================================================================
# Hashing / Encoding
# =============================================================================

def _digest(algorithm: str) -> Callable[[Any], str]:
    def digest(value: Any) -> str:
        return hashlib.new(algorithm, str(value).encode("utf-8")).hexdigest()

    digest.__name__ = f"{algorithm}sum"
    return digest


sha1sum = _digest("sha1")
sha256sum = _digest("sha256")
md5sum = _digest("md5")


def adler32sum(value: Any) -> str:
    return str(zlib.adler32(str(value).encode("utf-8")))


def b64enc(value: Any) -> str:
    return base64.b64encode(str(value).encode("utf-8")).decode("ascii")


def b64dec(value: str) -> str:
    return base64.b64decode(value).decode("utf-8")


def uuidv4() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Registration
# =============================================================================

FILTERS: dict[str, Callable[..., Any]] = {
    "snake_case": snake_case,
    "kebab_case": kebab_case,
    "camel_case": camel_case,
    "pascal_case": pascal_case,
    "trunc": trunc,
    "nospace": nospace,
    "quote": quote,
    "squote": squote,
    "has_prefix": has_prefix,
    "has_suffix": has_suffix,
    "regex_replace": regex_replace,
    "regex_match": regex_match,
    "split": split,
    "repeat": repeat,
    "nindent": nindent,
    "keys": keys,
    "values": values,
    "compact": compact,
    "without": without,
    "has": has,
    "append": append,
    "prepend": prepend,
    "uniq": uniq,
    "pluck": pluck,
    "date": date,
    "unix_epoch": unix_epoch,
    "sha1sum": sha1sum,
    "sha256sum": sha256sum,
    "md5sum": md5sum,
    "adler32sum": adler32sum,
    "b64enc": b64enc,
    "b64dec": b64dec,
}

GLOBALS: dict[str, Callable[..., Any]] = {
    "now": now,
    "uuidv4": uuidv4,
}


def register(environment: Environment) -> Environment:
    """Install the function library into a Jinja2 environment."""
    environment.filters.update(FILTERS)
    environment.globals.update(GLOBALS)
    return environment
