"""Template function library.

Functions follow the Sprig/Helm conventions chart templates are written
against: the piped value is always the LAST argument, so
``.Values.x | default "a"`` calls ``default("a", value)``.

Only the functions in MISSING_TOLERANT may receive an absent value; the
evaluator raises UnresolvedReferenceError before calling any other function
with one. ``include`` and ``tpl`` need the template set and are bound by the
evaluator (see TEMPLATE_FUNCTIONS).
"""

import base64
import hashlib
import json
import re
from collections.abc import Callable, Mapping
from typing import Any

import yaml

from helmlet.engine.errors import UnresolvedReferenceError
from helmlet.values import Missing, is_missing

# Functions implemented by the evaluator
TEMPLATE_FUNCTIONS = ("include", "tpl")

# Functions that accept absent values
MISSING_TOLERANT = frozenset(
    {"default", "required", "empty", "coalesce", "ternary", "not", "and", "or", "eq", "ne"}
)

# Wide enough that PyYAML never folds long scalars
_YAML_WIDTH = 1 << 16

_UNSET = object()

_VERB_RE = re.compile(r"%([-+# 0]*\d*(?:\.\d+)?)([a-zA-Z%])")


# =============================================================================
# Value Semantics
# =============================================================================


def is_true(value: Any) -> bool:
    """Template truthiness.

    Absent values, None, False, zero and empty strings, mappings and
    sequences are false. Everything else is true.
    """
    if is_missing(value) or value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, (str, Mapping, list, tuple)):
        return len(value) > 0
    return True


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {format_value(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def format_value(value: Any) -> str:
    """Return the string form of a value as written to the output.

    Strings are written verbatim, booleans as ``true``/``false``, integral
    numbers without a fraction, None as an empty string and collections as
    flow YAML.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, (Mapping, list, tuple)):
        text = yaml.safe_dump(
            _plain(value), default_flow_style=True, sort_keys=False, width=_YAML_WIDTH
        )
        return text.strip()
    return str(value)


# =============================================================================
# Defaults and Logic
# =============================================================================


def default(fallback: Any, value: Any = _UNSET) -> Any:
    """Return ``value`` unless it is absent (or null), else ``fallback``.

    Falsy values such as 0, "" or false are kept.
    """
    if value is _UNSET or is_missing(value) or value is None:
        return fallback
    return value


def required(message: str, value: Any) -> Any:
    """Return ``value`` or fail the render with ``message``."""
    if is_missing(value) or value is None:
        path = value.path if isinstance(value, Missing) else "<nil>"
        raise UnresolvedReferenceError(path, message=message)
    return value


def empty(value: Any) -> bool:
    """True if the value is falsy (absent, null, zero or empty)."""
    return not is_true(value)


def coalesce(*values: Any) -> Any:
    """Return the first truthy value, or None."""
    for value in values:
        if is_true(value):
            return value
    return None


def ternary(true_value: Any, false_value: Any, condition: Any) -> Any:
    """Pick ``true_value`` or ``false_value`` by the truthiness of ``condition``."""
    return true_value if is_true(condition) else false_value


def not_(value: Any) -> bool:
    """Negate template truthiness."""
    return not is_true(value)


def and_(first: Any, *rest: Any) -> Any:
    """Return the first falsy argument, or the last one."""
    value = first
    for value in (first, *rest):
        if not is_true(value):
            return value
    return value


def or_(first: Any, *rest: Any) -> Any:
    """Return the first truthy argument, or the last one."""
    value = first
    for value in (first, *rest):
        if is_true(value):
            return value
    return value


def _equal(left: Any, right: Any) -> bool:
    if is_missing(left) or is_missing(right):
        return False
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def eq(first: Any, *others: Any) -> bool:
    """True if ``first`` equals any of ``others``."""
    if not others:
        raise TypeError("eq requires at least two arguments")
    return any(_equal(first, other) for other in others)


def ne(left: Any, right: Any) -> bool:
    """True if the values differ."""
    return not _equal(left, right)


def lt(left: Any, right: Any) -> bool:
    """True if ``left < right``."""
    return left < right


def le(left: Any, right: Any) -> bool:
    """True if ``left <= right``."""
    return left <= right


def gt(left: Any, right: Any) -> bool:
    """True if ``left > right``."""
    return left > right


def ge(left: Any, right: Any) -> bool:
    """True if ``left >= right``."""
    return left >= right


# =============================================================================
# Serialization and Indentation
# =============================================================================


def to_yaml(value: Any) -> str:
    """Serialize a value as block YAML without the trailing newline.

    Mapping keys keep their insertion order.
    """
    text = yaml.safe_dump(
        _plain(value),
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=_YAML_WIDTH,
    )
    # Scalars get an explicit document end marker
    if text.endswith("\n...\n"):
        text = text[: -len("...\n")]
    return text.removesuffix("\n")


def to_json(value: Any) -> str:
    """Serialize a value as compact JSON."""
    return json.dumps(_plain(value), separators=(",", ":"), ensure_ascii=False)


def from_yaml(text: str) -> Any:
    """Parse a YAML document; an empty document becomes an empty mapping."""
    data = yaml.safe_load(text)
    return {} if data is None else data


def indent(width: int, text: Any) -> str:
    """Prefix every line of ``text`` with ``width`` spaces."""
    pad = " " * int(width)
    return pad + format_value(text).replace("\n", "\n" + pad)


def nindent(width: int, text: Any) -> str:
    """Like indent(), starting with a newline.

    ``toYaml .x | nindent 8`` aligns a serialized fragment under a key
    whatever the fragment's own depth.
    """
    return "\n" + indent(width, text)


# =============================================================================
# Strings
# =============================================================================


def _go_quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def quote(*values: Any) -> str:
    """Double-quote each non-null value and join with spaces."""
    return " ".join(_go_quote(format_value(v)) for v in values if v is not None)


def squote(*values: Any) -> str:
    """Single-quote each non-null value and join with spaces."""
    return " ".join(f"'{format_value(v)}'" for v in values if v is not None)


def print_(*values: Any) -> str:
    """Concatenate values, adding spaces between non-string neighbours."""
    parts: list[str] = []
    previous: Any = None
    for i, value in enumerate(values):
        if i and not isinstance(value, str) and not isinstance(previous, str):
            parts.append(" ")
        parts.append(format_value(value))
        previous = value
    return "".join(parts)


def printf(template: str, *values: Any) -> str:
    """Format with Go-style verbs: %s %v %d %q %t %f and %%."""
    remaining = list(values)

    def substitute(match: re.Match[str]) -> str:
        flags, verb = match.group(1), match.group(2)
        if verb == "%":
            return "%"
        if not remaining:
            return f"%!{verb}(MISSING)"
        value = remaining.pop(0)
        if verb in ("s", "v"):
            text = format_value(value)
            return f"%{flags}s" % text if flags else text
        if verb == "d":
            return f"%{flags}d" % int(value)
        if verb == "q":
            return _go_quote(format_value(value))
        if verb == "t":
            return format_value(bool(value))
        if verb in ("f", "e", "g", "x", "X", "o"):
            return f"%{flags}{verb}" % value
        return f"%!{verb}({format_value(value)})"

    return _VERB_RE.sub(substitute, template)


def upper(text: Any) -> str:
    """Uppercase the string form of a value."""
    return format_value(text).upper()


def lower(text: Any) -> str:
    """Lowercase the string form of a value."""
    return format_value(text).lower()


def title(text: Any) -> str:
    """Capitalize the first letter of every word."""
    return re.sub(r"(^|\s)(\S)", lambda m: m.group(1) + m.group(2).upper(), format_value(text))


def trim(text: Any) -> str:
    """Strip leading and trailing whitespace."""
    return format_value(text).strip()


def trim_prefix(prefix: str, text: Any) -> str:
    """Remove ``prefix`` if present."""
    return format_value(text).removeprefix(prefix)


def trim_suffix(suffix: str, text: Any) -> str:
    """Remove ``suffix`` if present."""
    return format_value(text).removesuffix(suffix)


def trunc(length: int, text: Any) -> str:
    """Truncate to ``length`` characters; a negative length keeps the tail."""
    value = format_value(text)
    if length < 0 and len(value) + length > 0:
        return value[len(value) + length :]
    if length >= 0 and len(value) > length:
        return value[:length]
    return value


def replace(old: str, new: str, text: Any) -> str:
    """Replace every occurrence of ``old`` with ``new``."""
    return format_value(text).replace(old, new)


def contains(substring: str, text: Any) -> bool:
    """True if ``substring`` occurs in the text."""
    return substring in format_value(text)


def has_prefix(prefix: str, text: Any) -> bool:
    """True if the text starts with ``prefix``."""
    return format_value(text).startswith(prefix)


def has_suffix(suffix: str, text: Any) -> bool:
    """True if the text ends with ``suffix``."""
    return format_value(text).endswith(suffix)


def b64enc(text: Any) -> str:
    """Base64-encode the UTF-8 text."""
    return base64.b64encode(format_value(text).encode("utf-8")).decode("ascii")


def sha256sum(text: Any) -> str:
    """Hex SHA-256 digest of the UTF-8 text."""
    return hashlib.sha256(format_value(text).encode("utf-8")).hexdigest()


# =============================================================================
# Collections
# =============================================================================


def length(value: Any) -> int:
    """Number of items or characters; null has length 0."""
    if value is None:
        return 0
    return len(value)


def list_(*items: Any) -> list[Any]:
    """Collect the arguments into a list."""
    return list(items)


def dict_(*pairs: Any) -> dict[str, Any]:
    """Build a mapping from alternating keys and values."""
    result: dict[str, Any] = {}
    for i in range(0, len(pairs), 2):
        value = pairs[i + 1] if i + 1 < len(pairs) else ""
        result[format_value(pairs[i])] = value
    return result


def has_key(mapping: Mapping[str, Any], key: str) -> bool:
    """True if ``key`` is in the mapping."""
    return key in mapping


def keys(*mappings: Mapping[str, Any]) -> list[str]:
    """Keys of the given mappings in insertion order."""
    result: list[str] = []
    for mapping in mappings:
        result.extend(mapping)
    return result


FUNCTIONS: dict[str, Callable[..., Any]] = {
    # Values
    "default": default,
    "required": required,
    "empty": empty,
    "coalesce": coalesce,
    "ternary": ternary,
    # Logic
    "not": not_,
    "and": and_,
    "or": or_,
    "eq": eq,
    "ne": ne,
    "lt": lt,
    "le": le,
    "gt": gt,
    "ge": ge,
    # Serialization
    "toYaml": to_yaml,
    "toJson": to_json,
    "fromYaml": from_yaml,
    "indent": indent,
    "nindent": nindent,
    # Strings
    "quote": quote,
    "squote": squote,
    "print": print_,
    "printf": printf,
    "upper": upper,
    "lower": lower,
    "title": title,
    "trim": trim,
    "trimPrefix": trim_prefix,
    "trimSuffix": trim_suffix,
    "trunc": trunc,
    "replace": replace,
    "contains": contains,
    "hasPrefix": has_prefix,
    "hasSuffix": has_suffix,
    "toString": format_value,
    "b64enc": b64enc,
    "sha256sum": sha256sum,
    # Collections
    "len": length,
    "list": list_,
    "dict": dict_,
    "hasKey": has_key,
    "keys": keys,
}


def function_names() -> frozenset[str]:
    """Names callable from templates, including evaluator-bound ones."""
    return frozenset(FUNCTIONS) | frozenset(TEMPLATE_FUNCTIONS)
