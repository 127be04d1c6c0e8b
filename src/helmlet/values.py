"""Value tree: the configuration data bound to ``.Values``.

Values come from the chart's values.yaml, user value files and ``--set``
overrides. They are merged once before rendering and never mutated after
that: ValueTree keeps a private deep copy and hands out copies.

Lookups of absent paths return a Missing marker instead of raising, so the
caller decides whether absence is an error (printing), falsy (if/with/range)
or a trigger for a default.
"""

import copy
import logging
import re
from collections.abc import Iterable, Iterator, Mapping, Sequence
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_INT_RE = re.compile(r"[-+]?\d+")


class Missing:
    """Marker for a value path that has no binding.

    Missing is falsy so it behaves like an absent key in conditionals.

    Attributes:
        path: The path that failed to resolve (for error messages)
    """

    __slots__ = ("path",)

    def __init__(self, path: str) -> None:
        self.path = path

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"Missing({self.path!r})"


def is_missing(value: Any) -> bool:
    """Return True if value is the Missing marker."""
    return isinstance(value, Missing)


def ordered_items(mapping: Mapping[str, Any]) -> list[tuple[str, Any]]:
    """Enumerate mapping entries in insertion order.

    Iteration over values is always insertion order (never sorted) so that
    repeated renders of the same values produce identical output.
    """
    return [(key, mapping[key]) for key in mapping]


# =============================================================================
# Tree Helpers
# =============================================================================


def _key(key: Any) -> str:
    if isinstance(key, bool):
        return "true" if key else "false"
    return key if isinstance(key, str) else str(key)


def _copy_tree(value: Any) -> Any:
    """Deep copy into plain dicts and lists with string keys."""
    if isinstance(value, Mapping):
        return {_key(k): _copy_tree(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_copy_tree(v) for v in value]
    return copy.deepcopy(value)


def _split_path(path: str | Sequence[str]) -> list[str]:
    if isinstance(path, str):
        return [part for part in path.strip(".").split(".") if part] if path.strip(".") else []
    return list(path)


def merge_values(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge ``override`` into a copy of ``base``.

    Mappings merge recursively; any other value replaces the base value; an
    explicit None deletes the key. Keys already in ``base`` keep their
    position, new keys are appended.

    Args:
        base: Lower-precedence values
        override: Higher-precedence values

    Returns:
        New merged dictionary
    """
    result = _copy_tree(base)

    for raw_key, value in override.items():
        key = _key(raw_key)
        if value is None:
            result.pop(key, None)
            continue

        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            result[key] = merge_values(current, value)
        else:
            result[key] = _copy_tree(value)

    return result


def _set_path(tree: dict[str, Any], names: Sequence[str], value: Any) -> None:
    node = tree
    for name in names[:-1]:
        child = node.get(name)
        if not isinstance(child, dict):
            child = {}
            node[name] = child
        node = child
    node[names[-1]] = value


def _split_unescaped(text: str, separator: str) -> list[str]:
    """Split on ``separator`` unless it is escaped with a backslash."""
    parts: list[str] = []
    current: list[str] = []
    i = 0
    while i < len(text):
        char = text[i]
        if char == "\\" and i + 1 < len(text) and text[i + 1] == separator:
            current.append(separator)
            i += 2
            continue
        if char == separator:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
        i += 1
    parts.append("".join(current))
    return parts


def _typed_value(raw: str) -> Any:
    if raw == "true":
        return True
    if raw == "false":
        return False
    if raw == "null":
        return None
    if _INT_RE.fullmatch(raw):
        return int(raw)
    return raw


def parse_set_values(assignments: Iterable[str], string_values: bool = False) -> dict[str, Any]:
    """Parse ``--set`` style assignments into a nested mapping.

    Each assignment is ``path=value[,path=value...]``. Paths use dots for
    nesting (``\\.`` keeps a literal dot), ``\\,`` keeps a literal comma.
    Unless ``string_values`` is set, ``true``/``false`` become booleans,
    integers become ints and ``null`` removes the key when merged.

    Args:
        assignments: Raw assignment strings
        string_values: Keep every value as a string (``--set-string``)

    Returns:
        Nested mapping ready for merge_values()

    Raises:
        ValueError: If an assignment has no ``=`` or an empty key
    """
    result: dict[str, Any] = {}

    for assignment in assignments:
        for part in _split_unescaped(assignment, ","):
            if not part.strip():
                continue
            if "=" not in part:
                raise ValueError(f"Invalid value assignment (expected key=value): {part}")

            key, raw = part.split("=", 1)
            names = _split_unescaped(key.strip(), ".")
            if not all(names):
                raise ValueError(f"Invalid value path: {key!r}")

            value = raw if string_values else _typed_value(raw)
            _set_path(result, names, value)

    return result


# =============================================================================
# ValueTree
# =============================================================================


class ValueTree(Mapping[str, Any]):
    """Immutable tree of configuration values.

    Supports nested or dotted access:

        tree = ValueTree({"image": {"repository": "qoveryrd/pleco"}})
        tree.lookup("image.repository")   # "qoveryrd/pleco"
        tree.lookup("image.tag")          # Missing("image.tag")

    Attributes:
        source: Where the values came from (for logging)
    """

    def __init__(self, data: Mapping[str, Any] | None = None, source: str = "<values>") -> None:
        if data is not None and not isinstance(data, Mapping):
            raise TypeError(f"Values must be a mapping, got {type(data).__name__}")
        self._data: dict[str, Any] = _copy_tree(data or {})
        self.source = source

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_dotted(cls, data: Mapping[str, Any], source: str = "<values>") -> "ValueTree":
        """Build a tree from a mapping whose top-level keys may be dotted.

        ``{"image.repository": "x"}`` becomes ``{"image": {"repository": "x"}}``.
        Nested mappings are copied as-is (their keys are not split). When two
        keys address the same path the later one wins.
        """
        tree: dict[str, Any] = {}
        for key, value in data.items():
            names = _split_path(_key(key))
            if not names:
                raise ValueError(f"Invalid value path: {key!r}")
            _set_path(tree, names, _copy_tree(value))
        return cls(tree, source)

    @classmethod
    def from_yaml(cls, text: str, source: str = "<string>") -> "ValueTree":
        """Parse a YAML document into a tree.

        Raises:
            ValueError: If the document is not a mapping or is invalid YAML
        """
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {source}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ValueError(f"Values in {source} must be a mapping, got {type(data).__name__}")
        return cls(data, source)

    @classmethod
    def from_file(cls, path: Path) -> "ValueTree":
        """Load a values file.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not a YAML mapping
        """
        if not path.exists():
            raise FileNotFoundError(f"Values file not found: {path}")
        logger.debug("Loading values from %s", path)
        return cls.from_yaml(path.read_text(encoding="utf-8"), source=str(path))

    # -------------------------------------------------------------------------
    # Mapping interface
    # -------------------------------------------------------------------------

    def __getitem__(self, key: str) -> Any:
        return _copy_tree(self._data[key])

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ValueTree({self._data!r})"

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def lookup(self, path: str | Sequence[str]) -> Any:
        """Resolve a dotted path or key sequence.

        A missing ancestor makes the leaf missing; no separate error is
        raised for it.

        Returns:
            A copy of the value, or Missing(path)
        """
        names = _split_path(path)
        label = path if isinstance(path, str) else ".".join(path)
        node: Any = self._data

        for name in names:
            if not isinstance(node, dict) or name not in node:
                return Missing(label)
            node = node[name]

        return _copy_tree(node)

    def get_path(self, path: str | Sequence[str], default: Any = None) -> Any:
        """Resolve a path, returning ``default`` when it is absent."""
        value = self.lookup(path)
        return default if is_missing(value) else value

    def has_path(self, path: str | Sequence[str]) -> bool:
        return not is_missing(self.lookup(path))

    def items_at(self, path: str | Sequence[str] = ()) -> list[tuple[str, Any]]:
        """Enumerate the mapping at ``path`` in insertion order.

        Absent paths enumerate as empty.

        Raises:
            TypeError: If the value at ``path`` is not a mapping
        """
        value = self.lookup(path)
        if is_missing(value) or value is None:
            return []
        if not isinstance(value, Mapping):
            raise TypeError(f"Value at {path!r} is not a mapping")
        return ordered_items(value)

    # -------------------------------------------------------------------------
    # Derivation
    # -------------------------------------------------------------------------

    def merge(self, other: Mapping[str, Any]) -> "ValueTree":
        """Return a new tree with ``other`` deep-merged over this one."""
        source = getattr(other, "source", "<override>")
        return ValueTree(merge_values(self._data, other), f"{self.source}+{source}")

    def with_overrides(
        self,
        assignments: Iterable[str],
        string_values: bool = False,
    ) -> "ValueTree":
        """Return a new tree with ``--set`` style assignments applied."""
        overrides = parse_set_values(assignments, string_values=string_values)
        if not overrides:
            return self
        return ValueTree(merge_values(self._data, overrides), self.source)

    def to_dict(self) -> dict[str, Any]:
        """Return a deep copy as plain dictionaries and lists."""
        return _copy_tree(self._data)

    def to_yaml(self) -> str:
        """Serialize the tree as block YAML in insertion order."""
        if not self._data:
            return "{}\n"
        return yaml.safe_dump(
            self._data,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
