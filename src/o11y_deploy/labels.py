"""
Label sets: the unit of target identity.

A LabelSet is an immutable mapping of label name to value, kept sorted by
name. Empty values are treated as absent, as in Prometheus.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping

ADDRESS_LABEL = "__address__"
GROUP_NAME_LABEL = "group_name"
META_LABEL_PREFIX = "__meta_"
RESERVED_LABEL_PREFIX = "__"


class LabelSet(Mapping[str, str]):
    """Immutable, ordered set of label name/value pairs."""

    __slots__ = ("_pairs", "_index", "_hash")

    def __init__(self, labels: Mapping[str, str] | Iterable[tuple[str, str]] | None = None):
        items = labels.items() if isinstance(labels, Mapping) else (labels or ())
        index = {str(name): str(value) for name, value in items if value not in (None, "")}
        self._pairs: tuple[tuple[str, str], ...] = tuple(sorted(index.items()))
        self._index = dict(self._pairs)
        self._hash: int | None = None

    def __getitem__(self, name: str) -> str:
        return self._index[name]

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, LabelSet):
            return self._pairs == other._pairs
        if isinstance(other, Mapping):
            return self._index == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(self._pairs)
        return self._hash

    def __repr__(self) -> str:
        inner = ", ".join(f'{name}="{value}"' for name, value in self._pairs)
        return "{" + inner + "}"

    @property
    def address(self) -> str:
        """Value of the reserved address label, or an empty string."""
        return self._index.get(ADDRESS_LABEL, "")

    def pairs(self) -> tuple[tuple[str, str], ...]:
        return self._pairs

    def merge(self, labels: Mapping[str, str]) -> LabelSet:
        """Return a copy where ``labels`` override existing values."""
        merged = dict(self._index)
        for name, value in labels.items():
            if value in (None, ""):
                merged.pop(name, None)
            else:
                merged[name] = value
        return LabelSet(merged)

    def public(self) -> dict[str, str]:
        """Labels that do not start with the reserved ``__`` prefix."""
        return {k: v for k, v in self._pairs if not k.startswith(RESERVED_LABEL_PREFIX)}

    def to_dict(self) -> dict[str, str]:
        return dict(self._pairs)


def merge_group_labels(target: Mapping[str, str], group_labels: Mapping[str, str]) -> LabelSet:
    """Merge host-level labels over group-level labels (host wins)."""
    merged = dict(group_labels)
    merged.update(target)
    return LabelSet(merged)


def split_host_port(address: str) -> tuple[str, str]:
    """Split ``host:port`` into its parts, tolerating a missing port.

    Bracketed IPv6 literals are unwrapped. When the address carries no port
    the whole address is returned as the host and the port is empty.
    """
    if address.startswith("["):
        end = address.find("]")
        if end != -1:
            host = address[1:end]
            rest = address[end + 1 :]
            return host, rest[1:] if rest.startswith(":") else ""
    if address.count(":") == 1:
        host, port = address.split(":")
        return host, port
    return address, ""


def join_host_port(host: str, port: str | int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"
