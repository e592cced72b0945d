from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field


class HeaderMap(Mapping[str, str]):
    """Ordered, read-only header view with case-insensitive lookup.

    Mapping access returns the first value for a name; ``get_all`` returns every
    occurrence in original order. Iteration yields each distinct name once, in the
    spelling of its first occurrence.
    """

    __slots__ = ("_items", "_index")

    def __init__(self, items: Iterable[tuple[str, str]] = ()) -> None:
        self._items: tuple[tuple[str, str], ...] = tuple((str(k), str(v)) for k, v in items)
        index: dict[str, list[str]] = {}
        for name, value in self._items:
            index.setdefault(name.lower(), []).append(value)
        self._index = index

    def __getitem__(self, name: str) -> str:
        values = self._index.get(name.lower())
        if not values:
            raise KeyError(name)
        return values[0]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._index

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        for name, _value in self._items:
            key = name.lower()
            if key not in seen:
                seen.add(key)
                yield name

    def __len__(self) -> int:
        return len(self._index)

    def __repr__(self) -> str:
        return f"HeaderMap({list(self._items)!r})"

    def get_all(self, name: str) -> list[str]:
        return list(self._index.get(name.lower(), []))

    def raw_items(self) -> tuple[tuple[str, str], ...]:
        return self._items


@dataclass(frozen=True)
class MailAddress:
    display_name: str | None = None
    address: str | None = None
    text: str = ""

    @property
    def local_part(self) -> str:
        if not self.address:
            return ""
        return self.address.split("@", 1)[0]

    @property
    def is_empty(self) -> bool:
        return not self.address


@dataclass(frozen=True)
class DecodedMessage:
    from_: MailAddress
    to: MailAddress
    subject: str
    text_body: str | None
    html_body: str | None
    headers: HeaderMap = field(default_factory=HeaderMap)
    attachments_count: int = 0
    message_id: str | None = None
    size_bytes: int = 0
