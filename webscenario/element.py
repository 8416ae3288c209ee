"""Element handles.

An Element is an immutable handle over one or more DOM node ids together with
the selector that produced them. It never re-queries the page on its own:
selecting again always yields a new handle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .errors import NoSuchNode
from .session import Action

if TYPE_CHECKING:
    from .session import Tab


class Element:
    __slots__ = ("query", "node_ids", "tab")

    def __init__(self, tab: Tab, query: str, node_ids: tuple[int, ...] | list[int]) -> None:
        self.tab = tab
        self.query = query
        self.node_ids = tuple(node_ids)

    @classmethod
    def query_selector(cls, tab: Tab, query: str) -> Element:
        """Select every node matching ``query`` in the page, waiting for at least one."""
        return cls(tab, query, tab.resolve_required(query))

    def __repr__(self) -> str:
        return f"Element({self.query!r}, node_ids={list(self.node_ids)})"

    def __str__(self) -> str:
        return "{" + self.query + "}"

    def __len__(self) -> int:
        return len(self.node_ids)

    def select(self, query: str) -> Element:
        """Narrow to the matches of ``query`` below this element.

        Only the first node is used as the scope, even when this handle holds
        several nodes. Actions work on the whole batch; narrowing does not.
        """
        if not self.node_ids:
            raise NoSuchNode(
                action=f"select {query!r} in {self}",
                reason="the element matched no nodes",
                details={"query": query, "parent": self.query},
            )
        return Element(self.tab, query, self.tab.resolve_required(query, self.node_ids[0]))

    def select_all(self, query: str) -> ElementList:
        """Expand into one single-node Element per match of ``query`` under each node."""
        found = ElementList()
        for node_id in self.node_ids:
            for child in self.tab.resolve_optional(query, node_id):
                found.append(Element(self.tab, query, (child,)))
        return found

    def send_keys(self, text: str) -> Element:
        self.tab.act(self.node_ids, Action.SEND_KEYS, text)
        return self

    def set_value(self, value: str) -> Element:
        self.tab.act(self.node_ids, Action.SET_VALUE, value)
        return self

    def click(self) -> Element:
        self.tab.act(self.node_ids, Action.CLICK)
        return self

    def submit(self) -> Element:
        self.tab.act(self.node_ids, Action.SUBMIT)
        return self

    def focus(self) -> Element:
        self.tab.act(self.node_ids, Action.FOCUS)
        return self

    def blur(self) -> Element:
        self.tab.act(self.node_ids, Action.BLUR)
        return self

    def screenshot(self, name: str = "") -> Element:
        data = self.tab.act(self.node_ids, Action.SCREENSHOT)
        if data is not None:
            self.tab.store.save(name, ".jpg", data)
        return self

    def text(self) -> str | None:
        return self.tab.act(self.node_ids, Action.TEXT)

    def inner_html(self) -> str | None:
        return self.tab.act(self.node_ids, Action.INNER_HTML)

    def outer_html(self) -> str | None:
        return self.tab.act(self.node_ids, Action.OUTER_HTML)

    def value(self) -> str | None:
        return self.tab.act(self.node_ids, Action.VALUE)

    def attribute(self, name: str) -> str | None:
        """Return the attribute value, or None when the attribute is absent."""
        return self.tab.act(self.node_ids, Action.ATTRIBUTE, name)


class ElementList(list):
    """Result of fan-out selection: single-node Elements in document order."""

    def __repr__(self) -> str:
        return f"ElementList({list.__repr__(self)})"


__all__ = ["Element", "ElementList"]
