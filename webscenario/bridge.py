"""Script-facing wrappers for tabs and elements.

Scenario scripts never see node ids. They get ``ScriptElement`` objects whose
members resolve in a fixed order:

1. GETTERS (``text``, ``innerHTML``, ``outerHTML``, ``value``): read now, yield the string
2. METHODS (``sendKeys``, ``setValue``, ``click``, ``submit``, ``focus``, ``blur``,
   ``screenshot``, ``all``): yield a callable bound to the element
3. any other public name: read it as a DOM attribute (None when absent)

Calling an element with a selector narrows to the first node's matches
(``el("a")``); ``el.all("a")`` expands to one element per match.
"""

from __future__ import annotations

import builtins
import functools
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from .element import Element

if TYPE_CHECKING:
    from .session import Tab
    from .storage import ArtifactStore


GETTERS: dict[str, Callable[[Element], str | None]] = {
    "text": Element.text,
    "innerHTML": Element.inner_html,
    "outerHTML": Element.outer_html,
    "value": Element.value,
}


def _chained(method: Callable[..., Element]) -> Callable[..., ScriptElement]:
    def call(handle: ScriptElement, *args: Any) -> ScriptElement:
        method(handle._element, *args)  # noqa: SLF001
        return handle

    return call


def _all(handle: ScriptElement, query: str) -> list[ScriptElement]:
    _check_query(query)
    return [ScriptElement(e) for e in handle._element.select_all(query)]  # noqa: SLF001


METHODS: dict[str, Callable[..., Any]] = {
    "all": _all,
    "sendKeys": _chained(Element.send_keys),
    "setValue": _chained(Element.set_value),
    "click": _chained(Element.click),
    "submit": _chained(Element.submit),
    "focus": _chained(Element.focus),
    "blur": _chained(Element.blur),
    "screenshot": _chained(Element.screenshot),
}


def _check_query(query: Any) -> None:
    if not isinstance(query, str):
        raise TypeError(f"selector must be a string, not {type(query).__name__}")


def resolve_member(handle: ScriptElement, name: str) -> Any:
    getter = GETTERS.get(name)
    if getter is not None:
        return getter(handle._element)  # noqa: SLF001
    method = METHODS.get(name)
    if method is not None:
        return functools.partial(method, handle)
    return handle._element.attribute(name)  # noqa: SLF001


class ScriptElement:
    __slots__ = ("_element",)

    def __init__(self, element: Element) -> None:
        self._element = element

    def __getattr__(self, name: str) -> Any:
        # Private and dunder probes (copy, pickle, IPython) never reach the page.
        if name.startswith("_"):
            raise AttributeError(name)
        return resolve_member(self, name)

    def __getitem__(self, name: str) -> str | None:
        # Attribute names that are not identifiers: el["data-id"], el["aria-label"].
        return self._element.attribute(name)

    def __call__(self, query: str) -> ScriptElement:
        _check_query(query)
        return ScriptElement(self._element.select(query))

    def __str__(self) -> str:
        return str(self._element)

    def __repr__(self) -> str:
        return f"<element {self._element}>"


class ScriptTab:
    """The ``tab`` global: page navigation plus top-level selection."""

    __slots__ = ("_tab",)

    def __init__(self, tab: Tab) -> None:
        self._tab = tab

    def __call__(self, query: str) -> ScriptElement:
        _check_query(query)
        return ScriptElement(Element.query_selector(self._tab, query))

    def all(self, query: str) -> list[ScriptElement]:
        _check_query(query)
        return [ScriptElement(Element(self._tab, query, (node_id,))) for node_id in self._tab.resolve_optional(query)]

    def go(self, url: str) -> ScriptTab:
        self._tab.navigate(url)
        return self

    def screenshot(self, name: str = "") -> ScriptTab:
        self._tab.screenshot(name)
        return self

    @property
    def url(self) -> str:
        return self._tab.url

    @property
    def title(self) -> str:
        return self._tab.title

    def __repr__(self) -> str:
        return "<tab>"


class ScriptArtifacts:
    """The ``artifacts`` global: save ad-hoc files next to screenshots."""

    __slots__ = ("_store",)

    def __init__(self, store: ArtifactStore) -> None:
        self._store = store

    def save(self, name: str, data: str | bytes, ext: str = "") -> str:
        raw = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        return self._store.save(name, ext, raw)

    def list(self) -> list[str]:
        return self._store.artifacts()


class ScriptOutput:
    """Replacement for ``print`` that keeps the lines for the run record.

    Text printed without a trailing newline (``end=""``) is held until a later
    call completes the line.
    """

    def __init__(self, *, echo: bool = False) -> None:
        self.echo = echo
        self._lines: list[str] = []
        self._partial = ""

    def __call__(self, *values: Any, sep: str | None = " ", end: str | None = "\n", file: Any = None, flush: bool = False) -> None:
        if file is not None:
            builtins.print(*values, sep=sep, end=end, file=file, flush=flush)
            return
        text = (" " if sep is None else sep).join(str(v) for v in values)
        text += "\n" if end is None else end
        *complete, self._partial = (self._partial + text).split("\n")
        self._lines.extend(complete)
        if self.echo:
            builtins.print(text, end="", flush=True)

    @property
    def lines(self) -> list[str]:
        if self._partial:
            return [*self._lines, self._partial]
        return list(self._lines)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


def register(
    namespace: dict[str, Any],
    tab: Tab,
    store: ArtifactStore,
    *,
    args: list[str] | None = None,
    output: ScriptOutput | None = None,
) -> dict[str, Any]:
    """Install the scenario globals into ``namespace`` and return it."""
    script_tab = ScriptTab(tab)
    namespace.update(
        {
            "tab": script_tab,
            "select": script_tab.__call__,
            "artifacts": ScriptArtifacts(store),
            "args": list(args or []),
        }
    )
    if output is not None:
        namespace["print"] = output
    return namespace


__all__ = [
    "GETTERS",
    "METHODS",
    "ScriptArtifacts",
    "ScriptElement",
    "ScriptOutput",
    "ScriptTab",
    "register",
    "resolve_member",
]
