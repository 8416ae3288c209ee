from __future__ import annotations

import pytest

from webscenario.bridge import GETTERS, METHODS, ScriptArtifacts, ScriptElement, ScriptOutput, ScriptTab, register


@pytest.fixture
def page(conn, tab) -> ScriptTab:
    conn.matches[(1, "ul")] = [2]
    conn.matches[(1, "li")] = [3, 4]
    conn.matches[(2, "li")] = [3, 4]
    conn.text = {2: "list", 3: "one", 4: "two"}
    conn.attributes = {3: {"data-id": "a", "text": "attr-text", "href": "/one"}}
    return ScriptTab(tab)


def test_getters_win_over_attributes(page) -> None:
    li = page("li")
    # "text" is also an attribute on node 3; the getter still wins.
    assert li.text == "one"


def test_methods_resolve_to_bound_callables(page, conn) -> None:
    li = page("li")
    assert li.click() is li
    presses = [m for m, p in conn.calls if m == "Input.dispatchMouseEvent" and p["type"] == "mousePressed"]
    assert len(presses) == 2


def test_unknown_member_reads_attribute(page) -> None:
    li = page("li")
    assert li.href == "/one"
    assert li.title is None
    assert li["data-id"] == "a"


def test_private_names_do_not_reach_the_page(page, conn) -> None:
    li = page("li")
    before = len(conn.calls)
    with pytest.raises(AttributeError):
        li._secret  # noqa: B018
    assert len(conn.calls) == before


def test_call_narrows_and_all_expands(page) -> None:
    ul = page("ul")
    first = ul("li")
    assert isinstance(first, ScriptElement)
    assert first.text == "one"

    items = ul.all("li")
    assert [item.text for item in items] == ["one", "two"]


def test_tab_all_yields_single_node_elements(page) -> None:
    items = page.all("li")
    assert [str(item) for item in items] == ["{li}", "{li}"]
    assert [item.text for item in items] == ["one", "two"]


def test_selector_must_be_string(page) -> None:
    with pytest.raises(TypeError):
        page(1)
    with pytest.raises(TypeError):
        page("ul").all(None)


def test_string_form(page) -> None:
    assert str(page("ul")) == "{ul}"
    assert repr(page("ul")) == "<element {ul}>"


def test_dispatch_tables_cover_script_names() -> None:
    assert set(GETTERS) == {"text", "innerHTML", "outerHTML", "value"}
    assert set(METHODS) == {"all", "sendKeys", "setValue", "click", "submit", "focus", "blur", "screenshot"}


def test_tab_navigation_and_properties(conn, page) -> None:
    conn.evals = {"window.location.href": "https://example.test/", "document.title": "T"}
    assert page.go("https://example.test/") is page
    assert page.url == "https://example.test/"
    assert page.title == "T"


def test_artifacts_global_saves_text_and_lists(store) -> None:
    artifacts = ScriptArtifacts(store)
    path = artifacts.save("report", "hello", ".txt")
    assert path.endswith("report.txt")
    with open(path, encoding="utf-8") as fp:
        assert fp.read() == "hello"
    assert artifacts.list() == [path]


def test_output_collects_lines(capsys) -> None:
    out = ScriptOutput()
    out("a", 1, sep="-")
    out("b")
    assert out.lines == ["a-1", "b"]
    assert out.text == "a-1\nb"
    assert capsys.readouterr().out == ""


def test_output_echo(capsys) -> None:
    out = ScriptOutput(echo=True)
    out("hello")
    assert capsys.readouterr().out == "hello\n"


def test_register_installs_globals(tab, store) -> None:
    out = ScriptOutput()
    ns = register({"keep": 1}, tab, store, args=["x"], output=out)
    assert ns["keep"] == 1
    assert isinstance(ns["tab"], ScriptTab)
    assert callable(ns["select"])
    assert isinstance(ns["artifacts"], ScriptArtifacts)
    assert ns["args"] == ["x"]
    assert ns["print"] is out


def test_register_without_output_keeps_builtin_print(tab, store) -> None:
    ns = register({}, tab, store)
    assert "print" not in ns
    assert ns["args"] == []


def test_output_joins_partial_lines(capsys) -> None:
    out = ScriptOutput(echo=True)
    out("a", end="")
    assert out.lines == ["a"]
    out("b")
    out("c\nd")
    assert out.lines == ["ab", "c", "d"]
    assert capsys.readouterr().out == "ab\nc\nd\n"
