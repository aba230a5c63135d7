"""Tests for the pp command line."""

import click
import pytest
from click.testing import CliRunner

from promptpad.cli import pp


@pytest.fixture
def calls(monkeypatch):
    """Record daemon requests and answer with canned responses."""
    recorded = []
    prompt = {"id": "01ABC", "name": "Greeting", "filePath": "uncategorized/greeting.md"}
    responses = {
        ("PUT", "/prompts/01ABC"): prompt,
        ("DELETE", "/prompts/01ABC"): {"status": "deleted", "id": "01ABC"},
        ("GET", "/prompts/01ABC/content"): {"id": "01ABC", "content": "Hello there"},
        ("GET", "/search/content"): {"query": "hello", "results": [prompt]},
        ("POST", "/folders"): {"folder": "work"},
        ("GET", "/tags"): {"tags": ["dev", "writing"]},
        ("POST", "/toggle"): {"visible": True},
        ("POST", "/import/markdown"): prompt,
        ("GET", "/settings"): {"theme": "system"},
        ("PUT", "/settings"): {"theme": "dark"},
    }

    async def fake_request(method, path, **kwargs):
        recorded.append((method, path, kwargs))
        return responses[(method, path)]

    monkeypatch.setattr(pp, "request", fake_request)
    return recorded


def invoke(*args, input=None):
    result = CliRunner().invoke(pp.cli, list(args), input=input)
    assert result.exit_code == 0, result.output
    return result


def test_parse_setting():
    assert pp.parse_setting("search.cutoff=0.3") == {"search": {"cutoff": 0.3}}
    assert pp.parse_setting("theme=dark") == {"theme": "dark"}
    assert pp.parse_setting("launch_at_startup=true") == {"launch_at_startup": True}
    assert pp.parse_setting("hotkey=") == {"hotkey": ""}


def test_parse_setting_requires_assignment():
    with pytest.raises(click.BadParameter):
        pp.parse_setting("theme")


def test_edit_sends_only_given_fields(calls):
    invoke("edit", "01ABC", "--name", "Renamed", "-t", "a", "-t", "b")
    assert calls == [("PUT", "/prompts/01ABC", {"json": {"name": "Renamed", "tags": ["a", "b"]}})]


def test_edit_reads_content_from_stdin(calls):
    invoke("edit", "01ABC", "--content", "-", input="from stdin")
    assert calls[0][2]["json"] == {"content": "from stdin"}


def test_edit_without_changes_fails(calls):
    result = CliRunner().invoke(pp.cli, ["edit", "01ABC"])
    assert result.exit_code != 0
    assert calls == []


def test_delete_with_confirmation(calls):
    invoke("delete", "01ABC", "--yes")
    assert calls[0][:2] == ("DELETE", "/prompts/01ABC")


def test_cat_prints_body(calls):
    result = invoke("cat", "01ABC")
    assert result.output == "Hello there\n"


def test_grep_and_tags(calls):
    assert "Greeting" in invoke("grep", "hello").output
    assert calls[0] == ("GET", "/search/content", {"params": {"q": "hello"}})
    assert "writing" in invoke("tags").output


def test_mkdir_and_toggle(calls):
    invoke("mkdir", "work")
    invoke("toggle")
    assert calls[0] == ("POST", "/folders", {"json": {"name": "work"}})
    assert calls[1][:2] == ("POST", "/toggle")


def test_markdown_import_goes_through_daemon(calls, tmp_path):
    source = tmp_path / "greeting.md"
    source.write_text("---\nname: Greeting\ncreated: 2024-05-01T00:00:00Z\n---\nHello", encoding="utf-8")

    invoke("import", str(source), "--folder", "work")

    method, path, kwargs = calls[0]
    assert (method, path) == ("POST", "/import/markdown")
    assert kwargs["json"]["fileName"] == "greeting.md"
    assert kwargs["json"]["folder"] == "work"
    assert "created: 2024-05-01T00:00:00Z" in kwargs["json"]["content"]


def test_settings_show_and_set(calls):
    assert "system" in invoke("settings").output

    invoke("settings", "-s", "search.cutoff=0.3", "-s", "search.debounce_ms=10", "-s", "theme=dark")

    assert calls[1] == ("PUT", "/settings", {"json": {
        "search": {"cutoff": 0.3, "debounce_ms": 10},
        "theme": "dark",
    }})
