"""Tests for prompt storage, the index snapshot and the catalog."""

import asyncio
import json
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from promptpad.launcher.catalog import PromptCatalog
from promptpad.launcher.errors import (
    DocumentNotFoundError,
    DocumentParseError,
    FailureKind,
    ValidationError,
)
from promptpad.launcher.index import IndexStore, IndexUsageRecorder
from promptpad.launcher.models import Document, MetadataHeader, PromptIndex
from promptpad.launcher.storage import PromptStore, sanitize_filename


@pytest.fixture
def temp_root():
    """Create a temporary storage root for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir) / "prompt-pad"
        yield root


@pytest.fixture
def store(temp_root):
    store = PromptStore(temp_root)
    store.initialize()
    return store


def test_sanitize_filename():
    assert sanitize_filename("Code Review") == "code-review"
    assert sanitize_filename("What's up?") == "what-s-up"
    assert sanitize_filename("  ") == "prompt"
    assert len(sanitize_filename("x" * 80)) == 50


@pytest.mark.asyncio
async def test_create_and_load_prompt(store):
    """Test creating a prompt writes a parseable document."""
    document = await store.create_prompt(
        name="Code Review",
        content="Review this:\n\n{code}",
        description="Checks a diff",
        folder="dev",
        tags=["Review", "dev"],
    )

    assert document.file_path == "dev/code-review.md"
    assert document.tags == ["review", "dev"]
    assert (store.prompts_dir / "dev" / "code-review.md").exists()

    header, body = await store.load(document.file_path)
    assert header.name == "Code Review"
    assert header.description == "Checks a diff"
    assert header.tags == ["review", "dev"]
    assert body == "Review this:\n\n{code}"


@pytest.mark.asyncio
async def test_create_prompt_requires_name(store):
    with pytest.raises(ValidationError):
        await store.create_prompt(name="  ", content="body")
    assert list(store.prompts_dir.rglob("*.md")) == []


@pytest.mark.asyncio
async def test_create_prompt_rejects_nested_folder(store):
    with pytest.raises(ValidationError):
        await store.create_prompt(name="A", content="body", folder="../escape")


@pytest.mark.asyncio
async def test_name_collisions_get_suffix(store):
    first = await store.create_prompt(name="Same", content="one")
    second = await store.create_prompt(name="Same", content="two")

    assert first.file_path == "uncategorized/same.md"
    assert second.file_path == "uncategorized/same-2.md"
    assert await store.load_body(second.file_path) == "two"


@pytest.mark.asyncio
async def test_update_prompt_moves_folder(store):
    document = await store.create_prompt(name="Mover", content="body")
    document.use_count = 4

    updated = await store.update_prompt(document, folder="archive", description="moved")

    assert updated.id == document.id
    assert updated.file_path == "archive/mover.md"
    assert updated.use_count == 4
    assert not (store.prompts_dir / "uncategorized" / "mover.md").exists()
    assert await store.load_body(updated.file_path) == "body"


@pytest.mark.asyncio
async def test_delete_prompt_removes_file(store):
    document = await store.create_prompt(name="Doomed", content="body")

    await store.delete_prompt(document)
    assert not store.resolve(document.file_path).exists()

    # Deleting twice only warns
    await store.delete_prompt(document)


@pytest.mark.asyncio
async def test_search_content_ignores_case(store):
    first = await store.create_prompt(name="One", content="Summarize the MEETING notes")
    second = await store.create_prompt(name="Two", content="Write a poem")
    missing = Document(id="", name="Gone", file_path="uncategorized/gone.md")

    documents = [first, second, missing]
    assert await store.search_content(documents, "meeting") == [first]
    assert await store.search_content(documents, "nothing here") == []
    assert await store.search_content(documents, "") == [first, second]


@pytest.mark.asyncio
async def test_load_missing_body(store):
    with pytest.raises(DocumentNotFoundError):
        await store.load_body("uncategorized/missing.md")


@pytest.mark.asyncio
async def test_locator_cannot_escape_root(store):
    with pytest.raises(DocumentNotFoundError):
        await store.load_body("../outside.md")


@pytest.mark.asyncio
async def test_scan_skips_broken_files(store):
    await store.create_prompt(name="Good", content="fine")
    (store.prompts_dir / "uncategorized" / "broken.md").write_text(
        "---\nname: Broken\nno separator here\n---\nbody", encoding="utf-8"
    )
    (store.prompts_dir / "uncategorized" / "binary.md").write_bytes(b"\xff\xfe\x00")

    documents, report = await store.scan()

    assert [d.name for d in documents] == ["Good"]
    assert report.succeeded == 1
    assert report.failed == 2
    assert {f.kind for f in report.failures} == {FailureKind.PARSE}


@pytest.mark.asyncio
async def test_scan_name_and_folder_fallbacks(store):
    (store.prompts_dir / "notes").mkdir()
    (store.prompts_dir / "notes" / "plain-note.md").write_text("no header", encoding="utf-8")
    (store.prompts_dir / "top-level.md").write_text("---\nname: Top\n---\nbody", encoding="utf-8")

    documents, _ = await store.scan()
    by_path = {d.file_path: d for d in documents}

    assert by_path["notes/plain-note.md"].name == "plain-note"
    assert by_path["notes/plain-note.md"].folder == "notes"
    assert by_path["top-level.md"].folder == "uncategorized"


def test_folders(store):
    store.create_folder("writing")
    assert store.list_folders() == ["uncategorized", "writing"]
    with pytest.raises(ValidationError):
        store.create_folder("a/b")


@pytest.mark.asyncio
async def test_index_save_and_load(temp_root):
    index_store = IndexStore(temp_root)
    used = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    document = Document(
        id="abc",
        name="Saved",
        file_path="uncategorized/saved.md",
        description="desc",
        tags=["x"],
        use_count=3,
        last_used_at=used,
    )

    await index_store.save(PromptIndex(documents=[document]))
    raw = json.loads(index_store.path.read_text(encoding="utf-8"))
    loaded = await index_store.load()

    assert raw["documents"][0]["useCount"] == 3
    assert raw["documents"][0]["lastUsedAt"] == "2025-01-02T03:04:05Z"
    assert loaded.documents[0].id == "abc"
    assert loaded.documents[0].last_used_at == used
    assert loaded.documents[0].tags == ["x"]


@pytest.mark.asyncio
async def test_index_load_missing(temp_root):
    with pytest.raises(DocumentNotFoundError):
        await IndexStore(temp_root).load()


@pytest.mark.asyncio
async def test_index_load_corrupt(temp_root):
    temp_root.mkdir(parents=True)
    (temp_root / "index.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(DocumentParseError):
        await IndexStore(temp_root).load()


@pytest.mark.asyncio
async def test_rebuild_keeps_usage_for_known_files(store, temp_root):
    index_store = IndexStore(temp_root)
    kept = await store.create_prompt(name="Kept", content="a")
    await store.create_prompt(name="New", content="b")

    previous = PromptIndex(documents=[
        Document(id="old-id", name="Kept", file_path=kept.file_path, use_count=9),
        Document(id="gone", name="Gone", file_path="uncategorized/gone.md", use_count=2),
    ])
    index, report = await index_store.rebuild(store, previous)

    by_path = {d.file_path: d for d in index.documents}
    assert report.ok
    assert set(by_path) == {"uncategorized/kept.md", "uncategorized/new.md"}
    assert by_path["uncategorized/kept.md"].id == "old-id"
    assert by_path["uncategorized/kept.md"].use_count == 9
    assert by_path["uncategorized/new.md"].use_count == 0
    assert index_store.path.exists()


@pytest.mark.asyncio
async def test_load_or_rebuild_recovers_from_corrupt_index(store, temp_root):
    await store.create_prompt(name="Only", content="a")
    (temp_root / "index.json").write_text("[]", encoding="utf-8")

    index = await IndexStore(temp_root).load_or_rebuild(store)

    assert [d.name for d in index.documents] == ["Only"]


@pytest.mark.asyncio
async def test_usage_recorder_persists_snapshot(temp_root):
    document = Document(id="d1", name="Used", file_path="uncategorized/used.md")
    catalog = PromptCatalog([document])
    index_store = IndexStore(temp_root)

    catalog.record_usage("d1")
    await IndexUsageRecorder(index_store, catalog).record(document)

    loaded = await index_store.load()
    assert loaded.documents[0].use_count == 1
    assert loaded.documents[0].last_used_at is not None


def test_catalog_record_usage():
    first = Document(id="1", name="First", file_path="a.md", folder="x", tags=["t"])
    second = Document(id="2", name="Second", file_path="b.md", folder="y")
    catalog = PromptCatalog([first, second])

    updated = catalog.record_usage("2")

    assert updated is second
    assert second.use_count == 1
    assert len(catalog) == 2
    assert "1" in catalog
    assert catalog.folders == ["x", "y"]
    assert catalog.tags == ["t"]
    assert catalog.remove("1") is first
    assert catalog.documents() == [second]
    with pytest.raises(DocumentNotFoundError):
        catalog.record_usage("missing")


def test_catalog_keeps_insertion_order():
    docs = [Document(id=str(i), name=f"P{i}", file_path=f"{i}.md") for i in range(4)]
    catalog = PromptCatalog(docs)
    assert catalog.documents() == docs

    catalog.replace_all(reversed(docs))
    assert catalog.documents() == list(reversed(docs))


def test_document_defaults():
    document = Document(id="", name="N", file_path="f.md", folder="", tags=[" A ", "a", "B"], use_count=-3)
    assert len(document.id) == 26  # ULID length
    assert document.folder == "uncategorized"
    assert document.tags == ["a", "b"]
    assert document.use_count == 0
    assert document.header() == MetadataHeader(
        name="N", description=None, tags=["a", "b"], created=document.header().created
    )


def test_document_from_dict_requires_name():
    with pytest.raises(DocumentParseError):
        Document.from_dict({"filePath": "x.md"})


@pytest.mark.asyncio
async def test_concurrent_index_saves_keep_last_snapshot(temp_root):
    """Overlapping saves all succeed and the last call's snapshot wins."""
    index_store = IndexStore(temp_root)
    snapshots = [
        PromptIndex(documents=[Document(id="d", name="D", file_path="d.md", use_count=n)])
        for n in range(8)
    ]

    await asyncio.gather(*(index_store.save(s) for s in snapshots))

    loaded = await index_store.load()
    assert loaded.documents[0].use_count == 7
    assert [p.name for p in temp_root.iterdir()] == ["index.json"]
