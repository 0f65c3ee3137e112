import orjson
import pytest

from ingestion.document_models import DocumentStatus
from ingestion.hash_utils import sha256_text
from ingestion.ingest_pipeline import IngestionCoordinator
from ingestion.pipeline_runner import (
    DEFAULT_STAGE_ORDER,
    PipelineRunner,
    UnknownStageError,
    build_default_registry,
)
from ingestion.stages.chunk import build_splitter

STAGES = list(DEFAULT_STAGE_ORDER)


def make_coordinator(store, root, vector_index=None, **kwargs):
    return IngestionCoordinator(
        store,
        roots=[root],
        extensions=["py", "js", "md"],
        vector_index=vector_index,
        show_progress=False,
        **kwargs,
    )


def test_load_creates_one_root_per_file(store, source_tree):
    created = make_coordinator(store, source_tree).load_master_data(STAGES)

    assert len(created) == 3
    for doc in created:
        assert doc.is_root
        assert doc.status == DocumentStatus.PENDING.value
        assert doc.operation_state == {name: "unset" for name in STAGES}

    main = next(d for d in created if d.source_name.endswith("main.py"))
    assert main.meta == {"language": "python", "file_extension": "py"}
    assert main.content_hash == sha256_text("def main():\n    return 42\n")

    readme = next(d for d in created if d.source_name.endswith("README.md"))
    assert readme.language == "markdown"


def test_second_load_is_a_no_op(store, source_tree):
    coordinator = make_coordinator(store, source_tree)
    coordinator.load_master_data(STAGES)
    before = store.count()

    assert coordinator.load_master_data(STAGES) == []
    assert store.count() == before


def test_changed_file_replaces_root_and_derived_records(store, source_tree, vector_index):
    coordinator = make_coordinator(store, source_tree, vector_index=vector_index)
    coordinator.load_master_data(STAGES)

    path = source_tree / "pkg" / "main.py"
    old_root = next(d for d in store.get_by_source(str(path)))
    store.create(
        content_hash=sha256_text("old chunk"),
        source_name=str(path),
        parent_hash=old_root.content_hash,
        content="old chunk",
    )
    vector_index.add_document("old chunk", {"source_name": str(path)})
    unrelated = vector_index.add_document("keep me", {"source_name": "/elsewhere.py"})

    path.write_text("def main():\n    return 43\n")
    created = coordinator.load_master_data(STAGES)

    assert len(created) == 1
    records = store.get_by_source(str(path))
    assert len(records) == 1
    assert records[0].content_hash == sha256_text("def main():\n    return 43\n")
    assert records[0].is_root
    assert list(vector_index.entries) == [unrelated]


def test_duplicate_content_under_another_path_is_skipped(store, tmp_path):
    root = tmp_path / "src"
    root.mkdir()
    (root / "a.py").write_text("same = True\n")
    (root / "b.py").write_text("same = True\n")

    created = make_coordinator(store, root).load_master_data(STAGES)

    assert len(created) == 1
    assert store.count() == 1


def test_missing_root_raises(store, tmp_path):
    with pytest.raises(FileNotFoundError):
        make_coordinator(store, tmp_path / "missing").load_master_data(STAGES)


def test_unknown_stage_rejected_before_scanning(store, source_tree, registry):
    with pytest.raises(UnknownStageError):
        make_coordinator(store, source_tree).load_master_data(
            STAGES + ["translate"], registry=registry
        )
    assert store.count() == 0


def test_overlapping_roots_list_each_file_once(store, source_tree):
    coordinator = IngestionCoordinator(
        store,
        roots=[source_tree, source_tree / "pkg"],
        extensions=["py"],
        show_progress=False,
    )
    assert len(coordinator.discover_files()) == 1


def test_manifest_written(store, source_tree, tmp_path):
    manifest = tmp_path / "cache" / "manifest.json"
    make_coordinator(store, source_tree, manifest_path=manifest).load_master_data(STAGES)

    entries = orjson.loads(manifest.read_bytes())
    assert len(entries) == 3
    assert {"content_hash", "source_name", "language", "len"} <= set(entries[0])


def test_duplicate_is_picked_up_when_its_owner_changes_in_the_same_pass(store, tmp_path):
    root = tmp_path / "src"
    root.mkdir()
    (root / "b.py").write_text("same = True\n")
    coordinator = make_coordinator(store, root)
    coordinator.load_master_data(STAGES)

    # a.py is scanned first and still collides with the old b.py
    (root / "a.py").write_text("same = True\n")
    (root / "b.py").write_text("same = False\n")
    created = coordinator.load_master_data(STAGES)

    assert sorted(d.content_hash for d in created) == sorted(
        [sha256_text("same = True\n"), sha256_text("same = False\n")]
    )
    assert store.get_by_hash(sha256_text("same = True\n")).source_name == str(root / "a.py")


# =============================================================================
# records shared between files
# =============================================================================

HEADER = "\n".join(
    f"Header line {i:02d}: the shared license terms apply here." for i in range(30)
)


def file_text(name: str) -> str:
    body = "\n".join(f"{name} body line {i:02d} with its own words." for i in range(15))
    return f"{HEADER}\n\n{body}"


def chunk_hashes(text: str):
    return {sha256_text(p) for p in build_splitter(None, 2000, 200).split_text(text)}


@pytest.fixture
def shared_header_files(store, vector_index, runner, tmp_path):
    root = tmp_path / "docs"
    root.mkdir()
    (root / "a.txt").write_text(file_text("alpha"))
    (root / "b.txt").write_text(file_text("beta"))
    coordinator = IngestionCoordinator(
        store,
        roots=[root],
        extensions=["txt"],
        vector_index=vector_index,
        show_progress=False,
    )
    coordinator.load_master_data(STAGES)
    assert all(r.success for r in runner.run_pending())
    return root, coordinator


def test_shared_chunk_records_every_source(store, shared_header_files):
    root, _ = shared_header_files
    (shared,) = chunk_hashes(file_text("alpha")) & chunk_hashes(file_text("beta"))

    record = store.get_by_hash(shared)
    sources = {record.source_name, *record.shared_with}
    assert sources == {str(root / "a.txt"), str(root / "b.txt")}


def test_shared_chunk_survives_when_one_file_changes(
    store, vector_index, runner, shared_header_files
):
    root, coordinator = shared_header_files
    (shared,) = chunk_hashes(file_text("alpha")) & chunk_hashes(file_text("beta"))

    (root / "a.txt").write_text("alpha was rewritten from scratch.\n")
    coordinator.load_master_data(STAGES)
    assert all(r.success for r in runner.run_pending())

    record = store.get_by_hash(shared)
    assert record is not None
    assert record.source_name == str(root / "b.txt")
    (entry,) = vector_index.by_hash(shared)
    assert entry["metadata"]["source_name"] == str(root / "b.txt")
    assert store.get_summary_of(shared) is not None

    counts = store.status_counts()
    assert set(counts) == {DocumentStatus.COMPLETED.value}


def test_records_linked_to_a_deleted_summary_are_summarized_again(
    store, vector_index, constant_llm_service, tmp_path
):
    registry = build_default_registry(
        store, constant_llm_service, vector_index, chunk_size=2000, chunk_overlap=200
    )
    runner = PipelineRunner(store, registry, stage_order=DEFAULT_STAGE_ORDER)
    root = tmp_path / "docs"
    root.mkdir()
    (root / "a.txt").write_text("alpha notes\n")
    (root / "b.txt").write_text("beta notes\n")
    coordinator = IngestionCoordinator(
        store, roots=[root], extensions=["txt"], vector_index=vector_index, show_progress=False
    )
    coordinator.load_master_data(STAGES)
    runner.run_pending()

    for name in ("a.txt", "b.txt"):
        (root / name).write_text(f"{name} rewritten\n")
        coordinator.load_master_data(STAGES)
        assert all(r.success for r in runner.run_pending())

        roots = [d for d in store.get_by_source(str(root / name)) if d.is_root]
        for doc in store.get_by_source(str(root / "a.txt")) + store.get_by_source(
            str(root / "b.txt")
        ):
            if not doc.is_summary:
                assert store.get_summary_of(doc.content_hash) is not None
        assert roots[0].content == f"{name} rewritten\n"
        assert set(store.status_counts()) == {DocumentStatus.COMPLETED.value}
