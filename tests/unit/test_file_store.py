import json

import pytest

from memory_garden.errors import StorageError
from memory_garden.models import Tombstone
from memory_garden.storage import JsonFileRepository
from tests.fixtures.factories import make_memory


@pytest.fixture
def file_repo(tmp_path):
    return JsonFileRepository(tmp_path / "data", tmp_path / "uploads")


def _write(path, payload):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")


def test_reads_existing_layout_and_skips_bad_files(file_repo, tmp_path):
    data = tmp_path / "data"
    _write(data / "memories" / "job-1.json", [{"id": "m1", "type": "image", "createdAt": "2024-01-01T00:00:00Z"}])
    _write(data / "memories" / "job-2.json", "{truncated")
    _write(data / "memories" / "job-3.json", {"id": "m3"})
    _write(data / "memories" / "job-4.json", [{"no": "id"}, {"id": "m4", "size": "2048"}])

    memories = file_repo.list_memories()

    assert [m.id for m in memories] == ["m1", "m3", "m4"]
    assert memories[2].size == 2048


def test_update_preserves_unknown_fields_and_unparseable_neighbours(file_repo, tmp_path):
    path = tmp_path / "data" / "memories" / "job-1.json"
    _write(path, [{"id": "m1", "scannerVersion": 3}, {"broken": True}])

    memory = file_repo.get_memory("m1")
    memory.override_action = "compress"
    assert file_repo.update_memory(memory)

    stored = json.loads(path.read_text(encoding="utf-8"))
    assert stored[0]["overrideAction"] == "compress"
    assert stored[0]["scannerVersion"] == 3
    assert stored[1] == {"broken": True}


def test_delete_removes_duplicates_and_empty_batches(file_repo, tmp_path):
    file_repo.save_memories("job-1", [make_memory("m1")])
    file_repo.save_memories("job-2", [make_memory("m1"), make_memory("m2")])

    removed = file_repo.delete_memory("m1")

    assert removed.id == "m1"
    assert not (tmp_path / "data" / "memories" / "job-1.json").exists()
    assert [m.id for m in file_repo.list_memories()] == ["m2"]
    assert file_repo.delete_memory("m1") is None


def test_oblivion_log_appends_and_reads_legacy_array(file_repo, tmp_path):
    _write(tmp_path / "data" / "oblivion.json", [{"id": "old", "cluster": "forget", "deletedAt": "2024-01-01T00:00:00Z"}])
    file_repo.append_tombstone(Tombstone(id="m1", summary="s", cluster="keep"))
    file_repo.append_tombstone(Tombstone(id="m2", cluster="delete"))
    with (tmp_path / "data" / "oblivion.jsonl").open("a", encoding="utf-8") as handle:
        handle.write("not json\n")

    tombstones = file_repo.list_tombstones()

    assert [t.id for t in tombstones] == ["old", "m1", "m2"]
    assert tombstones[0].cluster.value == "low_relevance"
    lines = (tmp_path / "data" / "oblivion.jsonl").read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[0])["deletedAt"]


def test_artifacts_are_confined_to_uploads_dir(file_repo, tmp_path):
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    (uploads / "photo.jpg").write_bytes(b"jpg")
    outside = tmp_path / "data-secret.txt"
    outside.write_text("keep me", encoding="utf-8")

    assert file_repo.delete_artifact("photo.jpg") is True
    assert file_repo.delete_artifact("photo.jpg") is False
    assert file_repo.delete_artifact("../data-secret.txt") is False
    assert outside.exists()


def test_profile_round_trip(file_repo, tmp_path):
    assert file_repo.get_profile() is None
    file_repo.save_profile({"summary": "Photographer"})
    assert file_repo.get_profile() == {"summary": "Photographer"}

    _write(tmp_path / "data" / "user-profile.json", "{oops")
    assert file_repo.get_profile() is None


def test_rejects_path_like_batch_ids(file_repo):
    with pytest.raises(StorageError):
        file_repo.save_memories("../escape", [make_memory("m1")])
    with pytest.raises(StorageError):
        file_repo.save_memories("..", [make_memory("m1")])
