import pytest

from memory_garden.errors import ClusterNotFoundError, MemoryNotFoundError, StorageError
from memory_garden.services.actions import Action
from memory_garden.services.deleter import CascadingDeleter
from memory_garden.services.reconciler import ClusterService
from memory_garden.storage.base import CLUSTERS
from tests.fixtures.factories import make_memory


def _seed(repository):
    repository.save_memories(
        "batch-1",
        [
            make_memory("k1", predictedAction="keep", summary="Passport scan", metadata={"storedFilename": "k1.pdf"}),
            make_memory("k2", overrideAction="keep", predictedAction="delete"),
            make_memory("k3"),
            make_memory("d1", predictedAction="delete"),
        ],
    )
    repository.put_raw_batch(
        CLUSTERS,
        "batch-1",
        [
            {"id": "merged-keep-1", "action": "keep", "memoryIds": ["k1", "k2"]},
            {"id": "old-photos", "name": "Old photos", "memories": ["d1"]},
        ],
    )
    repository.put_raw_batch(CLUSTERS, "batch-2", [{"id": "c9", "action": "Keep", "memoryIds": []}])
    repository.artifacts["k1.pdf"] = b"%PDF"


def test_delete_keep_bucket_cascades(repository):
    _seed(repository)
    deleter = CascadingDeleter(repository)

    result = deleter.delete_bucket("keep")

    assert result.action is Action.KEEP
    assert result.memories_deleted == 3
    assert result.clusters_deleted == 2
    assert [m.id for m in repository.list_memories()] == ["d1"]
    assert "k1.pdf" not in repository.artifacts

    tombstones = repository.list_tombstones()
    assert sorted(t.id for t in tombstones) == ["k1", "k2", "k3"]
    assert all(t.cluster is Action.KEEP for t in tombstones)
    assert next(t for t in tombstones if t.id == "k1").summary == "Passport scan"

    clusters = {c.action: c for c in ClusterService(repository).list_clusters()}
    assert clusters[Action.KEEP].size == 0
    assert clusters[Action.DELETE].memory_ids == ["d1"]
    remaining = [r.payload["id"] for r in repository.list_cluster_records()]
    assert remaining == ["old-photos"]


def test_deleted_ids_never_reappear(repository):
    _seed(repository)
    deleter = CascadingDeleter(repository)
    deleter.delete_bucket(Action.DELETE)
    members = [m for c in ClusterService(repository).list_clusters() for m in c.memory_ids]
    assert "d1" not in members


def test_delete_empty_bucket(repository):
    result = CascadingDeleter(repository).delete_bucket("forget")
    assert result.action is Action.LOW_RELEVANCE
    assert (result.memories_deleted, result.clusters_deleted) == (0, 0)


def test_artifact_failure_does_not_stop_delete(repository, monkeypatch):
    _seed(repository)

    def _fail(_name):
        raise StorageError("disk gone")

    monkeypatch.setattr(repository, "delete_artifact", _fail)
    result = CascadingDeleter(repository).delete_bucket("keep")
    assert result.memories_deleted == 3


def test_delete_single_memory_records_its_bucket(repository):
    _seed(repository)
    tombstone = CascadingDeleter(repository).delete_memory("k2")
    assert tombstone.id == "k2"
    assert tombstone.cluster is Action.KEEP
    assert repository.get_memory("k2") is None
    assert [t.id for t in repository.list_tombstones()] == ["k2"]


def test_delete_unknown_memory(repository):
    with pytest.raises(MemoryNotFoundError):
        CascadingDeleter(repository).delete_memory("nope")


def test_remove_memory_from_cluster_is_not_a_delete(repository):
    _seed(repository)
    repository.update_memory(make_memory("k3", cluster="merged-keep-1", clusterName="Keep"))
    deleter = CascadingDeleter(repository)

    memory = deleter.remove_memory_from_cluster("merged-keep-1", "k1")
    assert memory.cluster is None
    assert repository.get_memory("k1") is not None

    record = next(r.payload for r in repository.list_cluster_records() if r.payload["id"] == "merged-keep-1")
    assert record["memoryIds"] == ["k2"]
    assert record["size"] == 1

    cleared = deleter.remove_memory_from_cluster("merged-keep-1", "k3")
    assert cleared.cluster is None and cleared.cluster_name is None
    assert repository.get_memory("k3").cluster is None
    assert repository.list_tombstones() == []


def test_remove_from_legacy_member_list_converts_shape(repository):
    _seed(repository)
    CascadingDeleter(repository).remove_memory_from_cluster("old-photos", "d1")
    record = next(r.payload for r in repository.list_cluster_records() if r.payload["id"] == "old-photos")
    assert "memories" not in record
    assert record["memoryIds"] == []


def test_remove_unknown_memory_from_cluster(repository):
    with pytest.raises(MemoryNotFoundError):
        CascadingDeleter(repository).remove_memory_from_cluster("keep", "ghost")


def test_remove_embedded_member_from_legacy_record(repository):
    _seed(repository)
    repository.put_raw_batch(
        CLUSTERS,
        "batch-3",
        [{"id": "early", "action": "delete", "memories": [{"id": "d1", "summary": "x"}, {"id": "k3"}]}],
    )

    CascadingDeleter(repository).remove_memory_from_cluster("early", "d1")

    record = next(r.payload for r in repository.list_cluster_records() if r.payload["id"] == "early")
    assert record["memoryIds"] == [{"id": "k3"}]
    assert record["size"] == 1
    assert ClusterService(repository).effective_action("k3") is Action.DELETE


def test_delete_legacy_record_cascades_to_its_members(repository):
    _seed(repository)
    deleter = CascadingDeleter(repository)

    result = deleter.delete_legacy_record("old-photos")

    assert result.action is Action.COMPRESS
    assert (result.memories_deleted, result.clusters_deleted) == (1, 1)
    assert repository.get_memory("d1") is None
    tombstones = repository.list_tombstones()
    assert [(t.id, t.cluster) for t in tombstones] == [("d1", Action.DELETE)]
    remaining = sorted(r.payload["id"] for r in repository.list_cluster_records())
    assert remaining == ["c9", "merged-keep-1"]
    assert sorted(m.id for m in repository.list_memories()) == ["k1", "k2", "k3"]


def test_delete_legacy_record_skips_missing_members(repository):
    _seed(repository)
    repository.put_raw_batch(CLUSTERS, "batch-3", [{"id": "c-7", "action": "compress", "memoryIds": ["ghost", "k3"]}])

    result = CascadingDeleter(repository).delete_legacy_record("c-7")

    assert result.action is Action.COMPRESS
    assert (result.memories_deleted, result.clusters_deleted) == (1, 1)
    assert [(t.id, t.cluster) for t in repository.list_tombstones()] == [("k3", Action.COMPRESS)]


def test_delete_unknown_legacy_record(repository):
    _seed(repository)
    with pytest.raises(ClusterNotFoundError):
        CascadingDeleter(repository).delete_legacy_record("c-404")
    assert repository.list_tombstones() == []
