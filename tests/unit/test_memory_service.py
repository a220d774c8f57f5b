import pytest

from memory_garden.errors import MemoryNotFoundError
from memory_garden.services.actions import Action
from memory_garden.services.memory_service import MemoryService, ProfileService
from memory_garden.services.reconciler import ClusterService
from tests.fixtures.factories import make_memory


@pytest.fixture
def memory_service(repository):
    repository.save_memories("batch-1", [make_memory("m1", predictedAction="compress"), make_memory("m2")])
    return MemoryService(repository)


def test_override_is_normalized_and_flagged(memory_service, repository):
    memory = memory_service.set_override("m1", "Forget")
    assert memory.override_action == "low_relevance"
    assert memory.user_overridden is True

    stored = repository.get_memory("m1")
    assert stored.override_action == "low_relevance"
    assert ClusterService(repository).effective_action("m1") is Action.LOW_RELEVANCE


def test_unknown_override_value_becomes_keep(memory_service):
    assert memory_service.set_override("m1", "archive-forever").override_action == "keep"


def test_blank_override_clears(memory_service, repository):
    memory_service.set_override("m1", "delete")
    memory = memory_service.set_override("m1", "  ")
    assert memory.override_action is None
    assert memory.user_overridden is False
    assert ClusterService(repository).effective_action("m1") is Action.COMPRESS


def test_unknown_memory(memory_service):
    with pytest.raises(MemoryNotFoundError):
        memory_service.set_override("ghost", "keep")
    with pytest.raises(MemoryNotFoundError):
        memory_service.get_memory("ghost")


def test_delete_memory_goes_to_oblivion(memory_service, repository):
    tombstone = memory_service.delete_memory("m1")
    assert tombstone.cluster is Action.COMPRESS
    assert [m.id for m in memory_service.list_memories()] == ["m2"]


def test_profile_service(repository):
    profiles = ProfileService(repository)
    assert profiles.get_profile() is None
    profiles.save_profile({"summary": "Parent of two", "interests": ["hiking"]})
    assert profiles.get_profile()["interests"] == ["hiking"]
