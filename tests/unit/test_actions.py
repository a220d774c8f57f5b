import pytest

from memory_garden.services.actions import ACTIONS, Action, is_blank, normalize_action


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("keep", Action.KEEP),
        ("COMPRESS", Action.COMPRESS),
        ("  low_relevance ", Action.LOW_RELEVANCE),
        ("delete", Action.DELETE),
        ("forget", Action.LOW_RELEVANCE),
        ("Forget", Action.LOW_RELEVANCE),
        ("archive", Action.KEEP),
        ("", Action.KEEP),
        (None, Action.KEEP),
        (3, Action.KEEP),
        ({"action": "delete"}, Action.KEEP),
        (Action.DELETE, Action.DELETE),
    ],
)
def test_normalize_action(raw, expected):
    assert normalize_action(raw) is expected


def test_normalize_is_closed_over_actions():
    samples = ["keep", "forget", "LOW RELEVANCE", "nonsense", None, 1.5, [], "delete "]
    for raw in samples:
        assert normalize_action(raw) in ACTIONS


def test_bucket_order():
    assert [a.value for a in ACTIONS] == ["keep", "compress", "low_relevance", "delete"]


def test_is_blank():
    assert is_blank(None)
    assert is_blank("   ")
    assert not is_blank("keep")
    assert not is_blank(0)
