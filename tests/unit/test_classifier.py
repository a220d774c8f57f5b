import asyncio

from memory_garden.errors import AuthError
from memory_garden.services.actions import Action
from memory_garden.services.analysis_cache import AnalysisCache
from memory_garden.services.classifier import (
    FINGERPRINT_LOCK_STRIPES,
    HEURISTIC_CONFIDENCE,
    Classifier,
    ClassifierSettings,
    heuristic_analysis,
)
from memory_garden.services.fingerprint import fingerprint
from tests.fixtures.completions import CountingCompletion, FailingCompletion, model_answer
from tests.fixtures.factories import FIXED_NOW, make_memory, months_ago


def _classifier(settings, completion, **kwargs):
    return Classifier(AnalysisCache(), settings, completion_fn=completion, now=lambda: FIXED_NOW, **kwargs)


def test_model_verdict_is_cached_and_deterministic(settings):
    completion = CountingCompletion()
    classifier = _classifier(settings, completion)
    memory = make_memory("m1")

    first = classifier.classify(memory)
    second = classifier.classify(memory)

    assert completion.calls == 1
    assert first == second
    assert first.nemotron_analyzed is True
    assert first.action is Action.KEEP
    assert completion.requests[0].seed == fingerprint(memory).seed
    assert completion.requests[0].temperature == 0.0


def test_identical_content_shares_one_external_call(settings):
    completion = CountingCompletion()
    classifier = _classifier(settings, completion)
    twins = [make_memory("a", content="same"), make_memory("b", content="same")]

    results = asyncio.run(classifier.classify_batch(twins))

    assert completion.calls == 1
    assert results[0] == results[1]


def test_lock_pool_stays_fixed_across_many_distinct_memories(settings):
    classifier = _classifier(settings, CountingCompletion())
    memories = [make_memory(f"m{i}", content=f"note {i}") for i in range(FINGERPRINT_LOCK_STRIPES * 3)]

    asyncio.run(classifier.classify_batch(memories))

    assert len(classifier._fingerprint_locks) == FINGERPRINT_LOCK_STRIPES
    digest = fingerprint(memories[0]).digest
    assert classifier._lock_for(digest) is classifier._lock_for(digest)


def test_blurry_recent_photo_falls_back_to_low_relevance(settings):
    classifier = _classifier(settings, FailingCompletion())
    memory = make_memory("p1", type="image", createdAt=months_ago(2), metadata={"flags": ["blurry"]})

    analysis = classifier.classify(memory)

    assert analysis.action is Action.LOW_RELEVANCE
    assert analysis.nemotron_analyzed is False
    assert analysis.confidence == HEURISTIC_CONFIDENCE
    assert analysis.relevance_1_year <= 0.2
    assert "blurry" in analysis.explanation


def test_missing_credential_falls_back_without_calling_out():
    settings = ClassifierSettings(api_key=None, batch_delay_ms=0)
    classifier = Classifier(AnalysisCache(), settings, now=lambda: FIXED_NOW)

    analysis = classifier.classify(make_memory("m1"))

    assert analysis.nemotron_analyzed is False
    assert analysis.action is Action.KEEP


def test_disabled_classifier_falls_back():
    settings = ClassifierSettings(api_key="k", enabled=False, batch_delay_ms=0)
    analysis = Classifier(AnalysisCache(), settings, now=lambda: FIXED_NOW).classify(make_memory("m1"))
    assert analysis.nemotron_analyzed is False


def test_unexpected_error_also_falls_back(settings):
    def _explode(_request):
        raise RuntimeError("boom")

    analysis = _classifier(settings, CountingCompletion(responder=_explode)).classify(make_memory("m1"))
    assert analysis.nemotron_analyzed is False


def test_sentimental_tags_soften_the_heuristic():
    memory = make_memory(
        "old",
        createdAt=months_ago(30),
        tags=["Family"],
        metadata={"flags": ["blurry"]},
    )
    analysis = heuristic_analysis(memory, age_months=30, now=FIXED_NOW)
    assert analysis.action is Action.COMPRESS
    assert analysis.attachment >= 0.8


def test_heuristic_ages():
    assert heuristic_analysis(make_memory("n"), age_months=2, now=FIXED_NOW).action is Action.KEEP
    assert heuristic_analysis(make_memory("o"), age_months=30, now=FIXED_NOW).action is Action.COMPRESS


def test_fallbacks_are_not_cached(settings):
    completion = FailingCompletion(AuthError("denied", status_code=401))
    classifier = _classifier(settings, completion)
    memories = [make_memory(f"m{i}", content=f"text {i}") for i in range(5)]

    first = asyncio.run(classifier.classify_batch(memories))
    second = asyncio.run(classifier.classify_batch(memories))

    assert len(first) == len(second) == 5
    assert all(not a.nemotron_analyzed for a in first + second)
    assert completion.calls == 10


def test_batch_preserves_input_order(settings):
    def _respond(request):
        action = "delete" if "Notes for m2" in request.prompt else "compress"
        return model_answer(action=action)

    classifier = _classifier(settings, CountingCompletion(responder=_respond))
    memories = [make_memory(f"m{i}") for i in range(5)]

    results = asyncio.run(classifier.classify_batch(memories))

    assert [a.action.value for a in results] == ["compress", "compress", "delete", "compress", "compress"]


def test_out_of_range_answer_is_corrected(settings):
    answer = model_answer(
        relevance1Month=1.7,
        relevance1Year="0.25",
        attachment=-0.3,
        action="Forget",
        confidence="high",
        sentiment="ecstatic",
        sentimentScore=4,
        explanation="ok",
    )
    analysis = _classifier(settings, CountingCompletion(answer)).classify(make_memory("m1"))

    assert analysis.relevance_1_month == 1.0
    assert analysis.relevance_1_year == 0.25
    assert analysis.attachment == 0.0
    assert analysis.action is Action.LOW_RELEVANCE
    assert analysis.confidence == 0.6
    assert analysis.sentiment.label == "neutral"
    assert analysis.sentiment.score == 1.0
    assert analysis.explanation.startswith("Suggested low_relevance:")
    assert len(analysis.explanation) >= 20


def test_missing_fields_take_documented_defaults(settings):
    analysis = _classifier(settings, CountingCompletion('{"action": "compress"}')).classify(make_memory("m1"))
    assert analysis.action is Action.COMPRESS
    assert (analysis.relevance_1_month, analysis.relevance_1_year, analysis.attachment) == (0.5, 0.5, 0.5)
    assert analysis.confidence == 0.6


def test_prose_answer_is_still_model_derived(settings):
    completion = CountingCompletion("I'd delete this. Scores: 0.1, 0.05, 0.0")
    analysis = _classifier(settings, completion).classify(make_memory("m1"))
    assert analysis.nemotron_analyzed is True
    assert analysis.action is Action.DELETE
    assert analysis.relevance_1_year == 0.05


def test_profile_is_rendered_into_prompt(settings):
    completion = CountingCompletion()
    classifier = _classifier(settings, completion, profile_provider=lambda: {"summary": "Keen hiker, two kids"})
    classifier.classify(make_memory("m1"))
    assert "Keen hiker, two kids" in completion.requests[0].prompt


def test_cached_heuristic_entry_does_not_block_model(settings):
    completion = CountingCompletion()
    classifier = _classifier(settings, completion)
    memory = make_memory("m1")
    classifier.cache.put(fingerprint(memory).digest, heuristic_analysis(memory, age_months=2, now=FIXED_NOW))

    analysis = classifier.classify(memory)

    assert completion.calls == 1
    assert analysis.nemotron_analyzed is True
