import pytest


def test_cosine_similarity_basic():
    from backend.jobmatch.services.semantic_similarity import cosine_similarity

    v = [0.3, -1.2, 4.0]
    assert cosine_similarity(v, v) == pytest.approx(1.0)
    assert cosine_similarity(v, [-x for x in v]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0


def test_cosine_similarity_zero_vector_is_zero():
    from backend.jobmatch.services.semantic_similarity import cosine_similarity

    assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0
    assert cosine_similarity([], []) == 0.0


def test_cosine_similarity_dimension_mismatch_raises():
    from backend.jobmatch.services.semantic_similarity import cosine_similarity
    from backend.jobmatch.utils.error_handlers import DimensionMismatch

    with pytest.raises(DimensionMismatch) as exc:
        cosine_similarity([1.0], [1.0, 2.0])
    assert exc.value.details == {"left": 1, "right": 2}


def test_cosine_similarity_is_symmetric():
    from backend.jobmatch.services.semantic_similarity import cosine_similarity

    a = [0.1, 0.7, -0.2]
    b = [0.5, 0.1, 0.9]
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))


@pytest.mark.parametrize(
    "sim,expected",
    [
        (1.0, 100),
        (0.755, 76),
        (0.70, 70),
        (0.999, 100),
        (1.0000000002, 100),
        (-0.3, 0),
        (0.0, 0),
    ],
)
def test_to_match_score_rounds_half_up_and_clamps(sim, expected):
    from backend.jobmatch.services.semantic_similarity import to_match_score

    assert to_match_score(sim) == expected


def test_threshold_is_inclusive():
    from backend.jobmatch.services.semantic_similarity import MATCH_THRESHOLD, meets_threshold

    assert MATCH_THRESHOLD == 0.70
    assert meets_threshold(0.70) is True
    assert meets_threshold(0.699) is False
    assert meets_threshold(0.95) is True


def test_clamp_similarity():
    from backend.jobmatch.services.semantic_similarity import clamp_similarity

    assert clamp_similarity(1.0000001) == 1.0
    assert clamp_similarity(-0.2) == 0.0
    assert clamp_similarity(0.42) == 0.42


def test_hash_normalization_stable():
    from backend.jobmatch.services.semantic_similarity import normalize_text, text_hash

    t1 = normalize_text("Hello   world\n\n")
    t2 = normalize_text("Hello world")
    assert t1 == t2
    assert text_hash(text=t1, model="m") == text_hash(text=t2, model="m")
    assert len(text_hash(text=t1)) == 64


def test_hash_changes_with_model_and_text():
    from backend.jobmatch.services.semantic_similarity import text_hash

    base = text_hash(text="Python developer", model="m1")
    assert base != text_hash(text="Python developer", model="m2")
    assert base != text_hash(text="Python developers", model="m1")
