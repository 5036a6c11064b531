import pytest


def test_second_call_with_same_text_hits_cache(db_session, fake_gateway):
    from backend.jobmatch.services.embeddings import get_or_refresh_embedding

    first = get_or_refresh_embedding(
        db_session, fake_gateway, entity_type="job", owner_id="j1", text="Python backend role"
    )
    second = get_or_refresh_embedding(
        db_session, fake_gateway, entity_type="job", owner_id="j1", text="Python   backend role\n"
    )

    assert len(fake_gateway.calls) == 1
    assert first.changed is True
    assert second.changed is False
    assert second.vector == first.vector
    assert second.text_hash == first.text_hash


def test_changed_text_refreshes_vector(db_session, make_gateway):
    from backend.jobmatch.models.embedding import EmbeddingRecord
    from backend.jobmatch.services.embeddings import get_or_refresh_embedding

    gw = make_gateway(rules={"react": [0.0, 1.0]}, default=[1.0, 0.0])
    get_or_refresh_embedding(db_session, gw, entity_type="resume", owner_id="r1", text="Python")
    res = get_or_refresh_embedding(db_session, gw, entity_type="resume", owner_id="r1", text="React")

    assert res.changed is True
    assert res.vector == [0.0, 1.0]
    assert len(gw.calls) == 2

    db_session.expire_all()
    rows = db_session.query(EmbeddingRecord).filter(EmbeddingRecord.owner_id == "r1").all()
    assert len(rows) == 1
    assert rows[0].text_hash == res.text_hash
    assert rows[0].dim == 2


def test_model_switch_invalidates_cache(db_session, make_gateway):
    from backend.jobmatch.services.embeddings import get_or_refresh_embedding

    get_or_refresh_embedding(db_session, make_gateway(model="m1"), entity_type="job", owner_id="j1", text="Go")
    gw2 = make_gateway(model="m2")
    res = get_or_refresh_embedding(db_session, gw2, entity_type="job", owner_id="j1", text="Go")
    assert res.changed is True
    assert len(gw2.calls) == 1


def test_empty_text_raises_without_provider_call(db_session, fake_gateway):
    from backend.jobmatch.services.embeddings import get_cached_embedding, get_or_refresh_embedding
    from backend.jobmatch.utils.error_handlers import EmptyContent

    with pytest.raises(EmptyContent):
        get_or_refresh_embedding(db_session, fake_gateway, entity_type="job", owner_id="j1", text=" \n\t ")
    assert fake_gateway.calls == []
    assert get_cached_embedding(db_session, entity_type="job", owner_id="j1") is None


def test_provider_failure_leaves_cache_untouched(db_session, make_gateway):
    from backend.jobmatch.services.embeddings import get_cached_embedding, get_or_refresh_embedding
    from backend.jobmatch.utils.error_handlers import ProviderError

    gw = make_gateway()
    first = get_or_refresh_embedding(db_session, gw, entity_type="job", owner_id="j1", text="original")
    gw.fail_on.add("edited")

    with pytest.raises(ProviderError):
        get_or_refresh_embedding(db_session, gw, entity_type="job", owner_id="j1", text="edited text")

    row = get_cached_embedding(db_session, entity_type="job", owner_id="j1")
    assert row.text_hash == first.text_hash


def test_same_owner_id_is_distinct_per_entity_type(db_session, fake_gateway):
    from backend.jobmatch.services.embeddings import get_or_refresh_embedding, list_counterparts

    get_or_refresh_embedding(db_session, fake_gateway, entity_type="job", owner_id="7", text="a")
    get_or_refresh_embedding(db_session, fake_gateway, entity_type="resume", owner_id="7", text="a")

    assert [c.owner_id for c in list_counterparts(db_session, entity_type="job")] == ["7"]
    assert [c.owner_id for c in list_counterparts(db_session, entity_type="resume")] == ["7"]


def test_refresh_many_isolates_failures(db_session, make_gateway):
    from backend.jobmatch.services.embeddings import get_or_refresh_embedding, refresh_many

    gw = make_gateway()
    get_or_refresh_embedding(db_session, gw, entity_type="resume", owner_id="r0", text="unchanged resume")
    gw.fail_on.add("broken")

    report = refresh_many(
        db_session,
        gw,
        entity_type="resume",
        items=[
            ("r0", "unchanged resume"),
            ("r1", "fresh resume"),
            ("r2", "broken resume"),
            ("r3", "   "),
            ("r4", "another fresh resume"),
        ],
    )

    assert report.unchanged == ["r0"]
    assert report.refreshed == ["r1", "r4"]
    assert report.failed == {"r2": "provider_error", "r3": "empty_content"}


def test_delete_embedding(db_session, fake_gateway):
    from backend.jobmatch.services.embeddings import delete_embedding, get_cached_embedding, get_or_refresh_embedding

    get_or_refresh_embedding(db_session, fake_gateway, entity_type="resume", owner_id="r1", text="x")
    assert delete_embedding(db_session, entity_type="resume", owner_id="r1") == 1
    assert get_cached_embedding(db_session, entity_type="resume", owner_id="r1") is None
    assert delete_embedding(db_session, entity_type="resume", owner_id="r1") == 0


def test_build_job_text_joins_non_empty_parts():
    from backend.jobmatch.services.embeddings import build_job_text

    text = build_job_text(
        title="Backend Engineer",
        description=None,
        requirements=["Python", "SQL"],
        responsibilities=[],
    )
    assert text == "Backend Engineer Python SQL"
    assert build_job_text(title=None, description="  ") == ""


def test_unreadable_cached_vector_is_rewritten(db_session, fake_gateway):
    from backend.jobmatch.models.embedding import EmbeddingRecord
    from backend.jobmatch.services.embeddings import get_or_refresh_embedding, list_counterparts, vector_from_row

    get_or_refresh_embedding(db_session, fake_gateway, entity_type="job", owner_id="j1", text="Python role")
    row = db_session.query(EmbeddingRecord).filter(EmbeddingRecord.owner_id == "j1").one()
    row.vector_json = "not json"
    db_session.commit()

    repaired = get_or_refresh_embedding(db_session, fake_gateway, entity_type="job", owner_id="j1", text="Python role")
    assert repaired.changed is True

    db_session.expire_all()
    row = db_session.query(EmbeddingRecord).filter(EmbeddingRecord.owner_id == "j1").one()
    assert vector_from_row(row) == [1.0, 0.0]
    assert [c.owner_id for c in list_counterparts(db_session, entity_type="job")] == ["j1"]

    again = get_or_refresh_embedding(db_session, fake_gateway, entity_type="job", owner_id="j1", text="Python role")
    assert again.changed is False
    assert len(fake_gateway.calls) == 2
