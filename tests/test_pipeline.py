import pytest


@pytest.fixture()
def pipeline(session_factory, make_gateway):
    from backend.jobmatch.services.notifications import QueueNotificationSink
    from backend.jobmatch.services.pipeline import MatchingPipeline

    gw = make_gateway(rules={"python": [1.0, 0.0], "design": [0.0, 1.0]}, default=[0.6, 0.8])
    return MatchingPipeline(gateway=gw, sink=QueueNotificationSink(), session_factory=session_factory)


def test_process_job_matches_and_notifies(pipeline):
    assert pipeline.process_resume(owner_id="r1", text="Jane Doe\njane@example.com\nSkills: Python, SQL").ok
    assert pipeline.process_resume(owner_id="r2", text="Graphic design portfolio").ok

    out = pipeline.process_job(
        job_id="j1",
        title="Python Engineer",
        description="Build services",
        requirements=["SQL"],
    )

    assert out.ok is True
    run = out.value
    assert run.changed is True
    assert [m.owner_id for m in run.matches] == ["r1"]
    assert run.notifications.dispatched == ["r1"]

    (payload,) = pipeline.sink.drain()
    assert payload.message == "New job match found: Python Engineer (Match Score: 100%)"


def test_unchanged_job_skips_rescan_and_provider(pipeline):
    pipeline.process_resume(owner_id="r1", text="Python developer")
    pipeline.process_job(job_id="j1", title="Python Engineer", description="Build services")
    calls = len(pipeline.gateway.calls)

    out = pipeline.process_job(job_id="j1", title="Python Engineer", description="Build services")
    assert out.ok is True
    assert out.value.changed is False
    assert out.value.matches == []
    assert len(pipeline.gateway.calls) == calls


def test_process_resume_attaches_profile(pipeline):
    out = pipeline.process_resume(owner_id="r1", text="Jane Doe\njane@example.com\nSkills: Python, React")
    assert out.ok is True
    assert out.value.profile.email == "jane@example.com"
    assert {"Python", "React"} <= out.value.profile.skills
    assert out.value.notifications is None


def test_empty_text_is_a_failure_not_an_exception(pipeline):
    out = pipeline.get_or_refresh_embedding(entity_type="resume", owner_id="r1", text="   ")
    assert out.ok is False
    assert out.error.code == "empty_content"
    assert out.error.retryable is False


def test_provider_failure_is_retryable(pipeline):
    pipeline.gateway.fail_on.add("python")
    out = pipeline.process_job(job_id="j1", title="Python Engineer", description=None)
    assert out.ok is False
    assert out.error.code == "provider_error"
    assert out.error.retryable is True


def test_trigger_without_sink_fails(session_factory, fake_gateway):
    from backend.jobmatch.schemas.matching import MatchResult
    from backend.jobmatch.services.pipeline import MatchingPipeline

    p = MatchingPipeline(gateway=fake_gateway, session_factory=session_factory)
    out = p.trigger_notifications(
        triggering_owner_id="j1",
        triggering_kind="job",
        matches=[MatchResult(owner_id="r1", match_score=90, similarity_score=0.9)],
    )
    assert out.ok is False
    assert out.error.code == "notification_error"


def test_read_operations_and_remove_owner(pipeline):
    pipeline.process_resume(owner_id="r1", text="Python developer")
    pipeline.process_job(job_id="j1", title="Python Engineer", description="APIs")

    cached = pipeline.get_cached_embedding(entity_type="resume", owner_id="r1")
    assert cached.ok and cached.value == [1.0, 0.0]

    matches = pipeline.get_matches_for_owner(owner_id="r1")
    assert [m.job_owner_id for m in matches.value] == ["j1"]

    detail = pipeline.get_match_details(resume_owner_id="r1", job_owner_id="j1")
    assert detail.value.notified is True

    assert pipeline.get_unnotified_matches(owner_id="j1").value == []

    removed = pipeline.remove_owner(owner_kind="resume", owner_id="r1")
    assert removed.value == {"embeddings": 1, "matches": 1}
    assert pipeline.get_cached_embedding(entity_type="resume", owner_id="r1").value is None


def test_match_one_against_many_without_counterparts_rescans(pipeline):
    pipeline.process_resume(owner_id="r1", text="Python developer")
    out = pipeline.match_one_against_many(subject_kind="job", subject_owner_id="j9", subject_vector=[1.0, 0.0])
    assert out.ok is True
    assert [m.owner_id for m in out.value] == ["r1"]


def test_refresh_many_and_parse(pipeline):
    out = pipeline.refresh_many(entity_type="job", items=[("j1", "Python"), ("j2", "")])
    assert out.value.refreshed == ["j1"]
    assert out.value.failed == {"j2": "empty_content"}

    parsed = pipeline.parse_resume_text("Skills: Docker")
    assert parsed.ok and parsed.value.skills == {"Docker"}
