from decimal import Decimal

import pytest

from capstone.exceptions import NotFound, Unauthorized
from capstone.models import FinalResult
from capstone.schemas.events import ResultReleasedEvent
from capstone.schemas.grading import DeadlineEntry
from capstone.services.results import weighted_score

from conftest import T0, days


@pytest.fixture
def project(make_project, cast):
    return make_project(cast.supervisor, [cast.leader, cast.member])


def test_weighted_score_example():
    assert weighted_score(Decimal("80"), 20, Decimal("90"), 80) == Decimal("88.00")


def test_compute_single_document(session, services, cast, project, make_doc_type, flow):
    srs = make_doc_type("SRS", 1, supervisor_weight=20, committee_weight=80)
    flow.evaluated(project, srs, 80, [90, 90])

    outcome = services.results.compute_if_ready(session, project.id, actor=cast.evaluator1)

    assert outcome.is_ready
    assert outcome.total_score == Decimal("88.00")
    row = outcome.breakdown[0]
    assert row.doc_type_code == "SRS"
    assert row.supervisor_score == Decimal("80.00")
    assert row.committee_avg_score == Decimal("90.00")
    assert row.evaluator_count == 2
    assert row.weighted_score == Decimal("88.00")

    stored = session.query(FinalResult).filter_by(project_id=project.id).one()
    assert stored.total_score == Decimal("88.00")
    assert stored.released is False
    assert stored.computed_by_id == cast.evaluator1.id
    assert stored.breakdown_json[0]["weighted_score"] == "88.00"


def test_total_is_sum_without_renormalizing(session, services, cast, project, make_doc_type, flow):
    srs = make_doc_type("SRS", 1, supervisor_weight=10, committee_weight=30)
    thesis = make_doc_type("THESIS", 2, supervisor_weight=20, committee_weight=40)
    flow.evaluated(project, srs, 80, [90, 70])      # (800 + 2400) / 100 = 32.00
    flow.evaluated(project, thesis, 75, [60, 65])   # (1500 + 2500) / 100 = 40.00

    outcome = services.results.compute_if_ready(session, project.id)

    assert [b.weighted_score for b in outcome.breakdown] == [Decimal("32.00"), Decimal("40.00")]
    assert outcome.total_score == Decimal("72.00")


def test_not_ready_when_evaluator_missing(session, services, cast, project, make_doc_type, flow):
    srs = make_doc_type("SRS", 1)
    flow.evaluated(project, srs, 80, [90])

    outcome = services.results.compute_if_ready(session, project.id)

    assert outcome.status == "not_ready"
    assert outcome.pending[0].reason == "evaluations_incomplete"
    assert session.query(FinalResult).count() == 0


def test_not_ready_without_supervisor_marks(session, services, cast, project, make_doc_type, flow):
    srs = make_doc_type("SRS", 1)
    submission = flow.locked(project, srs)
    for evaluator in (cast.evaluator1, cast.evaluator2):
        services.marking.submit_evaluation_marks(session, evaluator, submission.id, 90, finalize=True)

    outcome = services.results.compute_if_ready(session, project.id)
    assert outcome.status == "not_ready"
    assert outcome.pending[0].reason == "no_supervisor_marks"


def test_not_ready_lists_every_incomplete_type(session, services, cast, project, make_doc_type, flow):
    srs = make_doc_type("SRS", 1)
    sds = make_doc_type("SDS", 2)
    thesis = make_doc_type("THESIS", 3)
    flow.evaluated(project, srs, 80, [90, 90])
    flow.approved(project, sds)

    outcome = services.results.compute_if_ready(session, project.id)

    assert [(p.doc_type_code, p.reason) for p in outcome.pending] == [
        ("SDS", "not_locked"),
        ("THESIS", "missing"),
    ]


def test_draft_evaluations_do_not_count(session, services, cast, project, make_doc_type, flow):
    srs = make_doc_type("SRS", 1)
    submission = flow.evaluated(project, srs, 80, [90])
    services.marking.submit_evaluation_marks(session, cast.evaluator2, submission.id, 10)

    assert services.results.compute_if_ready(session, project.id).status == "not_ready"


def test_recompute_overwrites_and_keeps_release(session, services, cast, project, make_doc_type, flow):
    srs = make_doc_type("SRS", 1)
    submission = flow.evaluated(project, srs, 80, [90, 90])
    services.results.compute_if_ready(session, project.id)
    services.results.release(session, cast.evaluator1, project.id)

    services.marking.submit_evaluation_marks(session, cast.evaluator3, submission.id, 60, finalize=True)
    outcome = services.results.compute_if_ready(session, project.id)

    assert outcome.total_score == Decimal("80.00")  # 16 + 80 * 0.8
    results = session.query(FinalResult).filter_by(project_id=project.id).all()
    assert len(results) == 1
    assert results[0].total_score == Decimal("80.00")
    assert results[0].released is True


def test_catalog_edit_does_not_change_computed_result(session, services, cast, project, make_doc_type, flow):
    srs = make_doc_type("SRS", 1)
    flow.evaluated(project, srs, 80, [90, 90])
    services.results.compute_if_ready(session, project.id)

    services.catalog.update(session, cast.admin, srs.id, {"supervisor_weight": 50, "committee_weight": 50})

    stored = services.results.get_result(session, cast.evaluator1, project.id)
    assert stored.total_score == Decimal("88.00")
    assert stored.breakdown_json[0]["supervisor_weight"] == 20


def test_compute_requires_capability(session, services, cast, project, make_doc_type):
    make_doc_type("SRS", 1)
    with pytest.raises(Unauthorized):
        services.results.compute_if_ready(session, project.id, actor=cast.leader)
    with pytest.raises(NotFound):
        services.results.compute_if_ready(session, 999, actor=cast.admin)


def test_release_is_idempotent(session, services, cast, project, make_doc_type, flow, sink):
    srs = make_doc_type("SRS", 1)
    flow.evaluated(project, srs, 80, [90, 90])
    services.results.compute_if_ready(session, project.id)

    first = services.results.release(session, cast.evaluator1, project.id)
    released_at = first.released_at
    second = services.results.release(session, cast.evaluator2, project.id)

    assert second.released is True
    assert second.released_at == released_at
    assert second.released_by_id == cast.evaluator1.id
    released_events = [e for e in sink.events if isinstance(e, ResultReleasedEvent)]
    assert len(released_events) == 1
    assert sorted(released_events[0].recipients) == sorted([cast.leader.id, cast.member.id])


def test_release_requires_result_and_committee(session, services, cast, project):
    with pytest.raises(NotFound):
        services.results.release(session, cast.evaluator1, project.id)
    with pytest.raises(Unauthorized):
        services.results.release(session, cast.admin, project.id)


def test_student_cannot_see_unreleased_result(session, services, cast, project, make_doc_type, flow):
    srs = make_doc_type("SRS", 1)
    flow.evaluated(project, srs, 80, [90, 90])

    with pytest.raises(NotFound):
        services.results.get_released(session, cast.leader, project.id)

    services.results.compute_if_ready(session, project.id)
    with pytest.raises(NotFound):
        services.results.get_released(session, cast.leader, project.id)

    services.results.release(session, cast.evaluator1, project.id)
    result = services.results.get_released(session, cast.member, project.id)
    assert result.total_score == Decimal("88.00")


def test_released_result_visible_only_to_group(session, services, cast, project, make_doc_type, flow):
    srs = make_doc_type("SRS", 1)
    flow.evaluated(project, srs, 80, [90, 90])
    services.results.compute_if_ready(session, project.id)
    services.results.release(session, cast.evaluator1, project.id)

    with pytest.raises(Unauthorized):
        services.results.get_released(session, cast.outsider, project.id)
    with pytest.raises(Unauthorized):
        services.results.get_result(session, cast.leader, project.id)


def test_deactivated_unsubmitted_type_does_not_block_result(
    session, services, cast, make_doc_type, make_project, flow
):
    srs = make_doc_type("SRS", 1, supervisor_weight=20, committee_weight=80)
    sds = make_doc_type("SDS", 2)
    batch = services.scheduler.create_batch(session, cast.fyp, "Spring", applies_from=T0)
    services.scheduler.set_deadlines(
        session, cast.fyp, batch.id,
        [
            DeadlineEntry(document_type_id=srs.id, deadline_date=T0 + days(10)),
            DeadlineEntry(document_type_id=sds.id, deadline_date=T0 + days(30)),
        ],
    )
    project = make_project(cast.supervisor, [cast.leader, cast.member], batch=batch)
    flow.evaluated(project, srs, 80, [90, 90])

    assert services.results.compute_if_ready(session, project.id).status == "not_ready"

    services.catalog.deactivate(session, cast.admin, sds.id)
    outcome = services.results.compute_if_ready(session, project.id)

    assert outcome.status == "computed"
    assert [b.doc_type_code for b in outcome.breakdown] == ["SRS"]
    assert outcome.total_score == Decimal("88.00")
