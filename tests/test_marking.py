from decimal import Decimal

import pytest

from capstone.exceptions import InvalidState, NotFound, Unauthorized, ValidationError
from capstone.models import SupervisorMarks, SystemSetting
from capstone.services.marking import committee_average, parse_score


@pytest.fixture
def srs(make_doc_type):
    return make_doc_type("SRS", 1)


@pytest.fixture
def project(make_project, cast):
    return make_project(cast.supervisor, [cast.leader, cast.member])


@pytest.fixture
def locked(flow, project, srs):
    return flow.locked(project, srs)


def test_parse_score_bounds_and_scale():
    assert parse_score(80) == Decimal("80.00")
    assert parse_score("99.5") == Decimal("99.50")
    assert parse_score(Decimal("0")) == Decimal("0.00")
    assert parse_score(100) == Decimal("100.00")
    for bad in (-0.01, 100.01, "abc", None, True, "NaN", "85.123"):
        with pytest.raises(ValidationError):
            parse_score(bad)


def test_supervisor_marks_require_locked(session, services, cast, project, srs, flow):
    approved = flow.approved(project, srs)
    with pytest.raises(InvalidState) as exc:
        services.marking.submit_supervisor_marks(session, cast.supervisor, approved.id, 80)
    assert exc.value.details["required_status"] == "locked"


def test_supervisor_marks_upsert(session, services, cast, locked):
    services.marking.submit_supervisor_marks(session, cast.supervisor, locked.id, 70)
    marks = services.marking.submit_supervisor_marks(
        session, cast.supervisor, locked.id, "82.50", comments="solid"
    )
    assert marks.score == Decimal("82.50")
    assert session.query(SupervisorMarks).filter_by(submission_id=locked.id).count() == 1


def test_only_assigned_supervisor_marks(session, services, cast, locked):
    with pytest.raises(Unauthorized):
        services.marking.submit_supervisor_marks(session, cast.other_supervisor, locked.id, 80)
    with pytest.raises(Unauthorized):
        services.marking.submit_supervisor_marks(session, cast.evaluator1, locked.id, 80)


def test_supervisor_marks_frozen_after_evaluation_complete(session, services, cast, locked):
    services.marking.submit_supervisor_marks(session, cast.supervisor, locked.id, 80)
    services.marking.submit_evaluation_marks(session, cast.evaluator1, locked.id, 90, finalize=True)
    services.marking.submit_evaluation_marks(session, cast.evaluator2, locked.id, 90, finalize=True)
    with pytest.raises(InvalidState):
        services.marking.submit_supervisor_marks(session, cast.supervisor, locked.id, 60)


def test_evaluation_marks_draft_then_finalize(session, services, cast, locked):
    draft = services.marking.submit_evaluation_marks(session, cast.evaluator1, locked.id, 75)
    assert draft.is_final is False
    updated = services.marking.submit_evaluation_marks(session, cast.evaluator1, locked.id, 78)
    assert updated.id == draft.id
    assert updated.score == Decimal("78.00")

    final = services.marking.finalize_evaluation(session, cast.evaluator1, locked.id)
    assert final.is_final is True
    assert final.score == Decimal("78.00")
    assert final.finalized_at is not None

    with pytest.raises(InvalidState):
        services.marking.submit_evaluation_marks(session, cast.evaluator1, locked.id, 90)


def test_finalization_is_per_evaluator(session, services, cast, locked):
    services.marking.submit_evaluation_marks(session, cast.evaluator1, locked.id, 80, finalize=True)
    other = services.marking.submit_evaluation_marks(session, cast.evaluator2, locked.id, 70)
    other = services.marking.submit_evaluation_marks(session, cast.evaluator2, locked.id, 72)
    assert other.is_final is False


def test_finalize_without_marks(session, services, cast, locked):
    with pytest.raises(NotFound):
        services.marking.finalize_evaluation(session, cast.evaluator1, locked.id)


def test_evaluators_must_be_committee(session, services, cast, locked):
    with pytest.raises(Unauthorized):
        services.marking.submit_evaluation_marks(session, cast.supervisor, locked.id, 80)
    with pytest.raises(Unauthorized):
        services.marking.submit_evaluation_marks(session, cast.leader, locked.id, 80)


def test_draft_marks_never_change_average(session, services, cast, locked):
    services.marking.submit_evaluation_marks(session, cast.evaluator1, locked.id, 80, finalize=True)
    before = services.marking.get_evaluation_summary(session, locked.id)

    services.marking.submit_evaluation_marks(session, cast.evaluator2, locked.id, 10)
    after = services.marking.get_evaluation_summary(session, locked.id)

    assert before.average_score == after.average_score == Decimal("80.00")
    assert after.total_evaluations == 2
    assert after.finalized_evaluations == 1


def test_summary_counts_and_completion(session, services, cast, locked):
    summary = services.marking.get_evaluation_summary(session, locked.id)
    assert summary.required_evaluators == 2
    assert summary.average_score is None
    assert summary.evaluation_complete is False

    services.marking.submit_evaluation_marks(session, cast.evaluator1, locked.id, 85, finalize=True)
    services.marking.submit_evaluation_marks(session, cast.evaluator2, locked.id, 95, finalize=True)
    summary = services.marking.get_evaluation_summary(session, locked.id)
    assert summary.all_finalized is True
    assert summary.has_supervisor_marks is False
    assert summary.evaluation_complete is False
    assert summary.average_score == Decimal("90.00")

    services.marking.submit_supervisor_marks(session, cast.supervisor, locked.id, 80)
    summary = services.marking.get_evaluation_summary(session, locked.id)
    assert summary.evaluation_complete is True


def test_required_evaluators_from_system_setting(session, services, cast, locked):
    session.add(SystemSetting(key="required_evaluators", value="3"))
    session.commit()
    services.marking.submit_supervisor_marks(session, cast.supervisor, locked.id, 80)
    services.marking.submit_evaluation_marks(session, cast.evaluator1, locked.id, 85, finalize=True)
    services.marking.submit_evaluation_marks(session, cast.evaluator2, locked.id, 95, finalize=True)

    summary = services.marking.get_evaluation_summary(session, locked.id)
    assert summary.required_evaluators == 3
    assert summary.evaluation_complete is False


def test_average_rounds_half_even(session, services, cast, locked):
    services.marking.submit_evaluation_marks(session, cast.evaluator1, locked.id, "85.02", finalize=True)
    services.marking.submit_evaluation_marks(session, cast.evaluator2, locked.id, "85.03", finalize=True)
    summary = services.marking.get_evaluation_summary(session, locked.id)
    assert summary.average_score == Decimal("85.02")


def test_committee_average_ignores_drafts():
    class Row:
        def __init__(self, score, is_final):
            self.score = Decimal(score)
            self.is_final = is_final

    assert committee_average([Row("70", False)]) is None
    assert committee_average([Row("70", True), Row("0", False), Row("81", True)]) == Decimal("75.50")


def test_list_evaluation_marks_committee_only(session, services, cast, locked):
    services.marking.submit_evaluation_marks(session, cast.evaluator1, locked.id, 80)
    assert len(services.marking.list_evaluation_marks(session, cast.evaluator2, locked.id)) == 1
    with pytest.raises(Unauthorized):
        services.marking.list_evaluation_marks(session, cast.leader, locked.id)
