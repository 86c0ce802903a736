"""
Counseling Form Progression Engine tests.

Covers:
    - derive_counseling_status
    - section saves moving an assigned case into counseling
    - form immutability after submission and the rework exception
    - completion gating (sections, permission, assigned DCM)
    - completion hand-off to welfare review, incl. stage scoping/fallback
"""

import pytest
from sqlalchemy.exc import OperationalError

from baaseteen.core.exceptions import (
    FormLockedError,
    IncompleteSectionsError,
    NotFoundError,
    PermissionDenied,
    TransactionFailure,
    TransitionNotAllowed,
    ValidationError,
)
from baaseteen.models import db as _db
from baaseteen.models.audit import StatusHistory
from baaseteen.models.case import Case, CaseComment, CaseType, WorkflowStage
from baaseteen.models.counseling import FORM_SECTIONS, CounselingForm, PersonalDetails
from baaseteen.models.notification import Notification
from baaseteen.services import counseling_progression as progression

SECTION_PAYLOADS = {
    "personal_details": {
        "its_number": "30412345", "name": "Husain Ali", "age": "42",
        "contact_number": "9820000000", "mobile_alt": "9820000001",
    },
    "family_details": {"family_structure": "Joint", "total_members": 5, "earning_members": "2"},
    "assessment": {"background": "Runs a small tailoring shop", "current_business": "Tailoring"},
    "financial_assistance": {"assistance_required": "Machinery", "total_amount_required": "150000.50"},
    "economic_growth": {"projected_income": 45000, "growth_plan": "Second workshop"},
    "declaration": {"declared_by": "Husain Ali", "declaration_date": "15.03.2024",
                    "signature_provided": True},
    "attachments": {"work_place_photo": True, "quotation": True, "pan_card": True},
}


def _stage(key, case_type_id=None):
    return WorkflowStage.query.filter_by(stage_key=key, case_type_id=case_type_id).first()


def _form_for(case):
    form = CounselingForm(case_id=case.id)
    _db.session.add(form)
    _db.session.commit()
    return form


def _fill(form, actor, sections=None):
    for name in sections or FORM_SECTIONS:
        progression.save_section(form.id, name, SECTION_PAYLOADS[name], actor.id)


@pytest.fixture()
def team(make_user):
    return {
        "dcm": make_user("dcm", full_name="Mustafa DCM"),
        "counselor": make_user("counselor"),
        "reviewer": make_user("welfare_reviewer"),
        "admin": make_user("admin"),
    }


@pytest.fixture()
def assigned_case(make_case, team):
    return make_case("assigned", dcm=team["dcm"], counselor=team["counselor"])


# ═════════════════════════════════════════════════════════════════════════════
# 1. DERIVED STATUS
# ═════════════════════════════════════════════════════════════════════════════


class TestDeriveCounselingStatus:

    def test_no_sections(self):
        assert progression.derive_counseling_status(CounselingForm(is_complete=False)) == "assigned"

    def test_personal_details_starts_counseling(self):
        form = CounselingForm(is_complete=False, personal_details_id=1)
        assert progression.derive_counseling_status(form) == "in_counseling"

    def test_other_sections_without_personal_details(self):
        form = CounselingForm(is_complete=False, family_details_id=1, assessment_id=2)
        assert progression.derive_counseling_status(form) == "assigned"

    def test_all_sections_but_not_complete(self):
        form = CounselingForm(is_complete=False, **{f"{s}_id": 1 for s in FORM_SECTIONS})
        assert progression.derive_counseling_status(form) == "in_counseling"

    def test_complete_hands_over(self):
        form = CounselingForm(is_complete=True, **{f"{s}_id": 1 for s in FORM_SECTIONS})
        assert progression.derive_counseling_status(form) is None


# ═════════════════════════════════════════════════════════════════════════════
# 2. SECTION SAVES
# ═════════════════════════════════════════════════════════════════════════════


class TestSaveSection:

    def test_get_or_create_form_is_idempotent(self, assigned_case):
        first = progression.get_or_create_form(assigned_case.id)
        second = progression.get_or_create_form(assigned_case.id)
        assert first.id == second.id
        assert CounselingForm.query.filter_by(case_id=assigned_case.id).count() == 1

    def test_get_or_create_form_unknown_case(self):
        with pytest.raises(NotFoundError):
            progression.get_or_create_form(98765)

    def test_first_section_moves_case_into_counseling(self, assigned_case, team):
        form = _form_for(assigned_case)

        result = progression.save_section(
            form.id, "personal_details", SECTION_PAYLOADS["personal_details"], team["counselor"].id,
        )

        assert result["status_update"]["to_status"] == "in_counseling"
        case = _db.session.get(Case, assigned_case.id)
        assert case.status == "in_counseling"
        assert case.current_workflow_stage_id == _stage("counselor").id
        entry = case.workflow_history[-1]
        assert entry["action"] == "form_progress"
        assert entry["entered_by"] is None
        assert entry["entered_by_name"] == "System"

        audit = StatusHistory.query.filter_by(case_id=case.id).one()
        assert audit.changed_by is None
        assert audit.comments == progression.PROGRESS_COMMENT

    def test_other_section_first_keeps_case_assigned(self, assigned_case, team):
        form = _form_for(assigned_case)

        result = progression.save_section(
            form.id, "family_details", SECTION_PAYLOADS["family_details"], team["counselor"].id,
        )

        assert result["status_update"] is None
        case = _db.session.get(Case, assigned_case.id)
        assert case.status == "assigned"
        assert case.workflow_history == []
        assert StatusHistory.query.filter_by(case_id=case.id).count() == 0
        assert Notification.query.filter_by(case_id=case.id).count() == 0

        progression.save_section(
            form.id, "personal_details", SECTION_PAYLOADS["personal_details"], team["counselor"].id,
        )
        assert _db.session.get(Case, case.id).status == "in_counseling"

    def test_second_section_does_not_transition_again(self, assigned_case, team):
        form = _form_for(assigned_case)
        _fill(form, team["counselor"], ["personal_details"])

        result = progression.save_section(
            form.id, "family_details", SECTION_PAYLOADS["family_details"], team["counselor"].id,
        )

        assert result["status_update"] is None
        assert StatusHistory.query.filter_by(case_id=assigned_case.id).count() == 1
        assert len(_db.session.get(Case, assigned_case.id).workflow_history) == 1

    def test_typed_fields_and_extra_payload(self, assigned_case, team):
        form = _form_for(assigned_case)

        result = progression.save_section(
            form.id, "personal_details", SECTION_PAYLOADS["personal_details"], team["counselor"].id,
        )

        data = result["data"]
        assert data["age"] == 42
        assert data["name"] == "Husain Ali"
        assert data["details"] == {"mobile_alt": "9820000001"}
        assert result["form"]["personal_details_id"] == data["id"]

    def test_resave_updates_same_row(self, assigned_case, team):
        form = _form_for(assigned_case)
        _fill(form, team["counselor"], ["personal_details"])

        progression.save_section(form.id, "personal_details", {"age": 43}, team["counselor"].id)

        rows = PersonalDetails.query.filter_by(case_id=assigned_case.id).all()
        assert len(rows) == 1
        assert rows[0].age == 43
        assert rows[0].name == "Husain Ali"

    def test_declaration_date_parsing(self, assigned_case, team):
        form = _form_for(assigned_case)
        result = progression.save_section(
            form.id, "declaration", SECTION_PAYLOADS["declaration"], team["counselor"].id,
        )
        assert result["data"]["declaration_date"] == "2024-03-15"
        assert result["data"]["signature_provided"] is True

    def test_string_booleans(self, assigned_case, team):
        form = _form_for(assigned_case)

        result = progression.save_section(
            form.id, "attachments",
            {"pan_card": "false", "quotation": "Yes", "aadhar_card": "0", "cancelled_cheque": True},
            team["counselor"].id,
        )

        data = result["data"]
        assert data["pan_card"] is False
        assert data["quotation"] is True
        assert data["aadhar_card"] is False
        assert data["cancelled_cheque"] is True

        result = progression.save_section(
            form.id, "declaration", {"signature_provided": "false"}, team["counselor"].id,
        )
        assert result["data"]["signature_provided"] is False

    def test_invalid_section(self, assigned_case, team):
        form = _form_for(assigned_case)
        with pytest.raises(ValidationError):
            progression.save_section(form.id, "hobbies", {}, team["counselor"].id)

    def test_unknown_form(self, team):
        with pytest.raises(NotFoundError):
            progression.save_section(5555, "assessment", {}, team["counselor"].id)

    def test_section_permission(self, assigned_case, make_user):
        finance = make_user("finance")
        form = _form_for(assigned_case)
        with pytest.raises(PermissionDenied):
            progression.save_section(form.id, "assessment", {}, finance.id)

    def test_later_status_not_pulled_back(self, make_case, team):
        case = make_case("cover_letter_generated", dcm=team["dcm"])
        form = _form_for(case)

        result = progression.save_section(
            form.id, "assessment", SECTION_PAYLOADS["assessment"], team["dcm"].id,
        )

        assert result["status_update"] is None
        assert _db.session.get(Case, case.id).status == "cover_letter_generated"

    def test_submitted_form_is_locked(self, make_case, team):
        case = make_case("submitted_to_welfare", dcm=team["dcm"])
        form = CounselingForm(case_id=case.id, is_complete=True)
        _db.session.add(form)
        _db.session.commit()

        with pytest.raises(FormLockedError):
            progression.save_section(form.id, "assessment", {"background": "x"}, team["dcm"].id)

    def test_rejected_form_is_editable(self, make_case, team):
        case = make_case("welfare_rejected", dcm=team["dcm"])
        form = CounselingForm(case_id=case.id, is_complete=True)
        _db.session.add(form)
        _db.session.commit()

        result = progression.save_section(
            form.id, "assessment", {"background": "Revised"}, team["dcm"].id,
        )

        assert result["data"]["background"] == "Revised"
        assert result["status_update"] is None
        assert _db.session.get(Case, case.id).status == "welfare_rejected"


# ═════════════════════════════════════════════════════════════════════════════
# 3. COMPLETION
# ═════════════════════════════════════════════════════════════════════════════


class TestComplete:

    def test_incomplete_sections_listed(self, assigned_case, team):
        form = _form_for(assigned_case)
        _fill(form, team["dcm"], ["personal_details", "assessment"])

        with pytest.raises(IncompleteSectionsError) as exc_info:
            progression.complete(form.id, team["dcm"].id)

        assert exc_info.value.missing_sections == [
            "family_details", "financial_assistance", "economic_growth",
            "declaration", "attachments",
        ]
        assert _db.session.get(Case, assigned_case.id).status == "in_counseling"

    def test_only_assigned_dcm(self, assigned_case, team, make_user):
        other_dcm = make_user("dcm")
        form = _form_for(assigned_case)
        _fill(form, team["dcm"])

        with pytest.raises(PermissionDenied) as exc_info:
            progression.complete(form.id, other_dcm.id)

        assert "assigned DCM" in str(exc_info.value)

    def test_counselor_lacks_complete_permission(self, assigned_case, team):
        form = _form_for(assigned_case)
        _fill(form, team["counselor"])

        with pytest.raises(PermissionDenied) as exc_info:
            progression.complete(form.id, team["counselor"].id)

        assert exc_info.value.action == "complete"

    def test_complete_hands_case_to_welfare_review(self, assigned_case, team):
        form = _form_for(assigned_case)
        _fill(form, team["counselor"])

        result = progression.complete(form.id, team["dcm"].id)

        assert result["transition"]["from_status"] == "in_counseling"
        assert result["transition"]["to_status"] == "submitted_to_welfare"
        assert result["notified_reviewers"] == 1

        case = _db.session.get(Case, assigned_case.id)
        assert case.status == "submitted_to_welfare"
        assert case.current_workflow_stage_id == _stage("welfare_review").id
        entry = case.workflow_history[-1]
        assert entry["action"] == "form_completed"
        assert entry["entered_by"] == team["dcm"].id
        assert entry["entered_by_name"] == "Mustafa DCM"

        fresh_form = _db.session.get(CounselingForm, form.id)
        assert fresh_form.is_complete is True
        assert fresh_form.completed_by == team["dcm"].id

        comment = CaseComment.query.filter_by(case_id=case.id).one()
        assert comment.comment_type == "approval"
        assert case.case_number in comment.comment

        reviewer_notes = Notification.query.filter_by(
            case_id=case.id, user_id=team["reviewer"].id, title="New Case for Review",
        ).all()
        assert len(reviewer_notes) == 1
        dcm_notes = Notification.query.filter_by(
            case_id=case.id, user_id=team["dcm"].id, type="success",
        ).all()
        assert len(dcm_notes) == 1

    def test_completion_notification_failure_keeps_submission(self, assigned_case, team, monkeypatch):
        form = _form_for(assigned_case)
        _fill(form, team["counselor"])

        def _boom(case_id):
            raise RuntimeError("mail relay down")

        monkeypatch.setattr(progression.NotificationService, "notify_form_completed", _boom)

        result = progression.complete(form.id, team["dcm"].id)

        assert result["transition"]["to_status"] == "submitted_to_welfare"
        assert _db.session.get(Case, assigned_case.id).status == "submitted_to_welfare"
        assert _db.session.get(CounselingForm, form.id).is_complete is True
        assert StatusHistory.query.filter_by(case_id=assigned_case.id).count() == 2

    def test_failed_completion_leaves_no_partial_state(self, assigned_case, team, monkeypatch):
        form = _form_for(assigned_case)
        _fill(form, team["counselor"])
        history_before = list(_db.session.get(Case, assigned_case.id).workflow_history)

        def _fail(case, **kwargs):
            raise OperationalError("INSERT INTO notifications", {}, Exception("database is locked"))

        monkeypatch.setattr(progression.NotificationService, "notify_welfare_reviewers", _fail)

        with pytest.raises(TransactionFailure):
            progression.complete(form.id, team["dcm"].id)

        case = _db.session.get(Case, assigned_case.id)
        assert case.status == "in_counseling"
        assert case.workflow_history == history_before
        assert _db.session.get(CounselingForm, form.id).is_complete is False
        assert StatusHistory.query.filter_by(case_id=case.id).count() == 1
        assert CaseComment.query.filter_by(case_id=case.id).count() == 0

    def test_admin_may_complete_unassigned(self, assigned_case, team):
        form = _form_for(assigned_case)
        _fill(form, team["counselor"])

        progression.complete(form.id, team["admin"].id)

        assert _db.session.get(Case, assigned_case.id).status == "submitted_to_welfare"

    def test_completed_form_cannot_complete_again(self, assigned_case, team):
        form = _form_for(assigned_case)
        _fill(form, team["counselor"])
        progression.complete(form.id, team["dcm"].id)

        with pytest.raises(FormLockedError):
            progression.complete(form.id, team["dcm"].id)

    def test_requires_in_counseling(self, make_case, team):
        case = make_case("cover_letter_generated", dcm=team["dcm"])
        form = _form_for(case)
        _fill(form, team["dcm"])

        with pytest.raises(TransitionNotAllowed):
            progression.complete(form.id, team["dcm"].id)

        assert _db.session.get(CounselingForm, form.id).is_complete is False

    def test_fallback_status_without_review_stage(self, assigned_case, team):
        stage = _stage("welfare_review")
        stage.is_active = False
        _db.session.commit()
        form = _form_for(assigned_case)
        _fill(form, team["counselor"])
        counseling_stage_id = _db.session.get(Case, assigned_case.id).current_workflow_stage_id

        result = progression.complete(form.id, team["dcm"].id)

        case = _db.session.get(Case, assigned_case.id)
        assert case.status == "submitted_to_welfare"
        assert case.current_workflow_stage_id == counseling_stage_id
        assert result["transition"]["stage_changed"] is False

    def test_case_type_specific_review_stage_wins(self, make_case, team):
        medical = CaseType.query.filter_by(name="medical").first()
        scoped = WorkflowStage(
            stage_key="welfare_review",
            stage_name="Medical Board Review",
            sort_order=5,
            case_type_id=medical.id,
            associated_statuses=["submitted_to_welfare"],
        )
        _db.session.add(scoped)
        _db.session.commit()
        case = make_case("assigned", case_type="medical", dcm=team["dcm"])
        form = _form_for(case)
        _fill(form, team["counselor"])

        progression.complete(form.id, team["dcm"].id)

        fresh = _db.session.get(Case, case.id)
        assert fresh.current_workflow_stage_id == scoped.id
        assert fresh.workflow_history[-1]["stage_name"] == "Medical Board Review"


# ═════════════════════════════════════════════════════════════════════════════
# 4. HTTP SURFACE
# ═════════════════════════════════════════════════════════════════════════════


class TestCounselingAPI:

    def test_get_creates_form(self, client, assigned_case, team, auth_headers):
        res = client.get(
            f"/api/v1/cases/{assigned_case.id}/counseling-form",
            headers=auth_headers(team["counselor"]),
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["case_id"] == assigned_case.id
        assert body["missing_sections"] == list(FORM_SECTIONS)
        assert body["sections"]["personal_details"] is None

    def test_put_section(self, client, assigned_case, team, auth_headers):
        form = _form_for(assigned_case)
        res = client.put(
            f"/api/v1/counseling-forms/{form.id}/section/family_details",
            json=SECTION_PAYLOADS["family_details"],
            headers=auth_headers(team["counselor"]),
        )
        assert res.status_code == 200, res.get_json()
        body = res.get_json()
        assert body["data"]["total_members"] == 5
        assert body["status_update"] is None

        res = client.put(
            f"/api/v1/counseling-forms/{form.id}/section/personal_details",
            json=SECTION_PAYLOADS["personal_details"],
            headers=auth_headers(team["counselor"]),
        )
        assert res.status_code == 200, res.get_json()
        assert res.get_json()["status_update"]["to_status"] == "in_counseling"

    def test_put_invalid_section(self, client, assigned_case, team, auth_headers):
        form = _form_for(assigned_case)
        res = client.put(
            f"/api/v1/counseling-forms/{form.id}/section/unknown",
            json={},
            headers=auth_headers(team["counselor"]),
        )
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_complete_incomplete_form(self, client, assigned_case, team, auth_headers):
        form = _form_for(assigned_case)
        res = client.put(
            f"/api/v1/counseling-forms/{form.id}/complete",
            headers=auth_headers(team["dcm"]),
        )
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_INCOMPLETE_SECTIONS"
        assert len(body["details"]["missing_sections"]) == 7

    def test_complete_and_locked(self, client, assigned_case, team, auth_headers):
        form = _form_for(assigned_case)
        _fill(form, team["counselor"])

        res = client.put(
            f"/api/v1/counseling-forms/{form.id}/complete",
            headers=auth_headers(team["dcm"]),
        )
        assert res.status_code == 200, res.get_json()
        assert res.get_json()["case"]["status"] == "submitted_to_welfare"

        res = client.put(
            f"/api/v1/counseling-forms/{form.id}/section/assessment",
            json={"background": "late edit"},
            headers=auth_headers(team["dcm"]),
        )
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORM_LOCKED"
