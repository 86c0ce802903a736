"""
End-to-end case lifecycle over the HTTP API.

intake → eligibility review → DCM assignment → counseling form entry →
form completion → welfare rejection → rework → resubmission →
welfare approval → executive approval → finance disbursement.
"""

from baaseteen.models.case import CaseType
from baaseteen.models.counseling import FORM_SECTIONS

API = "/api/v1"

SECTION_DATA = {
    "personal_details": {"its_number": "30477777", "name": "Abbas Hakim", "age": 35},
    "family_details": {"family_structure": "Nuclear", "total_members": 4, "earning_members": 1},
    "assessment": {"background": "Bakery", "current_business": "Home bakery"},
    "financial_assistance": {"assistance_required": "Oven", "total_amount_required": 80000},
    "economic_growth": {"projected_income": 30000, "growth_plan": "Retail outlet"},
    "declaration": {"declared_by": "Abbas Hakim", "declaration_date": "2024-05-01",
                    "signature_provided": True},
    "attachments": {"quotation": True, "aadhar_card": True},
}


def _ok(res, status=200):
    assert res.status_code == status, res.get_json()
    return res.get_json()


class TestFullLifecycle:

    def test_intake_to_disbursement(self, client, make_user, auth_headers):
        admin = make_user("admin")
        dcm = make_user("Deputy Counseling Manager")
        counselor = make_user("counselor")
        reviewer = make_user("welfare_reviewer")
        executive = make_user("Executive Management")
        finance = make_user("finance")
        h = {u.id: auth_headers(u) for u in (admin, dcm, counselor, reviewer, executive, finance)}
        case_type_id = CaseType.query.filter_by(name="baaseteen").first().id

        # ── Intake ───────────────────────────────────────────────────────
        record = _ok(client.post(f"{API}/case-identifications", json={
            "its_number": "30477777",
            "applicant_name": "Abbas Hakim",
            "eligible_in": case_type_id,
        }, headers=h[dcm.id]), 201)
        review = _ok(client.put(
            f"{API}/case-identifications/{record['id']}/review",
            json={"status": "eligible"}, headers=h[reviewer.id],
        ))
        case_id = review["case"]["id"]
        assert review["case"]["status"] == "draft"

        # ── Assignment ───────────────────────────────────────────────────
        assigned = _ok(client.put(
            f"{API}/cases/{case_id}/assign",
            json={"dcm_id": dcm.id, "counselor_id": counselor.id}, headers=h[admin.id],
        ))
        assert assigned["case"]["status"] == "assigned"

        # ── Counseling ───────────────────────────────────────────────────
        form = _ok(client.get(f"{API}/cases/{case_id}/counseling-form", headers=h[counselor.id]))
        for section in FORM_SECTIONS:
            _ok(client.put(
                f"{API}/counseling-forms/{form['id']}/section/{section}",
                json=SECTION_DATA[section], headers=h[counselor.id],
            ))
        case = _ok(client.get(f"{API}/cases/{case_id}", headers=h[dcm.id]))
        assert case["status"] == "in_counseling"

        done = _ok(client.put(f"{API}/counseling-forms/{form['id']}/complete", headers=h[dcm.id]))
        assert done["case"]["status"] == "submitted_to_welfare"

        # ── Welfare rejection + rework ───────────────────────────────────
        _ok(client.post(f"{API}/cases/{case_id}/transition",
                        json={"status": "welfare_rejected", "comment": "Need quotation"},
                        headers=h[reviewer.id]))
        nxt = _ok(client.get(f"{API}/cases/{case_id}/next-statuses", headers=h[dcm.id]))
        assert nxt["next_statuses"] == ["in_counseling"]

        _ok(client.post(f"{API}/cases/{case_id}/transition",
                        json={"status": "in_counseling"}, headers=h[dcm.id]))
        form = _ok(client.get(f"{API}/cases/{case_id}/counseling-form", headers=h[dcm.id]))
        assert form["is_complete"] is False
        assert form["reopened_at"] is not None

        _ok(client.put(f"{API}/counseling-forms/{form['id']}/section/attachments",
                       json={"quotation": True, "product_brochure": True},
                       headers=h[counselor.id]))
        done = _ok(client.put(f"{API}/counseling-forms/{form['id']}/complete", headers=h[dcm.id]))
        assert done["case"]["status"] == "submitted_to_welfare"

        # ── Approvals + disbursement ─────────────────────────────────────
        _ok(client.post(f"{API}/cases/{case_id}/transition",
                        json={"status": "welfare_approved"}, headers=h[reviewer.id]))
        _ok(client.post(f"{API}/cases/{case_id}/transition",
                        json={"status": "executive_approved"}, headers=h[executive.id]))
        final = _ok(client.post(f"{API}/cases/{case_id}/transition",
                                json={"status": "finance_disbursement"}, headers=h[finance.id]))
        assert final["case"]["status"] == "finance_disbursement"

        res = client.post(f"{API}/cases/{case_id}/transition",
                          json={"status": "executive_approved"}, headers=h[admin.id])
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FINAL_STATE"

        # ── Audit trail ──────────────────────────────────────────────────
        history = _ok(client.get(f"{API}/cases/{case_id}/status-history", headers=h[admin.id]))
        assert [(i["from_status"], i["to_status"]) for i in history["items"]] == [
            ("draft", "assigned"),
            ("assigned", "in_counseling"),
            ("in_counseling", "submitted_to_welfare"),
            ("submitted_to_welfare", "welfare_rejected"),
            ("welfare_rejected", "in_counseling"),
            ("in_counseling", "submitted_to_welfare"),
            ("submitted_to_welfare", "welfare_approved"),
            ("welfare_approved", "executive_approved"),
            ("executive_approved", "finance_disbursement"),
        ]

        stages = _ok(client.get(f"{API}/cases/{case_id}/workflow-history", headers=h[admin.id]))
        assert [i["stage_name"] for i in stages["items"]] == [
            "Case Assignment",
            "Counseling",
            "Welfare Review",
            "Counseling",
            "Welfare Review",
            "Executive Approval",
            "Finance Disbursement",
        ]

        inbox = _ok(client.get(f"{API}/notifications", headers=h[dcm.id]))
        assert inbox["unread_count"] > 0
