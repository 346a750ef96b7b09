import pytest
from sqlalchemy import update
from sqlmodel import Session

from deal_engine import ledger, offers, unlocks
from deal_engine import offer_machine as machine
from deal_engine.errors import (
    InvalidAmount,
    NotUnlocked,
    OfferAlreadyActive,
    ProjectNotLive,
    RoleMismatch,
    StaleOffer,
)
from deal_engine.events import list_events, offer_subject, verify_chain
from deal_engine.models import Offer
from deal_engine.offer_machine import OfferStatus

INVESTOR_ID = 7
DEVELOPER_ID = 20
TERMS = {"investment_amount": 2_500_000, "valuation_cap": 800_000_000, "discount_rate": 0.2}


@pytest.fixture
def unlocked_project(session, seed_project):
    project = seed_project(developer_id=DEVELOPER_ID)
    ledger.purchase(session, INVESTOR_ID, 1, "pay_offer")
    unlocks.unlock(session, INVESTOR_ID, project.id)
    return project


def test_create_offer_sends_by_default(session, unlocked_project):
    offer = offers.create_offer(session, INVESTOR_ID, unlocked_project.id, TERMS)
    assert offer.status == OfferStatus.SENT
    assert offer.sent_at is not None
    assert offer.developer_id == DEVELOPER_ID
    assert offer.commission_amount == 50_000
    assert [e.type for e in list_events(session, offer_subject(offer.id))] == ["created", "sent"]


def test_draft_offer_is_sent_separately(session, unlocked_project):
    offer = offers.create_offer(session, INVESTOR_ID, unlocked_project.id, TERMS, send=False)
    assert offer.status == OfferStatus.DRAFT
    with pytest.raises(RoleMismatch):
        offers.send_offer(session, offer.id, DEVELOPER_ID)
    sent = offers.send_offer(session, offer.id, INVESTOR_ID)
    assert sent.status == OfferStatus.SENT
    assert sent.version == 2


def test_offer_requires_unlock_and_live_project(session, seed_project):
    project = seed_project(developer_id=DEVELOPER_ID)
    with pytest.raises(NotUnlocked):
        offers.create_offer(session, INVESTOR_ID, project.id, TERMS)

    closed = seed_project(developer_id=DEVELOPER_ID, status="closed")
    with pytest.raises(ProjectNotLive):
        offers.create_offer(session, INVESTOR_ID, closed.id, TERMS)


def test_developer_cannot_invest_in_own_project(session, unlocked_project):
    with pytest.raises(RoleMismatch):
        offers.create_offer(session, DEVELOPER_ID, unlocked_project.id, TERMS)


@pytest.mark.parametrize(
    "terms",
    [
        {"investment_amount": 0},
        {"investment_amount": 100, "valuation_cap": -5},
        {"investment_amount": 100, "discount_rate": 1.5},
    ],
)
def test_offer_terms_are_validated(session, unlocked_project, terms):
    with pytest.raises(InvalidAmount):
        offers.create_offer(session, INVESTOR_ID, unlocked_project.id, terms)


def test_offer_below_minimum_investment(session, seed_project):
    project = seed_project(developer_id=DEVELOPER_ID, min_investment=5_000_000)
    ledger.purchase(session, INVESTOR_ID, 1, "pay_min")
    unlocks.unlock(session, INVESTOR_ID, project.id)
    with pytest.raises(InvalidAmount) as excinfo:
        offers.create_offer(session, INVESTOR_ID, project.id, TERMS)
    assert excinfo.value.context["min_investment"] == 5_000_000


def test_one_active_offer_per_pair(session, unlocked_project):
    offers.create_offer(session, INVESTOR_ID, unlocked_project.id, TERMS)
    with pytest.raises(OfferAlreadyActive):
        offers.create_offer(session, INVESTOR_ID, unlocked_project.id, TERMS)


def test_new_offer_allowed_after_cancellation(session, unlocked_project):
    first = offers.create_offer(session, INVESTOR_ID, unlocked_project.id, TERMS)
    offers.cancel_offer(session, first.id, DEVELOPER_ID, "valuation too low")
    second = offers.create_offer(session, INVESTOR_ID, unlocked_project.id, {**TERMS, "valuation_cap": 1_000_000_000})
    assert second.id != first.id
    assert second.status == OfferStatus.SENT


def test_either_signing_order_executes(session, unlocked_project):
    offer = offers.create_offer(session, INVESTOR_ID, unlocked_project.id, TERMS)
    founder_first = offers.sign_offer(session, offer.id, DEVELOPER_ID, as_role="founder", signed_name="Dana")
    assert founder_first.status == OfferStatus.SIGNED_FOUNDER
    executed = offers.sign_offer(session, offer.id, INVESTOR_ID, signed_name="Ingrid")
    assert executed.status == OfferStatus.EXECUTED
    assert executed.executed_at >= executed.developer_signed_at
    assert executed.executed_at >= executed.investor_signed_at
    assert executed.investor_signed_name == "Ingrid"

    trail = list_events(session, offer_subject(offer.id))
    assert [e.type for e in trail] == ["created", "sent", "signed", "signed", "executed"]
    assert verify_chain(trail)


def test_sign_as_role_must_match_the_offer(session, unlocked_project):
    offer = offers.create_offer(session, INVESTOR_ID, unlocked_project.id, TERMS)
    with pytest.raises(RoleMismatch):
        offers.sign_offer(session, offer.id, INVESTOR_ID, as_role="founder")
    with pytest.raises(RoleMismatch):
        offers.sign_offer(session, offer.id, 999)
    assert offers.get_offer(session, offer.id).status == OfferStatus.SENT


def test_concurrent_signature_is_re_evaluated(session, test_engine, unlocked_project, monkeypatch):
    offer = offers.create_offer(session, INVESTOR_ID, unlocked_project.id, TERMS)
    real_apply = machine.apply
    calls = {"n": 0}

    def apply_with_competing_signature(offer_, event, role, now, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            # the founder's signature lands between our read and our write
            with Session(test_engine) as other:
                other.exec(
                    update(Offer)
                    .where(Offer.id == offer_.id)
                    .values(status=OfferStatus.SIGNED_FOUNDER, developer_signed_at=now, version=Offer.version + 1)
                )
                other.commit()
        return real_apply(offer_, event, role, now, **kwargs)

    monkeypatch.setattr(machine, "apply", apply_with_competing_signature)
    result = offers.sign_offer(session, offer.id, INVESTOR_ID)

    assert calls["n"] == 2
    assert result.status == OfferStatus.EXECUTED


def test_persistent_conflict_raises_stale_offer(session, test_engine, unlocked_project, monkeypatch):
    offer = offers.create_offer(session, INVESTOR_ID, unlocked_project.id, TERMS)
    real_apply = machine.apply

    def apply_and_bump(offer_, event, role, now, **kwargs):
        changes = real_apply(offer_, event, role, now, **kwargs)
        with Session(test_engine) as other:
            other.exec(update(Offer).where(Offer.id == offer_.id).values(version=Offer.version + 1))
            other.commit()
        return changes

    monkeypatch.setattr(machine, "apply", apply_and_bump)
    with pytest.raises(StaleOffer):
        offers.sign_offer(session, offer.id, INVESTOR_ID)
    assert offers.get_offer(session, offer.id).status == OfferStatus.SENT


def _offer_setup(client, investor, make_project, admin_headers):
    project_id = make_project()
    client.post(
        "/api/purchase",
        json={"investor_id": investor["id"], "credits": 1, "payment_ref": "pi_offer"},
        headers=admin_headers,
    )
    client.post(
        "/api/unlock", json={"investor_id": investor["id"], "project_id": project_id}, headers=investor["headers"]
    )
    resp = client.post(
        "/api/offers",
        json={"investor_id": investor["id"], "project_id": project_id, "investment_amount": 2_500_000},
        headers=investor["headers"],
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_offer_lifecycle_over_http(client, investor, developer, make_project, admin_headers, sent_emails):
    offer = _offer_setup(client, investor, make_project, admin_headers)
    assert offer["status"] == "sent"
    assert sorted(m["to"] for m in sent_emails[-2:]) == sorted([investor["email"], developer["email"]])

    signed = client.post(
        f"/api/offers/{offer['id']}/sign",
        json={"actor_id": investor["id"], "as_role": "investor", "signed_name": "Ingrid Investor"},
        headers=investor["headers"],
    )
    assert signed.status_code == 200
    assert signed.json()["status"] == "signed_investor"

    twice = client.post(
        f"/api/offers/{offer['id']}/sign", json={"actor_id": investor["id"]}, headers=investor["headers"]
    )
    assert twice.status_code == 409
    assert twice.json()["error"] == "AlreadySigned"

    executed = client.post(
        f"/api/offers/{offer['id']}/sign",
        json={"actor_id": developer["id"], "as_role": "founder", "signed_name": "Dana Developer"},
        headers=developer["headers"],
    )
    assert executed.status_code == 200
    assert executed.json()["status"] == "executed"
    assert executed.json()["executed_at"]
    assert "SAFE note executed" in sent_emails[-1]["subject"]

    late_cancel = client.post(
        f"/api/offers/{offer['id']}/cancel",
        json={"actor_id": developer["id"], "reason": "changed mind"},
        headers=developer["headers"],
    )
    assert late_cancel.status_code == 409
    assert late_cancel.json()["error"] == "OfferAlreadyExecuted"

    blank_cancel = client.post(
        f"/api/offers/{offer['id']}/cancel", json={"actor_id": investor["id"]}, headers=investor["headers"]
    )
    assert blank_cancel.status_code == 409
    assert blank_cancel.json()["error"] == "OfferAlreadyExecuted"

    trail = client.get(f"/api/offers/{offer['id']}/events", headers=investor["headers"])
    assert trail.json()["verified"] is True
    assert [e["type"] for e in trail.json()["events"]] == ["created", "sent", "signed", "signed", "executed"]


def test_offer_cancellation_over_http(client, investor, developer, make_project, admin_headers, sent_emails):
    offer = _offer_setup(client, investor, make_project, admin_headers)

    no_reason = client.post(
        f"/api/offers/{offer['id']}/cancel", json={"actor_id": developer["id"]}, headers=developer["headers"]
    )
    assert no_reason.status_code == 400
    assert no_reason.json()["error"] == "MissingCancelReason"

    cancelled = client.post(
        f"/api/offers/{offer['id']}/cancel",
        json={"actor_id": developer["id"], "reason": "round is full"},
        headers=developer["headers"],
    )
    assert cancelled.status_code == 200
    body = cancelled.json()
    assert body["status"] == "cancelled"
    assert body["cancelled_by"] == developer["id"]
    assert body["cancel_reason"] == "round is full"
    assert "Reason: round is full" in sent_emails[-1]["text"]

    after = client.post(
        f"/api/offers/{offer['id']}/sign", json={"actor_id": investor["id"]}, headers=investor["headers"]
    )
    assert after.status_code == 409
    assert after.json()["error"] == "IllegalTransition"

    blank_cancel = client.post(
        f"/api/offers/{offer['id']}/cancel", json={"actor_id": investor["id"]}, headers=investor["headers"]
    )
    assert blank_cancel.status_code == 409
    assert blank_cancel.json()["error"] == "IllegalTransition"


def test_offer_access_is_limited_to_parties(client, investor, developer, make_user, make_project, admin_headers):
    offer = _offer_setup(client, investor, make_project, admin_headers)
    outsider = make_user("Oscar Other")

    peek = client.get(f"/api/offers/{offer['id']}", headers=outsider["headers"])
    assert peek.status_code == 403

    spoof = client.post(
        f"/api/offers/{offer['id']}/sign", json={"actor_id": developer["id"]}, headers=investor["headers"]
    )
    assert spoof.status_code == 403
    assert spoof.json()["error"] == "RoleMismatch"

    mine = client.get("/api/offers", headers=investor["headers"])
    assert [o["id"] for o in mine.json()] == [offer["id"]]
    incoming = client.get("/api/offers", headers=developer["headers"])
    assert [o["id"] for o in incoming.json()] == [offer["id"]]
    assert client.get("/api/offers", headers=outsider["headers"]).json() == []

    duplicate = client.post(
        "/api/offers",
        json={"investor_id": investor["id"], "project_id": offer["project_id"], "investment_amount": 1_000_000},
        headers=investor["headers"],
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "OfferAlreadyActive"


def test_offer_without_unlock_is_rejected(client, investor, make_project):
    project_id = make_project()
    resp = client.post(
        "/api/offers",
        json={"investor_id": investor["id"], "project_id": project_id, "investment_amount": 1_000_000},
        headers=investor["headers"],
    )
    assert resp.status_code == 412
    assert resp.json()["error"] == "NotUnlocked"
