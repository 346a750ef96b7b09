import logging
from datetime import datetime, timezone

from deal_engine import notifications
from deal_engine.models import Offer


def test_dispatch_keeps_going_after_a_failed_delivery(monkeypatch, caplog):
    delivered = []

    def flaky_send(to, subject, body, html_body=None):
        if to == "down@example.com":
            raise ConnectionError("smtp unavailable")
        delivered.append(to)

    monkeypatch.setattr(notifications, "send_email", flaky_send)
    with caplog.at_level(logging.ERROR, logger="deal_engine.notifications"):
        notifications.dispatch(["down@example.com", "up@example.com"], "Offer update", "body")

    assert delivered == ["up@example.com"]
    assert "down@example.com" in caplog.text


def test_offer_message_mentions_amount_and_execution():
    offer = Offer(
        id=12,
        project_id=1,
        investor_id=2,
        developer_id=3,
        investment_amount=2_500_000,
        status="executed",
        executed_at=datetime(2024, 5, 1, 9, 0, 0, tzinfo=timezone.utc),
    )
    subject, text_body, html_body = notifications.offer_message(offer)
    assert subject == "SAFE note executed: $25,000.00 (offer #12)"
    assert "Executed at: 2024-05-01 09:00 UTC" in text_body
    assert "/offers/12" in html_body


def test_access_message():
    subject, body = notifications.access_message("Acme Robotics", "project unlock")
    assert "Acme Robotics" in subject
    assert body.startswith("Your project unlock for Acme Robotics")


def test_email_message_headers():
    from deal_engine.email import build_message

    msg = build_message(
        "ingrid@example.com",
        "Offer update",
        "plain body",
        html_body="<p>html body</p>",
        sender_name="Dana via AngelVault",
        reply_to="dana@example.com",
    )
    assert msg["To"] == "ingrid@example.com"
    assert msg["Reply-To"] == "dana@example.com"
    assert msg["From"].startswith("Dana via AngelVault")
    assert msg.is_multipart()
