import pytest

from cleandispatch.models import Notification, Order, OrderStatus, Payment, PaymentStatus
from cleandispatch.services.payment_reconciler import PaymentReconciler, WebhookOutcome, maps_to_paid

from _helper import SERVER_KEY, RecordingNotifier, make_order, make_package, make_user, midtrans_payload

GATEWAY_ORDER_ID = "CLEANDISPATCH-1-1718000000000"


@pytest.fixture
def reconciler(db, gateway, notifier):
    return PaymentReconciler(db, gateway, notifier, server_key=SERVER_KEY, verify_with_status_api=True)


@pytest.fixture
def pending_order(db):
    order = make_order(db, make_user(db), make_package(db), method="QRIS", gateway_order_id=GATEWAY_ORDER_ID)
    db.commit()
    return order.id


def _state(db, order_id):
    db.expire_all()
    order = db.get(Order, order_id)
    return order.status, order.payment.status


@pytest.mark.parametrize(
    "transaction_status, fraud_status, expected",
    [
        ("settlement", None, True),
        ("capture", "accept", True),
        ("capture", "challenge", False),
        ("pending", None, False),
        ("deny", None, False),
        ("expire", None, False),
        ("cancel", None, False),
    ],
)
def test_status_mapping(transaction_status, fraud_status, expected):
    assert maps_to_paid(transaction_status, fraud_status) is expected


async def test_settlement_marks_paid_exactly_once(db, gateway, notifier, reconciler, pending_order):
    gateway.settle(GATEWAY_ORDER_ID, "100000.00")
    payload = midtrans_payload(GATEWAY_ORDER_ID, "100000.00")

    first = await reconciler.handle_webhook(payload)
    second = await reconciler.handle_webhook(dict(payload))

    assert first == WebhookOutcome.PAID
    assert second == WebhookOutcome.ALREADY_PAID
    assert _state(db, pending_order) == (OrderStatus.PROCESSING.value, PaymentStatus.PAID.value)
    assert db.query(Notification).filter(Notification.order_id == pending_order).count() == 1
    assert len(notifier.sent) == 1
    assert notifier.sent[0][1] == "Payment Successful"


async def test_tampered_signature_is_rejected(db, gateway, reconciler, pending_order):
    gateway.settle(GATEWAY_ORDER_ID, "100000.00")
    payload = midtrans_payload(GATEWAY_ORDER_ID, "100000.00")
    payload["signature_key"] = "0" * 128

    assert await reconciler.handle_webhook(payload) == WebhookOutcome.REJECTED
    assert _state(db, pending_order) == (OrderStatus.PENDING.value, PaymentStatus.PENDING.value)


async def test_amount_changed_after_signing_is_rejected(db, gateway, reconciler, pending_order):
    gateway.settle(GATEWAY_ORDER_ID, "100000.00")
    payload = midtrans_payload(GATEWAY_ORDER_ID, "100000.00")
    payload["gross_amount"] = "1000.00"

    assert await reconciler.handle_webhook(payload) == WebhookOutcome.REJECTED
    assert _state(db, pending_order) == (OrderStatus.PENDING.value, PaymentStatus.PENDING.value)


async def test_status_api_disagreement_is_rejected(db, gateway, reconciler, pending_order):
    gateway.settle(GATEWAY_ORDER_ID, "5000.00")

    outcome = await reconciler.handle_webhook(midtrans_payload(GATEWAY_ORDER_ID, "100000.00"))

    assert outcome == WebhookOutcome.REJECTED
    assert _state(db, pending_order) == (OrderStatus.PENDING.value, PaymentStatus.PENDING.value)


async def test_payment_amount_mismatch_is_rejected(db, gateway, reconciler, pending_order):
    gateway.settle(GATEWAY_ORDER_ID, "90000.00")

    outcome = await reconciler.handle_webhook(midtrans_payload(GATEWAY_ORDER_ID, "90000.00"))

    assert outcome == WebhookOutcome.REJECTED
    assert _state(db, pending_order)[1] == PaymentStatus.PENDING.value


async def test_unreachable_status_api_rejects(db, gateway, reconciler, pending_order):
    gateway.unavailable = True

    outcome = await reconciler.handle_webhook(midtrans_payload(GATEWAY_ORDER_ID, "100000.00"))

    assert outcome == WebhookOutcome.REJECTED
    assert _state(db, pending_order)[1] == PaymentStatus.PENDING.value


async def test_authoritative_pending_status_changes_nothing(db, gateway, reconciler, pending_order):
    gateway.settle(GATEWAY_ORDER_ID, "100000.00", transaction_status="pending", status_code="201")

    outcome = await reconciler.handle_webhook(
        midtrans_payload(GATEWAY_ORDER_ID, "100000.00", transaction_status="pending", status_code="201")
    )

    assert outcome == WebhookOutcome.NO_CHANGE
    assert _state(db, pending_order) == (OrderStatus.PENDING.value, PaymentStatus.PENDING.value)


@pytest.mark.parametrize(
    "fraud_status, outcome, payment_status",
    [
        ("accept", WebhookOutcome.PAID, PaymentStatus.PAID.value),
        ("challenge", WebhookOutcome.NO_CHANGE, PaymentStatus.PENDING.value),
    ],
)
async def test_card_capture_depends_on_fraud_status(
    db, gateway, reconciler, pending_order, fraud_status, outcome, payment_status
):
    gateway.settle(GATEWAY_ORDER_ID, "100000.00", transaction_status="capture", fraud_status=fraud_status)
    payload = midtrans_payload(GATEWAY_ORDER_ID, "100000.00", transaction_status="capture", fraud_status=fraud_status)

    assert await reconciler.handle_webhook(payload) == outcome
    assert _state(db, pending_order)[1] == payment_status


async def test_signature_only_mode_trusts_payload_status(db, gateway, notifier, pending_order):
    reconciler = PaymentReconciler(db, gateway, notifier, server_key=SERVER_KEY, verify_with_status_api=False)

    outcome = await reconciler.handle_webhook(midtrans_payload(GATEWAY_ORDER_ID, "100000.00"))

    assert outcome == WebhookOutcome.PAID
    assert _state(db, pending_order) == (OrderStatus.PROCESSING.value, PaymentStatus.PAID.value)


@pytest.mark.parametrize("payload", [None, [], "settlement", {"order_id": GATEWAY_ORDER_ID}])
async def test_malformed_payloads_are_ignored(db, reconciler, pending_order, payload):
    assert await reconciler.handle_webhook(payload) == WebhookOutcome.IGNORED_MISSING_FIELDS
    assert _state(db, pending_order)[1] == PaymentStatus.PENDING.value


async def test_unknown_gateway_order_is_ignored(gateway, reconciler, pending_order):
    gateway.settle("CLEANDISPATCH-999-1", "100000.00")

    outcome = await reconciler.handle_webhook(midtrans_payload("CLEANDISPATCH-999-1", "100000.00"))

    assert outcome == WebhookOutcome.IGNORED_UNKNOWN_PAYMENT


async def test_cash_payment_cannot_be_settled_by_gateway(db, gateway, reconciler):
    order = make_order(db, make_user(db), make_package(db), method="CASH", gateway_order_id=GATEWAY_ORDER_ID)
    db.commit()
    order_id = order.id
    gateway.settle(GATEWAY_ORDER_ID, "100000.00")

    outcome = await reconciler.handle_webhook(midtrans_payload(GATEWAY_ORDER_ID, "100000.00"))

    assert outcome == WebhookOutcome.IGNORED_CASH
    assert _state(db, order_id) == (OrderStatus.PENDING.value, PaymentStatus.PENDING.value)


async def test_payment_after_cancellation_leaves_order_cancelled(db, gateway, reconciler):
    order = make_order(
        db,
        make_user(db),
        make_package(db),
        status=OrderStatus.CANCELLED.value,
        gateway_order_id=GATEWAY_ORDER_ID,
    )
    db.commit()
    order_id = order.id
    gateway.settle(GATEWAY_ORDER_ID, "100000.00")

    outcome = await reconciler.handle_webhook(midtrans_payload(GATEWAY_ORDER_ID, "100000.00"))

    assert outcome == WebhookOutcome.PAID
    assert _state(db, order_id) == (OrderStatus.CANCELLED.value, PaymentStatus.PAID.value)


async def test_failed_push_does_not_undo_payment(db, gateway, pending_order):
    reconciler = PaymentReconciler(
        db, gateway, RecordingNotifier(fail=True), server_key=SERVER_KEY, verify_with_status_api=True
    )
    gateway.settle(GATEWAY_ORDER_ID, "100000.00")

    outcome = await reconciler.handle_webhook(midtrans_payload(GATEWAY_ORDER_ID, "100000.00"))

    assert outcome == WebhookOutcome.PAID
    assert db.query(Payment).filter(Payment.gateway_order_id == GATEWAY_ORDER_ID).one().status == "PAID"
