from datetime import timedelta

import pytest

from cleandispatch.errors import Forbidden, InvalidTransition
from cleandispatch.models import Order, OrderStatus, Payment, PaymentStatus, Tip, utcnow
from cleandispatch.services.state_machine import OrderStateMachine, can_transition

machine = OrderStateMachine(grace_minutes=5)


def _order(status="IN_PROGRESS", method="QRIS", paid=True, tip=True, scheduled_minutes_ago=10, worker=7):
    order = Order(
        id=1,
        order_number=1,
        status=status,
        assigned_worker_id=worker,
        scheduled_time=utcnow() - timedelta(minutes=scheduled_minutes_ago),
    )
    order.payment = Payment(
        id=1, method=method, amount=100000, status=PaymentStatus.PAID.value if paid else PaymentStatus.PENDING.value
    )
    if tip:
        order.tip = Tip(amount=0)
    return order


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        ("PENDING", "PROCESSING", True),
        ("PENDING", "CANCELLED", True),
        ("PROCESSING", "IN_PROGRESS", True),
        ("PROCESSING", "CANCELLED", True),
        ("IN_PROGRESS", "COMPLETED", True),
        ("IN_PROGRESS", "CANCELLED", False),
        ("COMPLETED", "CANCELLED", False),
        ("CANCELLED", "PENDING", False),
        ("PENDING", "COMPLETED", False),
    ],
)
def test_transition_table(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_assign_moves_pending_order_in_progress():
    order = _order(status="PENDING", worker=None)

    assert machine.assign(order, 42) is True
    assert order.status == OrderStatus.IN_PROGRESS.value
    assert order.assigned_worker_id == 42


def test_assigning_same_worker_again_is_a_no_op():
    order = _order(status="IN_PROGRESS", worker=42)

    assert machine.assign(order, 42) is False
    assert order.status == OrderStatus.IN_PROGRESS.value


@pytest.mark.parametrize("status", ["COMPLETED", "CANCELLED"])
def test_finished_orders_cannot_be_assigned(status):
    order = _order(status=status)

    with pytest.raises(InvalidTransition) as exc_info:
        machine.assign(order, 42)

    assert exc_info.value.current == status
    assert exc_info.value.requested == "IN_PROGRESS"


def test_confirm_requires_the_assigned_worker():
    order = _order(status="PROCESSING", worker=7)

    with pytest.raises(Forbidden):
        machine.confirm(order, 8)

    assert machine.confirm(order, 7) is True
    assert order.status == OrderStatus.IN_PROGRESS.value


def test_confirm_without_assignment_is_rejected():
    order = _order(status="PROCESSING", worker=None)

    with pytest.raises(InvalidTransition):
        machine.confirm(order, 7)


def test_processing_requires_paid_payment():
    order = _order(status="PENDING", paid=False)

    with pytest.raises(InvalidTransition):
        machine.mark_processing(order)

    order.payment.status = PaymentStatus.PAID.value
    assert machine.mark_processing(order) is True
    assert order.status == OrderStatus.PROCESSING.value


def test_completion_inside_grace_period_is_rejected():
    order = _order(scheduled_minutes_ago=3)

    with pytest.raises(InvalidTransition):
        machine.complete(order)

    assert order.status == OrderStatus.IN_PROGRESS.value


def test_completion_of_unpaid_non_cash_order_is_rejected():
    order = _order(paid=False)

    with pytest.raises(InvalidTransition):
        machine.complete(order)

    assert order.status == OrderStatus.IN_PROGRESS.value
    assert order.payment.status == PaymentStatus.PENDING.value


def test_completion_requires_tip_record():
    order = _order(tip=False)

    with pytest.raises(InvalidTransition):
        machine.complete(order)


def test_cash_order_is_settled_on_completion():
    order = _order(method="CASH", paid=False)

    machine.complete(order)

    assert order.status == OrderStatus.COMPLETED.value
    assert order.payment.status == PaymentStatus.PAID.value


def test_grace_boundary_is_inclusive():
    order = _order()
    now = order.scheduled_time + timedelta(minutes=5)

    machine.complete(order, now=now)

    assert order.status == OrderStatus.COMPLETED.value


@pytest.mark.parametrize("status", ["IN_PROGRESS", "COMPLETED", "CANCELLED"])
def test_cancel_only_before_work_starts(status):
    with pytest.raises(InvalidTransition):
        machine.cancel(_order(status=status))


def test_after_photos_need_in_progress_order():
    with pytest.raises(InvalidTransition):
        machine.ensure_after_photos_allowed(_order(status="PROCESSING"))

    machine.ensure_after_photos_allowed(_order(status="IN_PROGRESS"))
