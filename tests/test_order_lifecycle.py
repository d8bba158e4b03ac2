from datetime import datetime, timedelta
from types import SimpleNamespace
import pytest
from flashbites.errors import APIError
from flashbites.services.order_lifecycle import (
    OrderStatus, apply_transition, can_transition, check_cancellation_eligibility, check_transition,
    parse_status
)

NOW = datetime(2026, 5, 1, 12, 0, 0)


def make_order(status='pending', total=300.0, **fields):
    defaults = dict(
        status=status,
        total=total,
        confirmed_at=None,
        updated_at=None,
        delivered_at=None,
        cancelled_at=None,
        cancellation_reason=None,
        cancellation_fee=0.0,
        refund_amount=0.0,
        payment_status='pending',
        restaurant=None
    )
    defaults.update(fields)
    return SimpleNamespace(**defaults)


@pytest.mark.parametrize('current,target', [
    ('pending', 'confirmed'),
    ('pending', 'cancelled'),
    ('confirmed', 'preparing'),
    ('confirmed', 'out_for_delivery'),
    ('preparing', 'ready'),
    ('ready', 'out_for_delivery'),
    ('out_for_delivery', 'delivered'),
])
def test_allowed_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize('current,target', [
    ('pending', 'delivered'),
    ('preparing', 'confirmed'),
    ('delivered', 'cancelled'),
    ('cancelled', 'confirmed'),
    ('ready', 'preparing'),
])
def test_rejected_transitions(current, target):
    assert not can_transition(current, target)
    with pytest.raises(APIError) as exc:
        check_transition(current, target)
    assert exc.value.status_code == 400


def test_parse_status_rejects_unknown_value():
    assert parse_status('ready') is OrderStatus.READY
    with pytest.raises(APIError):
        parse_status('teleported')


def test_restaurant_cannot_deliver():
    with pytest.raises(APIError) as exc:
        check_transition('out_for_delivery', 'delivered', 'restaurant_owner')
    assert exc.value.status_code == 403


def test_restaurant_cannot_cancel_order_on_the_road():
    with pytest.raises(APIError) as exc:
        check_transition('out_for_delivery', 'cancelled', 'restaurant_owner')
    assert exc.value.status_code == 400
    check_transition('out_for_delivery', 'cancelled', 'admin')


def test_pending_order_cancels_for_free():
    result = check_cancellation_eligibility(make_order('pending'), NOW)
    assert result['allowed'] and result['fee'] == 0


def test_confirmed_order_cancels_for_free_inside_window():
    order = make_order('confirmed', confirmed_at=NOW - timedelta(seconds=59))
    assert check_cancellation_eligibility(order, NOW)['allowed']


def test_confirmed_order_window_expires():
    order = make_order('confirmed', confirmed_at=NOW - timedelta(seconds=61))
    result = check_cancellation_eligibility(order, NOW)
    assert not result['allowed']
    assert result['fee'] == 100
    assert '60 seconds' in result['reason']


def test_confirmed_window_falls_back_to_updated_at():
    order = make_order('confirmed', updated_at=NOW - timedelta(minutes=5))
    assert not check_cancellation_eligibility(order, NOW)['allowed']


@pytest.mark.parametrize('status', ['preparing', 'ready', 'out_for_delivery', 'delivered'])
def test_late_statuses_cannot_be_cancelled(status):
    result = check_cancellation_eligibility(make_order(status), NOW)
    assert result == {'allowed': False, 'fee': 100, 'reason': result['reason']}
    assert result['reason']


def test_delivered_transition_completes_payment_and_credits_restaurant():
    restaurant = SimpleNamespace(commission_rate=None, total_earnings=0.0, total_orders=0)
    order = make_order('out_for_delivery', total=500.0, restaurant=restaurant)
    apply_transition(order, 'delivered', now=NOW, commission_rate=10)

    assert order.status == 'delivered'
    assert order.delivered_at == NOW
    assert order.payment_status == 'completed'
    assert restaurant.total_earnings == 450.0
    assert restaurant.total_orders == 1


def test_restaurant_commission_overrides_default():
    restaurant = SimpleNamespace(commission_rate=20, total_earnings=100.0, total_orders=3)
    order = make_order('out_for_delivery', total=200.0, restaurant=restaurant)
    apply_transition(order, 'delivered', now=NOW, commission_rate=10)
    assert restaurant.total_earnings == 260.0


def test_cancellation_refunds_total_minus_fee():
    order = make_order('confirmed', total=280.0, cancellation_fee=30.0, payment_status='completed')
    apply_transition(order, 'cancelled', now=NOW, reason='Changed my mind')

    assert order.cancelled_at == NOW
    assert order.cancellation_reason == 'Changed my mind'
    assert order.refund_amount == 250.0
    assert order.payment_status == 'refunded'


def test_confirmation_is_stamped():
    order = make_order('pending')
    apply_transition(order, 'confirmed', now=NOW)
    assert order.confirmed_at == NOW
