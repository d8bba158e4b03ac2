"""Order status workflow shared by customers, restaurants and delivery partners."""
import enum
from datetime import datetime
from typing import Dict, Optional
from flashbites.errors import APIError
from flashbites.services.pricing import money


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    COD = "cod"
    CARD = "card"
    UPI = "upi"


class Role(str, enum.Enum):
    USER = "user"
    RESTAURANT_OWNER = "restaurant_owner"
    DELIVERY_PARTNER = "delivery_partner"
    ADMIN = "admin"


STATUS_VALUES = [s.value for s in OrderStatus]
PAYMENT_METHODS = [m.value for m in PaymentMethod]

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

# Statuses each role may move an order into through the status endpoint
ROLE_TARGETS = {
    Role.RESTAURANT_OWNER: {OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.CANCELLED},
    Role.DELIVERY_PARTNER: {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED},
    Role.ADMIN: set(OrderStatus),
}

# Orders a delivery partner can still pick up
ASSIGNABLE_STATUSES = (OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY)
ACTIVE_DELIVERY_STATUSES = (OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY,
                            OrderStatus.OUT_FOR_DELIVERY)

CANCELLATION_RULES = {
    OrderStatus.PENDING: {'allowed': True, 'fee': 0, 'message': 'Free cancellation'},
    OrderStatus.CONFIRMED: {
        'allowed': True,
        'fee': 0,
        'time_limit': True,
        'message': 'Free cancellation within {seconds} seconds of confirmation'
    },
    OrderStatus.PREPARING: {
        'allowed': False,
        'fee': 100,
        'message': 'Order is being prepared and cannot be cancelled. Please contact restaurant.'
    },
    OrderStatus.READY: {'allowed': False, 'fee': 100, 'message': 'Order is ready and cannot be cancelled.'},
    OrderStatus.OUT_FOR_DELIVERY: {
        'allowed': False,
        'fee': 100,
        'message': 'Order is out for delivery and cannot be cancelled.'
    },
    OrderStatus.DELIVERED: {'allowed': False, 'fee': 100, 'message': 'Order is already delivered.'},
}

CANCELLATION_REASONS = [
    {'value': 'changed_mind', 'label': 'Changed my mind'},
    {'value': 'ordered_by_mistake', 'label': 'Ordered by mistake'},
    {'value': 'delivery_time_too_long', 'label': 'Delivery time is too long'},
    {'value': 'found_better_price', 'label': 'Found better price elsewhere'},
    {'value': 'address_not_serviceable', 'label': 'Address not serviceable'},
    {'value': 'want_to_change_order', 'label': 'Want to modify order items'},
    {'value': 'payment_issue', 'label': 'Payment issue'},
    {'value': 'other', 'label': 'Other reason'},
]

# Customer facing name of each status in notifications
NOTIFICATION_STATUS = {
    OrderStatus.CONFIRMED: 'confirmed',
    OrderStatus.PREPARING: 'preparing',
    OrderStatus.READY: 'ready',
    OrderStatus.OUT_FOR_DELIVERY: 'picked_up',
    OrderStatus.DELIVERED: 'delivered',
    OrderStatus.CANCELLED: 'cancelled',
}


def parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise APIError('Invalid order status')


def can_transition(current, target) -> bool:
    return OrderStatus(target) in ALLOWED_TRANSITIONS[OrderStatus(current)]


def check_transition(current, target, role=None) -> None:
    """Raise APIError if ``role`` may not move an order from ``current`` to ``target``"""
    current, target = OrderStatus(current), OrderStatus(target)

    if role is not None and target not in ROLE_TARGETS.get(Role(role), set()):
        raise APIError(f'Role {Role(role).value} cannot set status {target.value}', 403)

    if not can_transition(current, target):
        raise APIError(f'Cannot change order status from {current.value} to {target.value}')

    if (role is not None and Role(role) == Role.RESTAURANT_OWNER
            and target == OrderStatus.CANCELLED and current == OrderStatus.OUT_FOR_DELIVERY):
        raise APIError('Order is out for delivery and can no longer be cancelled by the restaurant')


def check_cancellation_eligibility(order, now: Optional[datetime] = None,
                                   time_limit_seconds: int = 60) -> Dict:
    """Customer cancellation policy.

    Returns ``{'allowed', 'fee', 'reason'}`` where ``fee`` is an amount when
    allowed and a percentage of the total otherwise.
    """
    now = now or datetime.utcnow()
    try:
        status = OrderStatus(order.status)
    except ValueError:
        return {'allowed': False, 'fee': 0, 'reason': 'Invalid order status'}

    rule = CANCELLATION_RULES.get(status)
    if not rule:
        return {'allowed': False, 'fee': 0, 'reason': 'Invalid order status'}

    if not rule['allowed']:
        return {'allowed': False, 'fee': rule['fee'], 'reason': rule['message']}

    if rule.get('time_limit'):
        confirmed_at = order.confirmed_at or order.updated_at or now
        elapsed = (now - confirmed_at).total_seconds()
        if elapsed > time_limit_seconds:
            return {
                'allowed': False,
                'fee': 100,
                'reason': (f'Cancellation window expired. Free cancellation is only available within '
                           f'{time_limit_seconds} seconds of confirmation.')
            }

    return {
        'allowed': True,
        'fee': money((order.total or 0) * rule['fee'] / 100),
        'reason': rule['message'].format(seconds=time_limit_seconds)
    }


def apply_transition(order, target, now: Optional[datetime] = None, reason: Optional[str] = None,
                     commission_rate: float = 10.0) -> None:
    """Set the new status and its bookkeeping fields on ``order``.

    Validation is the caller's job (see ``check_transition``).
    """
    now = now or datetime.utcnow()
    target = OrderStatus(target)
    order.status = target.value

    if target == OrderStatus.CONFIRMED:
        order.confirmed_at = now

    elif target == OrderStatus.DELIVERED:
        order.delivered_at = now
        order.payment_status = PaymentStatus.COMPLETED.value
        restaurant = order.restaurant
        if restaurant is not None:
            rate = restaurant.commission_rate if restaurant.commission_rate is not None else commission_rate
            earning = order.total - order.total * rate / 100
            restaurant.total_earnings = money((restaurant.total_earnings or 0) + earning)
            restaurant.total_orders = (restaurant.total_orders or 0) + 1

    elif target == OrderStatus.CANCELLED:
        order.cancelled_at = now
        order.cancellation_reason = reason or 'Cancelled'
        order.cancellation_fee = order.cancellation_fee or 0.0
        order.refund_amount = money(order.total - order.cancellation_fee)
        if order.payment_status == PaymentStatus.COMPLETED.value and order.refund_amount > 0:
            order.payment_status = PaymentStatus.REFUNDED.value
