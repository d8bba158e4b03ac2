from datetime import datetime
from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from flashbites import db
from flashbites.errors import APIError, Forbidden, NotFound
from flashbites.models.models import Order, Restaurant
from flashbites.security import current_user, role_required
from flashbites.services.order_lifecycle import CANCELLATION_REASONS, STATUS_VALUES
from flashbites.services.order_service import OrderService

orders_bp = Blueprint('orders', __name__)

order_service = OrderService()

def _order_payload(order, user):
    """Only the customer ever sees the delivery OTP"""
    return order.to_dict(include_otp=order.user_id == user.id)

def _parse_date(value, name):
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise APIError(f'Invalid {name} date')

@orders_bp.route('/api/orders/quote', methods=['POST'])
@role_required('user')
def quote_order():
    """Price a cart without placing the order"""
    user = current_user()
    quote = order_service.quote(user, request.get_json() or {})
    return jsonify({'success': True, 'quote': quote})

@orders_bp.route('/api/orders', methods=['POST'])
@role_required('user')
def create_order():
    """Place an order"""
    user = current_user()
    order, created = order_service.create_order(user, request.get_json() or {})

    if not created:
        return jsonify({
            'success': True,
            'message': 'Order already placed',
            'duplicate': True,
            'order': _order_payload(order, user)
        }), 200

    return jsonify({
        'success': True,
        'message': 'Order placed successfully',
        'order': _order_payload(order, user)
    }), 201

@orders_bp.route('/api/orders/my-orders', methods=['GET'])
@jwt_required()
def get_my_orders():
    """Orders placed by the current user, newest first"""
    user = current_user()
    query = Order.query.filter_by(user_id=user.id)
    status = request.args.get('status')
    if status:
        query = query.filter_by(status=status)
    page = query.order_by(Order.created_at.desc()).paginate(error_out=False, max_per_page=100)

    return jsonify({
        'success': True,
        'page': page.page,
        'total': page.total,
        'pages': page.pages,
        'orders': [_order_payload(o, user) for o in page.items]
    })

@orders_bp.route('/api/orders/cancellation-reasons', methods=['GET'])
def get_cancellation_reasons():
    return jsonify({'success': True, 'reasons': CANCELLATION_REASONS})

@orders_bp.route('/api/orders/<int:order_id>', methods=['GET'])
@jwt_required()
def get_order(order_id):
    """Get a single order"""
    user = current_user()
    order = order_service.get_visible_order(order_id, user)
    return jsonify({'success': True, 'order': _order_payload(order, user)})

@orders_bp.route('/api/orders/<int:order_id>/tracking', methods=['GET'])
@jwt_required()
def get_order_tracking(order_id):
    """Live tracking data for an order"""
    user = current_user()
    order = order_service.get_visible_order(order_id, user)
    return jsonify({'success': True, 'tracking': order_service.tracking_data(order)})

@orders_bp.route('/api/orders/<int:order_id>/status', methods=['PATCH'])
@role_required('restaurant_owner', 'admin')
def update_order_status(order_id):
    """Move an order along its lifecycle"""
    user = current_user()
    data = request.get_json() or {}
    if not data.get('status'):
        raise APIError('Status is required')

    order = order_service.get_order(order_id)
    order_service.update_status(order, user, data['status'], reason=data.get('reason'))

    return jsonify({
        'success': True,
        'message': f'Order status updated to {order.status}',
        'order': _order_payload(order, user)
    })

@orders_bp.route('/api/orders/<int:order_id>/cancellation', methods=['GET'])
@role_required('user')
def check_cancellation(order_id):
    """Whether the customer can still cancel, and at what fee"""
    user = current_user()
    order = order_service.get_order(order_id)
    if order.user_id != user.id:
        raise Forbidden('Not authorized')

    eligibility = order_service.cancellation_eligibility(order)
    return jsonify({
        'success': True,
        'can_cancel': eligibility['allowed'],
        'fee': eligibility['fee'],
        'reason': eligibility['reason'],
        'status': order.status
    })

@orders_bp.route('/api/orders/<int:order_id>/cancel', methods=['PATCH'])
@role_required('user')
def cancel_order(order_id):
    """Customer cancellation"""
    user = current_user()
    data = request.get_json(silent=True) or {}
    order = order_service.get_order(order_id)
    order_service.cancel_by_customer(order, user, reason=data.get('reason'))

    return jsonify({
        'success': True,
        'message': 'Order cancelled successfully',
        'refund_amount': order.refund_amount,
        'cancellation_fee': order.cancellation_fee,
        'order': _order_payload(order, user)
    })

@orders_bp.route('/api/orders/restaurant/<int:restaurant_id>', methods=['GET'])
@role_required('restaurant_owner', 'admin')
def get_restaurant_orders(restaurant_id):
    """Orders received by a restaurant, filterable by status and date range"""
    user = current_user()
    restaurant = db.session.get(Restaurant, restaurant_id)
    if not restaurant:
        raise NotFound('Restaurant not found')
    if user.role != 'admin' and restaurant.owner_id != user.id:
        raise Forbidden('Not authorized to view these orders')

    query = Order.query.filter_by(restaurant_id=restaurant.id)
    status = request.args.get('status')
    if status:
        if status not in STATUS_VALUES:
            raise APIError('Invalid order status')
        query = query.filter_by(status=status)
    if request.args.get('from'):
        query = query.filter(Order.created_at >= _parse_date(request.args['from'], 'from'))
    if request.args.get('to'):
        query = query.filter(Order.created_at <= _parse_date(request.args['to'], 'to'))

    orders = query.order_by(Order.created_at.desc()).all()
    return jsonify({
        'success': True,
        'count': len(orders),
        'orders': [o.to_dict() for o in orders]
    })
