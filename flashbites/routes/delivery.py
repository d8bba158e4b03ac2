from datetime import datetime, timedelta
from flask import Blueprint, request, jsonify
from sqlalchemy import func
from flashbites import db
from flashbites.models.models import Order
from flashbites.security import current_user, role_required
from flashbites.services.order_lifecycle import ACTIVE_DELIVERY_STATUSES, ASSIGNABLE_STATUSES, OrderStatus
from flashbites.services.order_service import OrderService

delivery_bp = Blueprint('delivery', __name__)

order_service = OrderService()

def _values(statuses):
    return [s.value for s in statuses]

@delivery_bp.route('/api/delivery/orders/available', methods=['GET'])
@role_required('delivery_partner')
def get_available_orders():
    """Unassigned orders a partner can accept"""
    orders = (Order.query
              .filter(Order.delivery_partner_id.is_(None), Order.status.in_(_values(ASSIGNABLE_STATUSES)))
              .order_by(Order.created_at.desc())
              .limit(50)
              .all())
    return jsonify({
        'success': True,
        'count': len(orders),
        'orders': [o.to_dict() for o in orders]
    })

@delivery_bp.route('/api/delivery/orders/assigned', methods=['GET'])
@role_required('delivery_partner')
def get_assigned_orders():
    """Active orders assigned to the current partner"""
    partner = current_user()
    orders = (Order.query
              .filter(Order.delivery_partner_id == partner.id,
                      Order.status.in_(_values(ACTIVE_DELIVERY_STATUSES)))
              .order_by(Order.created_at)
              .all())
    return jsonify({
        'success': True,
        'count': len(orders),
        'orders': [o.to_dict() for o in orders]
    })

@delivery_bp.route('/api/delivery/orders/<int:order_id>/accept', methods=['POST'])
@role_required('delivery_partner')
def accept_order(order_id):
    """Take an order for delivery"""
    partner = current_user()
    order = order_service.get_order(order_id)
    order_service.accept_delivery(order, partner)
    return jsonify({
        'success': True,
        'message': 'Order accepted successfully',
        'order': order.to_dict()
    })

@delivery_bp.route('/api/delivery/orders/<int:order_id>/pickup', methods=['POST'])
@role_required('delivery_partner')
def pickup_order(order_id):
    """Collect a ready order from the restaurant"""
    partner = current_user()
    order = order_service.get_order(order_id)
    order_service.pickup(order, partner)
    return jsonify({
        'success': True,
        'message': 'Order picked up',
        'order': order.to_dict()
    })

@delivery_bp.route('/api/delivery/orders/<int:order_id>/deliver', methods=['POST'])
@role_required('delivery_partner')
def deliver_order(order_id):
    """Hand the order over; the customer's OTP is required"""
    partner = current_user()
    data = request.get_json(silent=True) or {}
    order = order_service.get_order(order_id)
    order_service.mark_delivered(order, partner, data.get('otp'))
    return jsonify({
        'success': True,
        'message': 'Order delivered successfully',
        'order': order.to_dict()
    })

@delivery_bp.route('/api/delivery/orders/history', methods=['GET'])
@role_required('delivery_partner')
def get_delivery_history():
    """Finished deliveries of the current partner"""
    partner = current_user()
    page = (Order.query
            .filter(Order.delivery_partner_id == partner.id,
                    Order.status.in_([OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value]))
            .order_by(Order.updated_at.desc())
            .paginate(error_out=False, max_per_page=100))
    return jsonify({
        'success': True,
        'page': page.page,
        'total': page.total,
        'pages': page.pages,
        'orders': [o.to_dict() for o in page.items]
    })

@delivery_bp.route('/api/delivery/stats', methods=['GET'])
@role_required('delivery_partner')
def get_delivery_stats():
    """Delivery counts and fees collected by the current partner"""
    partner = current_user()
    delivered = Order.query.filter_by(delivery_partner_id=partner.id, status=OrderStatus.DELIVERED.value)
    today_start = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)

    earnings = db.session.query(func.coalesce(func.sum(Order.delivery_fee), 0.0)).filter(
        Order.delivery_partner_id == partner.id,
        Order.status == OrderStatus.DELIVERED.value
    ).scalar()
    active = Order.query.filter(
        Order.delivery_partner_id == partner.id,
        Order.status.in_(_values(ACTIVE_DELIVERY_STATUSES))
    ).count()

    return jsonify({
        'success': True,
        'stats': {
            'total_deliveries': delivered.count(),
            'today_deliveries': delivered.filter(Order.delivered_at >= today_start).count(),
            'week_deliveries': delivered.filter(Order.delivered_at >= today_start - timedelta(days=6)).count(),
            'active_orders': active,
            'total_earnings': round(earnings, 2)
        }
    })

@delivery_bp.route('/api/delivery/location', methods=['PUT'])
@role_required('delivery_partner')
def update_location():
    """Report the partner's position, optionally for an order in transit"""
    partner = current_user()
    data = request.get_json() or {}
    order = order_service.update_partner_location(
        partner, data.get('latitude'), data.get('longitude'), order_id=data.get('order_id')
    )
    return jsonify({
        'success': True,
        'message': 'Location updated',
        'order_id': order.id if order else None
    })
