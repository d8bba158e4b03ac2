from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required
from flashbites import db
from flashbites.errors import APIError, NotFound
from flashbites.models.models import Coupon
from flashbites.security import role_required
from flashbites.services.coupons import CouponService

coupons_bp = Blueprint('coupons', __name__)

coupon_service = CouponService()

def _order_value(value):
    try:
        order_value = float(value)
    except (TypeError, ValueError):
        raise APIError('Order value must be a number')
    if order_value < 0:
        raise APIError('Order value cannot be negative')
    return order_value

def _get_coupon(coupon_id):
    coupon = db.session.get(Coupon, coupon_id)
    if not coupon:
        raise NotFound('Coupon not found')
    return coupon

@coupons_bp.route('/api/coupons/validate', methods=['POST'])
@jwt_required()
def validate_coupon():
    """Check a coupon against an order value and return the discount"""
    data = request.get_json() or {}
    if not data.get('code') or data.get('order_value') is None:
        raise APIError('Coupon code and order value are required')

    order_value = _order_value(data['order_value'])
    coupon, discount = coupon_service.validate_coupon(data['code'], order_value)

    return jsonify({
        'success': True,
        'message': 'Coupon applied successfully',
        'coupon': {
            'code': coupon.code,
            'description': coupon.description,
            'discount_type': coupon.discount_type,
            'discount_value': coupon.discount_value
        },
        'discount': discount,
        'final_amount': round(order_value - discount, 2)
    })

@coupons_bp.route('/api/coupons/available', methods=['GET'])
@jwt_required()
def get_available_coupons():
    """Coupons usable for the given order value"""
    order_value = _order_value(request.args.get('orderValue', request.args.get('order_value', 0)))
    coupons = coupon_service.get_available_coupons(order_value)
    return jsonify({
        'success': True,
        'count': len(coupons),
        'coupons': [c.to_dict() for c in coupons]
    })

@coupons_bp.route('/api/coupons', methods=['GET'])
@role_required('admin')
def list_coupons():
    coupons = Coupon.query.order_by(Coupon.created_at.desc()).all()
    return jsonify({
        'success': True,
        'count': len(coupons),
        'coupons': [c.to_dict() for c in coupons]
    })

@coupons_bp.route('/api/coupons', methods=['POST'])
@role_required('admin')
def create_coupon():
    """Create a coupon"""
    coupon = coupon_service.create_coupon(request.get_json() or {})
    db.session.commit()
    current_app.logger.info(f"Coupon {coupon.code} created")

    return jsonify({
        'success': True,
        'message': 'Coupon created successfully',
        'coupon': coupon.to_dict()
    }), 201

@coupons_bp.route('/api/coupons/<int:coupon_id>', methods=['PUT'])
@role_required('admin')
def update_coupon(coupon_id):
    """Update a coupon"""
    coupon = _get_coupon(coupon_id)
    try:
        coupon_service.update_coupon(coupon, request.get_json() or {})
    except APIError:
        db.session.rollback()
        raise
    db.session.commit()

    return jsonify({
        'success': True,
        'message': 'Coupon updated successfully',
        'coupon': coupon.to_dict()
    })

@coupons_bp.route('/api/coupons/<int:coupon_id>', methods=['DELETE'])
@role_required('admin')
def delete_coupon(coupon_id):
    """Delete a coupon"""
    coupon = _get_coupon(coupon_id)
    db.session.delete(coupon)
    db.session.commit()

    return jsonify({'success': True, 'message': 'Coupon deleted successfully'})
