from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from flashbites import db
from flashbites.errors import APIError, NotFound
from flashbites.models.models import Address, Order
from flashbites.security import current_user
from flashbites.services.location_service import LocationService

addresses_bp = Blueprint('addresses', __name__)

location_service = LocationService()

ADDRESS_FIELDS = ('label', 'street', 'city', 'state', 'zip_code', 'latitude', 'longitude', 'is_default')

def _coerce_coordinates(data):
    for key in ('latitude', 'longitude'):
        if data.get(key) is not None:
            try:
                data[key] = float(data[key])
            except (TypeError, ValueError):
                raise APIError(f'Invalid {key}')

def _resolve_location(address):
    """Fill in whichever of street or coordinates is missing"""
    if address.coordinates is None and address.street:
        query = ', '.join(p for p in (address.street, address.city, address.state, address.zip_code) if p)
        coords = location_service.geocode_address(query)
        if coords:
            address.latitude, address.longitude = coords

    if not address.street and address.coordinates is not None:
        address.street = location_service.reverse_geocode(address.latitude, address.longitude)

def _get_own_address(user, address_id):
    address = Address.query.filter_by(id=address_id, user_id=user.id).first()
    if not address:
        raise NotFound('Address not found')
    return address

def _make_default(user, address):
    Address.query.filter(Address.user_id == user.id, Address.id != address.id).update({'is_default': False})
    address.is_default = True

@addresses_bp.route('/api/addresses', methods=['GET'])
@jwt_required()
def list_addresses():
    """Get saved addresses of the current user"""
    user = current_user()
    addresses = Address.query.filter_by(user_id=user.id).order_by(Address.is_default.desc(), Address.id).all()
    return jsonify({
        'success': True,
        'addresses': [a.to_dict() for a in addresses]
    })

@addresses_bp.route('/api/addresses', methods=['POST'])
@jwt_required()
def create_address():
    """Save a delivery address"""
    user = current_user()
    data = request.get_json() or {}
    _coerce_coordinates(data)

    if not data.get('city'):
        raise APIError('City is required')

    address = Address(user_id=user.id, **{k: data[k] for k in ADDRESS_FIELDS if k in data and k != 'is_default'})
    _resolve_location(address)
    if not address.street:
        raise APIError('Street is required')

    db.session.add(address)
    db.session.flush()
    if data.get('is_default') or Address.query.filter_by(user_id=user.id).count() == 1:
        _make_default(user, address)
    db.session.commit()

    return jsonify({
        'success': True,
        'address': address.to_dict()
    }), 201

@addresses_bp.route('/api/addresses/<int:address_id>', methods=['PUT'])
@jwt_required()
def update_address(address_id):
    """Update a saved address"""
    user = current_user()
    address = _get_own_address(user, address_id)
    data = request.get_json() or {}
    _coerce_coordinates(data)

    moved = any(k in data for k in ('street', 'city', 'state', 'zip_code'))
    for key in ADDRESS_FIELDS:
        if key in data and key != 'is_default':
            setattr(address, key, data[key])

    if moved and 'latitude' not in data and 'longitude' not in data:
        address.latitude = address.longitude = None
    _resolve_location(address)

    if data.get('is_default'):
        _make_default(user, address)
    db.session.commit()

    return jsonify({
        'success': True,
        'address': address.to_dict()
    })

@addresses_bp.route('/api/addresses/<int:address_id>', methods=['DELETE'])
@jwt_required()
def delete_address(address_id):
    """Delete a saved address"""
    user = current_user()
    address = _get_own_address(user, address_id)
    # Past orders keep their delivery_address snapshot
    Order.query.filter_by(address_id=address.id).update({'address_id': None})
    db.session.delete(address)
    db.session.commit()

    return jsonify({
        'success': True,
        'message': 'Address deleted successfully'
    })
