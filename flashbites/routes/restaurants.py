import math
from datetime import datetime, timedelta
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required
from sqlalchemy import extract, func
from flashbites import db
from flashbites.errors import APIError, Forbidden, NotFound
from flashbites.models.models import MenuItem, MenuItemVariant, Order, OrderItem, Restaurant
from flashbites.security import current_user, role_required
from flashbites.services.notification_service import NotificationService
from flashbites.services.order_lifecycle import OrderStatus
from flashbites.services.pricing import calculate_distance

restaurants_bp = Blueprint('restaurants', __name__)

notification_service = NotificationService()

FOOD_CATEGORIES = ('Starters', 'Main Course', 'Desserts', 'Beverages', 'Breads', 'Rice', 'Snacks')
SPICE_LEVELS = ('Mild', 'Medium', 'Hot', 'Extra Hot')

RESTAURANT_FIELDS = ('name', 'email', 'phone', 'description', 'cuisines', 'address', 'image',
                     'opening_time', 'closing_time', 'delivery_time', 'is_pure_veg')
MENU_FIELDS = ('name', 'description', 'price', 'category', 'image', 'is_veg', 'is_available',
               'tags', 'prep_time', 'spice_level')

SORT_OPTIONS = {
    '-rating': Restaurant.rating.desc(),
    'rating': Restaurant.rating.asc(),
    '-createdAt': Restaurant.created_at.desc(),
    'createdAt': Restaurant.created_at.asc(),
    'name': Restaurant.name.asc(),
    '-name': Restaurant.name.desc(),
}

def _int_arg(name, default, minimum=1, maximum=None):
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        value = default
    value = max(value, minimum)
    return min(value, maximum) if maximum else value

def _get_managed_restaurant(restaurant_id):
    """Restaurant the current owner (or an admin) may manage"""
    restaurant = db.session.get(Restaurant, restaurant_id)
    if not restaurant:
        raise NotFound('Restaurant not found')
    user = current_user()
    if user.role != 'admin' and restaurant.owner_id != user.id:
        raise Forbidden('Not authorized to manage this restaurant')
    return restaurant

def _location_from(data):
    location = data.get('location') or {}
    lat = data.get('latitude', location.get('latitude'))
    lng = data.get('longitude', location.get('longitude'))
    if lat is None or lng is None:
        return None
    try:
        return float(lat), float(lng)
    except (TypeError, ValueError):
        raise APIError('Invalid restaurant location')

def _apply_timing(restaurant, data):
    timing = data.get('timing') or {}
    if timing.get('open'):
        restaurant.opening_time = timing['open']
    if timing.get('close'):
        restaurant.closing_time = timing['close']

@restaurants_bp.route('/api/restaurants', methods=['POST'])
@role_required('restaurant_owner')
def create_restaurant():
    """Register a restaurant, pending admin approval"""
    user = current_user()
    data = request.get_json() or {}

    missing = [k for k in ('name', 'email', 'phone') if not data.get(k)]
    if missing:
        raise APIError(f"Missing required fields: {', '.join(missing)}")

    coords = _location_from(data)
    if coords is None:
        raise APIError('Restaurant location (latitude, longitude) is required')

    if Restaurant.query.filter_by(owner_id=user.id).first():
        raise APIError('You already have a registered restaurant')

    restaurant = Restaurant(owner_id=user.id, latitude=coords[0], longitude=coords[1],
                            **{k: data[k] for k in RESTAURANT_FIELDS if k in data})
    _apply_timing(restaurant, data)
    db.session.add(restaurant)
    db.session.commit()
    current_app.logger.info(f"Restaurant {restaurant.id} created by owner {user.id}")

    return jsonify({
        'success': True,
        'message': 'Restaurant created successfully. Pending admin approval',
        'restaurant': restaurant.to_dict()
    }), 201

@restaurants_bp.route('/api/restaurants', methods=['GET'])
def list_restaurants():
    """List approved restaurants, optionally near a location"""
    cuisine = request.args.get('cuisine')
    search = request.args.get('search')
    min_rating = request.args.get('minRating', type=float)
    sort_by = request.args.get('sortBy', '-rating')
    page = _int_arg('page', 1)
    limit = _int_arg('limit', 30, maximum=100)
    lat = request.args.get('lat', type=float)
    lng = request.args.get('lng', type=float)
    radius = request.args.get('radius', 5000, type=float)  # metres

    query = Restaurant.query.filter_by(is_active=True, is_approved=True)
    if search:
        query = query.filter(Restaurant.name.ilike(f'%{search}%'))
    if min_rating is not None:
        query = query.filter(Restaurant.rating >= min_rating)
    query = query.order_by(SORT_OPTIONS.get(sort_by, SORT_OPTIONS['-rating']))

    restaurants = query.all()
    if cuisine:
        wanted = cuisine.lower()
        restaurants = [r for r in restaurants if wanted in [c.lower() for c in (r.cuisines or [])]]

    start = (page - 1) * limit
    if lat is not None and lng is not None:
        nearby = []
        for restaurant in restaurants:
            distance = calculate_distance(lat, lng, restaurant.latitude, restaurant.longitude)
            if distance * 1000 <= radius:
                nearby.append((distance, restaurant))
        nearby.sort(key=lambda pair: pair[0])
        results = []
        for distance, restaurant in nearby[start:start + limit]:
            data = restaurant.to_dict()
            data['distance_km'] = round(distance, 2)
            results.append(data)
    else:
        results = [r.to_dict() for r in restaurants[start:start + limit]]

    return jsonify({
        'success': True,
        'page': page,
        'limit': limit,
        'count': len(results),
        'restaurants': results
    })

@restaurants_bp.route('/api/restaurants/my-restaurant', methods=['GET'])
@role_required('restaurant_owner')
def get_my_restaurant():
    """Restaurant owned by the current user"""
    user = current_user()
    restaurant = Restaurant.query.filter_by(owner_id=user.id).first()
    if not restaurant:
        raise NotFound('No restaurant found for this account')
    return jsonify({'success': True, 'restaurant': restaurant.to_dict()})

@restaurants_bp.route('/api/restaurants/<int:restaurant_id>', methods=['GET'])
def get_restaurant(restaurant_id):
    """Get restaurant details"""
    restaurant = db.session.get(Restaurant, restaurant_id)
    if not restaurant:
        raise NotFound('Restaurant not found')
    if not restaurant.is_available:
        raise Forbidden('Restaurant is not available')
    return jsonify({'success': True, 'restaurant': restaurant.to_dict()})

@restaurants_bp.route('/api/restaurants/<int:restaurant_id>', methods=['PUT'])
@role_required('restaurant_owner', 'admin')
def update_restaurant(restaurant_id):
    """Update restaurant details"""
    restaurant = _get_managed_restaurant(restaurant_id)
    data = request.get_json() or {}

    for key in RESTAURANT_FIELDS:
        if key in data:
            setattr(restaurant, key, data[key])
    coords = _location_from(data)
    if coords:
        restaurant.latitude, restaurant.longitude = coords
    _apply_timing(restaurant, data)
    if 'commission_rate' in data and current_user().role == 'admin':
        restaurant.commission_rate = data['commission_rate']

    db.session.commit()
    return jsonify({
        'success': True,
        'message': 'Restaurant updated successfully',
        'restaurant': restaurant.to_dict()
    })

@restaurants_bp.route('/api/restaurants/<int:restaurant_id>/toggle-status', methods=['PATCH'])
@role_required('restaurant_owner', 'admin')
def toggle_restaurant_status(restaurant_id):
    """Start or stop accepting orders"""
    restaurant = _get_managed_restaurant(restaurant_id)
    restaurant.accepting_orders = not restaurant.accepting_orders
    db.session.commit()

    return jsonify({
        'success': True,
        'message': f"Restaurant is {'now' if restaurant.accepting_orders else 'no longer'} accepting orders",
        'accepting_orders': restaurant.accepting_orders
    })

@restaurants_bp.route('/api/restaurants/<int:restaurant_id>/approve', methods=['PATCH'])
@role_required('admin')
def approve_restaurant(restaurant_id):
    """Approve or reject a restaurant"""
    restaurant = db.session.get(Restaurant, restaurant_id)
    if not restaurant:
        raise NotFound('Restaurant not found')

    data = request.get_json(silent=True) or {}
    restaurant.is_approved = bool(data.get('approved', True))
    db.session.commit()

    notification_service.notify_restaurant_approval(restaurant)

    return jsonify({'success': True, 'restaurant': restaurant.to_dict()})

@restaurants_bp.route('/api/restaurants/<int:restaurant_id>/dashboard', methods=['GET'])
@role_required('restaurant_owner', 'admin')
def get_restaurant_dashboard(restaurant_id):
    """Order counts by status, delivered revenue and recent orders"""
    restaurant = _get_managed_restaurant(restaurant_id)

    by_status = dict(
        db.session.query(Order.status, func.count(Order.id))
        .filter(Order.restaurant_id == restaurant.id)
        .group_by(Order.status)
        .all()
    )
    delivered_total, delivered_count = db.session.query(
        func.coalesce(func.sum(Order.total), 0.0), func.count(Order.id)
    ).filter(Order.restaurant_id == restaurant.id, Order.status == OrderStatus.DELIVERED.value).one()

    recent = (Order.query.filter_by(restaurant_id=restaurant.id)
              .order_by(Order.created_at.desc()).limit(10).all())

    return jsonify({
        'success': True,
        'total_orders': sum(by_status.values()),
        'orders_by_status': by_status,
        'earnings': {
            'total_revenue': round(delivered_total, 2),
            'delivered_orders': delivered_count,
            'net_earnings': restaurant.total_earnings
        },
        'recent_orders': [o.to_dict() for o in recent]
    })

def _date_arg(name):
    value = request.args.get(name)
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise APIError(f'Invalid {name}')

@restaurants_bp.route('/api/restaurants/<int:restaurant_id>/analytics', methods=['GET'])
@role_required('restaurant_owner', 'admin')
def get_restaurant_analytics(restaurant_id):
    """Revenue and order statistics over a date range.

    The range is ``startDate``..``endDate`` (ISO dates); without a start date
    it covers the ``period`` days (default 30) before the end date.
    """
    restaurant = _get_managed_restaurant(restaurant_id)
    end = _date_arg('endDate') or datetime.utcnow()
    start = _date_arg('startDate')
    if start is None:
        start = end - timedelta(days=_int_arg('period', 30, maximum=365))
    if start > end:
        raise APIError('startDate must be before endDate')

    in_range = (Order.restaurant_id == restaurant.id, Order.created_at >= start, Order.created_at <= end)
    delivered = in_range + (Order.status == OrderStatus.DELIVERED.value,)

    total_orders, total_order_value = db.session.query(
        func.count(Order.id), func.coalesce(func.sum(Order.total), 0.0)
    ).filter(*in_range).one()
    delivered_orders, total_revenue = db.session.query(
        func.count(Order.id), func.coalesce(func.sum(Order.total), 0.0)
    ).filter(*delivered).one()

    day = func.date(Order.created_at)
    daily = (db.session.query(day, func.sum(Order.total), func.count(Order.id), func.avg(Order.total))
             .filter(*delivered).group_by(day).order_by(day).all())

    payments = (db.session.query(Order.payment_method, func.count(Order.id), func.sum(Order.total))
                .filter(*delivered).group_by(Order.payment_method).all())

    hour = extract('hour', Order.created_at)
    hourly = (db.session.query(hour, func.count(Order.id))
              .filter(*in_range).group_by(hour).order_by(hour).all())

    sold = func.sum(OrderItem.quantity)
    top_items = (db.session.query(OrderItem.menu_item_id, func.max(OrderItem.name), sold,
                                  func.sum(OrderItem.quantity * OrderItem.price))
                 .join(Order, OrderItem.order_id == Order.id)
                 .filter(*delivered)
                 .group_by(OrderItem.menu_item_id)
                 .order_by(sold.desc())
                 .limit(10).all())

    return jsonify({
        'success': True,
        'overview': {
            'total_orders': total_orders,
            'delivered_orders': delivered_orders,
            'total_revenue': round(total_revenue, 2),
            'total_order_value': round(total_order_value, 2),
            'avg_order_value': round(total_revenue / delivered_orders, 2) if delivered_orders else 0
        },
        'daily_revenue': [
            {'date': str(date), 'revenue': round(revenue, 2), 'order_count': count,
             'avg_order_value': round(average, 2)}
            for date, revenue, count, average in daily
        ],
        'payment_breakdown': [
            {'payment_method': method, 'count': count, 'revenue': round(revenue, 2)}
            for method, count, revenue in payments
        ],
        'hourly_distribution': [{'hour': int(h), 'order_count': count} for h, count in hourly],
        'top_items': [
            {'menu_item_id': item_id, 'name': name, 'total_sold': quantity, 'revenue': round(revenue, 2)}
            for item_id, name, quantity, revenue in top_items
        ],
        'period': {
            'start': start.isoformat(),
            'end': end.isoformat(),
            'days': math.ceil((end - start).total_seconds() / 86400)
        }
    })

@restaurants_bp.route('/api/restaurants/<int:restaurant_id>', methods=['DELETE'])
@role_required('restaurant_owner')
def delete_restaurant(restaurant_id):
    """Delete a restaurant together with its menu"""
    user = current_user()
    restaurant = db.session.get(Restaurant, restaurant_id)
    if not restaurant:
        raise NotFound('Restaurant not found')
    if restaurant.owner_id != user.id:
        raise Forbidden('Not authorized to delete this restaurant')
    # Orders and reviews keep referencing the restaurant
    if Order.query.filter_by(restaurant_id=restaurant.id).first():
        raise APIError('Restaurant has order history and cannot be deleted; stop accepting orders instead', 409)

    db.session.delete(restaurant)
    db.session.commit()
    current_app.logger.info(f"Restaurant {restaurant_id} deleted by owner {user.id}")

    return jsonify({
        'success': True,
        'message': 'Restaurant and all associated data deleted successfully'
    })

# Menu

def _get_menu_item(restaurant, item_id):
    item = MenuItem.query.filter_by(id=item_id, restaurant_id=restaurant.id).first()
    if not item:
        raise NotFound('Menu item not found')
    return item

def _apply_menu_fields(item, data):
    for key in MENU_FIELDS:
        if key in data:
            setattr(item, key, data[key])

    if item.category not in FOOD_CATEGORIES:
        raise APIError(f"Category must be one of: {', '.join(FOOD_CATEGORIES)}")
    if item.spice_level and item.spice_level not in SPICE_LEVELS:
        raise APIError(f"Spice level must be one of: {', '.join(SPICE_LEVELS)}")
    try:
        item.price = float(item.price)
    except (TypeError, ValueError):
        raise APIError('Price must be a number')
    if item.price < 0:
        raise APIError('Price cannot be negative')
    if item.description and len(item.description) > 200:
        raise APIError('Description cannot exceed 200 characters')

    if 'variants' in data:
        item.variants = []
        for variant in data['variants'] or []:
            if not isinstance(variant, dict):
                raise APIError('Each variant needs a name and a non-negative price')
            try:
                price = float(variant.get('price'))
            except (TypeError, ValueError):
                price = None
            if not variant.get('name') or price is None or price < 0:
                raise APIError('Each variant needs a name and a non-negative price')
            item.variants.append(MenuItemVariant(
                name=variant['name'],
                price=price,
                is_available=variant.get('is_available', True)
            ))

@restaurants_bp.route('/api/restaurants/<int:restaurant_id>/menu', methods=['GET'])
def get_restaurant_menu(restaurant_id):
    """Get menu items for a restaurant"""
    restaurant = db.session.get(Restaurant, restaurant_id)
    if not restaurant:
        raise NotFound('Restaurant not found')

    query = MenuItem.query.filter_by(restaurant_id=restaurant_id)
    category = request.args.get('category')
    is_veg = request.args.get('isVeg')
    search = request.args.get('search')
    if category:
        query = query.filter_by(category=category)
    if is_veg is not None:
        query = query.filter_by(is_veg=is_veg.lower() == 'true')
    if search:
        query = query.filter(MenuItem.name.ilike(f'%{search}%'))

    items = query.order_by(MenuItem.category, MenuItem.name).all()
    return jsonify({
        'success': True,
        'count': len(items),
        'items': [item.to_dict() for item in items]
    })

@restaurants_bp.route('/api/restaurants/<int:restaurant_id>/menu', methods=['POST'])
@role_required('restaurant_owner', 'admin')
def add_menu_item(restaurant_id):
    """Add a menu item"""
    restaurant = _get_managed_restaurant(restaurant_id)
    data = request.get_json() or {}

    missing = [k for k in ('name', 'description', 'price', 'category') if data.get(k) in (None, '')]
    if missing:
        raise APIError(f"Missing required fields: {', '.join(missing)}")

    item = MenuItem(restaurant_id=restaurant.id)
    _apply_menu_fields(item, data)
    db.session.add(item)
    db.session.commit()

    return jsonify({
        'success': True,
        'message': 'Menu item added successfully',
        'menu_item': item.to_dict()
    }), 201

@restaurants_bp.route('/api/restaurants/<int:restaurant_id>/menu/<int:item_id>', methods=['PUT'])
@role_required('restaurant_owner', 'admin')
def update_menu_item(restaurant_id, item_id):
    """Update a menu item"""
    restaurant = _get_managed_restaurant(restaurant_id)
    item = _get_menu_item(restaurant, item_id)
    _apply_menu_fields(item, request.get_json() or {})
    db.session.commit()

    return jsonify({
        'success': True,
        'message': 'Menu item updated successfully',
        'menu_item': item.to_dict()
    })

@restaurants_bp.route('/api/restaurants/<int:restaurant_id>/menu/<int:item_id>', methods=['DELETE'])
@role_required('restaurant_owner', 'admin')
def delete_menu_item(restaurant_id, item_id):
    """Delete a menu item"""
    restaurant = _get_managed_restaurant(restaurant_id)
    item = _get_menu_item(restaurant, item_id)
    db.session.delete(item)
    db.session.commit()

    return jsonify({'success': True, 'message': 'Menu item deleted successfully'})

@restaurants_bp.route('/api/restaurants/<int:restaurant_id>/menu/<int:item_id>/availability', methods=['PATCH'])
@role_required('restaurant_owner', 'admin')
def toggle_menu_item_availability(restaurant_id, item_id):
    """Toggle whether a menu item can be ordered"""
    restaurant = _get_managed_restaurant(restaurant_id)
    item = _get_menu_item(restaurant, item_id)
    item.is_available = not item.is_available
    db.session.commit()

    return jsonify({
        'success': True,
        'message': f"{item.name} is now {'available' if item.is_available else 'unavailable'}",
        'is_available': item.is_available
    })
