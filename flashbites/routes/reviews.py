from flask import Blueprint, request, jsonify
from sqlalchemy import func
from flashbites import db
from flashbites.errors import APIError, Forbidden, NotFound
from flashbites.models.models import Order, Restaurant
from flashbites.models.review import Review
from flashbites.security import current_user, role_required
from flashbites.services.order_lifecycle import OrderStatus

reviews_bp = Blueprint('reviews', __name__)

def update_restaurant_rating(restaurant):
    """Recompute average rating and review count from stored reviews"""
    average, count = db.session.query(
        func.avg(Review.rating), func.count(Review.id)
    ).filter(Review.restaurant_id == restaurant.id).one()
    restaurant.rating = round(float(average), 1) if count else 0.0
    restaurant.total_reviews = count

@reviews_bp.route('/api/reviews', methods=['POST'])
@role_required('user')
def submit_review():
    """Review a delivered order"""
    user = current_user()
    data = request.get_json() or {}

    # Validate required fields
    for field in ('order_id', 'rating'):
        if data.get(field) is None:
            raise APIError(f'Missing required field: {field}')

    try:
        rating = int(data['rating'])
    except (TypeError, ValueError):
        raise APIError('Rating must be a whole number')
    if not 1 <= rating <= 5:
        raise APIError('Rating must be between 1 and 5')

    order = db.session.get(Order, data['order_id'])
    if not order:
        raise NotFound('Order not found')
    if order.user_id != user.id:
        raise Forbidden('You can only review your own orders')
    if order.status != OrderStatus.DELIVERED.value:
        raise APIError('Only delivered orders can be reviewed')
    if Review.query.filter_by(order_id=order.id).first():
        raise APIError('Order has already been reviewed')

    review = Review(
        user_id=user.id,
        order_id=order.id,
        restaurant_id=order.restaurant_id,
        rating=rating,
        comment=(data.get('comment') or '').strip() or None
    )
    db.session.add(review)
    db.session.flush()
    update_restaurant_rating(order.restaurant)
    db.session.commit()

    return jsonify({
        'success': True,
        'message': 'Review submitted successfully',
        'review': review.to_dict(),
        'restaurant_rating': order.restaurant.rating
    }), 201

@reviews_bp.route('/api/restaurants/<int:restaurant_id>/reviews', methods=['GET'])
def get_restaurant_reviews(restaurant_id):
    """Reviews of a restaurant, newest first"""
    restaurant = db.session.get(Restaurant, restaurant_id)
    if not restaurant:
        raise NotFound('Restaurant not found')

    page = (Review.query.filter_by(restaurant_id=restaurant.id)
            .order_by(Review.created_at.desc())
            .paginate(error_out=False, max_per_page=100))

    return jsonify({
        'success': True,
        'rating': restaurant.rating,
        'total_reviews': restaurant.total_reviews,
        'reviews': [r.to_dict() for r in page.items],
        'total': page.total,
        'pages': page.pages,
        'current_page': page.page
    })
