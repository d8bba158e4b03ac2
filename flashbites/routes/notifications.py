from datetime import datetime
from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from sqlalchemy import or_
from flashbites import db
from flashbites.errors import NotFound
from flashbites.models.models import Notification
from flashbites.security import current_user

notifications_bp = Blueprint('notifications', __name__)

def _visible(user):
    """Notifications of ``user`` that have not expired"""
    return Notification.query.filter(
        Notification.recipient_id == user.id,
        or_(Notification.expires_at.is_(None), Notification.expires_at > datetime.utcnow())
    )

@notifications_bp.route('/api/notifications', methods=['GET'])
@jwt_required()
def get_notifications():
    """Get notifications for current user"""
    user = current_user()
    query = _visible(user)
    if request.args.get('unreadOnly', request.args.get('unread_only', '')).lower() == 'true':
        query = query.filter(Notification.read.is_(False))

    page = query.order_by(Notification.created_at.desc()).paginate(error_out=False, max_per_page=100)
    return jsonify({
        'success': True,
        'notifications': [n.to_dict() for n in page.items],
        'unread_count': _visible(user).filter(Notification.read.is_(False)).count(),
        'total': page.total,
        'pages': page.pages,
        'current_page': page.page
    })

@notifications_bp.route('/api/notifications/unread-count', methods=['GET'])
@jwt_required()
def get_unread_count():
    user = current_user()
    return jsonify({
        'success': True,
        'count': _visible(user).filter(Notification.read.is_(False)).count()
    })

@notifications_bp.route('/api/notifications/<int:notification_id>/read', methods=['PATCH'])
@jwt_required()
def mark_notification_read(notification_id):
    """Mark notification as read"""
    user = current_user()
    notification = Notification.query.filter_by(id=notification_id, recipient_id=user.id).first()
    if not notification:
        raise NotFound('Notification not found')

    notification.read = True
    db.session.commit()
    return jsonify({'success': True, 'notification': notification.to_dict()})

@notifications_bp.route('/api/notifications/read-all', methods=['PATCH'])
@jwt_required()
def mark_all_read():
    """Mark all notifications of the current user as read"""
    user = current_user()
    updated = Notification.query.filter_by(recipient_id=user.id, read=False).update({'read': True})
    db.session.commit()
    return jsonify({'success': True, 'updated': updated})
