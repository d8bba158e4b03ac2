# Real-time order notifications over Socket.IO
from datetime import datetime
from flask import current_app, request
from flask_jwt_extended import decode_token
from flask_socketio import emit, join_room, leave_room
from flashbites import db

ADMIN_ROOM = 'admins'
ALL_PARTNERS_ROOM = 'all-delivery-partners'

# role -> {sid: user_id}
_online = {
    'user': {},
    'restaurant_owner': {},
    'delivery_partner': {},
    'admin': {},
}


def user_room(user_id):
    return f"user-{user_id}"


def restaurant_room(restaurant_id):
    return f"restaurant-{restaurant_id}"


def partner_room(partner_id):
    return f"delivery-partner-{partner_id}"


def order_room(order_id):
    return f"order_{order_id}"


class SocketService:
    """Emits order events to the rooms sockets joined on connect"""

    def __init__(self, socketio):
        self.socketio = socketio

    def _emit(self, event, room, event_type, body):
        payload = {
            'type': event_type,
            'sound': True,
            'timestamp': datetime.utcnow().isoformat()
        }
        payload.update(body)
        try:
            self.socketio.emit(event, payload, to=room)
            current_app.logger.debug(f"Sent {event} to room {room}")
            return True
        except Exception as e:
            current_app.logger.error(f"Failed to emit {event} to room {room}: {e}")
            return False

    def notify_restaurant_new_order(self, restaurant_id, order_data, event_type='NEW_ORDER', message=None):
        body = {'order': order_data}
        if message:
            body['message'] = message
        return self._emit('new-order', restaurant_room(restaurant_id), event_type, body)

    def notify_admin_new_order(self, order_data):
        return self._emit('new-order', ADMIN_ROOM, 'NEW_ORDER', {'order': order_data})

    def notify_user_order_update(self, user_id, order_data):
        return self._emit('order-update', user_room(user_id), 'ORDER_UPDATE', {'order': order_data})

    def notify_delivery_partners_new_order(self, order_data):
        return self._emit('new-order-available', ALL_PARTNERS_ROOM, 'NEW_ORDER_AVAILABLE', {'order': order_data})

    def notify_delivery_partner(self, partner_id, event, order_data):
        """event is one of order-assigned, order-ready, order-cancelled"""
        event_type = event.replace('-', '_').upper()
        return self._emit(event, partner_room(partner_id), event_type, {'order': order_data})

    def notify_location_update(self, order_id, latitude, longitude):
        return self._emit('delivery_location_update', order_room(order_id), 'DELIVERY_LOCATION_UPDATE', {
            'order_id': order_id,
            'location': {'latitude': latitude, 'longitude': longitude}
        })


def get_online_stats():
    return {
        'users': len(_online['user']),
        'restaurants': len(_online['restaurant_owner']),
        'admins': len(_online['admin']),
        'delivery_partners': len(_online['delivery_partner']),
        'total': sum(len(sockets) for sockets in _online.values())
    }


def _session_identity(token):
    claims = decode_token(token)
    return claims['sub'], claims.get('role', 'user')


def _current_identity():
    for role, sockets in _online.items():
        if request.sid in sockets:
            return sockets[request.sid], role
    return None, None


# Socket.IO event handlers
def register_socket_events(socketio):
    # init_app builds a new server per app, so handlers are bound on every call
    @socketio.on('connect')
    def handle_connect(auth=None):
        token = (auth or {}).get('token') or request.args.get('token')
        if not token:
            current_app.logger.warning("Socket connection without token rejected")
            return False

        try:
            user_id, role = _session_identity(token)
        except Exception as e:
            current_app.logger.warning(f"Socket connection with invalid token rejected: {e}")
            return False

        _online.setdefault(role, {})[request.sid] = user_id
        if role == 'admin':
            join_room(ADMIN_ROOM)
        elif role == 'delivery_partner':
            join_room(partner_room(user_id))
            join_room(ALL_PARTNERS_ROOM)
        elif role == 'user':
            join_room(user_room(user_id))
        current_app.logger.info(f"Socket connected: {request.sid} | User: {user_id} | Role: {role}")

    @socketio.on('join-restaurant')
    def handle_join_restaurant(restaurant_id):
        from flashbites.models.models import Restaurant

        user_id, role = _current_identity()
        restaurant = db.session.get(Restaurant, int(restaurant_id)) if str(restaurant_id).isdigit() else None
        if role not in ('restaurant_owner', 'admin') or restaurant is None:
            emit('socket-error', {'error': 'Cannot join restaurant room'})
            return
        if role == 'restaurant_owner' and str(restaurant.owner_id) != str(user_id):
            emit('socket-error', {'error': 'Not your restaurant'})
            return
        join_room(restaurant_room(restaurant.id))
        emit('joined', {'room': restaurant_room(restaurant.id)})

    @socketio.on('track-order')
    def handle_track_order(order_id):
        from flashbites.models.models import Order

        user_id, role = _current_identity()
        order = db.session.get(Order, int(order_id)) if str(order_id).isdigit() else None
        if order is None or not (
                role == 'admin' or str(order.user_id) == str(user_id)
                or str(order.delivery_partner_id) == str(user_id)):
            emit('socket-error', {'error': 'Cannot track this order'})
            return
        join_room(order_room(order.id))
        emit('joined', {'room': order_room(order.id)})

    @socketio.on('untrack-order')
    def handle_untrack_order(order_id):
        leave_room(order_room(order_id))

    @socketio.on('ping')
    def handle_ping():
        emit('pong')

    @socketio.on('disconnect')
    def handle_disconnect(*args):
        for sockets in _online.values():
            sockets.pop(request.sid, None)
        current_app.logger.info(f"Socket disconnected: {request.sid}")
