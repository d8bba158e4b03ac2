# Notification service for in-app and real-time order notifications
from datetime import datetime, timedelta
from flask import current_app
from flashbites import db, socketio
from flashbites.models.models import Notification, User
from flashbites.services.order_lifecycle import NOTIFICATION_STATUS, OrderStatus
from flashbites.services.socket_service import SocketService

STATUS_TEMPLATES = {
    'confirmed': {
        'title': 'Order Confirmed',
        'message': 'Your order #{ref} has been confirmed by {restaurant}',
        'type': 'order_confirmed'
    },
    'preparing': {
        'title': 'Preparing Your Order',
        'message': 'Your order #{ref} is being prepared',
        'type': 'order_preparing'
    },
    'ready': {
        'title': 'Order Ready',
        'message': 'Your order #{ref} is ready for pickup',
        'type': 'order_ready'
    },
    'picked_up': {
        'title': 'On the Way',
        'message': 'Your order #{ref} has been picked up and is on the way',
        'type': 'order_picked_up'
    },
    'delivered': {
        'title': 'Order Delivered',
        'message': 'Your order #{ref} has been delivered. Enjoy your meal!',
        'type': 'order_delivered'
    },
    'cancelled': {
        'title': 'Order Cancelled',
        'message': 'Your order #{ref} has been cancelled',
        'type': 'order_cancelled',
        'priority': 'high'
    }
}


class NotificationService:
    def __init__(self, sockets=None):
        self.sockets = sockets or SocketService(socketio)

    def _expiry(self):
        days = current_app.config.get('NOTIFICATION_TTL_DAYS', 30)
        return datetime.utcnow() + timedelta(days=days)

    def create_notification(self, recipient_id, notification_type, title, message, data=None, priority='medium'):
        """Store a notification; the caller commits"""
        notification = Notification(
            recipient_id=recipient_id,
            type=notification_type,
            title=title,
            message=message,
            data=data or {},
            priority=priority,
            expires_at=self._expiry()
        )
        db.session.add(notification)
        return notification

    def _commit(self, what):
        try:
            db.session.commit()
            return True
        except Exception as e:
            db.session.rollback()
            current_app.logger.error(f"Failed to store {what} notification: {e}")
            return False

    def notify_order_status(self, order, status):
        """Notify the customer of a status change.

        ``status`` is an order status; out_for_delivery is announced as picked_up.
        """
        try:
            template_key = NOTIFICATION_STATUS[OrderStatus(status)]
        except (ValueError, KeyError):
            template_key = status
        template = STATUS_TEMPLATES.get(template_key)
        if not template:
            current_app.logger.warning(f"No message template for status: {status}")
            return False

        restaurant_name = order.restaurant.name if order.restaurant else 'the restaurant'
        self.create_notification(
            order.user_id,
            template['type'],
            template['title'],
            template['message'].format(ref=order.reference, restaurant=restaurant_name),
            data={'order_id': order.id, 'order_number': order.reference, 'restaurant_id': order.restaurant_id},
            priority=template.get('priority', 'medium')
        )
        stored = self._commit(template['type'])
        self.sockets.notify_user_order_update(order.user_id, order.to_dict(include_otp=True))
        return stored

    def notify_order_placed(self, order):
        """New order: restaurant owner, admins and the customer"""
        order_data = order.to_dict()
        restaurant = order.restaurant

        if restaurant is not None:
            self.create_notification(
                restaurant.owner_id,
                'new_order',
                'New Order Received!',
                f"Order #{order.reference} - {len(order.items)} items - ₹{order.total:.2f}",
                data={
                    'order_id': order.id,
                    'order_number': order.reference,
                    'total': order.total,
                    'item_count': len(order.items),
                    'payment_method': order.payment_method
                },
                priority='high'
            )
        self.create_notification(
            order.user_id,
            'order_placed',
            'Order Placed Successfully',
            f"Your order #{order.reference} from {restaurant.name if restaurant else 'FlashBites'} has been placed",
            data={'order_id': order.id, 'order_number': order.reference}
        )
        stored = self._commit('order_placed')

        self.sockets.notify_restaurant_new_order(order.restaurant_id, order_data)
        self.sockets.notify_admin_new_order(order_data)
        return stored

    def notify_restaurant_status_change(self, order, status, message=None, event_type='ORDER_STATUS_UPDATE'):
        message = message or f"Order #{order.reference} status: {status}"
        return self.sockets.notify_restaurant_new_order(order.restaurant_id, order.to_dict(),
                                                        event_type=event_type, message=message)

    def notify_partners_order_available(self, order):
        return self.sockets.notify_delivery_partners_new_order(order.to_dict())

    def notify_partner(self, partner_id, event, order):
        return self.sockets.notify_delivery_partner(partner_id, event, order.to_dict())

    def notify_delivery_assigned(self, order, partner: User):
        self.create_notification(
            order.user_id,
            'delivery_assigned',
            'Delivery Partner Assigned',
            f"{partner.name} will deliver your order #{order.reference}",
            data={'order_id': order.id, 'order_number': order.reference, 'delivery_partner': partner.name}
        )
        stored = self._commit('delivery_assigned')
        self.sockets.notify_delivery_partner(partner.id, 'order-assigned', order.to_dict())
        self.sockets.notify_user_order_update(order.user_id, order.to_dict(include_otp=True))
        return stored

    def notify_payment_reminder(self, order):
        self.create_notification(
            order.user_id,
            'payment_reminder',
            'Keep Cash Ready',
            f"Please keep ₹{order.total:.2f} ready for your cash on delivery order #{order.reference}",
            data={'order_id': order.id, 'amount': order.total}
        )
        return self._commit('payment_reminder')

    def notify_restaurant_approval(self, restaurant):
        approved = restaurant.is_approved
        self.create_notification(
            restaurant.owner_id,
            'restaurant_approved' if approved else 'restaurant_rejected',
            'Restaurant Approved' if approved else 'Restaurant Rejected',
            f"{restaurant.name} has been {'approved' if approved else 'rejected'}",
            data={'restaurant_id': restaurant.id},
            priority='high'
        )
        return self._commit('restaurant_approval')

    def location_update(self, order_id, latitude, longitude):
        return self.sockets.notify_location_update(order_id, latitude, longitude)
