import logging
from flask import Flask
from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate
from flask_socketio import SocketIO
from flashbites.config import Config

db = SQLAlchemy()
jwt = JWTManager()
migrate = Migrate()
socketio = SocketIO()

def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(app)
    jwt.init_app(app)
    migrate.init_app(app, db)
    socketio.init_app(app, cors_allowed_origins=app.config['CORS_ORIGINS'])
    CORS(app, origins=app.config['CORS_ORIGINS'], supports_credentials=True)

    # Import models to ensure they are registered with SQLAlchemy
    from flashbites.models import models, review

    from flashbites import errors
    errors.register_error_handlers(app)

    from flashbites.routes import auth
    from flashbites.routes import addresses
    from flashbites.routes import restaurants
    from flashbites.routes import orders
    from flashbites.routes import delivery
    from flashbites.routes import coupons
    from flashbites.routes import reviews
    from flashbites.routes import notifications
    app.register_blueprint(auth.auth_bp)
    app.register_blueprint(addresses.addresses_bp)
    app.register_blueprint(restaurants.restaurants_bp)
    app.register_blueprint(orders.orders_bp)
    app.register_blueprint(delivery.delivery_bp)
    app.register_blueprint(coupons.coupons_bp)
    app.register_blueprint(reviews.reviews_bp)
    app.register_blueprint(notifications.notifications_bp)

    from flashbites.commands import register_commands
    register_commands(app)

    # Register Socket.IO events
    from flashbites.services.socket_service import register_socket_events
    register_socket_events(socketio)

    @app.route('/health')
    def health_check():
        """Health check endpoint"""
        return {'status': 'healthy', 'service': 'flashbites-api'}

    return app
