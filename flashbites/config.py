import os
from datetime import timedelta
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///flashbites.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or 'jwt-secret-key'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.environ.get('JWT_EXPIRES_HOURS', 24)))

    # Allowed browser origins for REST (Flask-Cors) and Socket.IO
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')

    # Geocoding for saved addresses without coordinates
    GEOCODING_ENABLED = os.environ.get('GEOCODING_ENABLED', 'True').lower() == 'true'
    GEOCODER_USER_AGENT = os.environ.get('GEOCODER_USER_AGENT', 'flashbites_app')

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Ordering rules
    MINIMUM_ORDER_VALUE = float(os.environ.get('MINIMUM_ORDER_VALUE', 199))
    DEFAULT_DELIVERY_FEE = float(os.environ.get('DEFAULT_DELIVERY_FEE', 30))
    TAX_RATE = float(os.environ.get('TAX_RATE', 0.05))
    DEFAULT_DELIVERY_MINUTES = 30
    FREE_CANCELLATION_SECONDS = 60
    DUPLICATE_ORDER_WINDOW_SECONDS = 5
    DEFAULT_COMMISSION_RATE = float(os.environ.get('DEFAULT_COMMISSION_RATE', 10))
    NOTIFICATION_TTL_DAYS = 30

    # Additional config for production
    DEBUG = os.environ.get('DEBUG', 'False').lower() == 'true'

class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///flashbites.db'

class ProductionConfig(Config):
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL')  # Must be set in production

class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length'
    GEOCODING_ENABLED = False
    LOG_LEVEL = 'WARNING'
