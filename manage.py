import os
from flashbites import create_app, socketio
from flashbites.config import DevelopmentConfig, ProductionConfig

# Commands (setup-db, seed-coupons, create-admin) are registered by create_app:
#   flask --app manage setup-db
app = create_app(ProductionConfig if os.environ.get('FLASK_ENV') == 'production' else DevelopmentConfig)

if __name__ == '__main__':
    socketio.run(app, host='0.0.0.0', port=int(os.environ.get('PORT', 5000)))
