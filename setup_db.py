import os
from flashbites import create_app, db
from flashbites.commands import seed_coupons
from flashbites.config import DevelopmentConfig, ProductionConfig
from flashbites.models.models import MenuItem, MenuItemVariant, Restaurant, User

SAMPLE_PASSWORD = 'password123'

SAMPLE_USERS = [
    ('Admin', 'admin@flashbites.test', '9000000001', 'admin'),
    ('Ravi Kumar', 'owner@flashbites.test', '9000000002', 'restaurant_owner'),
    ('Suresh Rider', 'partner@flashbites.test', '9000000003', 'delivery_partner'),
    ('Anita Sharma', 'customer@flashbites.test', '9000000004', 'user'),
]

SAMPLE_MENU = [
    {
        'name': 'Paneer Tikka',
        'description': 'Chargrilled cottage cheese with peppers and onions',
        'price': 249,
        'category': 'Starters',
        'is_veg': True,
        'spice_level': 'Medium'
    },
    {
        'name': 'Chicken Biryani',
        'description': 'Dum cooked basmati rice with spiced chicken',
        'price': 299,
        'category': 'Rice',
        'is_veg': False,
        'spice_level': 'Hot',
        'variants': [('Half', 199), ('Full', 299)]
    },
    {
        'name': 'Butter Naan',
        'description': 'Soft leavened bread brushed with butter',
        'price': 49,
        'category': 'Breads',
        'is_veg': True,
        'spice_level': 'Mild'
    },
    {
        'name': 'Gulab Jamun',
        'description': 'Milk dumplings soaked in rose syrup',
        'price': 99,
        'category': 'Desserts',
        'is_veg': True,
        'spice_level': 'Mild'
    }
]

def seed_sample_data():
    """Create sample accounts, one approved restaurant with a menu, and coupons.

    Does nothing when users already exist.
    """
    if User.query.first():
        return False

    users = {}
    for name, email, phone, role in SAMPLE_USERS:
        user = User(name=name, email=email, phone=phone, role=role)
        user.set_password(SAMPLE_PASSWORD)
        db.session.add(user)
        users[role] = user
    db.session.flush()

    restaurant = Restaurant(
        owner_id=users['restaurant_owner'].id,
        name='Spice Route',
        email='spiceroute@flashbites.test',
        phone='9000000010',
        description='North Indian classics',
        cuisines=['North Indian', 'Biryani'],
        address={'street': '12 MG Road', 'city': 'Bengaluru', 'state': 'Karnataka', 'zip_code': '560001'},
        latitude=12.9716,
        longitude=77.5946,
        delivery_time='30-40 mins',
        is_approved=True
    )
    db.session.add(restaurant)
    db.session.flush()

    for data in SAMPLE_MENU:
        data = dict(data)
        variants = data.pop('variants', [])
        item = MenuItem(restaurant_id=restaurant.id, **data)
        for variant_name, price in variants:
            item.variants.append(MenuItemVariant(name=variant_name, price=price))
        db.session.add(item)

    db.session.commit()
    seed_coupons()
    return True

def setup_database():
    """Setup database based on environment"""
    env = os.environ.get('FLASK_ENV', 'development')

    if env == 'production':
        app = create_app(ProductionConfig)
        app.logger.info("Setting up production database...")
    else:
        app = create_app(DevelopmentConfig)
        app.logger.info("Setting up development database...")

    with app.app_context():
        try:
            db.create_all()
            app.logger.info("Database tables created successfully!")

            if seed_sample_data():
                app.logger.info(f"Sample data created! All sample accounts use password {SAMPLE_PASSWORD}")
            else:
                app.logger.info("Sample data already exists.")
        except Exception as e:
            app.logger.error(f"Error setting up database: {e}")
            db.session.rollback()
            raise

if __name__ == '__main__':
    setup_database()
