import click
from datetime import datetime, timedelta
from flask import current_app
from flashbites import db
from flashbites.models.models import Coupon, User

SAMPLE_COUPONS = [
    {
        'code': 'FLASH50',
        'description': 'Flat ₹50 off on orders above ₹299',
        'discount_type': 'fixed',
        'discount_value': 50,
        'min_order_value': 299,
        'max_discount': None,
        'usage_limit': None
    },
    {
        'code': 'FIRST20',
        'description': '20% off on your first order (max ₹100)',
        'discount_type': 'percentage',
        'discount_value': 20,
        'min_order_value': 199,
        'max_discount': 100,
        'usage_limit': 1000
    },
    {
        'code': 'SAVE100',
        'description': 'Flat ₹100 off on orders above ₹500',
        'discount_type': 'fixed',
        'discount_value': 100,
        'min_order_value': 500,
        'max_discount': None,
        'usage_limit': None
    },
    {
        'code': 'WEEKEND30',
        'description': '30% off on weekend orders (max ₹150)',
        'discount_type': 'percentage',
        'discount_value': 30,
        'min_order_value': 299,
        'max_discount': 150,
        'usage_limit': 500
    }
]

def seed_coupons(valid_days=365):
    """Insert the sample coupons that do not exist yet; returns the codes added"""
    valid_from = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    added = []
    for data in SAMPLE_COUPONS:
        if Coupon.query.filter_by(code=data['code']).first():
            continue
        db.session.add(Coupon(
            valid_from=valid_from,
            valid_till=valid_from + timedelta(days=valid_days),
            used_count=0,
            is_active=True,
            **data
        ))
        added.append(data['code'])
    db.session.commit()
    return added

def create_admin(name, email, password):
    email = email.strip().lower()
    if User.query.filter_by(email=email).first():
        raise click.ClickException(f'User {email} already exists')
    admin = User(name=name, email=email, role='admin')
    admin.set_password(password)
    db.session.add(admin)
    db.session.commit()
    return admin

def register_commands(app):
    @app.cli.command('setup-db')
    def setup_db_command():
        """Setup database and create tables"""
        db.create_all()
        click.echo("Database tables created!")

    @app.cli.command('seed-coupons')
    @click.option('--days', default=365, show_default=True, help='Days the coupons stay valid')
    def seed_coupons_command(days):
        """Add the sample coupons"""
        added = seed_coupons(days)
        for code in added:
            click.echo(f"Created coupon {code}")
        click.echo(f"{len(added)} coupon(s) added")

    @app.cli.command('create-admin')
    @click.option('--name', default='Admin', show_default=True)
    @click.option('--email', prompt=True)
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
    def create_admin_command(name, email, password):
        """Create an admin account"""
        if len(password) < 6:
            raise click.ClickException('Password must be at least 6 characters long')
        admin = create_admin(name, email, password)
        current_app.logger.info(f"Admin {admin.id} created")
        click.echo(f"Admin {admin.email} created")
