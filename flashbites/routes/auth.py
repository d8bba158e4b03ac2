from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import create_access_token, jwt_required
from flashbites import db
from flashbites.models.models import User
from flashbites.security import current_user

auth_bp = Blueprint('auth', __name__)

SELF_REGISTER_ROLES = ('user', 'restaurant_owner', 'delivery_partner')

def issue_token(user):
    return create_access_token(identity=str(user.id), additional_claims={'role': user.role})

@auth_bp.route('/api/auth/register', methods=['POST'])
def register():
    """Register a new user"""
    try:
        data = request.get_json() or {}

        # Validate required fields
        if not all(k in data for k in ('name', 'email', 'password')):
            return jsonify({
                'success': False,
                'error': 'Missing required fields: name, email, password'
            }), 400

        name = data['name'].strip()
        email = data['email'].strip().lower()
        phone = (data.get('phone') or '').strip() or None
        password = data['password']
        role = data.get('role') or 'user'

        # Validate input
        if len(name) < 2:
            return jsonify({
                'success': False,
                'error': 'Name must be at least 2 characters long'
            }), 400

        if len(password) < 6:
            return jsonify({
                'success': False,
                'error': 'Password must be at least 6 characters long'
            }), 400

        if role not in SELF_REGISTER_ROLES:
            return jsonify({
                'success': False,
                'error': 'Invalid role specified'
            }), 400

        # Check if user already exists
        if User.query.filter_by(email=email).first():
            return jsonify({
                'success': False,
                'error': 'Email already registered'
            }), 409

        if phone and User.query.filter_by(phone=phone).first():
            return jsonify({
                'success': False,
                'error': 'Phone number already registered'
            }), 409

        # Create new user
        user = User(name=name, email=email, phone=phone, role=role)
        user.set_password(password)

        db.session.add(user)
        db.session.commit()
        current_app.logger.info(f"Registered user {user.id} with role {role}")

        return jsonify({
            'success': True,
            'message': 'User registered successfully',
            'user': user.to_dict(),
            'access_token': issue_token(user)
        }), 201

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Registration failed: {e}")
        return jsonify({
            'success': False,
            'error': str(e)
        }), 500

@auth_bp.route('/api/auth/login', methods=['POST'])
def login():
    """Login user and return JWT token"""
    data = request.get_json() or {}

    # Validate required fields
    if not all(k in data for k in ('email', 'password')):
        return jsonify({
            'success': False,
            'error': 'Missing required fields: email, password'
        }), 400

    email = data['email'].strip().lower()
    password = data['password']

    # Find user
    user = User.query.filter_by(email=email).first()

    if not user or not user.check_password(password):
        return jsonify({
            'success': False,
            'error': 'Invalid email or password'
        }), 401

    if not user.is_active:
        return jsonify({
            'success': False,
            'error': 'Account is deactivated'
        }), 403

    return jsonify({
        'success': True,
        'message': 'Login successful',
        'user': user.to_dict(),
        'access_token': issue_token(user)
    }), 200

@auth_bp.route('/api/auth/profile', methods=['GET'])
@jwt_required()
def get_profile():
    """Get current user profile"""
    user = current_user()
    return jsonify({
        'success': True,
        'user': user.to_dict()
    }), 200

@auth_bp.route('/api/auth/profile', methods=['PUT'])
@jwt_required()
def update_profile():
    """Update user profile"""
    try:
        user = current_user()
        data = request.get_json() or {}

        # Update allowed fields
        if 'email' in data:
            email = data['email'].strip().lower()
            # Check if email is already taken by another user
            existing_user = User.query.filter_by(email=email).first()
            if existing_user and existing_user.id != user.id:
                return jsonify({
                    'success': False,
                    'error': 'Email already registered'
                }), 409
            user.email = email

        if 'phone' in data:
            phone = (data['phone'] or '').strip() or None
            existing_user = User.query.filter_by(phone=phone).first() if phone else None
            if existing_user and existing_user.id != user.id:
                return jsonify({
                    'success': False,
                    'error': 'Phone number already registered'
                }), 409
            user.phone = phone

        if 'name' in data:
            name = data['name'].strip()
            if len(name) < 2:
                return jsonify({
                    'success': False,
                    'error': 'Name must be at least 2 characters long'
                }), 400
            user.name = name

        db.session.commit()

        return jsonify({
            'success': True,
            'message': 'Profile updated successfully',
            'user': user.to_dict()
        }), 200

    except Exception:
        db.session.rollback()
        raise

@auth_bp.route('/api/auth/change-password', methods=['POST'])
@jwt_required()
def change_password():
    """Change user password"""
    user = current_user()
    data = request.get_json() or {}

    # Validate required fields
    if not all(k in data for k in ('current_password', 'new_password')):
        return jsonify({
            'success': False,
            'error': 'Missing required fields: current_password, new_password'
        }), 400

    # Verify current password
    if not user.check_password(data['current_password']):
        return jsonify({
            'success': False,
            'error': 'Current password is incorrect'
        }), 400

    # Validate new password
    if len(data['new_password']) < 6:
        return jsonify({
            'success': False,
            'error': 'New password must be at least 6 characters long'
        }), 400

    user.set_password(data['new_password'])
    db.session.commit()

    return jsonify({
        'success': True,
        'message': 'Password changed successfully'
    }), 200
