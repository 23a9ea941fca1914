from flask import jsonify
from flask_login import login_user, logout_user, login_required, current_user
from flask_wtf.csrf import generate_csrf

from app.extensions import db
from app.exceptions import PermissionDenied
from app.models.auth import User
from app.blueprints.auth import auth_bp
from app.blueprints.auth.forms import LoginForm, RegisterForm
from app.services.customer_service import CustomerService, PROFILE_FIELDS
from app.utils.clock import utcnow
from app.utils.validators import validate_form


def _account_dict(user):
    return {
        'id': user.id,
        'email': user.email,
        'is_admin': user.is_admin,
        'customer_id': user.customer_id,
        'business_name': user.customer.business_name if user.customer else None,
    }


@auth_bp.route('/csrf-token')
def csrf_token():
    """前端获取 CSRF 令牌 (放在 X-CSRFToken 请求头中)"""
    return jsonify({'success': True, 'csrf_token': generate_csrf()})


@auth_bp.route('/login', methods=['POST'])
def login():
    form = validate_form(LoginForm())
    user = User.query.filter_by(email=form.email.data.lower()).first()

    if user is None or not user.verify_password(form.password.data):
        raise PermissionDenied('Invalid credentials')
    if not user.is_active_user:
        raise PermissionDenied('Account disabled')

    login_user(user, remember=form.remember_me.data)
    user.last_login = utcnow()
    db.session.commit()
    return jsonify({'success': True, 'data': _account_dict(user)})


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'success': True})


@auth_bp.route('/me')
@login_required
def me():
    return jsonify({'success': True, 'data': _account_dict(current_user)})


@auth_bp.route('/register', methods=['POST'])
def register():
    """批发客户注册 (审核通过前不能下单)"""
    form = validate_form(RegisterForm())
    customer = CustomerService.register(
        email=form.email.data,
        password=form.password.data,
        business_name=form.business_name.data,
        contact_name=form.contact_name.data,
        **{name: getattr(form, name).data for name in PROFILE_FIELDS},
    )
    return jsonify({'success': True, 'data': {'id': customer.id, 'status': customer.status}}), 201
