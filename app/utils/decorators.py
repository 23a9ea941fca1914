from functools import wraps
from flask_login import current_user
from app.exceptions import PermissionDenied


def admin_required(f):
    """
    检查用户是否是管理员
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated or not current_user.is_admin:
            raise PermissionDenied('Admin access required')
        return f(*args, **kwargs)
    return decorated_function


def customer_required(f):
    """
    检查当前登录账号是否关联了批发客户档案
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated or current_user.customer_id is None:
            raise PermissionDenied('Customer account required')
        return f(*args, **kwargs)
    return decorated_function
