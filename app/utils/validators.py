"""
表单验证器
"""
import re
from flask_wtf import FlaskForm
from wtforms.validators import ValidationError
from app.exceptions import InvalidInput


class ApiForm(FlaskForm):
    """
    JSON 接口表单基类
    Flask-WTF 会自动读取 JSON 请求体；CSRF 由全局 CSRFProtect 通过请求头校验
    """
    class Meta:
        csrf = False


def validate_form(form):
    """校验表单，失败时抛出 InvalidInput 并附带字段错误"""
    if not form.validate():
        raise InvalidInput('Validation failed', payload={'errors': form.errors})
    return form


def validate_tracking_number(form, field):
    """验证物流单号格式"""
    if field.data:
        if not re.match(r'^[A-Za-z0-9][A-Za-z0-9 \-]{3,63}$', field.data.strip()):
            raise ValidationError('Tracking number may only contain letters, digits, spaces and dashes')


def validate_checkout_token(form, field):
    """结算令牌：客户端为每个购物车生成的随机串"""
    if field.data:
        if not re.match(r'^[A-Za-z0-9_\-]{8,64}$', field.data):
            raise ValidationError('Invalid checkout token')
