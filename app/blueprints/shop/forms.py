from wtforms import SelectField, StringField
from wtforms.validators import DataRequired, Optional
from app.models.trade import Order
from app.utils.validators import ApiForm, validate_checkout_token


class CheckoutForm(ApiForm):
    """结算表单 (购物车明细 items 由服务层解析)"""
    payment_method = SelectField('Payment method', choices=[
        (Order.PAYMENT_CARD, 'Card (Pay Now)'),
        (Order.PAYMENT_INVOICE, 'Invoice (Net 30)'),
    ], validators=[DataRequired()])
    checkout_token = StringField('Checkout token', validators=[Optional(), validate_checkout_token])
