from wtforms import DateTimeField, IntegerField, SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, Optional, Length
from app.models.biz import Customer
from app.models.crm import Communication
from app.models.finance import Invoice
from app.services.workflow import STATUS_FLOW, STATUS_LABELS
from app.utils.validators import ApiForm, validate_tracking_number


class WorkflowForm(ApiForm):
    """订单状态流转"""
    status = SelectField('Status', choices=[(s, STATUS_LABELS[s]) for s in STATUS_FLOW],
                         validators=[DataRequired()])
    tracking_number = StringField('Tracking number', validators=[Optional(), validate_tracking_number])


class InvoiceStatusForm(ApiForm):
    """发票状态更新"""
    status = SelectField('Status', choices=[
        (Invoice.STATUS_SENT, 'Sent'),
        (Invoice.STATUS_PAID, 'Paid'),
        (Invoice.STATUS_OVERDUE, 'Overdue'),
        (Invoice.STATUS_CANCELLED, 'Cancelled'),
    ], validators=[DataRequired()])
    payment_id = StringField('Payment reference', validators=[Optional(), Length(max=64)])


class CustomerTierForm(ApiForm):
    """客户折扣等级"""
    discount_tier = SelectField('Discount tier', choices=[(t, t) for t in Customer.TIER_CHOICES],
                                validators=[DataRequired()])


class CorrectionReasonForm(ApiForm):
    """人工修正原因 (修正字段本身在 changes 对象中)"""
    reason = TextAreaField('Reason', validators=[DataRequired(), Length(max=500)])


class CommunicationForm(ApiForm):
    """手工沟通记录"""
    customer = IntegerField('Customer', validators=[DataRequired()])
    type = SelectField('Type', choices=[
        (Communication.TYPE_CALL, 'Call'),
        (Communication.TYPE_EMAIL, 'Email'),
        (Communication.TYPE_MEETING, 'Meeting'),
        (Communication.TYPE_NOTE, 'Note'),
    ], validators=[DataRequired()])
    subject = StringField('Subject', validators=[Optional(), Length(max=256)])
    content = TextAreaField('Content', validators=[Optional()])
    order = IntegerField('Order', validators=[Optional()])
    date = DateTimeField('Date', format=['%Y-%m-%dT%H:%M:%S', '%Y-%m-%dT%H:%M', '%Y-%m-%d'],
                         validators=[Optional()])
