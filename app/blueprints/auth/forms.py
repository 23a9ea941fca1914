from wtforms import StringField, PasswordField, BooleanField
from wtforms.validators import DataRequired, Email, EqualTo, Length, Optional
from app.utils.validators import ApiForm


class LoginForm(ApiForm):
    email = StringField('Email', validators=[DataRequired(), Length(1, 128), Email()])
    password = PasswordField('Password', validators=[DataRequired()])
    remember_me = BooleanField('Remember me')


class RegisterForm(ApiForm):
    """批发客户注册"""
    email = StringField('Email', validators=[DataRequired(), Length(1, 128), Email()])
    password = PasswordField('Password', validators=[DataRequired(), Length(8, 128)])
    passwordConfirm = PasswordField('Confirm password', validators=[
        DataRequired(), EqualTo('password', message='Passwords do not match')
    ])
    business_name = StringField('Business name', validators=[DataRequired(), Length(max=128)])
    contact_name = StringField('Contact name', validators=[DataRequired(), Length(max=64)])
    phone = StringField('Phone', validators=[Optional(), Length(max=32)])
    address = StringField('Address', validators=[Optional(), Length(max=256)])
    city = StringField('City', validators=[Optional(), Length(max=64)])
    state = StringField('State', validators=[Optional(), Length(max=32)])
    zip = StringField('Zip', validators=[Optional(), Length(max=16)])
    website = StringField('Website', validators=[Optional(), Length(max=256)])
