from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from app.extensions import db
from .base import BaseModel


class User(UserMixin, BaseModel):
    """
    登录账号
    管理员 is_admin=True；批发客户账号通过 customer_id 关联到客户档案
    """
    __tablename__ = 'auth_users'
    email = db.Column(db.String(128), unique=True, index=True)
    username = db.Column(db.String(64), index=True)
    password_hash = db.Column(db.String(256))

    is_active_user = db.Column(db.Boolean, default=True)  # 封号开关
    is_admin = db.Column(db.Boolean, default=False)
    last_login = db.Column(db.DateTime)

    customer_id = db.Column(db.Integer, db.ForeignKey('crm_customers.id'), nullable=True)
    customer = db.relationship('Customer', backref=db.backref('users', lazy='dynamic'))

    @property
    def password(self):
        raise AttributeError('password is not readable')

    @password.setter
    def password(self, password):
        self.password_hash = generate_password_hash(password)

    def verify_password(self, password):
        return bool(self.password_hash) and check_password_hash(self.password_hash, password)

    @property
    def is_active(self):
        return bool(self.is_active_user)

    def __repr__(self):
        return f'<User {self.email}>'
