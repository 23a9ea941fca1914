from app.extensions import db
from .base import BaseModel


class AuditLog(BaseModel):
    """系统操作审计 (人工修正订单、调整客户折扣等级等)"""
    __tablename__ = 'sys_audit_logs'

    user_id = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    module = db.Column(db.String(32))  # e.g., 'orders', 'customers'
    action = db.Column(db.String(64))  # e.g., 'manual_correction'
    target_type = db.Column(db.String(32))
    target_id = db.Column(db.Integer)
    ip_address = db.Column(db.String(64))
    details = db.Column(db.Text)  # JSON 详情

    user = db.relationship('User')
