"""
审计日志工具模块
用于记录后台对订单、客户等数据的人工操作
"""
import json
from flask import request, has_request_context
from flask_login import current_user
from app.models.sys import AuditLog
from app.extensions import db


def _resolve_user(user):
    if user is not None:
        return user
    if has_request_context() and current_user.is_authenticated:
        return current_user
    return None


def log_action(module, action, details=None, target=None, user=None, commit=True):
    """
    记录审计日志
    :param module: 模块名称 (如 'orders', 'customers', 'invoices')
    :param action: 操作名称 (如 'manual_correction', 'change_tier')
    :param details: 详细信息 (dict)
    :param target: 被操作的模型对象 (可选)
    :param commit: False 时只加入会话，由调用方统一提交
    """
    user = _resolve_user(user)
    log = AuditLog(
        user_id=user.id if user is not None else None,
        module=module,
        action=action,
        target_type=target.__tablename__ if target is not None else None,
        target_id=target.id if target is not None else None,
        ip_address=request.remote_addr if has_request_context() else None,
        details=json.dumps(details, ensure_ascii=False, default=str) if details else None
    )
    db.session.add(log)
    if commit:
        db.session.commit()
    return log
