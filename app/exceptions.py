class WholesaleError(Exception):
    """批发系统基础异常类"""
    def __init__(self, message, code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['code'] = self.code
        rv['error'] = type(self).__name__
        rv['success'] = False
        return rv


class InvalidInput(WholesaleError):
    """输入数据不合法 (金额、数量、字段等)"""
    def __init__(self, message="Invalid input", payload=None):
        super().__init__(message, code=400, payload=payload)


class InvalidTransition(WholesaleError):
    """非法的状态流转，订单保持不变"""
    def __init__(self, current, requested, message=None, payload=None):
        message = message or f"Cannot transition from {current} to {requested}"
        payload = dict(payload or {}, current=current, requested=requested)
        super().__init__(message, code=409, payload=payload)
        self.current = current
        self.requested = requested


class EmptyCart(WholesaleError):
    """购物车为空"""
    def __init__(self, message="Cart is empty", payload=None):
        super().__init__(message, code=400, payload=payload)


class NotFound(WholesaleError):
    """引用的订单/客户/商品不存在"""
    def __init__(self, message="Not found", payload=None):
        super().__init__(message, code=404, payload=payload)


class ExternalServiceError(WholesaleError):
    """外部支付服务不可用 (不自动重试)"""
    def __init__(self, message="Payment system error", payload=None):
        super().__init__(message, code=502, payload=payload)


class AmbiguousOrDuplicateEvent(WholesaleError):
    """支付回调无法唯一匹配订单 (仅记录日志，对外仍确认收到)"""
    def __init__(self, message="Payment event could not be matched", payload=None):
        super().__init__(message, code=200, payload=payload)


class DuplicateCheckout(WholesaleError):
    """同一购物车重复结算"""
    def __init__(self, message="Checkout already submitted for this cart", payload=None):
        super().__init__(message, code=409, payload=payload)


class SequenceConflict(WholesaleError):
    """单号分配冲突"""
    def __init__(self, message="Document number collision", payload=None):
        super().__init__(message, code=409, payload=payload)


class PermissionDenied(WholesaleError):
    """权限不足"""
    def __init__(self, message="Access denied", payload=None):
        super().__init__(message, code=403, payload=payload)


class TransitionConflict(InvalidTransition):
    """订单状态已被并发请求修改，本次流转未生效"""
