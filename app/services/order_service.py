"""订单服务 - 后台状态流转、人工修正、回访扫描"""
import logging
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.exceptions import NotFound, WholesaleError
from app.models.trade import Order
from app.services import workflow
from app.services.notification_service import dispatch
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


class OrderService:
    """订单服务"""

    @staticmethod
    def get_order(order_id):
        order = db.session.get(Order, order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    @staticmethod
    def list_orders(status=None, customer_id=None, page=1, per_page=20):
        query = Order.query
        if status:
            query = query.filter_by(status=status)
        if customer_id:
            query = query.filter_by(customer_id=customer_id)
        return query.order_by(Order.created_at.desc(), Order.id.desc()).paginate(
            page=page, per_page=per_page, error_out=False
        )

    @staticmethod
    def transition(order_id, status, tracking_number=None, user=None):
        """后台推进订单状态 (唯一修改 status 的入口)"""
        order = OrderService.get_order(order_id)
        actor = user.email if user is not None else 'admin'
        try:
            result = workflow.apply_transition(order, status, tracking_number=tracking_number, actor=actor)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info('订单 %s 状态更新为 %s', order.order_number, status)
        dispatch(result.intents)
        return order

    @staticmethod
    def correct(order_id, changes, user=None, reason=None):
        """人工修正订单字段 (带审计)"""
        order = OrderService.get_order(order_id)
        try:
            diff = workflow.correct_order(order, changes, user=user, reason=reason)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        if diff:
            logger.info('订单 %s 人工修正: %s', order.order_number, ', '.join(sorted(diff)))
        return order, diff

    @staticmethod
    def run_follow_up_sweep(now=None):
        """
        回访扫描：已签收且回访日期已到、尚未回访的订单推进到 follow_up 并发送补货提醒
        每个订单单独提交，单个失败不影响其它订单
        返回 (扫描数量, 成功数量)
        """
        now = now or utcnow()
        orders = Order.query.filter(
            Order.status == Order.STATUS_DELIVERED,
            Order.follow_up_date <= now,
            Order.follow_up_sent.is_(False)
        ).order_by(Order.follow_up_date).all()

        sent = 0
        for order in orders:
            order_number = order.order_number
            try:
                result = workflow.apply_transition(order, Order.STATUS_FOLLOW_UP, now=now, actor='system')
                db.session.commit()
            except WholesaleError as e:
                db.session.rollback()
                logger.warning('订单 %s 回访失败: %s', order_number, e.message)
                continue
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error('订单 %s 回访写库失败: %s', order_number, e)
                continue
            dispatch(result.intents)
            sent += 1

        logger.info('回访扫描完成: 扫描 %s 个订单，发送 %s 条提醒', len(orders), sent)
        return len(orders), sent
