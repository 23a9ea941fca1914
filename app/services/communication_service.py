"""沟通记录服务 - 后台手工记录电话、邮件、会面等"""
from app.extensions import db
from app.exceptions import InvalidInput, NotFound
from app.models.biz import Customer
from app.models.crm import Communication
from app.models.trade import Order
from app.utils.clock import utcnow


class CommunicationService:

    @staticmethod
    def list_communications(customer_id=None, page=1, per_page=50):
        query = Communication.query
        if customer_id:
            query = query.filter_by(customer_id=customer_id)
        return query.order_by(Communication.date.desc(), Communication.id.desc()).paginate(
            page=page, per_page=per_page, error_out=False
        )

    @staticmethod
    def log(customer_id, type, subject=None, content=None, order_id=None, date=None, user=None):
        """
        追加一条沟通记录 (只追加，不提供修改)
        date 缺省为当前时间；关联订单时订单必须属于该客户
        """
        if db.session.get(Customer, customer_id) is None:
            raise NotFound(f"Customer {customer_id} not found")
        if order_id is not None:
            order = db.session.get(Order, order_id)
            if order is None:
                raise NotFound(f"Order {order_id} not found")
            if order.customer_id != customer_id:
                raise InvalidInput(f"Order {order.order_number} does not belong to customer {customer_id}")

        communication = Communication(
            customer_id=customer_id,
            order_id=order_id,
            type=type,
            subject=subject,
            content=content,
            date=date or utcnow(),
            logged_by=user.email if user is not None else 'admin',
        )
        communication.save()
        return communication
