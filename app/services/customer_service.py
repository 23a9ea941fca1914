"""客户服务 - 注册、折扣等级设置"""
import logging
from app.extensions import db
from app.exceptions import InvalidInput, NotFound
from app.models.auth import User
from app.models.biz import Customer
from app.services.notification_service import NotificationIntent, dispatch, TEMPLATE_NEW_CUSTOMER
from app.utils.audit import log_action

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ('phone', 'address', 'city', 'state', 'zip', 'website')


class CustomerService:

    @staticmethod
    def register(email, password, business_name, contact_name, **profile):
        """
        批发客户自助注册
        新客户状态为 pending (需运营审核后才能下单)，折扣等级为 auto；
        同时创建关联的登录账号，并通知运营
        """
        email = email.strip().lower()
        if Customer.query.filter_by(email=email).first() or User.query.filter_by(email=email).first():
            raise InvalidInput('An account with this email already exists')

        customer = Customer(
            email=email,
            business_name=business_name.strip(),
            contact_name=contact_name.strip(),
            status=Customer.STATUS_PENDING,
            discount_tier=Customer.TIER_AUTO,
            **{name: (profile.get(name) or '').strip() or None for name in PROFILE_FIELDS},
        )
        user = User(email=email, username=contact_name.strip(), password=password, customer=customer)
        try:
            db.session.add_all([customer, user])
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info('新批发客户注册: %s (%s)', customer.business_name, email)
        dispatch([NotificationIntent(TEMPLATE_NEW_CUSTOMER, {
            'customer_id': customer.id,
            'business_name': customer.business_name,
            'contact_name': customer.contact_name,
            'customer_email': customer.email,
        })])
        return customer

    @staticmethod
    def set_discount_tier(customer_id, tier, user=None):
        """
        设置客户折扣等级 (auto 或固定等级)
        固定等级在任何订单金额下都生效，修改会记录审计日志
        """
        customer = db.session.get(Customer, customer_id)
        if customer is None:
            raise NotFound(f"Customer {customer_id} not found")
        if tier not in Customer.TIER_CHOICES:
            raise InvalidInput(f"Unknown discount tier: {tier}")

        previous = customer.discount_tier
        if previous == tier:
            return customer

        customer.discount_tier = tier
        log_action('customers', 'change_tier', {
            'business_name': customer.business_name,
            'from': previous,
            'to': tier,
        }, target=customer, user=user, commit=False)
        db.session.commit()
        return customer
