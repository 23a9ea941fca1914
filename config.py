import os
from dotenv import load_dotenv

# 加载 .env 环境变量
load_dotenv()
basedir = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name, default='false'):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes')


class Config:
    """基础配置类"""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'hard-to-guess-string'

    # 数据库配置
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_RECORD_QUERIES = True

    # 单号规则 (BD-2026-001 / BDI-2026-001)
    ORDER_NUMBER_PREFIX = os.environ.get('ORDER_NUMBER_PREFIX', 'BD')
    INVOICE_NUMBER_PREFIX = os.environ.get('INVOICE_NUMBER_PREFIX', 'BDI')

    # 账期与回访
    NET_TERMS_DAYS = int(os.environ.get('NET_TERMS_DAYS', 30))
    FOLLOW_UP_DAYS = int(os.environ.get('FOLLOW_UP_DAYS', 30))
    CURRENCY = os.environ.get('CURRENCY', 'USD')

    # 固定折扣等级是否不得超过按金额自动计算的折扣 (默认不封顶)
    PRICING_CAP_PINNED_TIER = _env_bool('PRICING_CAP_PINNED_TIER')

    # Square 支付配置
    SQUARE_ACCESS_TOKEN = os.environ.get('SQUARE_ACCESS_TOKEN', '')
    SQUARE_ENVIRONMENT = os.environ.get('SQUARE_ENVIRONMENT', 'sandbox')
    SQUARE_LOCATION_ID = os.environ.get('SQUARE_LOCATION_ID', '')
    SQUARE_API_VERSION = os.environ.get('SQUARE_API_VERSION', '2024-10-17')
    # Webhook 签名校验 (未配置则跳过校验)
    SQUARE_WEBHOOK_SIGNATURE_KEY = os.environ.get('SQUARE_WEBHOOK_SIGNATURE_KEY', '')
    SQUARE_WEBHOOK_URL = os.environ.get('SQUARE_WEBHOOK_URL', '')
    PAYMENT_TIMEOUT = float(os.environ.get('PAYMENT_TIMEOUT', 10))

    # 通知配置
    SENDGRID_API_KEY = os.environ.get('SENDGRID_API_KEY', '')
    SENDGRID_FROM_EMAIL = os.environ.get('SENDGRID_FROM_EMAIL', 'wholesale@banwelldesigns.com')
    SENDGRID_FROM_NAME = os.environ.get('SENDGRID_FROM_NAME', 'Banwell Designs')
    ORDER_NOTIFICATION_EMAIL = os.environ.get('ORDER_NOTIFICATION_EMAIL', '')
    PUSH_WEBHOOK_URL = os.environ.get('PUSH_WEBHOOK_URL', '')
    NOTIFY_TIMEOUT = float(os.environ.get('NOTIFY_TIMEOUT', 10))
    # 通知是否在后台线程发送
    NOTIFY_ASYNC = _env_bool('NOTIFY_ASYNC', 'true')

    PUBLIC_BASE_URL = os.environ.get('PUBLIC_BASE_URL', 'http://localhost:5000')

    # 定时任务 (回访扫描) 访问令牌
    CRON_SECRET = os.environ.get('CRON_SECRET', '')

    # 缓存配置 (默认使用 SimpleCache，生产环境可改 Redis)
    CACHE_TYPE = "SimpleCache"
    CACHE_DEFAULT_TIMEOUT = 300

    @staticmethod
    def init_app(app):
        pass


class DevelopmentConfig(Config):
    """开发环境配置"""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'instance', 'wholesale.db')


class ProductionConfig(Config):
    """生产环境配置"""
    DEBUG = False

    DATABASE_URL = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'instance', 'wholesale_prod.db')
    # PostgreSQL URL 修正（部分平台使用 postgres://）
    if DATABASE_URL and DATABASE_URL.startswith('postgres://'):
        DATABASE_URL = DATABASE_URL.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = DATABASE_URL

    # 安全设置
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    @classmethod
    def init_app(cls, app):
        Config.init_app(app)
        if not app.config.get('CRON_SECRET'):
            app.logger.warning('CRON_SECRET 未配置，回访扫描接口将拒绝所有请求')


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    WTF_CSRF_ENABLED = False
    NOTIFY_ASYNC = False
    CACHE_TYPE = "NullCache"
    # 测试环境不读取 .env 中的业务开关与外部服务配置
    ORDER_NUMBER_PREFIX = 'BD'
    INVOICE_NUMBER_PREFIX = 'BDI'
    NET_TERMS_DAYS = 30
    FOLLOW_UP_DAYS = 30
    PRICING_CAP_PINNED_TIER = False
    SQUARE_ACCESS_TOKEN = 'test-token'
    SQUARE_ENVIRONMENT = 'sandbox'
    SQUARE_LOCATION_ID = 'LOC-TEST'
    SQUARE_WEBHOOK_SIGNATURE_KEY = ''
    SQUARE_WEBHOOK_URL = ''
    SENDGRID_API_KEY = ''
    PUSH_WEBHOOK_URL = ''
    CRON_SECRET = 'test-cron-secret'
    ORDER_NOTIFICATION_EMAIL = 'orders@example.com'
    PUBLIC_BASE_URL = 'https://wholesale.example.com'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
