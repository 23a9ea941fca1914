import logging
import colorlog
from flask import Flask, jsonify
from flask_wtf.csrf import CSRFError
from config import config
from app.extensions import db, migrate, login_manager, cache, csrf
from app.exceptions import WholesaleError
from app.services.notification_service import notifier
from app.services.payment_gateway import payment_gateway

# 导入 commands 模块，用于注册 CLI 命令
from app import commands


def create_app(config_name='default'):
    """批发订货系统应用工厂函数"""
    app = Flask(__name__)

    # 1. 加载配置
    app.config.from_object(config[config_name])
    config[config_name].init_app(app)

    # 2. 初始化扩展
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    cache.init_app(app)
    csrf.init_app(app)
    notifier.init_app(app)
    payment_gateway.init_app(app)

    # 3. 配置日志
    configure_logging(app)

    # 4. 注册蓝图 (Blueprints)
    register_blueprints(app)

    # 5. 注册全局错误处理
    register_error_handlers(app)

    # 6. 注册 CLI 命令
    register_commands(app)

    return app


def register_blueprints(app):
    """注册所有业务模块蓝图"""
    # 认证蓝图
    from app.blueprints.auth import auth_bp
    app.register_blueprint(auth_bp, url_prefix='/auth')

    # 商城 (购物车、结算、公开折扣表)
    from app.blueprints.shop import shop_bp
    app.register_blueprint(shop_bp, url_prefix='/api')

    # 后台管理蓝图
    from app.blueprints.admin import admin_bp
    app.register_blueprint(admin_bp, url_prefix='/api/admin')

    # 支付回调 (外部调用，不校验 CSRF)
    from app.blueprints.webhooks import webhooks_bp
    csrf.exempt(webhooks_bp)
    app.register_blueprint(webhooks_bp, url_prefix='/api/webhooks')

    # 定时任务蓝图
    from app.blueprints.cron import cron_bp
    csrf.exempt(cron_bp)
    app.register_blueprint(cron_bp, url_prefix='/api/cron')


def register_error_handlers(app):
    @app.errorhandler(WholesaleError)
    def handle_wholesale_error(e):
        if e.code >= 500:
            app.logger.error('%s: %s', type(e).__name__, e.message)
        return jsonify(e.to_dict()), e.code

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        return jsonify({'success': False, 'code': 400, 'message': e.description}), 400

    @app.errorhandler(404)
    def page_not_found(e):
        return jsonify({'success': False, 'code': 404, 'message': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'success': False, 'code': 405, 'message': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def internal_server_error(e):
        return jsonify({'success': False, 'code': 500, 'message': 'Internal server error'}), 500


def register_commands(app):
    """注册 Flask CLI 命令"""
    app.cli.add_command(commands.status)
    app.cli.add_command(commands.forge)
    app.cli.add_command(commands.follow_ups)
    app.cli.add_command(commands.invoices_overdue)


def configure_logging(app):
    """配置彩色控制台日志，提升开发体验"""
    if app.debug:
        handler = logging.StreamHandler()
        handler.setLevel(logging.INFO)

        formatter = colorlog.ColoredFormatter(
            "%(log_color)s[%(asctime)s] %(levelname)-8s%(reset)s %(blue)s%(message)s",
            datefmt="%H:%M:%S",
            reset=True,
            log_colors={
                'DEBUG':    'cyan',
                'INFO':     'green',
                'WARNING':  'yellow',
                'ERROR':    'red',
                'CRITICAL': 'red,bg_white',
            },
            secondary_log_colors={},
            style='%'
        )
        handler.setFormatter(formatter)
        # 服务层模块 logger (app.services.*) 会冒泡到 app.logger
        app.logger.addHandler(handler)
