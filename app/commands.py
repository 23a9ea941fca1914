import click
import random
from flask.cli import with_appcontext
from app.extensions import db
from app.models import (
    User, Customer, ProductCategory, Product, DiscountTier,
    Order, Invoice, Communication,
)
from app.services.invoice_service import InvoiceService
from app.services.order_service import OrderService
from app.services.pricing import DEFAULT_TIERS, CATEGORY_PRICES, SUN_CATCHER_CATEGORY, get_retail_price, \
    detect_size
from app.utils.fake_gen import fake


@click.command('status')
@with_appcontext
def status():
    """
    [验证指令] 查看当前数据库中的数据统计。
    """
    click.echo(click.style('📊 批发系统数据库状态:', fg='cyan', bold=True))

    try:
        click.echo(f" - 客户 (Customers): \t{Customer.query.count()}")
        click.echo(f" - 商品 (Products): \t{Product.query.count()}")
        click.echo(f" - 订单 (Orders): \t{Order.query.count()}")
        click.echo(f" - 发票 (Invoices): \t{Invoice.query.count()}")
        click.echo(f" - 沟通记录 (Logs): \t{Communication.query.count()}")
        for s in (Order.STATUS_PENDING_PAYMENT, Order.STATUS_PAYMENT_RECEIVED, Order.STATUS_BEING_FULFILLED,
                  Order.STATUS_SHIPPED, Order.STATUS_DELIVERED, Order.STATUS_FOLLOW_UP):
            click.echo(f"   · {s}: {Order.query.filter_by(status=s).count()}")
    except Exception as e:
        click.echo(click.style(f'✘ 数据库读取失败: {str(e)}', fg='red'))
        click.echo("请检查是否执行了 'flask db upgrade'")


@click.command('forge')
@click.option('--customers', default=10, help='生成的演示客户数量')
@click.option('--products', default=12, help='每个分类生成的商品数量')
@click.option('--admin-email', default='admin@wholesale.local', help='管理员账号')
@click.option('--admin-password', default='admin', help='管理员密码')
@with_appcontext
def forge(customers, products, admin_email, admin_password):
    """
    [初始化指令] 重建数据库并填充折扣等级、商品目录、演示客户。
    警告：这将清除数据库中的现有数据！
    """
    click.echo(click.style('⚡ 初始化批发系统演示数据...', fg='cyan', bold=True))

    db.drop_all()
    db.create_all()

    click.echo('正在写入折扣等级...')
    for tier in DEFAULT_TIERS:
        db.session.add(DiscountTier(
            code=tier.code, name=tier.name,
            min_order_amount=tier.min_order_amount, discount_percent=tier.discount_percent,
        ))

    click.echo('正在构建商品目录...')
    init_catalog(products)

    click.echo('正在注册演示客户...')
    init_customers(customers)

    db.session.add(User(email=admin_email, username='admin', password=admin_password, is_admin=True))
    db.session.commit()

    click.echo(click.style('✔ 演示数据构建完成！', fg='green', bold=True))
    click.echo(f"管理员账号: {admin_email} / 密码: {admin_password}")


def init_catalog(per_category=12):
    """初始化分类与商品，零售价按分类与标题推断"""
    names = list(CATEGORY_PRICES) + [SUN_CATCHER_CATEGORY]
    sku = 1000
    for order, name in enumerate(names):
        category = ProductCategory(
            name=name,
            slug=name.lower().replace(' ', '-'),
            default_price=get_retail_price(name, ''),
            sort_order=order,
        )
        db.session.add(category)
        for _ in range(per_category):
            sku += 1
            if name == SUN_CATCHER_CATEGORY:
                title = fake.sun_catcher_title()
            else:
                title = f"{fake.motif()} {name[:-1]}: Stained Glass-Style Decor"
            db.session.add(Product(
                sku=f"BD-{sku}",
                title=title,
                short_title=title.split(':')[0],
                retail_price=get_retail_price(name, title),
                size=detect_size(title),
                category=category,
                sort_order=sku,
            ))
    db.session.commit()


def init_customers(count=10):
    """初始化演示客户与登录账号 (密码统一为 password)"""
    for i in range(count):
        customer = Customer(
            email=f"buyer{i}@example.com",
            business_name=fake.shop_name(),
            contact_name=fake.name(),
            phone=fake.phone_number(),
            address=fake.street_address(),
            city=fake.city(),
            state=fake.state_abbr(),
            zip=fake.postcode(),
            discount_tier=random.choice(['auto', 'auto', 'auto', 'tier1', 'tier2']),
        )
        db.session.add(customer)
        db.session.add(User(email=customer.email, username=customer.contact_name,
                            password='password', customer=customer))
    db.session.commit()


@click.command('follow-ups')
@with_appcontext
def follow_ups():
    """[定时任务] 回访扫描：推进到期订单并发送补货提醒"""
    processed, sent = OrderService.run_follow_up_sweep()
    click.echo(f"Processed {processed} orders, sent {sent} reminders")


@click.command('invoices-overdue')
@with_appcontext
def invoices_overdue():
    """[定时任务] 标记逾期发票"""
    count = InvoiceService.mark_overdue()
    click.echo(f"{count} invoices marked overdue")
