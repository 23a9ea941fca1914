from app.models import Customer, Product, User, DiscountTier


def test_forge_builds_demo_data(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=['forge', '--customers', '3', '--products', '2',
                                 '--admin-email', 'ops@example.com', '--admin-password', 'secret'])
    assert result.exit_code == 0, result.output
    assert 'ops@example.com' in result.output

    with app.app_context():
        assert Customer.query.count() == 3
        assert Product.query.count() == 8
        assert DiscountTier.query.count() == 3
        assert User.query.filter_by(is_admin=True).one().verify_password('secret')
        sun = Product.query.filter(Product.title.contains('inch')).all()
        assert sun and all(p.retail_price in (7200, 9800, 11900, 15300) for p in sun)
        assert all(p.size for p in sun)

    result = runner.invoke(args=['status'])
    assert result.exit_code == 0
    assert 'pending_payment: 0' in result.output


def test_scheduled_commands(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['follow-ups'])
    assert result.exit_code == 0
    assert 'Processed 0 orders, sent 0 reminders' in result.output

    result = runner.invoke(args=['invoices-overdue'])
    assert result.exit_code == 0
    assert '0 invoices marked overdue' in result.output
