"""
CLI command tests (flask system / users / stock groups).
"""

from stockbook.models import Invoice, Product, StockMovement, User
from stockbook.services.inventory_service import reconcile_stock


class TestSeedCommand:

    def test_seed_creates_demo_account(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["system", "seed", "--email", "demo@example.com"])
        assert result.exit_code == 0, result.output
        assert "Seeded demo data for demo@example.com" in result.output

        db_session.expire_all()
        user = db_session.query(User).filter_by(email="demo@example.com").one()
        assert db_session.query(Product).filter_by(user_id=user.id).count() == 9

        invoices = db_session.query(Invoice).filter_by(user_id=user.id).order_by(Invoice.id).all()
        assert [(i.invoice_no, i.status) for i in invoices] == [("INV-0001", "PAID"), ("INV-0002", "PENDING")]
        assert invoices[0].total_amount_cents == 89999 + 12999 + 2 * 1299 + 10640
        assert invoices[1].total_amount_cents == 119999 + 64999 + 14800 - 5000

        laptop = db_session.query(Product).filter_by(sku="DELL-XPS-13-001").one()
        assert laptop.stock_quantity == 24
        assert db_session.query(StockMovement).filter_by(user_id=user.id, type="OUT").count() == 5
        assert reconcile_stock(user_id=user.id) == []

    def test_seed_twice_fails(self, app, db_session):
        runner = app.test_cli_runner()
        runner.invoke(args=["system", "seed", "--email", "demo@example.com"])
        result = runner.invoke(args=["system", "seed", "--email", "demo@example.com"])
        assert result.exit_code != 0
        assert "User with this email already exists" in result.output


class TestUsersCommands:

    def test_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create", "--name", "Shop Owner",
            "--email", "owner@example.com", "--password", "secret123",
        ])
        assert result.exit_code == 0, result.output
        assert "Created user: Shop Owner" in result.output

        result = runner.invoke(args=["users", "list"])
        assert "owner@example.com" in result.output

    def test_create_rejects_weak_password(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create", "--name", "X", "--email", "x@example.com", "--password", "short",
        ])
        assert result.exit_code != 0
        assert "at least 8 characters" in result.output

    def test_list_empty(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["users", "list"])
        assert "No users found." in result.output


class TestStockCheck:

    def test_consistent_ledger(self, app, db_session, product_a, product_b):
        result = app.test_cli_runner().invoke(args=["stock", "check"])
        assert result.exit_code == 0
        assert "PASS Stock ledger consistent" in result.output

    def test_drift_exits_nonzero(self, app, db_session, user_a, product_a, product_b):
        db_session.expire_all()
        product = db_session.get(Product, product_a["id"])
        product.stock_quantity = 25
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["stock", "check"])
        assert result.exit_code == 1
        assert "A-LAPTOP" in result.output
        assert "+5" in result.output

        result = app.test_cli_runner().invoke(args=["stock", "check", "--user-id", str(product_b["user_id"])])
        assert result.exit_code == 0
