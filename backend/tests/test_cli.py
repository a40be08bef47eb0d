"""CLI command tests (flask points / flask system)."""

from datetime import timedelta

from loyalty.models import Role
from loyalty.services import point_ledger_service
from loyalty.services.point_ledger_service import PointTransaction
from loyalty.time_utils import utcnow


def _earn_due(customer_id, amount):
    point_ledger_service.apply_point_transaction(PointTransaction(
        customer_id=customer_id,
        type="earned",
        amount=amount,
        description="Reservation",
        expires_at=utcnow() - timedelta(days=1),
    ))


def test_system_init_creates_roles(app, db_session):
    result = app.test_cli_runner().invoke(args=["system", "init"])

    assert result.exit_code == 0
    assert {r.name for r in db_session.query(Role).all()} == {"admin", "staff", "customer"}


def test_points_expire(app, customer):
    _earn_due(customer.id, 40)

    result = app.test_cli_runner().invoke(args=["points", "expire"])

    assert result.exit_code == 0
    assert "Expired lots: 1" in result.output


def test_points_expire_reports_failures(app, customer):
    _earn_due(customer.id, 40)
    point_ledger_service.adjust_points(customer.id, -30, "Redeemed")

    result = app.test_cli_runner().invoke(args=["points", "expire"])

    assert result.exit_code == 1
    assert "Insufficient points" in result.output


def test_points_expire_rejects_bad_now(app, db_session):
    result = app.test_cli_runner().invoke(args=["points", "expire", "--now", "yesterday"])
    assert result.exit_code == 2


def test_points_adjust_and_balance(app, customer):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["points", "adjust", "--customer-id", str(customer.id), "--amount", "75", "--reason", "Welcome"])
    assert result.exit_code == 0

    result = runner.invoke(args=["points", "balance", "--customer-id", str(customer.id)])
    assert f"Customer {customer.id}: 75 pt" in result.output
