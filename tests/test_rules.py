from datetime import datetime
from types import SimpleNamespace

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import Bank, BankType, RuleCondition, Transaction
from rules_engine import UNCATEGORIZED, apply_rules, match_rule
from schemas import RuleIn, RuleUpdate
from services import RuleService


def _rule(condition, value, category, priority=0, bank_type=None):
    return SimpleNamespace(
        condition=condition,
        condition_value=value,
        category=category,
        priority=priority,
        bank_type=bank_type,
    )


def test_match_rule_is_case_insensitive() -> None:
    text = "GRAB* Food order at Jakarta"

    assert match_rule(text, _rule("contains", "food ORDER", "Food"))
    assert match_rule(text, _rule("startsWith", "grab", "Food"))
    assert match_rule(text, _rule("endsWith", "JAKARTA", "Food"))
    assert not match_rule(text, _rule("equals", "grab", "Food"))
    assert match_rule("Netflix", _rule(RuleCondition.equals, "netflix", "Fun"))


def test_merchant_conditions_only_look_at_merchant() -> None:
    text = "Tokopedia payment via Gopay"
    rule = _rule("merchantContains", "gopay", "Wallet")

    assert not match_rule(text, rule, merchant="Tokopedia")
    assert match_rule(text, rule, merchant="GOPAY TOPUP")
    assert not match_rule(text, rule)
    assert match_rule(text, _rule(RuleCondition.merchant_starts_with, "toko", "Shop"), "Tokopedia")


def test_unknown_condition_never_matches() -> None:
    assert not match_rule("anything", _rule("regex", ".*", "X"))


def test_apply_rules_prefers_priority_then_input_order() -> None:
    rules = [
        _rule("contains", "grab", "Transport", priority=1),
        _rule("contains", "food", "Food", priority=5),
        _rule("contains", "grab", "Delivery", priority=5),
    ]

    assert apply_rules("grab food", rules) == "Food"
    assert apply_rules("grab ride", rules) == "Delivery"
    assert apply_rules("bus ticket", rules) == UNCATEGORIZED
    assert apply_rules("grab food", []) == UNCATEGORIZED


def test_apply_rules_filters_by_bank_type() -> None:
    rules = [
        _rule("contains", "payment", "Credit Card Payment", priority=10, bank_type=BankType.debit),
        _rule("contains", "payment", "Refund", priority=1),
    ]

    assert apply_rules("Payment received", rules, BankType.debit) == "Credit Card Payment"
    assert apply_rules("Payment received", rules, BankType.credit) == "Refund"
    assert apply_rules("Payment received", rules) == "Refund"


def test_rule_service_orders_updates_and_clears_scope() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = RuleService(session)
        low = service.create(
            RuleIn(condition=RuleCondition.contains, condition_value="grab", category="Transport")
        )
        high = service.create(
            RuleIn(
                condition=RuleCondition.merchant_equals,
                condition_value="Netflix",
                category="Subscriptions",
                priority=10,
                bank_type=BankType.credit,
            )
        )

        assert [rule.id for rule in service.list_all()] == [high.id, low.id]

        updated = service.update(high.id, RuleUpdate(bank_type=None))
        assert updated.bank_type is None
        assert updated.priority == 10

        updated = service.update(low.id, RuleUpdate(priority=20, category="Rides"))
        assert updated.category == "Rides"
        assert updated.bank_type is None
        assert [rule.id for rule in service.list_all()] == [low.id, high.id]

        service.delete(high.id)
        assert [rule.id for rule in service.list_all()] == [low.id]


def test_reclassify_updates_changed_transactions_only() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        debit = Bank(
            name="BCA", email_filter="bca@bca.co.id", statement_day=1,
            bank_type=BankType.debit, color="#3B82F6",
        )
        credit = Bank(
            name="Jenius CC", email_filter="cc@jenius.com", statement_day=21, due_day=5,
            bank_type=BankType.credit, color="#10B981",
        )
        session.add_all([debit, credit])
        session.flush()
        session.add_all(
            [
                Transaction(
                    bank_id=debit.id, amount=50_000, merchant="GRAB",
                    category="Uncategorized", date=datetime(2024, 2, 1),
                    raw_content="Grab ride",
                ),
                Transaction(
                    bank_id=credit.id, amount=150_000, merchant="Netflix",
                    category="Subscriptions", date=datetime(2024, 2, 2),
                    raw_content="Netflix monthly",
                ),
                Transaction(
                    bank_id=credit.id, amount=75_000, merchant="GrabFood",
                    category="Food", date=datetime(2024, 2, 3),
                    raw_content="order",
                ),
            ]
        )
        session.commit()

        service = RuleService(session)
        service.create(
            RuleIn(condition=RuleCondition.merchant_starts_with, condition_value="grab", category="Transport")
        )
        service.create(
            RuleIn(
                condition=RuleCondition.merchant_equals,
                condition_value="netflix",
                category="Subscriptions",
                bank_type=BankType.credit,
            )
        )

        assert service.reclassify(credit.id) == 1
        assert service.reclassify() == 1
        assert service.reclassify() == 0

        categories = {
            txn.merchant: txn.category
            for txn in session.query(Transaction).order_by(Transaction.id)
        }
        assert categories == {
            "GRAB": "Transport",
            "Netflix": "Subscriptions",
            "GrabFood": "Transport",
        }
