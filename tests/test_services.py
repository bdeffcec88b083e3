from datetime import datetime

import pytest
from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import Session

from database import Base, enable_sqlite_foreign_keys
from models import BankType, Rule, RuleCondition, SyncLog, Transaction
from schemas import BankIn, BankUpdate, CategoryIn, TransactionUpdate
from services import (
    SALARY_SETTING_KEY,
    BankService,
    CategoryService,
    NotFoundError,
    SettingsService,
    TransactionService,
)
from spending import CHART_COLORS


def _engine():
    engine = create_engine("sqlite:///:memory:")
    event.listen(engine, "connect", enable_sqlite_foreign_keys)
    Base.metadata.create_all(engine)
    return engine


def test_bank_create_defaults_and_ordering() -> None:
    engine = _engine()

    with Session(engine) as session:
        banks = BankService(session)
        krom = banks.create(
            BankIn(
                name=" Krom ",
                email_filter="no-reply@krom.id",
                statement_day=1,
                due_day=10,
                parser_type="does-not-exist",
            )
        )
        bca = banks.create(
            BankIn(
                name="BCA Credit",
                email_filter="bca@klikbca.com",
                statement_day=21,
                due_day=5,
                bank_type=BankType.credit,
                color="#EF4444",
                parser_type="bca-credit",
            )
        )

        assert krom.name == "Krom"
        assert krom.parser_type == "generic"
        assert krom.due_day is None
        assert krom.color == CHART_COLORS[0]
        assert bca.due_day == 5
        assert bca.parser_type == "bca-credit"
        assert [bank.name for bank in banks.list_all()] == ["BCA Credit", "Krom"]


def test_bank_update_rejects_unknown_parser_and_clears_due_day() -> None:
    engine = _engine()

    with Session(engine) as session:
        banks = BankService(session)
        bank = banks.create(
            BankIn(
                name="Jenius CC",
                email_filter="cc@jenius.com",
                statement_day=21,
                due_day=5,
                bank_type=BankType.credit,
            )
        )

        with pytest.raises(ValueError):
            banks.update(bank.id, BankUpdate(parser_type="mystery"))

        updated = banks.update(bank.id, BankUpdate(statement_day=25))
        assert updated.statement_day == 25
        assert updated.due_day == 5

        updated = banks.update(bank.id, BankUpdate(due_day=None))
        assert updated.due_day is None

        updated = banks.update(bank.id, BankUpdate(due_day=7, bank_type=BankType.debit))
        assert updated.bank_type == BankType.debit
        assert updated.due_day is None


def test_bank_delete_cascades_to_transactions_and_sync_logs() -> None:
    engine = _engine()

    with Session(engine) as session:
        banks = BankService(session)
        bank = banks.create(
            BankIn(name="BCA", email_filter="bca@klikbca.com", statement_day=1)
        )
        session.add(
            Transaction(
                bank_id=bank.id, amount=10_000, merchant="KFC", date=datetime(2024, 2, 1)
            )
        )
        session.add(SyncLog(bank_id=bank.id, synced_at=datetime(2024, 2, 1), email_count=1))
        session.commit()

        banks.delete(bank.id)

        assert session.scalars(select(Transaction)).all() == []
        assert session.scalars(select(SyncLog)).all() == []
        with pytest.raises(NotFoundError):
            banks.get(bank.id)


def test_transaction_update_installment_terms_validation() -> None:
    engine = _engine()

    with Session(engine) as session:
        bank = BankService(session).create(
            BankIn(
                name="BCA Credit",
                email_filter="bca@klikbca.com",
                statement_day=21,
                due_day=5,
                bank_type=BankType.credit,
            )
        )
        txn = Transaction(
            bank_id=bank.id, amount=1_200_000, merchant="Laptop", date=datetime(2024, 1, 10)
        )
        session.add(txn)
        session.commit()

        service = TransactionService(session)
        assert service.update(txn.id, TransactionUpdate(installment_terms=12)).installment_terms == 12
        assert service.update(txn.id, TransactionUpdate(installment_terms=1)).installment_terms is None

        service.update(txn.id, TransactionUpdate(installment_terms=6))
        assert service.update(txn.id, TransactionUpdate(installment_terms=None)).installment_terms is None

        with pytest.raises(ValueError, match="Invalid installment terms"):
            service.update(txn.id, TransactionUpdate(installment_terms=5))

        with pytest.raises(ValueError, match="No valid fields"):
            service.update(txn.id, TransactionUpdate())

        updated = service.update(txn.id, TransactionUpdate(category=" Electronics "))
        assert updated.category == "Electronics"
        assert updated.installment_terms is None

        with pytest.raises(NotFoundError):
            service.update(999, TransactionUpdate(category="Food"))


def test_transaction_list_filters_and_installment_lookup() -> None:
    engine = _engine()

    with Session(engine) as session:
        banks = BankService(session)
        debit = banks.create(BankIn(name="BCA", email_filter="a@bca.co.id", statement_day=1))
        credit = banks.create(
            BankIn(
                name="Jenius CC",
                email_filter="cc@jenius.com",
                statement_day=21,
                bank_type=BankType.credit,
            )
        )
        session.add_all(
            [
                Transaction(bank_id=debit.id, amount=1, merchant="A", date=datetime(2024, 1, 31)),
                Transaction(bank_id=debit.id, amount=2, merchant="B", date=datetime(2024, 2, 1)),
                Transaction(bank_id=credit.id, amount=3, merchant="C", date=datetime(2024, 2, 15)),
                Transaction(
                    bank_id=credit.id, amount=600, merchant="D",
                    date=datetime(2023, 6, 1), installment_terms=6,
                ),
                Transaction(
                    bank_id=credit.id, amount=300, merchant="E",
                    date=datetime(2021, 6, 1), installment_terms=3,
                ),
            ]
        )
        session.commit()

        service = TransactionService(session)
        february = service.list(start=datetime(2024, 2, 1), end=datetime(2024, 2, 29, 23, 59, 59))
        assert [txn.merchant for txn in february] == ["C", "B"]
        assert [txn.merchant for txn in service.list(bank_id=debit.id)] == ["B", "A"]

        installments = service.installment_transactions([credit.id], datetime(2022, 2, 1))
        assert [txn.merchant for txn in installments] == ["D"]
        assert service.installment_transactions([], datetime(2022, 2, 1)) == []


def test_salary_setting_validation_and_fallback() -> None:
    engine = _engine()

    with Session(engine) as session:
        settings = SettingsService(session)
        assert settings.salary() == 30_000_000

        with pytest.raises(ValueError, match="valid number"):
            settings.upsert(SALARY_SETTING_KEY, "lots")
        with pytest.raises(ValueError, match="positive"):
            settings.upsert(SALARY_SETTING_KEY, -5)
        with pytest.raises(ValueError, match="positive"):
            settings.upsert(SALARY_SETTING_KEY, "0")

        settings.upsert(SALARY_SETTING_KEY, 25_000_000)
        assert settings.salary() == 25_000_000
        settings.upsert(SALARY_SETTING_KEY, "27500000.5")
        assert settings.salary() == 27_500_000.5

        settings.upsert("theme", "dark")
        assert settings.all() == {SALARY_SETTING_KEY: "27500000.5", "theme": "dark"}
        assert settings.get("theme").value == "dark"
        with pytest.raises(NotFoundError):
            settings.get("missing")

        # rows written outside the service can still be garbage
        settings.get(SALARY_SETTING_KEY).value = "n/a"
        session.commit()
        assert settings.salary() == 30_000_000


def test_categories_union_and_duplicates() -> None:
    engine = _engine()

    with Session(engine) as session:
        bank = BankService(session).create(
            BankIn(name="BCA", email_filter="a@bca.co.id", statement_day=1)
        )
        session.add(
            Transaction(
                bank_id=bank.id, amount=1, merchant="A", category="Food",
                date=datetime(2024, 1, 1),
            )
        )
        session.add(
            Rule(condition=RuleCondition.contains, condition_value="grab", category="Transport")
        )
        session.commit()

        categories = CategoryService(session)
        created = categories.create(CategoryIn(name="Bills"))
        assert created.color == CHART_COLORS[-1]

        with pytest.raises(ValueError, match="already exists"):
            categories.create(CategoryIn(name="Bills"))

        assert categories.list_names() == ["Bills", "Food", "Transport"]
