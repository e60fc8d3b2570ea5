import pytest
from sqlalchemy.orm import Session

from balances import (
    BalanceDelta,
    BalanceEffect,
    apply_effect,
    check_references,
    compute_deltas,
    effect_for_expense,
)
from database import Base, build_engine
from errors import NotFoundError, ValidationError
from models import (
    AccountKind,
    BankAccount,
    CreditCard,
    Expense,
    PaymentMethod,
    TransactionType,
)


def test_income_credits_the_account():
    effect = BalanceEffect(TransactionType.income, 250, account_id="bank-1")
    assert compute_deltas(effect, 1) == [BalanceDelta(AccountKind.bank, "bank-1", 250)]
    assert compute_deltas(effect, -1) == [
        BalanceDelta(AccountKind.bank, "bank-1", -250)
    ]


def test_income_without_account_touches_nothing():
    effect = BalanceEffect(TransactionType.income, 250, credit_card_id="cc-1")
    assert compute_deltas(effect, 1) == []


def test_transfer_moves_between_accounts():
    effect = BalanceEffect(
        TransactionType.expense,
        500,
        account_id="bank-from",
        to_bank_account_id="bank-to",
    )
    assert compute_deltas(effect, 1) == [
        BalanceDelta(AccountKind.bank, "bank-from", -500),
        BalanceDelta(AccountKind.bank, "bank-to", 500),
    ]


def test_card_payment_lowers_bank_and_card_usage():
    effect = BalanceEffect(
        TransactionType.expense, 500, account_id="bank-from", credit_card_id="cc-to"
    )
    assert compute_deltas(effect, 1) == [
        BalanceDelta(AccountKind.bank, "bank-from", -500),
        BalanceDelta(AccountKind.credit_card, "cc-to", -500),
    ]


def test_card_only_expense_raises_usage():
    effect = BalanceEffect(TransactionType.expense, 120, credit_card_id="cc-1")
    assert compute_deltas(effect, 1) == [
        BalanceDelta(AccountKind.credit_card, "cc-1", 120)
    ]


def test_expense_without_refs_touches_nothing():
    assert compute_deltas(BalanceEffect(TransactionType.expense, 120), 1) == []


def test_sign_must_be_unit():
    with pytest.raises(ValueError):
        compute_deltas(BalanceEffect(TransactionType.expense, 1), 2)


def test_check_references_rejects_bad_transfers():
    with pytest.raises(ValidationError):
        check_references(None, None, "bank-to")
    with pytest.raises(ValidationError):
        check_references("bank-1", None, "bank-1")
    with pytest.raises(ValidationError):
        check_references("bank-1", "cc-1", "bank-2")
    check_references("bank-1", "cc-1", None)


def test_expense_payment_method_mapping():
    card = Expense(
        amount_cents=100,
        payment_method=PaymentMethod.credit_card,
        account_id="bank-1",
        credit_card_id="cc-1",
    )
    effect = effect_for_expense(card)
    assert effect.credit_card_id == "cc-1"
    assert effect.account_id is None

    cash = Expense(amount_cents=100, payment_method=PaymentMethod.cash)
    assert not effect_for_expense(cash).touches_accounts

    bank = Expense(
        amount_cents=100,
        payment_method=PaymentMethod.bank,
        account_id="bank-1",
        to_bank_account_id="bank-2",
    )
    assert effect_for_expense(bank).to_bank_account_id == "bank-2"


def test_apply_then_reverse_restores_balances():
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        source = BankAccount(user_id="u1", name="Checking", balance_cents=1000)
        target = BankAccount(user_id="u1", name="Savings", balance_cents=200)
        card = CreditCard(
            user_id="u1", name="Visa", credit_limit_cents=5000, used_amount_cents=800
        )
        session.add_all([source, target, card])
        session.commit()

        effects = [
            BalanceEffect(
                TransactionType.expense,
                300,
                account_id=source.id,
                to_bank_account_id=target.id,
            ),
            BalanceEffect(
                TransactionType.expense,
                300,
                account_id=source.id,
                credit_card_id=card.id,
            ),
            BalanceEffect(TransactionType.expense, 300, credit_card_id=card.id),
            BalanceEffect(TransactionType.income, 300, account_id=target.id),
        ]
        for effect in effects:
            apply_effect(session, "u1", effect, 1)
            apply_effect(session, "u1", effect, -1)
        session.commit()

        assert session.get(BankAccount, source.id).balance_cents == 1000
        assert session.get(BankAccount, target.id).balance_cents == 200
        assert session.get(CreditCard, card.id).used_amount_cents == 800


def test_apply_effect_scoped_to_owner():
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        account = BankAccount(user_id="u1", name="Checking", balance_cents=1000)
        session.add(account)
        session.commit()

        effect = BalanceEffect(TransactionType.income, 100, account_id=account.id)
        with pytest.raises(NotFoundError):
            apply_effect(session, "someone-else", effect, 1)
        session.rollback()
        assert session.get(BankAccount, account.id).balance_cents == 1000
