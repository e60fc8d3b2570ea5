from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from errors import NotFoundError, ValidationError
from models import (
    AccountKind,
    BankAccount,
    CreditCard,
    Expense,
    PaymentMethod,
    Transaction,
    TransactionType,
)


@dataclass(frozen=True)
class BalanceEffect:
    type: TransactionType
    amount_cents: int
    account_id: Optional[str] = None
    credit_card_id: Optional[str] = None
    to_bank_account_id: Optional[str] = None

    @property
    def touches_accounts(self) -> bool:
        return bool(self.account_id or self.credit_card_id)


@dataclass(frozen=True)
class BalanceDelta:
    target: AccountKind  # bank for bank/wallet balances, credit_card for usage
    target_id: str
    delta_cents: int


def check_references(
    account_id: Optional[str],
    credit_card_id: Optional[str],
    to_bank_account_id: Optional[str],
) -> None:
    if to_bank_account_id:
        if not account_id:
            raise ValidationError("A transfer needs a source bank account")
        if to_bank_account_id == account_id:
            raise ValidationError("Cannot transfer to the same bank account")
        if credit_card_id:
            raise ValidationError(
                "A transfer cannot also target a credit card"
            )


def ensure_references(
    session: Session,
    user_id: str,
    account_id: Optional[str],
    credit_card_id: Optional[str],
    to_bank_account_id: Optional[str],
) -> None:
    """Every referenced account or card must exist and belong to the user.

    Call before the row is flushed.
    """
    for model, label, ref in (
        (BankAccount, "Bank account", account_id),
        (CreditCard, "Credit card", credit_card_id),
        (BankAccount, "Bank account", to_bank_account_id),
    ):
        if not ref:
            continue
        found = session.scalar(
            select(model.id).where(model.id == ref, model.user_id == user_id)
        )
        if found is None:
            raise NotFoundError(f"{label} {ref} not found")


def effect_for_transaction(txn: Transaction) -> BalanceEffect:
    return BalanceEffect(
        type=txn.type,
        amount_cents=txn.amount_cents,
        account_id=txn.account_id,
        credit_card_id=txn.credit_card_id,
        to_bank_account_id=txn.to_bank_account_id,
    )


def effect_for_expense(expense: Expense) -> BalanceEffect:
    """Translate a stand-alone expense's payment method into account refs."""
    method = expense.payment_method
    account_id = None
    credit_card_id = None
    to_bank_account_id = None
    if method == PaymentMethod.credit_card and expense.credit_card_id:
        credit_card_id = expense.credit_card_id
    elif method in (PaymentMethod.debit_card, PaymentMethod.cash) and expense.account_id:
        account_id = expense.account_id
    elif method == PaymentMethod.bank and expense.account_id:
        account_id = expense.account_id
        if expense.to_bank_account_id:
            to_bank_account_id = expense.to_bank_account_id
        elif expense.credit_card_id:
            credit_card_id = expense.credit_card_id
    return BalanceEffect(
        type=TransactionType.expense,
        amount_cents=expense.amount_cents,
        account_id=account_id,
        credit_card_id=credit_card_id,
        to_bank_account_id=to_bank_account_id,
    )


def compute_deltas(effect: BalanceEffect, sign: int) -> list[BalanceDelta]:
    if sign not in (1, -1):
        raise ValueError("sign must be +1 or -1")
    amount = sign * effect.amount_cents

    if effect.type == TransactionType.income:
        if effect.account_id:
            return [BalanceDelta(AccountKind.bank, effect.account_id, amount)]
        return []

    if effect.account_id and effect.to_bank_account_id:
        return [
            BalanceDelta(AccountKind.bank, effect.account_id, -amount),
            BalanceDelta(AccountKind.bank, effect.to_bank_account_id, amount),
        ]
    if effect.account_id and effect.credit_card_id:
        # Paying the card bill from a bank account lowers both.
        return [
            BalanceDelta(AccountKind.bank, effect.account_id, -amount),
            BalanceDelta(AccountKind.credit_card, effect.credit_card_id, -amount),
        ]
    if effect.account_id:
        return [BalanceDelta(AccountKind.bank, effect.account_id, -amount)]
    if effect.credit_card_id:
        return [BalanceDelta(AccountKind.credit_card, effect.credit_card_id, amount)]
    return []


def apply_effect(
    session: Session, user_id: str, effect: BalanceEffect, sign: int
) -> list[BalanceDelta]:
    """Apply the effect as relative increments; never reads a balance first.

    Runs inside the caller's unit of work and does not commit.
    """
    deltas = compute_deltas(effect, sign)
    for delta in deltas:
        if delta.target == AccountKind.credit_card:
            stmt = (
                update(CreditCard)
                .where(CreditCard.id == delta.target_id, CreditCard.user_id == user_id)
                .values(
                    used_amount_cents=CreditCard.used_amount_cents + delta.delta_cents
                )
            )
            label = "Credit card"
        else:
            stmt = (
                update(BankAccount)
                .where(
                    BankAccount.id == delta.target_id, BankAccount.user_id == user_id
                )
                .values(balance_cents=BankAccount.balance_cents + delta.delta_cents)
            )
            label = "Bank account"
        result = session.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError(f"{label} {delta.target_id} not found")
    return deltas
