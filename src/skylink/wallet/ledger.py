from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from skylink.db.repositories import UserRepository, WalletTransactionRepository
from skylink.errors import InsufficientFunds, UserNotFound, ValidationFailed
from skylink.models.booking import (
    OrderEvent,
    OrderEventType,
    TransactionType,
    User,
    WalletTransaction,
    to_money,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class WalletLedger:
    def __init__(
        self,
        user_repository: UserRepository | None = None,
        transaction_repository: WalletTransactionRepository | None = None,
        bus: Any | None = None,
    ) -> None:
        self.user_repository = user_repository or UserRepository()
        self.transaction_repository = transaction_repository or WalletTransactionRepository()
        self.bus = bus

    def get_user(self, user_id: int) -> User:
        row = self.user_repository.get(user_id)
        if row is None:
            raise UserNotFound(user_id)
        return User.model_validate(row)

    def balance(self, user_id: int) -> Decimal:
        return self.get_user(user_id).wallet_balance

    def ensure_funds(self, user_id: int, amount: Decimal) -> None:
        balance = self.balance(user_id)
        if balance < to_money(amount):
            raise InsufficientFunds(required=to_money(amount), balance=balance)

    def debit(
        self,
        user_id: int,
        amount: Decimal,
        description: str,
        order_number: str | None = None,
    ) -> WalletTransaction:
        amount = self._positive(amount)
        self.get_user(user_id)
        balance = self.user_repository.adjust_balance(user_id, -amount, floor=ZERO)
        if balance is None:
            current = self.balance(user_id)
            logger.warning("Debit of %s refused for user %s (balance %s)", amount, user_id, current)
            raise InsufficientFunds(required=amount, balance=current)
        return self._record(user_id, TransactionType.DEBIT, amount, balance, description, order_number)

    def credit(
        self,
        user_id: int,
        amount: Decimal,
        description: str,
        order_number: str | None = None,
    ) -> WalletTransaction:
        amount = self._positive(amount)
        self.get_user(user_id)
        balance = self.user_repository.adjust_balance(user_id, amount)
        return self._record(user_id, TransactionType.CREDIT, amount, balance, description, order_number)

    def transactions(self, user_id: int) -> list[WalletTransaction]:
        rows = self.transaction_repository.list_by_user(user_id)
        return [WalletTransaction.model_validate(row) for row in rows]

    def _record(
        self,
        user_id: int,
        kind: TransactionType,
        amount: Decimal,
        balance: Decimal | None,
        description: str,
        order_number: str | None,
    ) -> WalletTransaction:
        transaction = WalletTransaction(
            user_id=user_id,
            type=kind,
            amount=amount,
            description=description,
            balance_after=balance,
            order_number=order_number,
        )
        self.transaction_repository.insert(transaction.model_dump(mode="json"))
        logger.info("Wallet %s: user %s amount %s (%s)", kind.value, user_id, amount, description)
        if self.bus is not None:
            event_type = OrderEventType.WALLET_DEBITED if kind == TransactionType.DEBIT else OrderEventType.WALLET_CREDITED
            self.bus.publish(
                OrderEvent(
                    event_type=event_type,
                    order_number=order_number,
                    user_id=user_id,
                    amount=amount,
                    metadata={"description": description, "balance_after": str(transaction.balance_after)},
                )
            )
        return transaction

    @staticmethod
    def _positive(amount: Decimal) -> Decimal:
        value = to_money(amount)
        if value <= ZERO:
            raise ValidationFailed("Wallet amount must be positive", amount=str(value))
        return value
