"""MongoDB-backed financial ledger bridge.

Incomes are staged on the caller's unit of work, so an income record is only
persisted if the trip finalization that produced it commits.
"""

from __future__ import annotations

import logging
import math

from pymongo.errors import PyMongoError

from core.exceptions import LedgerUnavailable, ValidationException
from core.ports import IncomeReceipt
from db.models import Expense, Income
from db.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class MongoLedgerBridge:
    """Ledger bridge writing to the ``incomes`` collection."""

    def __init__(self, uow: UnitOfWork) -> None:
        self._uow = uow

    async def create_income(
        self,
        trip_id: str,
        amount: float,
        description: str,
    ) -> IncomeReceipt:
        if not math.isfinite(amount) or amount <= 0:
            msg = "Income amount must be a positive finite number"
            raise ValidationException(msg, {"amount": str(amount)})

        try:
            income = Income(
                trip_id=trip_id,
                amount=round(float(amount), 2),
                description=description,
            )
        except ValueError as e:
            msg = "Ledger rejected the income record"
            raise LedgerUnavailable(msg, {"error": str(e)}) from e

        self._uow.add(income)
        logger.info("Staged income %s of %.2f for trip %s", income.id, income.amount, trip_id)
        return IncomeReceipt(id=str(income.id), total=income.amount)

    async def get_trip_expenses(self, trip_id: str) -> float | None:
        try:
            expenses = await Expense.find(Expense.trip_id == trip_id).to_list()
        except PyMongoError as e:
            msg = "Could not read trip expenses from the ledger"
            raise LedgerUnavailable(msg, {"error": str(e)}) from e
        if not expenses:
            return None
        return round(sum(e.amount for e in expenses), 2)
