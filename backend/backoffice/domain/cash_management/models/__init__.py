from __future__ import annotations

from backoffice.domain.cash_management.models.counts import CashCount
from backoffice.domain.cash_management.models.deposits import CashDeposit, DepositDayMapping
from backoffice.domain.cash_management.models.movements import CashMovement
from backoffice.domain.cash_management.models.positions import DailyCashPosition
from backoffice.domain.cash_management.models.requests import CashAdjustment, CashTransfer

__all__ = [
    "CashAdjustment",
    "CashCount",
    "CashDeposit",
    "CashMovement",
    "CashTransfer",
    "DailyCashPosition",
    "DepositDayMapping",
]
