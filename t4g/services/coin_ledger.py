"""
t4g.services.coin_ledger — Coin balances
=========================================

One balance row per user, created lazily on the first award.  Awards only
ever add; the admin reset is the sole way down.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from t4g.database.models import CoinBalance
from t4g.errors import ValidationError

logger = logging.getLogger(__name__)

COINS_PER_ACTION = 1


def award(session: Session, user_id: str, amount: int = COINS_PER_ACTION) -> int:
    """Add *amount* coins to *user_id* and return the new balance."""
    if amount < 1:
        raise ValidationError("Coin awards must be positive")

    balance = session.scalar(
        select(CoinBalance).where(CoinBalance.user_id == user_id).with_for_update()
    )
    if balance is None:
        balance = CoinBalance(user_id=user_id, total_coins=amount)
        session.add(balance)
    else:
        balance.total_coins += amount
    session.flush()

    logger.info("Awarded %d coins to user %s (balance %d)", amount, user_id, balance.total_coins)
    return balance.total_coins


def get_balance(session: Session, user_id: str) -> int:
    """Current balance; 0 for a user who never earned coins."""
    total = session.scalar(
        select(CoinBalance.total_coins).where(CoinBalance.user_id == user_id)
    )
    return total or 0


def reset_balances(session: Session, user_id: str | None = None) -> int:
    """Zero one balance (or all of them).  Returns the number of rows touched."""
    stmt = update(CoinBalance).values(total_coins=0)
    if user_id is not None:
        stmt = stmt.where(CoinBalance.user_id == user_id)
    result = session.execute(stmt)
    logger.info("Coin balances reset (%d rows)", result.rowcount)
    return result.rowcount
