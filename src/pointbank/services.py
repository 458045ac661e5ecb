"""Ledger core: accounts, sign-in, dashboards and balance changes."""

import enum
import logging
from typing import Dict, List

from prometheus_client import Counter
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import settings
from .database import SessionLocal, Transaction, _new_id, init_db
from .errors import (
    AuthFailure,
    AuthorizationFailure,
    ConflictFailure,
    LedgerError,
    NotFound,
    StoreFailure,
    ValidationFailure,
)
from .models.user import User
from .security import dummy_hash, hash_password, is_hashed, verify_password


logger = logging.getLogger(__name__)

ACCOUNT_COUNTER = Counter("ledger_accounts_created_total", "Total accounts created")
SIGNIN_COUNTER = Counter(
    "ledger_signins_total", "Sign-in attempts by outcome", ["outcome"]
)
TRANSACTION_COUNTER = Counter(
    "ledger_transactions_total", "Ledger transactions committed", ["kind"]
)


# Balances and amounts are stored as SQLite INTEGER (signed 64-bit).
MIN_BALANCE = -(2**63)
MAX_BALANCE = 2**63 - 1


class TransactionKind(str, enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


def _handle_service_error(session: Session, exc: Exception) -> None:
    """Rollback the transaction and re-raise as a ledger error."""
    session.rollback()
    if isinstance(exc, LedgerError):
        raise exc
    logger.exception("service layer error", exc_info=exc)
    if isinstance(exc, SQLAlchemyError):
        raise StoreFailure("Database error") from exc
    raise StoreFailure("Store operation failed") from exc


def _parse_kind(kind) -> TransactionKind:
    try:
        return TransactionKind(kind)
    except ValueError:
        raise ValidationFailure(f"Unknown transaction kind: {kind!r}") from None


def _parse_amount(amount) -> int:
    """Return ``amount`` as a positive int or raise ``ValidationFailure``."""
    if amount is None or (isinstance(amount, str) and not amount.strip()):
        raise ValidationFailure("Please fill in all fields")
    if isinstance(amount, bool):
        raise ValidationFailure("Please enter a valid amount")
    if isinstance(amount, int):
        value = amount
    elif isinstance(amount, float) and amount.is_integer():
        value = int(amount)
    elif isinstance(amount, str):
        digits = amount.strip()
        if not (digits.isascii() and digits.isdigit()):
            raise ValidationFailure("Please enter a valid amount")
        value = int(digits)
    else:
        raise ValidationFailure("Please enter a valid amount")
    if value <= 0 or value > MAX_BALANCE:
        raise ValidationFailure("Please enter a valid amount")
    return value


def _increment_balance(session: Session, user_id: str, amount: int) -> None:
    result = session.execute(
        update(User)
        .where(User.id == user_id)
        .values(points_balance=User.points_balance + amount)
    )
    if result.rowcount != 1:
        raise NotFound(f"User {user_id} not found")


def bootstrap() -> None:
    """Create the tables and seed the admin account once."""

    session: Session = SessionLocal()
    try:
        init_db(session.get_bind())
        existing = (
            session.query(User)
            .filter(User.username == settings.admin_username)
            .first()
        )
        if existing is None:
            admin_id = _new_id()
            admin = User(
                id=admin_id,
                username=settings.admin_username,
                password=hash_password(settings.admin_password),
                is_admin=True,
                points_balance=0,
            )
            session.add(admin)
            session.commit()
            logger.info("seeded admin account id=%s", admin_id)
    except Exception as exc:
        _handle_service_error(session, exc)
    finally:
        session.close()


def create_account(username: str, password: str) -> str:
    """Register a non-admin user and return its id.

    Usernames are unique; a taken name raises ``ConflictFailure``.
    """
    username = (username or "").strip()
    if not username or not password:
        raise ValidationFailure("Please enter username and password")

    session: Session = SessionLocal()
    try:
        if session.query(User.id).filter(User.username == username).first():
            raise ConflictFailure("Username already registered")
        user_id = _new_id()
        user = User(
            id=user_id,
            username=username,
            password=hash_password(password),
            is_admin=False,
            points_balance=0,
        )
        session.add(user)
        session.commit()
        ACCOUNT_COUNTER.inc()
        logger.info("created account id=%s username=%s", user_id, username)
        return user_id
    except Exception as exc:
        _handle_service_error(session, exc)
    finally:
        session.close()


def authenticate(username: str, password: str) -> str:
    """Return the id of the account matching both credentials."""
    username = (username or "").strip()

    session: Session = SessionLocal()
    try:
        matches = session.query(User).filter(User.username == username).all()
        if len(matches) > 1:
            logger.warning(
                "sign-in rejected: %s accounts share username=%s",
                len(matches),
                username,
            )
            SIGNIN_COUNTER.labels(outcome="ambiguous").inc()
            raise AuthFailure("Invalid credentials")
        if not matches:
            # Spend the same hashing work as a real check.
            verify_password(password or "", dummy_hash())
        if not matches or not verify_password(password or "", matches[0].password):
            logger.warning("sign-in failed username=%s", username)
            SIGNIN_COUNTER.labels(outcome="failure").inc()
            raise AuthFailure("Invalid credentials")

        user = matches[0]
        user_id = user.id
        if not is_hashed(user.password):
            user.password = hash_password(password)
            session.commit()
            logger.info("rehashed legacy credential id=%s", user_id)
        SIGNIN_COUNTER.labels(outcome="success").inc()
        return user_id
    except Exception as exc:
        _handle_service_error(session, exc)
    finally:
        session.close()


def load_dashboard(user_id: str) -> Dict[str, object]:
    """Return the profile, visible users and transactions for ``user_id``.

    Admins also see every other account's id, username and balance; other
    users get an empty ``users`` list. Transactions are newest first.
    """
    session: Session = SessionLocal()
    try:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")

        users: List[Dict[str, object]] = []
        if user.is_admin:
            others = (
                session.query(User)
                .filter(User.id != user_id)
                .order_by(User.username)
                .all()
            )
            users = [
                {"id": o.id, "username": o.username, "points_balance": o.points_balance}
                for o in others
            ]

        rows = (
            session.query(Transaction)
            .filter(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .all()
        )
        result = {
            "user_id": user.id,
            "username": user.username,
            "points_balance": user.points_balance,
            "is_admin": bool(user.is_admin),
            "users": users,
            "transactions": [
                {
                    "id": r.id,
                    "amount": r.amount,
                    "description": r.description,
                    "created_at": r.created_at,
                }
                for r in rows
            ],
        }
        return result
    except Exception as exc:
        _handle_service_error(session, exc)
    finally:
        session.close()


def apply_transaction(
    acting_user_id: str,
    kind: TransactionKind | str,
    amount,
    description: str,
    target_user_id: str | None = None,
) -> str:
    """Record a deposit or withdrawal and adjust the target balance.

    Parameters
    ----------
    acting_user_id: str
        The signed-in user performing the change.
    kind: TransactionKind | str
        ``deposit`` credits the balance, ``withdraw`` debits it.
    amount:
        Positive integer, or a string of digits.
    description: str
        Non-empty label stored with the transaction.
    target_user_id: str, optional
        Account to change; defaults to ``acting_user_id``. Only admins may
        target another account.

    Returns
    -------
    str
        Identifier of the new transaction row.
    """
    if not description or not description.strip():
        raise ValidationFailure("Please fill in all fields")
    value = _parse_amount(amount)
    kind = _parse_kind(kind)
    target_user_id = target_user_id or acting_user_id
    signed = value if kind is TransactionKind.DEPOSIT else -value

    logger.info(
        "apply transaction actor=%s target=%s kind=%s amount=%s",
        acting_user_id,
        target_user_id,
        kind.value,
        value,
    )
    session: Session = SessionLocal()
    try:
        actor = session.get(User, acting_user_id)
        if actor is None:
            raise NotFound(f"User {acting_user_id} not found")
        target = actor
        if target_user_id != acting_user_id:
            if not actor.is_admin:
                raise AuthorizationFailure("Only admins may change another user's balance")
            target = session.get(User, target_user_id)
            if target is None:
                raise NotFound(f"User {target_user_id} not found")
        if not MIN_BALANCE <= (target.points_balance or 0) + signed <= MAX_BALANCE:
            raise ValidationFailure("Balance would leave the supported range")

        # Both writes share one transaction; a failure in either rolls back.
        entry = Transaction(
            id=_new_id(),
            user_id=target_user_id,
            amount=signed,
            description=description.strip(),
        )
        session.add(entry)
        session.flush()
        transaction_id = entry.id
        _increment_balance(session, target_user_id, signed)
        session.commit()

        TRANSACTION_COUNTER.labels(kind=kind.value).inc()
        logger.info(
            "committed transaction id=%s target=%s amount=%s",
            transaction_id,
            target_user_id,
            signed,
        )
        return transaction_id
    except Exception as exc:
        _handle_service_error(session, exc)
    finally:
        session.close()
