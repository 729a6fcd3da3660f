"""Account storage: Postgres when configured, JSON files otherwise."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Protocol

from descgen.accounts.models import Account
from descgen.config import Settings
from descgen.errors import ConflictError
from descgen.jobs.models import utcnow

logger = logging.getLogger(__name__)


class AccountStore(Protocol):
    def create(self, account: Account) -> Account: ...
    def get(self, account_id: str) -> Account | None: ...
    def get_by_email(self, email: str) -> Account | None: ...
    def get_by_customer_id(self, customer_id: str) -> Account | None: ...
    def get_by_shop_domain(self, shop_domain: str) -> Account | None: ...
    def update(self, account: Account) -> Account: ...
    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Postgres implementation
# ---------------------------------------------------------------------------

class PostgresAccountStore:
    def __init__(self, database_url: str):
        try:
            import psycopg
        except ImportError:
            raise ImportError(
                "psycopg required for Postgres account store. pip install 'psycopg[binary]'"
            )
        self._conn = psycopg.connect(database_url, autocommit=True)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS descgen_accounts (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL UNIQUE,
                stripe_customer_id TEXT,
                shop_domain TEXT,
                payload JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_descgen_accounts_customer
            ON descgen_accounts (stripe_customer_id)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_descgen_accounts_shop
            ON descgen_accounts (shop_domain)
        """)

    def create(self, account: Account) -> Account:
        account.email = account.email.lower()
        if self.get_by_email(account.email):
            raise ConflictError("An account with this email already exists")
        self._conn.execute(
            """
            INSERT INTO descgen_accounts (id, email, stripe_customer_id, shop_domain, payload)
            VALUES (%s, %s, %s, %s, %s::jsonb)
            """,
            (
                account.id,
                account.email,
                account.stripe_customer_id,
                account.shop_domain,
                account.model_dump_json(),
            ),
        )
        return account

    def _one(self, where: str, value: str) -> Account | None:
        row = self._conn.execute(
            f"SELECT payload FROM descgen_accounts WHERE {where} = %s LIMIT 1", (value,)
        ).fetchone()
        if not row:
            return None
        payload = row[0] if isinstance(row[0], dict) else json.loads(row[0])
        return Account.model_validate(payload)

    def get(self, account_id: str) -> Account | None:
        return self._one("id", account_id)

    def get_by_email(self, email: str) -> Account | None:
        return self._one("email", email.lower())

    def get_by_customer_id(self, customer_id: str) -> Account | None:
        return self._one("stripe_customer_id", customer_id)

    def get_by_shop_domain(self, shop_domain: str) -> Account | None:
        return self._one("shop_domain", shop_domain)

    def update(self, account: Account) -> Account:
        account.updated_at = utcnow()
        self._conn.execute(
            """
            UPDATE descgen_accounts SET
                stripe_customer_id = %s, shop_domain = %s,
                payload = %s::jsonb, updated_at = NOW()
            WHERE id = %s
            """,
            (account.stripe_customer_id, account.shop_domain, account.model_dump_json(), account.id),
        )
        return account

    def close(self) -> None:
        self._conn.close()


# ---------------------------------------------------------------------------
# File-based implementation
# ---------------------------------------------------------------------------

class FileAccountStore:
    """One JSON document holding every account. Fine for development and tests."""

    def __init__(self, data_dir: Path):
        self._path = Path(data_dir) / "accounts.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, dict]:
        if not self._path.exists():
            return {}
        with open(self._path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _save(self, data: dict[str, dict]) -> None:
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)

    def _find(self, field: str, value: str | None) -> Account | None:
        if not value:
            return None
        for raw in self._load().values():
            if raw.get(field) == value:
                return Account.model_validate(raw)
        return None

    def create(self, account: Account) -> Account:
        account.email = account.email.lower()
        with self._lock:
            data = self._load()
            if any(a.get("email") == account.email for a in data.values()):
                raise ConflictError("An account with this email already exists")
            data[account.id] = account.model_dump(mode="json")
            self._save(data)
        return account

    def get(self, account_id: str) -> Account | None:
        raw = self._load().get(account_id)
        return Account.model_validate(raw) if raw else None

    def get_by_email(self, email: str) -> Account | None:
        return self._find("email", email.lower())

    def get_by_customer_id(self, customer_id: str) -> Account | None:
        return self._find("stripe_customer_id", customer_id)

    def get_by_shop_domain(self, shop_domain: str) -> Account | None:
        return self._find("shop_domain", shop_domain)

    def update(self, account: Account) -> Account:
        account.updated_at = utcnow()
        with self._lock:
            data = self._load()
            data[account.id] = account.model_dump(mode="json")
            self._save(data)
        return account

    def close(self) -> None:
        pass


def create_account_store(settings: Settings) -> AccountStore:
    if settings.database_url:
        try:
            store = PostgresAccountStore(settings.database_url)
            logger.info("Using Postgres account store")
            return store
        except Exception as e:
            logger.warning("Postgres account store failed (%s), falling back to file store", e)
    return FileAccountStore(settings.data_dir)
