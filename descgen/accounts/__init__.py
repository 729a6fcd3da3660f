from descgen.accounts.models import ENTITLED_STATUSES, Account, SubscriptionStatus, new_account_id
from descgen.accounts.store import (
    AccountStore,
    FileAccountStore,
    PostgresAccountStore,
    create_account_store,
)

__all__ = [
    "ENTITLED_STATUSES",
    "Account",
    "AccountStore",
    "FileAccountStore",
    "PostgresAccountStore",
    "SubscriptionStatus",
    "create_account_store",
    "new_account_id",
]
