"""Persistence for the account pool snapshot."""

from abc import ABC, abstractmethod
from pathlib import Path

from structlog import get_logger

from credpool.rotation.accounts import (
    DEFAULT_ACCOUNTS_PATH,
    AccountsFile,
    load_accounts,
    save_accounts,
)


logger = get_logger(__name__)


class AccountStore(ABC):
    """Abstract interface for account snapshot storage."""

    @abstractmethod
    def load(self) -> AccountsFile:
        """Load the persisted snapshot.

        Returns:
            The stored snapshot, or an empty one when nothing is stored yet

        Raises:
            ValueError: If the stored snapshot is malformed or of an unknown version

        """

    @abstractmethod
    def save(self, accounts_file: AccountsFile) -> None:
        """Persist a full snapshot, replacing whatever was stored before.

        Args:
            accounts_file: Snapshot to write

        """

    @abstractmethod
    def get_location(self) -> str:
        """Get the storage location description.

        Returns:
            Human-readable description of where accounts are stored

        """


class JsonFileAccountStore(AccountStore):
    """Stores the pool as a single ``accounts.json`` document."""

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path or DEFAULT_ACCOUNTS_PATH).expanduser()

    def load(self) -> AccountsFile:
        try:
            return load_accounts(self.path)
        except FileNotFoundError:
            logger.info("accounts_file_not_found", path=str(self.path))
            return AccountsFile()

    def save(self, accounts_file: AccountsFile) -> None:
        save_accounts(accounts_file, self.path)

    def get_location(self) -> str:
        return str(self.path)
