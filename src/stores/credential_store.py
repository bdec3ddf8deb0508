"""
AUTOLOC Access Core - Credential Store

Store des comptes staff: implémentation mémoire (dev, tests) et
implémentation PostgreSQL (psycopg, asynchrone).

Table:
    staff_accounts(id, username UNIQUE, password_hash, role, updated_at)
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from ..core.errors import ConflictError, NotFoundError, UpstreamUnavailableError
from ..core.interfaces import Role
from ..logging import StructuredLogger
from .interfaces import ICredentialStore, StaffAccount


class InMemoryCredentialStore(ICredentialStore):
    """
    Store des comptes staff en mémoire.

    Example:
        store = InMemoryCredentialStore()
        staff_id = await store.insert_first_account("aymen", digest, Role.ADMIN)
    """

    def __init__(self):
        self._accounts: Dict[int, StaffAccount] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def find_by_username(self, username: str) -> StaffAccount:
        for account in self._accounts.values():
            if account.username == username:
                return account
        raise NotFoundError(f"No staff account for username '{username}'")

    async def find_by_id(self, staff_id: int) -> StaffAccount:
        account = self._accounts.get(staff_id)
        if account is None:
            raise NotFoundError(f"No staff account with id {staff_id}")
        return account

    async def count_accounts(self) -> int:
        return len(self._accounts)

    async def insert_first_account(self, username: str, password_hash: str, role: Role) -> int:
        async with self._lock:
            if self._accounts:
                raise ConflictError()
            return self._insert(username, password_hash, role)

    async def create_account(self, username: str, password_hash: str, role: Role) -> int:
        """
        Création hors bootstrap (outillage d'administration, fixtures).

        Raises:
            ConflictError: username déjà utilisé
        """
        async with self._lock:
            if any(a.username == username for a in self._accounts.values()):
                raise ConflictError(f"Username '{username}' already exists")
            return self._insert(username, password_hash, role)

    async def update_password_hash(self, staff_id: int, password_hash: str, updated_at: datetime) -> None:
        account = await self.find_by_id(staff_id)
        self._accounts[staff_id] = StaffAccount(
            id=account.id,
            username=account.username,
            password_hash=password_hash,
            role=account.role,
            updated_at=updated_at,
        )

    def _insert(self, username: str, password_hash: str, role: Role) -> int:
        staff_id = self._next_id
        self._next_id += 1
        self._accounts[staff_id] = StaffAccount(
            id=staff_id,
            username=username,
            password_hash=password_hash,
            role=role,
            updated_at=datetime.now(timezone.utc),
        )
        return staff_id


class PostgresCredentialStore(ICredentialStore):
    """
    Store des comptes staff sur PostgreSQL.

    Une connexion par opération; pas de cache local.

    Example:
        store = PostgresCredentialStore("postgresql://autoloc@localhost/autoloc")
        await store.ensure_schema()
    """

    SCHEMA_SQL = """
        CREATE TABLE IF NOT EXISTS {table} (
            id SERIAL PRIMARY KEY,
            username TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            role TEXT NOT NULL CHECK (role IN ('Admin', 'Assistant')),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """

    def __init__(
        self,
        dsn: str,
        table: str = "staff_accounts",
        connect_timeout_seconds: float = 10.0,
        logger: Optional[StructuredLogger] = None,
    ):
        if not dsn:
            raise ValueError("dsn cannot be empty")
        self._dsn = dsn
        self._table = sql.Identifier(table)
        self._connect_timeout = connect_timeout_seconds
        self._logger = logger

    async def _connect(self) -> psycopg.AsyncConnection:
        try:
            return await psycopg.AsyncConnection.connect(
                self._dsn,
                connect_timeout=int(self._connect_timeout),
                row_factory=dict_row,
            )
        except psycopg.OperationalError as e:
            self._log_failure("connect", e)
            raise UpstreamUnavailableError("Credential store unreachable", cause=e)

    async def ensure_schema(self) -> None:
        """Crée la table des comptes staff si absente."""
        async with await self._connect() as conn:
            await conn.execute(sql.SQL(self.SCHEMA_SQL).format(table=self._table))

    async def find_by_username(self, username: str) -> StaffAccount:
        query = sql.SQL(
            "SELECT id, username, password_hash, role, updated_at FROM {table} WHERE username = %s"
        ).format(table=self._table)
        row = await self._fetch_one(query, (username,))
        if row is None:
            raise NotFoundError(f"No staff account for username '{username}'")
        return self._to_account(row)

    async def find_by_id(self, staff_id: int) -> StaffAccount:
        query = sql.SQL(
            "SELECT id, username, password_hash, role, updated_at FROM {table} WHERE id = %s"
        ).format(table=self._table)
        row = await self._fetch_one(query, (staff_id,))
        if row is None:
            raise NotFoundError(f"No staff account with id {staff_id}")
        return self._to_account(row)

    async def count_accounts(self) -> int:
        query = sql.SQL("SELECT count(*) AS total FROM {table}").format(table=self._table)
        row = await self._fetch_one(query, ())
        return int(row["total"]) if row else 0

    async def insert_first_account(self, username: str, password_hash: str, role: Role) -> int:
        # Le verrou de table sérialise deux bootstraps concurrents
        lock = sql.SQL("LOCK TABLE {table} IN SHARE ROW EXCLUSIVE MODE").format(table=self._table)
        insert = sql.SQL(
            "INSERT INTO {table} (username, password_hash, role, updated_at) "
            "SELECT %s, %s, %s, now() WHERE NOT EXISTS (SELECT 1 FROM {table}) "
            "RETURNING id"
        ).format(table=self._table)

        try:
            async with await self._connect() as conn:
                async with conn.transaction():
                    await conn.execute(lock)
                    cur = await conn.execute(insert, (username, password_hash, role.value))
                    row = await cur.fetchone()
        except psycopg.errors.UniqueViolation as e:
            raise ConflictError(cause=e)
        except psycopg.OperationalError as e:
            self._log_failure("insert_first_account", e)
            raise UpstreamUnavailableError("Credential store unreachable", cause=e)

        if row is None:
            raise ConflictError()
        return int(row["id"])

    async def update_password_hash(self, staff_id: int, password_hash: str, updated_at: datetime) -> None:
        query = sql.SQL(
            "UPDATE {table} SET password_hash = %s, updated_at = %s WHERE id = %s"
        ).format(table=self._table)
        try:
            async with await self._connect() as conn:
                cur = await conn.execute(query, (password_hash, updated_at, staff_id))
                updated = cur.rowcount
        except psycopg.OperationalError as e:
            self._log_failure("update_password_hash", e)
            raise UpstreamUnavailableError("Credential store unreachable", cause=e)

        if updated == 0:
            raise NotFoundError(f"No staff account with id {staff_id}")

    async def _fetch_one(self, query: sql.Composed, params: tuple) -> Optional[Dict[str, Any]]:
        try:
            async with await self._connect() as conn:
                cur = await conn.execute(query, params)
                return await cur.fetchone()
        except psycopg.OperationalError as e:
            self._log_failure("query", e)
            raise UpstreamUnavailableError("Credential store unreachable", cause=e)

    @staticmethod
    def _to_account(row: Dict[str, Any]) -> StaffAccount:
        role = Role.parse(row["role"])
        if role is None:
            raise NotFoundError(f"Staff account {row['id']} has an unsupported role")
        return StaffAccount(
            id=int(row["id"]),
            username=row["username"],
            password_hash=row["password_hash"],
            role=role,
            updated_at=row.get("updated_at"),
        )

    def _log_failure(self, operation: str, error: Exception) -> None:
        if self._logger:
            self._logger.error("Credential store operation failed", operation=operation, error=str(error))
