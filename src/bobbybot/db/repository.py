"""Repository pattern for database access.

Wraps SQLAlchemy async sessions. Balance and XP changes are single
``INSERT ... ON CONFLICT DO UPDATE`` / conditional ``UPDATE`` statements so
two commands interleaving between a read and a write cannot lose an update.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from bobbybot.db.models import (
    HouseRow,
    TeamHistoryRow,
    UserRow,
    ValorantRegistrationRow,
)


class InsufficientFundsError(Exception):
    """Raised when a debit would take a balance below zero."""

    def __init__(self, balance: int, amount: int) -> None:
        super().__init__(f"balance {balance} is less than {amount}")
        self.balance = balance
        self.amount = amount

    @property
    def shortfall(self) -> int:
        return self.amount - self.balance


class Repository:
    """Async repository for all database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # --- Users ---

    async def get_user(self, guild_id: str, user_id: str) -> UserRow | None:
        stmt = (
            select(UserRow)
            .where(UserRow.guild_id == guild_id, UserRow.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create_user(self, guild_id: str, user_id: str) -> UserRow:
        row = await self.get_user(guild_id, user_id)
        if row is None:
            row = UserRow(guild_id=guild_id, user_id=user_id)
            self.session.add(row)
            await self.session.flush()
        return row

    async def _upsert_increment(
        self,
        guild_id: str,
        user_id: str,
        column: str,
        delta: int,
    ) -> int:
        """Add *delta* to one integer column, creating the user if needed.

        Returns the column's new value.
        """
        table = UserRow.__table__
        stmt = (
            sqlite_insert(UserRow)
            .values(guild_id=guild_id, user_id=user_id, **{column: delta})
            .on_conflict_do_update(
                index_elements=["guild_id", "user_id"],
                set_={column: table.c[column] + delta},
            )
            .returning(table.c[column])
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    # --- Economy ---

    async def get_balance(self, guild_id: str, user_id: str) -> int:
        row = await self.get_user(guild_id, user_id)
        return row.balance if row else 0

    async def add_balance(self, guild_id: str, user_id: str, amount: int) -> int:
        """Credit (or, with a negative amount, debit) a balance. Returns the new balance."""
        return await self._upsert_increment(guild_id, user_id, "balance", amount)

    async def spend(self, guild_id: str, user_id: str, amount: int) -> int:
        """Debit *amount* only if the balance covers it.

        Raises InsufficientFundsError otherwise. Returns the new balance.
        """
        stmt = (
            update(UserRow)
            .where(
                UserRow.guild_id == guild_id,
                UserRow.user_id == user_id,
                UserRow.balance >= amount,
            )
            .values(balance=UserRow.balance - amount)
            .returning(UserRow.balance)
        )
        result = await self.session.execute(stmt)
        new_balance = result.scalar_one_or_none()
        if new_balance is None:
            raise InsufficientFundsError(await self.get_balance(guild_id, user_id), amount)
        return int(new_balance)

    async def get_top_balances(self, guild_id: str, limit: int = 10) -> list[UserRow]:
        """Users with a positive balance, richest first."""
        stmt = (
            select(UserRow)
            .where(UserRow.guild_id == guild_id, UserRow.balance > 0)
            .order_by(UserRow.balance.desc(), UserRow.user_id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_total_economy(self, guild_id: str) -> int:
        stmt = select(func.coalesce(func.sum(UserRow.balance), 0)).where(
            UserRow.guild_id == guild_id
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def get_balance_rank(self, guild_id: str, user_id: str) -> int:
        """1-indexed leaderboard position (ties share the better position)."""
        balance = await self.get_balance(guild_id, user_id)
        stmt = select(func.count()).where(UserRow.guild_id == guild_id, UserRow.balance > balance)
        result = await self.session.execute(stmt)
        return int(result.scalar_one()) + 1

    async def count_holders(self, guild_id: str) -> int:
        stmt = select(func.count()).where(UserRow.guild_id == guild_id, UserRow.balance > 0)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def get_guild_user_ids(self, guild_id: str) -> list[str]:
        stmt = select(UserRow.user_id).where(UserRow.guild_id == guild_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # --- House ---

    async def add_house(self, guild_id: str, amount: int) -> int:
        table = HouseRow.__table__
        stmt = (
            sqlite_insert(HouseRow)
            .values(guild_id=guild_id, balance=amount)
            .on_conflict_do_update(
                index_elements=["guild_id"],
                set_={"balance": table.c.balance + amount},
            )
            .returning(table.c.balance)
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def get_house_balance(self, guild_id: str) -> int:
        row = await self.session.get(HouseRow, guild_id, populate_existing=True)
        return row.balance if row else 0

    # --- Leveling ---

    async def add_xp(self, guild_id: str, user_id: str, amount: int) -> int:
        """Add XP and count the message. Returns the new XP total."""
        new_xp = await self._upsert_increment(guild_id, user_id, "xp", amount)
        await self.session.execute(
            update(UserRow)
            .where(UserRow.guild_id == guild_id, UserRow.user_id == user_id)
            .values(message_count=UserRow.message_count + 1, last_active=datetime.now(UTC))
        )
        return new_xp

    async def get_xp(self, guild_id: str, user_id: str) -> int:
        row = await self.get_user(guild_id, user_id)
        return row.xp if row else 0

    async def get_top_xp(self, guild_id: str, limit: int = 10) -> list[UserRow]:
        stmt = (
            select(UserRow)
            .where(UserRow.guild_id == guild_id, UserRow.xp > 0)
            .order_by(UserRow.xp.desc(), UserRow.user_id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # --- Moderation ---

    async def increment_warnings(self, guild_id: str, user_id: str) -> int:
        """Record one more thin-ice offense. Returns the new count."""
        return await self._upsert_increment(guild_id, user_id, "thin_ice_warnings", 1)

    async def get_warnings(self, guild_id: str, user_id: str) -> int:
        row = await self.get_user(guild_id, user_id)
        return row.thin_ice_warnings if row else 0

    # --- AI memory ---

    async def get_memory(self, guild_id: str, user_id: str) -> str:
        row = await self.get_user(guild_id, user_id)
        return row.memory if row else ""

    async def set_memory(self, guild_id: str, user_id: str, memory: str) -> None:
        row = await self.get_or_create_user(guild_id, user_id)
        row.memory = memory
        await self.session.flush()

    async def clear_memory(self, guild_id: str, user_id: str) -> bool:
        """Forget a user's stored memory. Returns whether there was one."""
        row = await self.get_user(guild_id, user_id)
        if row is None or not row.memory:
            return False
        row.memory = ""
        await self.session.flush()
        return True

    # --- Valorant ---

    async def upsert_registration(
        self,
        guild_id: str,
        user_id: str,
        riot_name: str,
        riot_tag: str,
        region: str = "na",
    ) -> ValorantRegistrationRow:
        row = await self.get_registration(guild_id, user_id)
        if row is None:
            row = ValorantRegistrationRow(guild_id=guild_id, user_id=user_id)
            self.session.add(row)
        row.riot_name = riot_name
        row.riot_tag = riot_tag
        row.region = region
        await self.session.flush()
        return row

    async def get_registration(
        self, guild_id: str, user_id: str
    ) -> ValorantRegistrationRow | None:
        stmt = select(ValorantRegistrationRow).where(
            ValorantRegistrationRow.guild_id == guild_id,
            ValorantRegistrationRow.user_id == user_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def save_team_history(
        self,
        *,
        guild_id: str,
        team_id: str,
        leader_id: str,
        member_ids: list[str],
        status: str,
        name: str | None = None,
    ) -> TeamHistoryRow:
        row = TeamHistoryRow(
            guild_id=guild_id,
            team_id=team_id,
            name=name,
            leader_id=leader_id,
            member_ids=member_ids,
            status=status,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_team_history(
        self, guild_id: str, user_id: str, limit: int = 10
    ) -> list[TeamHistoryRow]:
        """Teams the user led, most recent first.

        Membership lives in a JSON list, so members are matched in Python.
        """
        stmt = (
            select(TeamHistoryRow)
            .where(TeamHistoryRow.guild_id == guild_id)
            .order_by(TeamHistoryRow.finished_at.desc())
        )
        result = await self.session.execute(stmt)
        rows = [
            r
            for r in result.scalars().all()
            if r.leader_id == user_id or user_id in (r.member_ids or [])
        ]
        return rows[:limit]
