from __future__ import annotations

import sqlite3
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Protocol

from noor_progress.db_converters import _row_to_claim, _row_to_reward
from noor_progress.db_models import Reward, RewardClaim
from noor_progress.errors import InsufficientBalance, NotFound


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def _transaction(self) -> AbstractContextManager[sqlite3.Connection]: ...
    def get_claim(self, claim_id: int) -> RewardClaim: ...


class RewardMixin:
    def create_reward(
        self: DbProtocol,
        family_id: int,
        name: str,
        points_required: int,
        created_at: datetime,
        category: str | None = None,
        created_by: str | None = None,
    ) -> Reward:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO rewards(family_id, name, points_required, category, is_active, created_by, created_at)
                VALUES (?, ?, ?, ?, 1, ?, ?)
                """,
                (family_id, name, points_required, category, created_by, created_at.isoformat()),
            )
            row = conn.execute("SELECT * FROM rewards WHERE id = ?", (cur.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_reward(row)

    def get_reward(self: DbProtocol, reward_id: int) -> Reward:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM rewards WHERE id = ?", (reward_id,)).fetchone()
        if row is None:
            raise NotFound(f"reward {reward_id} not found")
        return _row_to_reward(row)

    def list_rewards(self: DbProtocol, family_id: int, active_only: bool = True) -> list[Reward]:
        with self._connect() as conn:
            if active_only:
                rows = conn.execute(
                    "SELECT * FROM rewards WHERE family_id = ? AND is_active = 1 ORDER BY points_required ASC, id ASC",
                    (family_id,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM rewards WHERE family_id = ? ORDER BY points_required ASC, id ASC",
                    (family_id,),
                ).fetchall()
        return [_row_to_reward(r) for r in rows]

    def deactivate_reward(self: DbProtocol, reward_id: int) -> bool:
        with self._connect() as conn:
            cur = conn.execute("UPDATE rewards SET is_active = 0 WHERE id = ?", (reward_id,))
        return cur.rowcount > 0

    def create_claim(self: DbProtocol, child_id: int, reward_id: int, claimed_at: datetime, notes: str | None = None) -> RewardClaim:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO reward_claims(child_id, reward_id, status, claimed_at, notes)
                VALUES (?, ?, 'pending', ?, ?)
                """,
                (child_id, reward_id, claimed_at.isoformat(), notes),
            )
            row = conn.execute("SELECT * FROM reward_claims WHERE id = ?", (cur.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_claim(row)

    def get_claim(self: DbProtocol, claim_id: int) -> RewardClaim:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM reward_claims WHERE id = ?", (claim_id,)).fetchone()
        if row is None:
            raise NotFound(f"claim {claim_id} not found")
        return _row_to_claim(row)

    def list_claims(self: DbProtocol, family_id: int, status: str | None = None) -> list[RewardClaim]:
        with self._connect() as conn:
            if status is None:
                rows = conn.execute(
                    """
                    SELECT rc.* FROM reward_claims rc
                    JOIN children c ON c.id = rc.child_id
                    WHERE c.family_id = ?
                    ORDER BY rc.claimed_at ASC, rc.id ASC
                    """,
                    (family_id,),
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT rc.* FROM reward_claims rc
                    JOIN children c ON c.id = rc.child_id
                    WHERE c.family_id = ? AND rc.status = ?
                    ORDER BY rc.claimed_at ASC, rc.id ASC
                    """,
                    (family_id, status),
                ).fetchall()
        return [_row_to_claim(r) for r in rows]

    def decide_claim(
        self: DbProtocol,
        claim_id: int,
        decision: str,
        decided_by: str,
        now: datetime,
    ) -> tuple[str, RewardClaim]:
        """Move a pending claim to ``approved`` or ``denied``.

        Returns the outcome (``approved``, ``denied``, ``already_decided`` or
        ``insufficient_balance``) with the claim as stored afterwards. Only the
        caller whose status compare-and-set succeeds gets a terminal outcome.
        """
        ts = now.isoformat()
        try:
            with self._transaction() as conn:
                row = conn.execute(
                    """
                    SELECT rc.status, rc.child_id, r.points_required
                    FROM reward_claims rc
                    JOIN rewards r ON r.id = rc.reward_id
                    WHERE rc.id = ?
                    """,
                    (claim_id,),
                ).fetchone()
                if row is None:
                    raise NotFound(f"claim {claim_id} not found")
                if row["status"] != "pending":
                    return "already_decided", self.get_claim(claim_id)

                if decision == "denied":
                    cur = conn.execute(
                        """
                        UPDATE reward_claims
                        SET status = 'denied', decided_at = ?, decided_by = ?
                        WHERE id = ? AND status = 'pending'
                        """,
                        (ts, decided_by, claim_id),
                    )
                    if cur.rowcount == 0:
                        return "already_decided", self.get_claim(claim_id)
                else:
                    cost = int(row["points_required"])
                    cur = conn.execute(
                        """
                        UPDATE reward_claims
                        SET status = 'approved', decided_at = ?, approved_at = ?, decided_by = ?, points_spent = ?
                        WHERE id = ? AND status = 'pending'
                        """,
                        (ts, ts, decided_by, cost, claim_id),
                    )
                    if cur.rowcount == 0:
                        return "already_decided", self.get_claim(claim_id)
                    debit = conn.execute(
                        """
                        UPDATE children
                        SET total_points = total_points - ?
                        WHERE id = ? AND total_points >= ?
                        """,
                        (cost, row["child_id"], cost),
                    )
                    if debit.rowcount == 0:
                        balance = conn.execute(
                            "SELECT total_points FROM children WHERE id = ?", (row["child_id"],)
                        ).fetchone()
                        raise InsufficientBalance(int(row["child_id"]), int(balance["total_points"]), cost)
        except InsufficientBalance:
            return "insufficient_balance", self.get_claim(claim_id)
        return decision, self.get_claim(claim_id)
