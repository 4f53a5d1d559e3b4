from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from noor_progress.db import Database, Reward, RewardClaim
from noor_progress.errors import InvalidTransition, NotFound

logger = logging.getLogger(__name__)

DECISIONS = ("approved", "denied")


@dataclass(frozen=True)
class ClaimDecision:
    outcome: str
    claim: RewardClaim
    balance: int

    @property
    def applied(self) -> bool:
        return self.outcome in DECISIONS


def create_reward(
    db: Database,
    family_id: int,
    name: str,
    points_required: int,
    now: datetime,
    category: str | None = None,
    created_by: str | None = None,
) -> Reward:
    if points_required <= 0:
        raise ValueError("points_required must be positive")
    if not name.strip():
        raise ValueError("reward name is required")
    return db.create_reward(
        family_id=family_id,
        name=name.strip(),
        points_required=int(points_required),
        created_at=now,
        category=category,
        created_by=created_by,
    )


def deactivate_reward(db: Database, family_id: int, reward_id: int) -> Reward:
    """Stop offering a reward. Pending claims on it can still be decided."""
    reward = db.get_reward(reward_id)
    if reward.family_id != family_id:
        raise NotFound(f"reward {reward_id} not found for family {family_id}")
    if db.deactivate_reward(reward_id):
        logger.info("reward deactivated family=%s reward=%s", family_id, reward_id)
    return db.get_reward(reward_id)


def claim_reward(db: Database, child_id: int, reward_id: int, now: datetime, notes: str | None = None) -> RewardClaim:
    """Open a pending claim. Balance is only checked when a parent approves."""
    child = db.get_child(child_id)
    reward = db.get_reward(reward_id)
    if reward.family_id != child.family_id:
        raise NotFound(f"reward {reward_id} not found for child {child_id}")
    if not reward.is_active:
        raise InvalidTransition(f"reward {reward_id} is no longer offered")
    claim = db.create_claim(child_id, reward_id, now, notes=notes)
    logger.info("reward claimed child=%s reward=%s claim=%s", child_id, reward_id, claim.id)
    return claim


def decide_claim(db: Database, claim_id: int, decision: str, decider_id: str, now: datetime) -> ClaimDecision:
    if decision not in DECISIONS:
        raise ValueError(f"decision must be one of {DECISIONS}")
    outcome, claim = db.decide_claim(claim_id, decision, decider_id, now)
    balance = db.get_child(claim.child_id).total_points
    if outcome in DECISIONS:
        db.add_audit_entry(
            decider_id,
            f"claim.{outcome}",
            f"claim:{claim_id}",
            {"child_id": claim.child_id, "points_spent": claim.points_spent},
            now,
        )
        logger.info("claim %s %s by %s, balance now %s", claim_id, outcome, decider_id, balance)
    else:
        logger.info("claim %s decision %s rejected: %s", claim_id, decision, outcome)
    return ClaimDecision(outcome=outcome, claim=claim, balance=balance)
