from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from noor_progress import achievements, claims, goals, service
from noor_progress.config import Settings
from noor_progress.db import Child, Database
from noor_progress.db_constants import ACTOR_ROLES, APP_CONFIG_DEFAULTS, CLAIM_STATUSES
from noor_progress.errors import (
    InconsistentState,
    InsufficientBalance,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    TimezoneUnresolved,
)
from noor_progress.time_utils import local_day, now_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    actor_id: str
    role: str
    family_id: int | None


def _coerce_value(key: str, value: Any) -> Any:
    default = APP_CONFIG_DEFAULTS.get(key)
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            return default
    return value


def _require_auth(request: Request, token: str | None) -> None:
    if not token:
        return
    if request.headers.get("x-api-token") == token:
        return
    raise HTTPException(status_code=401, detail="Unauthorized")


def _actor(request: Request) -> Actor:
    actor_id = (request.headers.get("x-actor-id") or "").strip()
    role = (request.headers.get("x-actor-role") or "").strip().lower()
    if not actor_id or role not in ACTOR_ROLES:
        raise PermissionDenied("x-actor-id and x-actor-role headers are required")
    family_id: int | None = None
    if role == "parent":
        try:
            family_id = int(request.headers.get("x-family-id", ""))
        except ValueError as exc:
            raise PermissionDenied("parents must send x-family-id") from exc
    return Actor(actor_id=actor_id, role=role, family_id=family_id)


def _require_parent(actor: Actor) -> int:
    if actor.role != "parent" or actor.family_id is None:
        raise PermissionDenied("parent role required")
    return actor.family_id


def _authorize_child(db: Database, actor: Actor, child_id: int, parent_only: bool = False) -> Child:
    child = db.get_child(child_id)
    if actor.role == "child":
        if parent_only:
            raise PermissionDenied("parent role required")
        if actor.actor_id != str(child_id):
            raise PermissionDenied("children may only act on their own progress")
        return child
    if actor.family_id != child.family_id:
        raise PermissionDenied(f"child {child_id} is not in family {actor.family_id}")
    return child


class ChildCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    timezone: str | None = None
    islamic_level: int = Field(default=1, ge=1)


class ActivityRequest(BaseModel):
    activity_type: str
    points_value: int = Field(ge=0)
    occurred_at: datetime
    dedup_key: str | None = None
    name: str | None = None


class GoalCreateRequest(BaseModel):
    goal_type: str
    title: str = ""
    target_value: int = Field(gt=0)
    reward_points: int = Field(default=0, ge=0)
    deadline: date | None = None


class GoalPatchRequest(BaseModel):
    delta: int | None = None
    value: int | None = None


class RewardCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    points_required: int = Field(gt=0)
    category: str | None = None


class ClaimRequest(BaseModel):
    reward_id: int
    notes: str | None = None


class DecisionRequest(BaseModel):
    decision: str


class ConfigUpdateRequest(BaseModel):
    updates: dict[str, Any] = Field(default_factory=dict)
    note: str | None = None


def _error(status_code: int, exc: Exception, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc), **extra})


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFound)
    async def not_found(request: Request, exc: NotFound) -> JSONResponse:
        return _error(404, exc)

    @app.exception_handler(PermissionDenied)
    async def denied(request: Request, exc: PermissionDenied) -> JSONResponse:
        return _error(403, exc)

    @app.exception_handler(InvalidTransition)
    async def invalid_transition(request: Request, exc: InvalidTransition) -> JSONResponse:
        return _error(409, exc)

    @app.exception_handler(InsufficientBalance)
    async def insufficient(request: Request, exc: InsufficientBalance) -> JSONResponse:
        return _error(409, exc, outcome="insufficient_balance", balance=exc.balance, required=exc.required)

    @app.exception_handler(InconsistentState)
    async def inconsistent(request: Request, exc: InconsistentState) -> JSONResponse:
        return _error(409, exc, stored=exc.stored, expected=exc.expected)

    @app.exception_handler(TimezoneUnresolved)
    async def timezone_unresolved(request: Request, exc: TimezoneUnresolved) -> JSONResponse:
        return _error(422, exc)

    @app.exception_handler(ValueError)
    async def bad_value(request: Request, exc: ValueError) -> JSONResponse:
        return _error(422, exc)


def _record_payload(outcome: service.RecordOutcome) -> dict[str, Any]:
    return {
        "accepted": outcome.accepted,
        "activity": outcome.activity,
        "balance": outcome.balance,
        "streak": outcome.streak,
        "goal_updates": list(outcome.goal_updates),
        "newly_earned": list(outcome.newly_earned),
    }


def build_api_app(
    db: Database,
    settings: Settings,
    clock: Callable[[], datetime] = now_utc,
) -> FastAPI:
    docs_url = "/docs" if settings.api_docs else None
    app = FastAPI(title="Noor Progress API", version="1.0.0", docs_url=docs_url, redoc_url=None)
    _register_error_handlers(app)
    token = settings.api_token

    def evaluate_later(child_id: int, now: datetime) -> None:
        earned = achievements.evaluate(db, child_id, now)
        if earned:
            logger.info("background evaluation child=%s earned=%s", child_id, [e.definition.key for e in earned])

    @app.post("/api/children")
    async def api_create_child(request: Request, payload: ChildCreateRequest) -> dict[str, Any]:
        _require_auth(request, token)
        family_id = _require_parent(_actor(request))
        child = service.create_child(
            db,
            family_id,
            payload.name,
            clock(),
            timezone=payload.timezone or settings.tz,
            islamic_level=payload.islamic_level,
        )
        return {"ok": True, "child": jsonable_encoder(child)}

    @app.get("/api/children")
    async def api_list_children(request: Request) -> dict[str, Any]:
        _require_auth(request, token)
        family_id = _require_parent(_actor(request))
        return {"children": jsonable_encoder(db.list_children(family_id))}

    @app.get("/api/children/{child_id}/rewards")
    async def api_list_rewards(child_id: int, request: Request) -> dict[str, Any]:
        _require_auth(request, token)
        child = _authorize_child(db, _actor(request), child_id)
        return {"rewards": jsonable_encoder(db.list_rewards(child.family_id))}

    @app.post("/api/children/{child_id}/activities")
    async def api_record_activity(
        child_id: int,
        request: Request,
        payload: ActivityRequest,
        background_tasks: BackgroundTasks,
    ) -> dict[str, Any]:
        _require_auth(request, token)
        child = _authorize_child(db, _actor(request), child_id)
        now = clock()
        dedup_key = payload.dedup_key
        if not dedup_key:
            try:
                day = local_day(payload.occurred_at, child.timezone)
            except TimezoneUnresolved:
                # still recorded, but the day is never credited to a streak
                day = payload.occurred_at.date()
            dedup_key = service.make_dedup_key(payload.activity_type, day, payload.name)
        outcome = service.record_activity(
            db,
            child_id,
            payload.activity_type,
            payload.points_value,
            payload.occurred_at,
            dedup_key,
            now=now,
            name=payload.name,
            evaluate_achievements=False,
        )
        if outcome.accepted:
            background_tasks.add_task(evaluate_later, child_id, now)
        return jsonable_encoder(_record_payload(outcome))

    @app.get("/api/children/{child_id}/progress")
    async def api_progress(child_id: int, request: Request) -> dict[str, Any]:
        _require_auth(request, token)
        _authorize_child(db, _actor(request), child_id)
        snapshot = service.get_progress_snapshot(db, child_id, clock())
        return jsonable_encoder(snapshot)

    @app.post("/api/children/{child_id}/goals")
    async def api_create_goal(child_id: int, request: Request, payload: GoalCreateRequest) -> dict[str, Any]:
        _require_auth(request, token)
        actor = _actor(request)
        _authorize_child(db, actor, child_id, parent_only=True)
        goal = goals.create_goal(
            db,
            child_id,
            payload.goal_type,
            payload.title,
            payload.target_value,
            payload.reward_points,
            clock(),
            deadline=payload.deadline,
            created_by=actor.actor_id,
        )
        return {"ok": True, "goal": jsonable_encoder(goal)}

    @app.patch("/api/children/{child_id}/goals/{goal_id}")
    async def api_update_goal(
        child_id: int,
        goal_id: int,
        request: Request,
        payload: GoalPatchRequest,
    ) -> dict[str, Any]:
        _require_auth(request, token)
        _authorize_child(db, _actor(request), child_id, parent_only=True)
        update = service.update_goal(
            db,
            child_id,
            goal_id,
            now=clock(),
            delta=payload.delta,
            explicit_value=payload.value,
        )
        return {"ok": True, "update": jsonable_encoder(update)}

    @app.post("/api/children/{child_id}/claims")
    async def api_claim(child_id: int, request: Request, payload: ClaimRequest) -> dict[str, Any]:
        _require_auth(request, token)
        _authorize_child(db, _actor(request), child_id)
        claim = service.claim_reward(db, child_id, payload.reward_id, clock(), notes=payload.notes)
        return {"ok": True, "claim": jsonable_encoder(claim)}

    @app.get("/api/claims")
    async def api_list_claims(request: Request, status: str | None = "pending") -> dict[str, Any]:
        _require_auth(request, token)
        family_id = _require_parent(_actor(request))
        if status is not None and status not in CLAIM_STATUSES:
            raise ValueError(f"status must be one of {CLAIM_STATUSES}")
        return {"claims": jsonable_encoder(db.list_claims(family_id, status=status))}

    @app.post("/api/claims/{claim_id}/decision")
    async def api_decide_claim(claim_id: int, request: Request, payload: DecisionRequest) -> Any:
        _require_auth(request, token)
        actor = _actor(request)
        _require_parent(actor)
        claim = db.get_claim(claim_id)
        _authorize_child(db, actor, claim.child_id, parent_only=True)
        result = service.decide_claim(db, claim_id, payload.decision, actor.actor_id, clock())
        body = {
            "ok": result.applied,
            "outcome": result.outcome,
            "claim": jsonable_encoder(result.claim),
            "balance": result.balance,
        }
        if not result.applied:
            return JSONResponse(status_code=409, content=body)
        return body

    @app.post("/api/achievements/{achievement_id}/acknowledge")
    async def api_acknowledge(achievement_id: int, request: Request) -> dict[str, Any]:
        _require_auth(request, token)
        achievement = db.get_child_achievement(achievement_id)
        _authorize_child(db, _actor(request), achievement.child_id)
        acknowledged = service.acknowledge_achievement(db, achievement_id, clock())
        return {"ok": True, "achievement": jsonable_encoder(acknowledged)}

    @app.post("/api/children/{child_id}/reconcile")
    async def api_reconcile(child_id: int, request: Request) -> dict[str, Any]:
        _require_auth(request, token)
        _authorize_child(db, _actor(request), child_id, parent_only=True)
        breakdown = service.reconcile_balance(db, child_id)
        return {"ok": True, "expected": breakdown.expected, **jsonable_encoder(breakdown)}

    @app.post("/api/rewards")
    async def api_create_reward(request: Request, payload: RewardCreateRequest) -> dict[str, Any]:
        _require_auth(request, token)
        actor = _actor(request)
        family_id = _require_parent(actor)
        reward = claims.create_reward(
            db,
            family_id,
            payload.name,
            payload.points_required,
            clock(),
            category=payload.category,
            created_by=actor.actor_id,
        )
        return {"ok": True, "reward": jsonable_encoder(reward)}

    @app.post("/api/rewards/{reward_id}/deactivate")
    async def api_deactivate_reward(reward_id: int, request: Request) -> dict[str, Any]:
        _require_auth(request, token)
        family_id = _require_parent(_actor(request))
        reward = claims.deactivate_reward(db, family_id, reward_id)
        return {"ok": True, "reward": jsonable_encoder(reward)}

    @app.get("/api/config")
    async def api_config(request: Request) -> dict[str, Any]:
        _require_auth(request, token)
        _require_parent(_actor(request))
        return {"config": db.get_app_config(), "defaults": APP_CONFIG_DEFAULTS}

    @app.post("/api/config")
    async def api_update_config(request: Request, payload: ConfigUpdateRequest) -> dict[str, Any]:
        _require_auth(request, token)
        actor = _actor(request)
        _require_parent(actor)
        sanitized: dict[str, Any] = {}
        for key, value in payload.updates.items():
            if key not in APP_CONFIG_DEFAULTS:
                continue
            sanitized[key] = _coerce_value(key, value)
        cfg = db.set_app_config(sanitized, actor=actor.actor_id, note=payload.note)
        return {"ok": True, "updated_count": len(sanitized), "config": cfg}

    @app.get("/api/audit")
    async def api_audit(request: Request, limit: int = 100) -> dict[str, Any]:
        _require_auth(request, token)
        _require_parent(_actor(request))
        return {"rows": db.list_admin_audit(limit=limit)}

    return app
