from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy import case
from sqlalchemy.orm import Session

from finance_tracker.auth import get_current_user
from finance_tracker.database import get_db
from finance_tracker.errors import BadRequestError, NotFoundError
from finance_tracker.models import GoalContribution, SavingGoal, User
from finance_tracker.responses import envelope
from finance_tracker.schemas import ContributionCreate, GoalCreate, GoalOut, GoalUpdate
from finance_tracker.services import dates

logger = structlog.get_logger(__name__)

router = APIRouter()

PRIORITY_RANK = case(
    (SavingGoal.priority == "high", 3),
    (SavingGoal.priority == "medium", 2),
    else_=1,
)


def _goal_query(db: Session, user: User):
    return db.query(SavingGoal).filter(
        SavingGoal.user_id == user.id, SavingGoal.is_deleted.is_(False)
    )


def _get_owned_goal(db: Session, user: User, goal_id: int) -> SavingGoal:
    goal = _goal_query(db, user).filter(SavingGoal.id == goal_id).first()
    if not goal:
        raise NotFoundError("Goal not found")
    return goal


def list_goals(db: Session, user: User, status: Optional[str] = None) -> dict:
    query = _goal_query(db, user)
    if status:
        query = query.filter(SavingGoal.status == status)
    goals = query.order_by(
        SavingGoal.is_main_goal.desc(),
        PRIORITY_RANK.desc(),
        SavingGoal.created_at.desc(),
        SavingGoal.id.desc(),
    ).all()
    return {"goals": [GoalOut.model_validate(g) for g in goals], "count": len(goals)}


def get_goal(db: Session, user: User, goal_id: int) -> dict:
    return {"goal": GoalOut.model_validate(_get_owned_goal(db, user, goal_id))}


@router.get("")
async def get_goals(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return envelope(list_goals(db, current_user, status))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_goal(
    body: GoalCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    goal = SavingGoal(
        user_id=current_user.id,
        name=body.name,
        description=body.description,
        target_amount=body.target_amount,
        current_amount=body.current_amount,
        monthly_contribution=body.monthly_contribution,
        start_date=dates.today(),
        estimated_completion=body.estimated_completion,
        category=body.category,
        priority=body.priority,
        color=body.color or "#3B82F6",
        icon=body.icon or "wallet-outline",
        notes=body.notes,
        status="active",
        milestones_notified=[],
    )
    db.add(goal)
    db.commit()
    db.refresh(goal)

    logger.info("goal_created", user_id=current_user.id, goal_id=goal.id)
    return envelope({"goal": GoalOut.model_validate(goal)}, message="Goal created successfully")


@router.get("/{goal_id}")
async def get_goal_by_id(
    goal_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return envelope(get_goal(db, current_user, goal_id))


@router.put("/{goal_id}")
async def update_goal(
    goal_id: int,
    body: GoalUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    goal = _get_owned_goal(db, current_user, goal_id)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(goal, field, value)
    db.commit()
    db.refresh(goal)
    return envelope({"goal": GoalOut.model_validate(goal)}, message="Goal updated successfully")


@router.delete("/{goal_id}")
async def delete_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    goal = _get_owned_goal(db, current_user, goal_id)
    goal.soft_delete()
    goal.is_main_goal = False
    db.commit()
    return envelope(message="Goal deleted successfully")


@router.post("/{goal_id}/contribute")
async def contribute_to_goal(
    goal_id: int,
    body: ContributionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not body.amount or body.amount <= 0:
        raise BadRequestError("Invalid contribution amount")

    goal = _get_owned_goal(db, current_user, goal_id)
    goal.contributions.append(
        GoalContribution(
            amount=body.amount,
            date=body.date or dates.today(),
            note=body.note,
            source=body.source,
        )
    )
    goal.current_amount += body.amount
    goal.total_contributed += body.amount
    goal.contribution_count += 1
    goal.average_monthly_contribution = goal.total_contributed / goal.contribution_count

    if goal.current_amount >= goal.target_amount and goal.status != "completed":
        goal.status = "completed"
        goal.actual_completion = datetime.utcnow()
        logger.info("goal_completed", user_id=current_user.id, goal_id=goal.id)

    db.commit()
    db.refresh(goal)
    return envelope(
        {"goal": GoalOut.model_validate(goal)}, message="Contribution added successfully"
    )


@router.put("/{goal_id}/set-main")
async def set_main_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    goal = _get_owned_goal(db, current_user, goal_id)
    db.query(SavingGoal).filter(
        SavingGoal.user_id == current_user.id, SavingGoal.id != goal.id
    ).update({SavingGoal.is_main_goal: False}, synchronize_session=False)
    goal.is_main_goal = True
    db.commit()
    db.refresh(goal)
    return envelope({"goal": GoalOut.model_validate(goal)}, message="Main goal set successfully")
