"""Family dashboard endpoints: members, narratives, goals and action items.

Everything is scoped to the signed-in account; another account's member,
goal or action item answers 404.
"""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.database import get_session
from healthhub.core.exceptions import NotFoundError
from healthhub.core.security import CurrentUser
from healthhub.models.family import FamilyMember
from healthhub.schemas.family import (
    ActionItemCreate,
    ActionItemResponse,
    ActionItemUpdate,
    ActionScheduleRequest,
    ActionStatus,
    FamilyMemberCreate,
    FamilyMemberResponse,
    FamilyMemberUpdate,
    FamilySummaryResponse,
    GoalCreate,
    GoalResponse,
    GoalUpdate,
    LinkFhirRequest,
    MemberDeleteResponse,
    MemberSummary,
    NarrativeGenerateRequest,
    NarrativeResponse,
    PendingActionResponse,
    SuccessResponse,
)
from healthhub.services import family_service

router = APIRouter()


async def _owned_member(
    request: Request, db: AsyncSession, user_id: int, member_id: int
) -> FamilyMember:
    member = await family_service.get_member(db, user_id, member_id)
    if member is None:
        raise NotFoundError(
            detail=f"Family member {member_id} not found", instance=request.url.path
        )
    return member


# =============================================================================
# Members
# =============================================================================


@router.get("/members", response_model=list[FamilyMemberResponse], summary="List family members")
async def list_members(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> list[FamilyMemberResponse]:
    members = await family_service.list_members(db, current_user.id)
    return [FamilyMemberResponse.model_validate(m) for m in members]


@router.get("/members/{member_id}", response_model=FamilyMemberResponse, summary="Get a member")
async def get_member(
    member_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> FamilyMemberResponse:
    member = await _owned_member(request, db, current_user.id, member_id)
    return FamilyMemberResponse.model_validate(member)


@router.post(
    "/members",
    response_model=FamilyMemberResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a family member",
    description="A member created as primary replaces the previous primary member",
)
async def create_member(
    data: FamilyMemberCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> FamilyMemberResponse:
    member = await family_service.create_member(db, current_user.id, data)
    return FamilyMemberResponse.model_validate(member)


@router.put("/members/{member_id}", response_model=FamilyMemberResponse, summary="Update a member")
async def update_member(
    member_id: int,
    data: FamilyMemberUpdate,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> FamilyMemberResponse:
    member = await family_service.update_member(db, current_user.id, member_id, data)
    if member is None:
        raise NotFoundError(
            detail=f"Family member {member_id} not found", instance=request.url.path
        )
    return FamilyMemberResponse.model_validate(member)


@router.delete(
    "/members/{member_id}",
    response_model=MemberDeleteResponse,
    summary="Remove a member",
    description="Also removes the member's narratives, goals, action items and alerts",
)
async def delete_member(
    member_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> MemberDeleteResponse:
    member = await family_service.delete_member(db, current_user.id, member_id)
    if member is None:
        raise NotFoundError(
            detail=f"Family member {member_id} not found", instance=request.url.path
        )
    return MemberDeleteResponse(deleted=FamilyMemberResponse.model_validate(member))


@router.post(
    "/members/{member_id}/link-fhir",
    response_model=FamilyMemberResponse,
    summary="Link a provider session to a member",
)
async def link_fhir_session(
    member_id: int,
    data: LinkFhirRequest,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> FamilyMemberResponse:
    member = await family_service.link_fhir_session(
        db, current_user.id, member_id, data.fhir_session_id
    )
    if member is None:
        raise NotFoundError(
            detail="Family member or FHIR session not found", instance=request.url.path
        )
    return FamilyMemberResponse.model_validate(member)


# =============================================================================
# Narratives
# =============================================================================


@router.get(
    "/narratives/{member_id}",
    response_model=list[NarrativeResponse],
    summary="Narratives of a member",
)
async def list_narratives(
    member_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> list[NarrativeResponse]:
    await _owned_member(request, db, current_user.id, member_id)
    narratives = await family_service.list_narratives(db, member_id)
    return [NarrativeResponse.model_validate(n) for n in narratives]


@router.post(
    "/narratives/generate",
    response_model=NarrativeResponse,
    summary="Generate a health narrative",
    description=(
        "Reuse the member's narrative of this type when it is less than seven "
        "days old, unless forceRegenerate is set"
    ),
)
async def generate_narrative(
    data: NarrativeGenerateRequest,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> NarrativeResponse:
    member = await _owned_member(request, db, current_user.id, data.family_member_id)
    narrative = await family_service.generate_narrative(
        db, member, data.narrative_type, force_regenerate=data.force_regenerate
    )
    return NarrativeResponse.model_validate(narrative)


# =============================================================================
# Goals
# =============================================================================


@router.get("/goals/{member_id}", response_model=list[GoalResponse], summary="Goals of a member")
async def list_goals(
    member_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> list[GoalResponse]:
    await _owned_member(request, db, current_user.id, member_id)
    goals = await family_service.list_goals(db, member_id)
    return [GoalResponse.model_validate(g) for g in goals]


@router.post(
    "/goals",
    response_model=GoalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a goal",
)
async def create_goal(
    data: GoalCreate,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> GoalResponse:
    await _owned_member(request, db, current_user.id, data.family_member_id)
    goal = await family_service.create_goal(db, data)
    return GoalResponse.model_validate(goal)


@router.put("/goals/{goal_id}", response_model=GoalResponse, summary="Update a goal")
async def update_goal(
    goal_id: int,
    data: GoalUpdate,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> GoalResponse:
    goal = await family_service.update_goal(db, current_user.id, goal_id, data)
    if goal is None:
        raise NotFoundError(detail=f"Goal {goal_id} not found", instance=request.url.path)
    return GoalResponse.model_validate(goal)


@router.delete("/goals/{goal_id}", response_model=SuccessResponse, summary="Delete a goal")
async def delete_goal(
    goal_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> SuccessResponse:
    if not await family_service.delete_goal(db, current_user.id, goal_id):
        raise NotFoundError(detail=f"Goal {goal_id} not found", instance=request.url.path)
    return SuccessResponse()


# =============================================================================
# Action items
# =============================================================================


@router.get(
    "/actions",
    response_model=list[PendingActionResponse],
    summary="Pending actions of the whole family",
)
async def list_pending_actions(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> list[PendingActionResponse]:
    rows = await family_service.list_pending_actions(db, current_user.id)
    return [
        PendingActionResponse(
            action_item=ActionItemResponse.model_validate(item), member_name=member_name
        )
        for item, member_name in rows
    ]


@router.get(
    "/actions/{member_id}",
    response_model=list[ActionItemResponse],
    summary="Action items of a member",
    description="Highest priority first, then earliest due date",
)
async def list_actions(
    member_id: int,
    request: Request,
    current_user: CurrentUser,
    action_status: ActionStatus | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_session),
) -> list[ActionItemResponse]:
    await _owned_member(request, db, current_user.id, member_id)
    items = await family_service.list_actions(db, member_id, status=action_status)
    return [ActionItemResponse.model_validate(item) for item in items]


@router.post(
    "/actions",
    response_model=ActionItemResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an action item",
)
async def create_action(
    data: ActionItemCreate,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> ActionItemResponse:
    await _owned_member(request, db, current_user.id, data.family_member_id)
    item = await family_service.create_action(db, data)
    return ActionItemResponse.model_validate(item)


@router.post(
    "/actions/{action_id}/schedule",
    response_model=ActionItemResponse,
    summary="Mark an action item as scheduled",
)
async def schedule_action(
    action_id: int,
    data: ActionScheduleRequest,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> ActionItemResponse:
    item = await family_service.schedule_action(db, current_user.id, action_id, data)
    if item is None:
        raise NotFoundError(detail=f"Action item {action_id} not found", instance=request.url.path)
    return ActionItemResponse.model_validate(item)


@router.post(
    "/actions/{action_id}/complete",
    response_model=ActionItemResponse,
    summary="Complete an action item",
)
async def complete_action(
    action_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> ActionItemResponse:
    item = await family_service.complete_action(db, current_user.id, action_id)
    if item is None:
        raise NotFoundError(detail=f"Action item {action_id} not found", instance=request.url.path)
    return ActionItemResponse.model_validate(item)


@router.put("/actions/{action_id}", response_model=ActionItemResponse, summary="Update an action item")
async def update_action(
    action_id: int,
    data: ActionItemUpdate,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> ActionItemResponse:
    item = await family_service.update_action(db, current_user.id, action_id, data)
    if item is None:
        raise NotFoundError(detail=f"Action item {action_id} not found", instance=request.url.path)
    return ActionItemResponse.model_validate(item)


@router.delete("/actions/{action_id}", response_model=SuccessResponse, summary="Delete an action item")
async def delete_action(
    action_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> SuccessResponse:
    if not await family_service.delete_action(db, current_user.id, action_id):
        raise NotFoundError(detail=f"Action item {action_id} not found", instance=request.url.path)
    return SuccessResponse()


# =============================================================================
# Summary
# =============================================================================


@router.get(
    "/summary",
    response_model=FamilySummaryResponse,
    summary="Family overview",
    description="Members with their number of pending action items",
)
async def family_summary(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> FamilySummaryResponse:
    summary = await family_service.family_summary(db, current_user.id)
    return FamilySummaryResponse(
        members=[
            MemberSummary(
                **FamilyMemberResponse.model_validate(member).model_dump(),
                pending_actions=pending,
            )
            for member, pending in summary["members"]
        ],
        total_pending_actions=summary["total_pending_actions"],
    )
