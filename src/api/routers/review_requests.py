from typing import Annotated, Awaitable, Literal, Optional, TypeVar

from fastapi import APIRouter, Depends, Header, Path, Query, status

from src.api.observability import correlation_id_var
from src.api.routers.review_request_http_errors import raise_review_request_http_exception
from src.api.routers.review_requests_config import get_workflow_orchestrator
from src.core.review_requests import (
    ActionContext,
    Caller,
    CreateReviewRequest,
    ReviewRequest,
    ReviewRequestWorkflowError,
    WorkflowActionOrchestrator,
    WorkflowActionResult,
)
from src.core.review_requests.models import (
    AssignAttorneyPayload,
    AvailableActionsResponse,
    CancelPayload,
    CloseoutPayload,
    CompleteRegulatoryDocumentsPayload,
    HoldPayload,
    RequestChangesPayload,
    RequestStatus,
    ResubmitPayload,
    ReviewKind,
    ReviewProgressPayload,
    SaveDraftPayload,
    SendToCommitteePayload,
    SubmitReviewPayload,
)
from src.core.review_requests.permissions import roles_from_group_titles

router = APIRouter(prefix="/review-requests", tags=["Review Request Workflow"])

T = TypeVar("T")

ReviewPath = Annotated[
    Literal["legal", "compliance"],
    Path(description="Which review the action targets.", examples=["legal"]),
]
RequestIdPath = Annotated[
    str, Path(description="Review request identifier.", examples=["rr_001"])
]


def get_caller(
    caller_id: Annotated[
        str,
        Header(
            alias="X-Caller-Id",
            description="Directory identity of the acting principal.",
            examples=["u_42"],
        ),
    ],
    caller_groups: Annotated[
        Optional[str],
        Header(
            alias="X-Caller-Groups",
            description="Comma-separated security group titles of the acting principal.",
            examples=["LW - Attorneys,LW - Submitters"],
        ),
    ] = None,
) -> Caller:
    titles = [title.strip() for title in (caller_groups or "").split(",") if title.strip()]
    return Caller(principal_id=caller_id, roles=roles_from_group_titles(titles))


def get_action_context(
    idempotency_key: Annotated[
        Optional[str],
        Header(
            alias="Idempotency-Key",
            description="Optional key; a retried action with the same key is replayed.",
            examples=["review-action-idem-001"],
        ),
    ] = None,
    correlation_id: Annotated[
        Optional[str],
        Header(alias="X-Correlation-Id", examples=["corr-review-action-001"]),
    ] = None,
    expected_status: Annotated[
        Optional[RequestStatus],
        Query(description="Optimistic concurrency guard on the current request status."),
    ] = None,
) -> ActionContext:
    return ActionContext(
        expected_status=expected_status,
        idempotency_key=idempotency_key,
        correlation_id=correlation_id or correlation_id_var.get() or None,
    )


CallerDep = Annotated[Caller, Depends(get_caller)]
ContextDep = Annotated[ActionContext, Depends(get_action_context)]
OrchestratorDep = Annotated[WorkflowActionOrchestrator, Depends(get_workflow_orchestrator)]


async def _run(call: Awaitable[T]) -> T:
    try:
        return await call
    except ReviewRequestWorkflowError as exc:
        raise_review_request_http_exception(exc)


def _review_kind(review: str) -> ReviewKind:
    return "LEGAL" if review == "legal" else "COMPLIANCE"


@router.post(
    "",
    response_model=ReviewRequest,
    status_code=status.HTTP_201_CREATED,
    summary="Create Draft Review Request",
)
async def create_review_request(
    payload: CreateReviewRequest, caller: CallerDep, orchestrator: OrchestratorDep
) -> ReviewRequest:
    return await _run(orchestrator.create_request(payload=payload, caller=caller))


@router.get("/{request_id}", response_model=ReviewRequest, summary="Get Review Request")
async def get_review_request(
    request_id: RequestIdPath, orchestrator: OrchestratorDep
) -> ReviewRequest:
    return await _run(orchestrator.get_request(request_id=request_id))


@router.get(
    "/{request_id}/available-actions",
    response_model=AvailableActionsResponse,
    summary="List Workflow Actions Available To The Caller",
    description="Evaluates the permission gate for every action; nothing is mutated.",
)
async def get_available_actions(
    request_id: RequestIdPath, caller: CallerDep, orchestrator: OrchestratorDep
) -> AvailableActionsResponse:
    request = await _run(orchestrator.get_request(request_id=request_id))
    actions = await _run(
        orchestrator.get_available_actions(request_id=request_id, caller=caller)
    )
    return AvailableActionsResponse(
        request_id=request_id, status=request.status, actions=actions
    )


@router.post(
    "/{request_id}/submit",
    response_model=WorkflowActionResult,
    summary="Submit Draft To Legal Intake",
)
async def submit_request(
    request_id: RequestIdPath,
    caller: CallerDep,
    context: ContextDep,
    orchestrator: OrchestratorDep,
) -> WorkflowActionResult:
    return await _run(
        orchestrator.submit_request(request_id=request_id, caller=caller, context=context)
    )


@router.post("/{request_id}/draft", response_model=WorkflowActionResult, summary="Save Draft")
async def save_draft(
    request_id: RequestIdPath,
    payload: SaveDraftPayload,
    caller: CallerDep,
    context: ContextDep,
    orchestrator: OrchestratorDep,
) -> WorkflowActionResult:
    return await _run(
        orchestrator.save_draft(
            request_id=request_id, caller=caller, payload=payload, context=context
        )
    )


@router.post(
    "/{request_id}/assign-attorney",
    response_model=WorkflowActionResult,
    summary="Assign Attorney And Start Review",
)
async def assign_attorney(
    request_id: RequestIdPath,
    payload: AssignAttorneyPayload,
    caller: CallerDep,
    context: ContextDep,
    orchestrator: OrchestratorDep,
) -> WorkflowActionResult:
    return await _run(
        orchestrator.assign_attorney(
            request_id=request_id, caller=caller, payload=payload, context=context
        )
    )


@router.post(
    "/{request_id}/send-to-committee",
    response_model=WorkflowActionResult,
    summary="Send To Attorney Assignment Committee",
)
async def send_to_committee(
    request_id: RequestIdPath,
    payload: SendToCommitteePayload,
    caller: CallerDep,
    context: ContextDep,
    orchestrator: OrchestratorDep,
) -> WorkflowActionResult:
    return await _run(
        orchestrator.send_to_committee(
            request_id=request_id, caller=caller, payload=payload, context=context
        )
    )


@router.post(
    "/{request_id}/reviews/{review}/progress",
    response_model=WorkflowActionResult,
    summary="Save Review Progress",
)
async def save_review_progress(
    request_id: RequestIdPath,
    review: ReviewPath,
    payload: ReviewProgressPayload,
    caller: CallerDep,
    context: ContextDep,
    orchestrator: OrchestratorDep,
) -> WorkflowActionResult:
    return await _run(
        orchestrator.save_review_progress(
            request_id=request_id,
            caller=caller,
            review=_review_kind(review),
            payload=payload,
            context=context,
        )
    )


@router.post(
    "/{request_id}/reviews/{review}/submit",
    response_model=WorkflowActionResult,
    summary="Submit Review Outcome",
    description=(
        "Records the reviewer outcome. When every required review is complete the request "
        "advances to Closeout, or to Completed when any review was Not Approved."
    ),
)
async def submit_review(
    request_id: RequestIdPath,
    review: ReviewPath,
    payload: SubmitReviewPayload,
    caller: CallerDep,
    context: ContextDep,
    orchestrator: OrchestratorDep,
) -> WorkflowActionResult:
    if _review_kind(review) == "LEGAL":
        call = orchestrator.submit_legal_review(
            request_id=request_id, caller=caller, payload=payload, context=context
        )
    else:
        call = orchestrator.submit_compliance_review(
            request_id=request_id, caller=caller, payload=payload, context=context
        )
    return await _run(call)


@router.post(
    "/{request_id}/reviews/{review}/request-changes",
    response_model=WorkflowActionResult,
    summary="Request Changes From Submitter",
)
async def request_review_changes(
    request_id: RequestIdPath,
    review: ReviewPath,
    payload: RequestChangesPayload,
    caller: CallerDep,
    context: ContextDep,
    orchestrator: OrchestratorDep,
) -> WorkflowActionResult:
    return await _run(
        orchestrator.request_review_changes(
            request_id=request_id,
            caller=caller,
            review=_review_kind(review),
            payload=payload,
            context=context,
        )
    )


@router.post(
    "/{request_id}/reviews/{review}/resubmit",
    response_model=WorkflowActionResult,
    summary="Resubmit For Review",
)
async def resubmit_for_review(
    request_id: RequestIdPath,
    review: ReviewPath,
    payload: ResubmitPayload,
    caller: CallerDep,
    context: ContextDep,
    orchestrator: OrchestratorDep,
) -> WorkflowActionResult:
    return await _run(
        orchestrator.resubmit_for_review(
            request_id=request_id,
            caller=caller,
            review=_review_kind(review),
            payload=payload,
            context=context,
        )
    )


@router.post(
    "/{request_id}/closeout", response_model=WorkflowActionResult, summary="Close Out Request"
)
async def closeout_request(
    request_id: RequestIdPath,
    payload: CloseoutPayload,
    caller: CallerDep,
    context: ContextDep,
    orchestrator: OrchestratorDep,
) -> WorkflowActionResult:
    return await _run(
        orchestrator.closeout_request(
            request_id=request_id, caller=caller, payload=payload, context=context
        )
    )


@router.post(
    "/{request_id}/regulatory-documents/complete",
    response_model=WorkflowActionResult,
    summary="Complete Regulatory Documents Phase",
)
async def complete_regulatory_documents(
    request_id: RequestIdPath,
    payload: CompleteRegulatoryDocumentsPayload,
    caller: CallerDep,
    context: ContextDep,
    orchestrator: OrchestratorDep,
) -> WorkflowActionResult:
    return await _run(
        orchestrator.complete_regulatory_documents(
            request_id=request_id, caller=caller, payload=payload, context=context
        )
    )


@router.post("/{request_id}/cancel", response_model=WorkflowActionResult, summary="Cancel")
async def cancel_request(
    request_id: RequestIdPath,
    payload: CancelPayload,
    caller: CallerDep,
    context: ContextDep,
    orchestrator: OrchestratorDep,
) -> WorkflowActionResult:
    return await _run(
        orchestrator.cancel_request(
            request_id=request_id, caller=caller, payload=payload, context=context
        )
    )


@router.post("/{request_id}/hold", response_model=WorkflowActionResult, summary="Put On Hold")
async def hold_request(
    request_id: RequestIdPath,
    payload: HoldPayload,
    caller: CallerDep,
    context: ContextDep,
    orchestrator: OrchestratorDep,
) -> WorkflowActionResult:
    return await _run(
        orchestrator.hold_request(
            request_id=request_id, caller=caller, payload=payload, context=context
        )
    )


@router.post(
    "/{request_id}/resume", response_model=WorkflowActionResult, summary="Resume From Hold"
)
async def resume_request(
    request_id: RequestIdPath,
    caller: CallerDep,
    context: ContextDep,
    orchestrator: OrchestratorDep,
) -> WorkflowActionResult:
    return await _run(
        orchestrator.resume_request(request_id=request_id, caller=caller, context=context)
    )
