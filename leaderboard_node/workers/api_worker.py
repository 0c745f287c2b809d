from __future__ import annotations

import logging
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass
from typing import Annotated, Any, Callable, ContextManager, Generator, Iterator

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from leaderboard_node.config.llm import LLMSettings
from leaderboard_node.config.runtime import RuntimeSettings
from leaderboard_node.db import (
    DBParticipantRepository,
    DBScoreRecordRepository,
    InMemoryParticipantRepository,
    InMemoryScoreRecordRepository,
    create_session,
)
from leaderboard_node.entities.participant import Participant
from leaderboard_node.entities.score_record import (
    RankedEntry,
    ScoreRecord,
    ScoreSubmission,
    SubmissionOutcome,
)
from leaderboard_node.errors import (
    DuplicateEmailError,
    InvalidParticipantError,
    InvalidSubmissionError,
    LLMGatewayError,
    StoreUnavailableError,
)
from leaderboard_node.middleware.auth import configure_auth
from leaderboard_node.schemas import (
    ChatBody,
    ParticipantCreateBody,
    ScoreSubmissionBody,
    SentenceAnalysisBody,
)
from leaderboard_node.services.interfaces.participant_repository import ParticipantRepository
from leaderboard_node.services.interfaces.score_record_repository import ScoreRecordRepository
from leaderboard_node.services.llm_gateway import ChatService
from leaderboard_node.services.participants import ParticipantService
from leaderboard_node.services.ranking import RankingService
from leaderboard_node.services.retry import call_with_store_retry
from leaderboard_node.services.score_update import ParticipantLocks, ScoreUpdateService
from leaderboard_node.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

_SUBMIT_MESSAGES = {
    SubmissionOutcome.CREATED: "Leaderboard entry created successfully",
    SubmissionOutcome.UPDATED: "Leaderboard updated successfully",
    SubmissionOutcome.NOT_IMPROVED: "Score not higher than best score, leaderboard unchanged",
}

_CHAT_APOLOGY = "Sorry, I encountered an error."


@dataclass
class Repositories:
    scores: ScoreRecordRepository
    participants: ParticipantRepository


RepositoryProvider = Callable[[], ContextManager[Repositories]]


@contextmanager
def db_repositories() -> Iterator[Repositories]:
    with create_session() as session:
        yield Repositories(
            scores=DBScoreRecordRepository(session),
            participants=DBParticipantRepository(session),
        )


def memory_repositories(
    scores: ScoreRecordRepository | None = None,
    participants: ParticipantRepository | None = None,
) -> RepositoryProvider:
    """Provider that hands every request the same process-local stores."""
    repositories = Repositories(
        scores=scores if scores is not None else InMemoryScoreRecordRepository(),
        participants=participants if participants is not None else InMemoryParticipantRepository(),
    )

    @contextmanager
    def provider() -> Iterator[Repositories]:
        yield repositories

    return provider


# ── Dependencies ──


def get_settings(request: Request) -> RuntimeSettings:
    return request.app.state.settings


def get_repositories(request: Request) -> Generator[Repositories, Any, None]:
    with request.app.state.repository_provider() as repositories:
        yield repositories


def get_score_update_service(
    request: Request,
    repositories: Annotated[Repositories, Depends(get_repositories)],
) -> ScoreUpdateService:
    settings: RuntimeSettings = request.app.state.settings
    return ScoreUpdateService(
        repository=repositories.scores,
        locks=request.app.state.participant_locks,
        policy=settings.score_update_policy,
        store_retries=settings.store_retries,
        store_retry_backoff_seconds=settings.store_retry_backoff_seconds,
    )


def get_ranking_service(
    request: Request,
    repositories: Annotated[Repositories, Depends(get_repositories)],
) -> RankingService:
    settings: RuntimeSettings = request.app.state.settings
    return RankingService(
        score_repository=repositories.scores,
        participant_repository=repositories.participants,
        top_k=settings.top_k,
        store_retries=settings.store_retries,
        store_retry_backoff_seconds=settings.store_retry_backoff_seconds,
    )


def get_participant_service(
    repositories: Annotated[Repositories, Depends(get_repositories)],
) -> ParticipantService:
    return ParticipantService(repositories.participants)


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


# ── Serialization ──


def _record_to_dict(record: ScoreRecord) -> dict[str, Any]:
    return {
        "participant_id": record.participant_id,
        "display_name": record.display_name,
        "image_ref": record.image_ref,
        "country": record.country,
        "current_score": record.current_score,
        "best_score": record.best_score,
        "best_score_at": record.best_score_at,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }


def _ranked_to_dict(entry: RankedEntry) -> dict[str, Any]:
    return {
        "rank": entry.rank,
        **_record_to_dict(entry.record),
        "name": entry.name,
        "country": entry.country,
    }


def _participant_to_dict(participant: Participant) -> dict[str, Any]:
    return {
        "id": participant.id,
        "name": participant.name,
        "email": participant.email,
        "age": participant.age,
        "country": participant.country,
        "created_at": participant.created_at,
        "updated_at": participant.updated_at,
    }


# ── Routes ──

router = APIRouter()


@router.get("/", response_class=PlainTextResponse)
def root() -> str:
    return "API running"


@router.get("/healthz")
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/leaderboard")
def submit_score(
    body: ScoreSubmissionBody,
    service: Annotated[ScoreUpdateService, Depends(get_score_update_service)],
) -> dict[str, Any]:
    result = service.submit(
        ScoreSubmission(
            participant_id=str(body.participant_id) if body.participant_id is not None else None,
            score=body.score,
            display_name=body.display_name,
            image_ref=body.image_ref,
            country=body.country,
        )
    )
    return {
        "message": _SUBMIT_MESSAGES[result.outcome],
        "outcome": result.outcome.value,
        "best_improved": result.best_improved,
        "leaderboard": _record_to_dict(result.record),
    }


@router.get("/leaderboard")
def get_leaderboard(
    ranking: Annotated[RankingService, Depends(get_ranking_service)],
) -> dict[str, Any]:
    return {
        "message": "Leaderboard fetched successfully",
        "leaderboard": [_ranked_to_dict(entry) for entry in ranking.full_ranking()],
    }


@router.get("/leaderboard/top")
def get_leaderboard_top(
    ranking: Annotated[RankingService, Depends(get_ranking_service)],
    k: Annotated[int | None, Query(ge=1, le=100)] = None,
) -> dict[str, Any]:
    return {"leaderboard": [_ranked_to_dict(entry) for entry in ranking.top(k)]}


@router.get("/leaderboard/{participant_id}")
def get_participant_view(
    participant_id: str,
    ranking: Annotated[RankingService, Depends(get_ranking_service)],
) -> dict[str, Any]:
    view = ranking.participant_view(participant_id)
    if view is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No leaderboard entry for participant {participant_id}",
        )
    return {
        "user_data": _ranked_to_dict(view.user_data),
        "top10": [_ranked_to_dict(entry) for entry in view.top],
    }


@router.delete("/admin/leaderboard")
def clear_leaderboard(
    settings: Annotated[RuntimeSettings, Depends(get_settings)],
    repositories: Annotated[Repositories, Depends(get_repositories)],
) -> dict[str, int]:
    if not settings.admin_clear_enabled:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Leaderboard clear is disabled (set LEADERBOARD_ADMIN_CLEAR_ENABLED=true)",
        )

    deleted = call_with_store_retry(
        repositories.scores.delete_all,
        operation="delete_all",
        retries=settings.store_retries,
        backoff_seconds=settings.store_retry_backoff_seconds,
    )
    logger.warning("Leaderboard cleared, %d records deleted", deleted)
    return {"deleted_count": deleted}


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(
    body: ParticipantCreateBody,
    service: Annotated[ParticipantService, Depends(get_participant_service)],
) -> dict[str, Any]:
    participant = service.register(
        name=body.name,
        email=body.email,
        age=body.age,
        country=body.country,
    )
    return {
        "message": "User created successfully",
        "user": _participant_to_dict(participant),
    }


@router.get("/users")
def list_users(
    service: Annotated[ParticipantService, Depends(get_participant_service)],
) -> list[dict[str, Any]]:
    return [_participant_to_dict(p) for p in service.list_participants()]


@router.post("/chat")
def chat_gemini(
    body: ChatBody,
    chat: Annotated[ChatService, Depends(get_chat_service)],
):
    if not body.message:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": "Message is required"})
    try:
        text = chat.chat_gemini(body.message, body.history)
    except LLMGatewayError:
        logger.exception("Gemini chat failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"text": _CHAT_APOLOGY, "role": "model"},
        )
    return {"text": text, "role": "model"}


@router.post("/chat-openai")
def chat_openai(
    body: ChatBody,
    chat: Annotated[ChatService, Depends(get_chat_service)],
):
    if not body.message:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": "Message is required"})
    try:
        text = chat.chat_openai(body.message, body.history)
    except LLMGatewayError:
        logger.exception("OpenAI chat failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"text": _CHAT_APOLOGY, "role": "assistant"},
        )
    return {"text": text, "role": "assistant"}


@router.post("/analyze-sentence")
def analyze_sentence(
    body: SentenceAnalysisBody,
    chat: Annotated[ChatService, Depends(get_chat_service)],
):
    if not body.sentence:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": "Sentence is required"})
    try:
        analysis = chat.analyze_sentence(body.sentence)
    except LLMGatewayError:
        logger.exception("Sentence analysis failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": "Error analyzing sentence"},
        )
    return {"success": True, "analysis": analysis}


# ── Error handlers ──


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvalidSubmissionError)
    async def _invalid_submission(request: Request, exc: InvalidSubmissionError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Error updating leaderboard", "error": str(exc)},
        )

    @app.exception_handler(InvalidParticipantError)
    async def _invalid_participant(request: Request, exc: InvalidParticipantError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Error creating user", "error": str(exc)},
        )

    @app.exception_handler(DuplicateEmailError)
    async def _duplicate_email(request: Request, exc: DuplicateEmailError):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"message": "Error creating user", "error": "email already registered"},
        )

    @app.exception_handler(StoreUnavailableError)
    async def _store_unavailable(request: Request, exc: StoreUnavailableError):
        logger.error(
            "store unavailable: %s %s operation=%s cause=%s",
            request.method, request.url.path, exc.operation, exc.cause,
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Leaderboard store unavailable"},
        )


def create_app(
    settings: RuntimeSettings | None = None,
    llm_settings: LLMSettings | None = None,
    repository_provider: RepositoryProvider | None = None,
    chat_service: ChatService | None = None,
) -> FastAPI:
    settings = settings or RuntimeSettings.from_env()
    if repository_provider is None:
        repository_provider = memory_repositories() if settings.store_backend == "memory" else db_repositories

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.chat_service is None:
            app.state.chat_service = ChatService.from_settings(llm_settings or LLMSettings.from_env())
        logger.info(
            "leaderboard api started (store=%s, policy=%s, top_k=%d)",
            settings.store_backend, settings.score_update_policy, settings.top_k,
        )
        yield
        app.state.chat_service = None
        logger.info("leaderboard api stopped")

    app = FastAPI(title="Leaderboard Node API", lifespan=lifespan)
    app.state.settings = settings
    app.state.repository_provider = repository_provider
    app.state.participant_locks = ParticipantLocks()
    app.state.chat_service = chat_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    configure_auth(app)
    _install_error_handlers(app)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    settings = app.state.settings
    setup_logging(settings.log_level)
    logger.info("leaderboard api worker bootstrap")
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_config=None)
