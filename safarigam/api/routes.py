from __future__ import annotations

from typing import Any, TypeVar

import redis
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, ValidationError

from safarigam.api.deps import get_redis, get_registry
from safarigam.api.models import (
    AchievementView,
    ActionResponse,
    CompanionRequest,
    Destination,
    EngineEventView,
    HomeParkRequest,
    KidModeRequest,
    NavigateRequest,
    ParkView,
    QuizAnswerRequest,
    SessionView,
    SignUpRequest,
    SpeciesPage,
    SpeciesView,
    TravelRequest,
)
from safarigam.catalog.singleton import get_catalog
from safarigam.core.achievements import ACHIEVEMENTS
from safarigam.core.engine import ActionResult, ProgressionEngine
from safarigam.sessions import SessionRegistry
from safarigam.websocket_hub import hub

router = APIRouter()

ModelT = TypeVar("ModelT", bound=BaseModel)

ACTIONS = (
    "companion",
    "home_park",
    "kid_mode",
    "navigate",
    "travel",
    "complete_travel",
    "abandon_travel",
    "quiz_answer",
    "quiz_skip",
    "proverb_dismiss",
    "toast_dismiss",
    "reset",
    "sign_up",
    "sign_in",
    "sign_out",
)


def _parse(model: type[ModelT], body: dict[str, Any]) -> ModelT:
    try:
        return model.model_validate(body)
    except ValidationError as e:
        raise ValueError(str(e)) from e


def _dispatch_action(engine: ProgressionEngine, action: str, body: dict[str, Any]) -> ActionResult:
    if action == "companion":
        return engine.select_companion(_parse(CompanionRequest, body).species_id)
    if action == "home_park":
        return engine.select_home_park(_parse(HomeParkRequest, body).park_id)
    if action == "kid_mode":
        return engine.set_kid_mode(_parse(KidModeRequest, body).enabled)
    if action == "navigate":
        return engine.navigate_to(_parse(NavigateRequest, body).screen)
    if action == "travel":
        return engine.begin_travel(_parse(TravelRequest, body).destination_id)
    if action == "complete_travel":
        return engine.complete_travel()
    if action == "abandon_travel":
        return engine.abandon_travel()
    if action == "quiz_answer":
        return engine.answer_quiz(_parse(QuizAnswerRequest, body).choice)
    if action == "quiz_skip":
        return engine.skip_quiz()
    if action == "proverb_dismiss":
        return engine.dismiss_proverb()
    if action == "toast_dismiss":
        return engine.dismiss_toast()
    if action == "reset":
        return engine.reset()
    if action in {"sign_up", "sign_in"}:
        req = _parse(SignUpRequest, body)
        op = engine.sign_up if action == "sign_up" else engine.sign_in
        return op(req.provider, nickname=req.nickname, email=req.email, password=req.password)
    if action == "sign_out":
        return engine.sign_out()
    raise ValueError(f"Unknown action: {action}")


def _require_engine(registry: SessionRegistry, profile_id: str) -> ProgressionEngine:
    engine = registry.get(profile_id)
    if engine is None or engine.disposed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return engine


@router.websocket("/ws/profile/{profile_id}")
async def profile_updates_ws(websocket: WebSocket, profile_id: str) -> None:
    await hub.connect(profile_id, websocket)

    try:
        # Keep the socket open; the client may send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(profile_id, websocket)
    except Exception:
        await hub.disconnect(profile_id, websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/profiles/{profile_id}/session", response_model=SessionView, status_code=status.HTTP_201_CREATED)
async def open_session_route(
    profile_id: str,
    r: redis.Redis = Depends(get_redis),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionView:
    try:
        engine, _created = registry.open(r=r, profile_id=profile_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    return engine.session_view()


@router.get("/profiles/{profile_id}/session", response_model=SessionView)
async def get_session_route(profile_id: str, registry: SessionRegistry = Depends(get_registry)) -> SessionView:
    return _require_engine(registry, profile_id).session_view()


@router.delete("/profiles/{profile_id}/session", status_code=status.HTTP_204_NO_CONTENT)
async def close_session_route(profile_id: str, registry: SessionRegistry = Depends(get_registry)) -> None:
    if not registry.close(profile_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")


@router.post("/profiles/{profile_id}/actions/{action}", response_model=ActionResponse)
async def generic_action_route(
    profile_id: str,
    action: str,
    body: dict[str, Any] | None = None,
    registry: SessionRegistry = Depends(get_registry),
) -> ActionResponse:
    engine = _require_engine(registry, profile_id)
    try:
        if action not in ACTIONS:
            raise ValueError(f"Unknown action: {action}")
        result = _dispatch_action(engine, action, body or {})
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    return ActionResponse(
        accepted=result.accepted,
        events=[EngineEventView.model_validate(e.as_dict()) for e in result.events],
        session=engine.session_view(),
    )


@router.get("/catalog/species", response_model=SpeciesPage)
async def species_route(
    category: str | None = None,
    search: str | None = None,
    page: int = 1,
    registry: SessionRegistry = Depends(get_registry),
) -> SpeciesPage:
    if page < 1:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="page must be >= 1")

    matches = get_catalog().species.search(category=category, text=search)
    size = registry.settings.page_size
    chunk = matches[(page - 1) * size : page * size]
    return SpeciesPage(
        page=page,
        page_size=size,
        total=len(matches),
        species=[
            SpeciesView(
                id=s.id,
                name=s.name,
                category=s.category,
                habitat=s.habitat,
                status=s.status,
                parks=list(s.parks),
                fact=s.fact,
                swahili=s.swahili,
                emoji=s.emoji,
            )
            for s in chunk
        ],
    )


@router.get("/catalog/parks", response_model=list[ParkView])
async def parks_route() -> list[ParkView]:
    return [
        ParkView(
            id=p.id,
            name=p.name,
            country=p.country,
            ecosystem=p.ecosystem,
            description=p.description,
            color=p.color,
        )
        for p in get_catalog().parks
    ]


@router.get("/catalog/destinations", response_model=list[Destination])
async def destinations_route() -> list[Destination]:
    return list(get_catalog().destinations)


@router.get("/catalog/achievements", response_model=list[AchievementView])
async def achievements_route() -> list[AchievementView]:
    return [
        AchievementView(id=a.id, name=a.name, description=a.description, icon=a.icon, earned=False)
        for a in ACHIEVEMENTS
    ]


@router.get("/profiles/{profile_id}/achievements", response_model=list[AchievementView])
async def profile_achievements_route(
    profile_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> list[AchievementView]:
    return _require_engine(registry, profile_id).achievements()
