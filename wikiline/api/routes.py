from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, WebSocket, WebSocketDisconnect, status

from wikiline.api.deps import get_session
from wikiline.api.models import (
    DemoLayoutRequest,
    DropRequest,
    MoveSlotRequest,
    RailHoverRequest,
    RailHoverResponse,
    RoundState,
    ScoreListResponse,
    TimelineHoverRequest,
    TimelineHoverResponse,
)
from wikiline.geometry import Point, rail_hover_index, rail_insert_offset, timeline_hover
from wikiline.session import GameSession, layout_from_request, rect_from
from wikiline.websocket_hub import hub

router = APIRouter()


@router.websocket("/ws/game")
async def game_updates_ws(websocket: WebSocket) -> None:
    await hub.connect(websocket)

    try:
        # Keep the socket open; client can optionally send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(websocket)
    except Exception:
        await hub.disconnect(websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/game", response_model=RoundState)
async def get_game_route(session: GameSession = Depends(get_session)) -> RoundState:
    return session.store.snapshot()


@router.post("/game/start", response_model=RoundState)
async def start_game_route(session: GameSession = Depends(get_session)) -> RoundState:
    await session.store.start_game()
    return session.store.snapshot()


@router.post("/game/demo", response_model=RoundState)
async def start_demo_route(session: GameSession = Depends(get_session)) -> RoundState:
    await session.store.start_demo()
    return session.store.snapshot()


@router.post("/game/demo/stop", response_model=RoundState)
async def stop_demo_route(session: GameSession = Depends(get_session)) -> RoundState:
    session.demo.stop()
    return session.store.snapshot()


@router.post("/game/demo/layout", status_code=status.HTTP_204_NO_CONTENT)
async def demo_layout_route(payload: DemoLayoutRequest, session: GameSession = Depends(get_session)) -> Response:
    session.layout = layout_from_request(payload)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/game/reset", response_model=RoundState)
async def reset_route(session: GameSession = Depends(get_session)) -> RoundState:
    await session.store.reset()
    return session.store.snapshot()


@router.post("/game/drop", response_model=RoundState)
async def drop_route(payload: DropRequest, session: GameSession = Depends(get_session)) -> RoundState:
    # Only the current card can be dragged from the hand.
    session.store.place_current(payload.position)
    return session.store.snapshot()


@router.post("/game/slots/move", response_model=RoundState)
async def move_slot_route(payload: MoveSlotRequest, session: GameSession = Depends(get_session)) -> RoundState:
    try:
        session.store.move_slot(payload.from_index, payload.to_index)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    return session.store.snapshot()


@router.post("/game/view-timeline", response_model=RoundState)
async def view_timeline_route(session: GameSession = Depends(get_session)) -> RoundState:
    session.store.view_timeline()
    return session.store.snapshot()


@router.get("/scores", response_model=ScoreListResponse)
async def list_scores_route(session: GameSession = Depends(get_session)) -> ScoreListResponse:
    return ScoreListResponse(scores=session.store.state.scoreboard)


@router.delete("/scores", response_model=ScoreListResponse)
async def clear_scores_route(session: GameSession = Depends(get_session)) -> ScoreListResponse:
    session.store.clear_scoreboard()
    return ScoreListResponse(scores=[])


@router.post("/geometry/rail", response_model=RailHoverResponse)
async def rail_hover_route(payload: RailHoverRequest) -> RailHoverResponse:
    index = rail_hover_index(Point(x=payload.pointer.x, y=payload.pointer.y), rect_from(payload.rail), payload.slot_count)
    if index is None:
        return RailHoverResponse(index=None)
    return RailHoverResponse(index=index, insert_offset_pct=rail_insert_offset(index, payload.slot_count))


@router.post("/geometry/timeline", response_model=TimelineHoverResponse)
async def timeline_hover_route(payload: TimelineHoverRequest) -> TimelineHoverResponse:
    target = timeline_hover(
        Point(x=payload.pointer.x, y=payload.pointer.y),
        rect_from(payload.list_rect),
        [rect_from(c) for c in payload.cards],
        payload.card_px_height,
    )
    if target is None:
        return TimelineHoverResponse(index=None)
    return TimelineHoverResponse(index=target.index, top_px=target.top_px)
