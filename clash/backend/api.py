"""FastAPI endpoints for players, games, challenges and websocket game sync."""

from __future__ import annotations

from collections import defaultdict
from typing import Any

from fastapi import Depends, FastAPI, Path, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator

from .config import load_settings
from .errors import ClashError, ErrorKind
from .models import Attack, ChallengeBuckets, Defense, Move
from .service import MAX_SESSION_ID, ClashService, create_service

HEX_PATTERN = r"^(0x)?([0-9a-fA-F]{2})*$"
MAX_CHALLENGE_ID = 2**63 - 1

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.STATE_VIOLATION: 409,
    ErrorKind.PROTOCOL_INTEGRITY: 422,
    ErrorKind.INPUT_VALIDATION: 400,
    ErrorKind.EXTERNAL: 502,
}


class RegisterPlayerResponse(BaseModel):
    player_id: str
    token: str


class SetUsernameRequest(BaseModel):
    token: str = Field(min_length=1)
    username: str = Field(min_length=1, max_length=64)


class UsernameResponse(BaseModel):
    player_id: str | None
    username: str | None


class StartGrantRequest(BaseModel):
    token: str = Field(min_length=1)
    session_id: int = Field(ge=0, le=MAX_SESSION_ID)
    stake: int


class StartGrantResponse(BaseModel):
    player: str
    session_id: int
    stake: int
    grant: str


class StartGameRequest(BaseModel):
    session_id: int = Field(ge=0, le=MAX_SESSION_ID)
    player_a: str = Field(min_length=1)
    player_b: str = Field(min_length=1)
    stake_a: int
    stake_b: int
    grant_a: str = Field(min_length=1)
    grant_b: str = Field(min_length=1)

    @model_validator(mode="after")
    def _players_differ(self) -> "StartGameRequest":
        if self.player_a == self.player_b:
            raise ValueError("player_a and player_b must be different players")
        return self


class CommitRequest(BaseModel):
    player: str = Field(min_length=1)
    token: str = Field(min_length=1)
    public_inputs: str = Field(pattern=HEX_PATTERN)
    proof: str = Field(pattern=HEX_PATTERN)


class MovePayload(BaseModel):
    attack: Attack
    defense: Defense


class RevealRequest(CommitRequest):
    moves: list[MovePayload]


class CommitResponse(BaseModel):
    binding_value: str


class GameStateResponse(BaseModel):
    game: dict[str, Any]


class PlaybackResponse(BaseModel):
    playback: dict[str, Any]


class SendChallengeRequest(BaseModel):
    challenger: str = Field(min_length=1)
    token: str = Field(min_length=1)
    challenged: str = Field(min_length=1)
    points_wagered: int


class AcceptChallengeRequest(BaseModel):
    player: str = Field(min_length=1)
    token: str = Field(min_length=1)
    session_id: int = Field(ge=0, le=MAX_SESSION_ID)


class ChallengeResponse(BaseModel):
    challenge: dict[str, Any]


class PlayerChallengesResponse(BaseModel):
    active: list[dict[str, Any]]
    completed: list[dict[str, Any]]
    expired: list[dict[str, Any]]


class GameWebSocketHub:
    def __init__(self) -> None:
        self._connections: dict[int, set[WebSocket]] = defaultdict(set)

    async def connect(self, session_id: int, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections[session_id].add(websocket)

    def disconnect(self, session_id: int, websocket: WebSocket) -> None:
        connections = self._connections.get(session_id)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            self._connections.pop(session_id, None)

    async def send_state(self, websocket: WebSocket, game: dict[str, Any]) -> None:
        await websocket.send_json({"type": "game.state", "game": game})

    async def broadcast_state(self, session_id: int, game: dict[str, Any]) -> None:
        stale_connections: list[WebSocket] = []
        for websocket in self._connections.get(session_id, set()):
            try:
                await self.send_state(websocket, game)
            except RuntimeError:
                stale_connections.append(websocket)
        for websocket in stale_connections:
            self.disconnect(session_id=session_id, websocket=websocket)


def _decode_hex(value: str) -> bytes:
    return bytes.fromhex(value.removeprefix("0x"))


def _buckets_response(buckets: ChallengeBuckets) -> PlayerChallengesResponse:
    return PlayerChallengesResponse(
        active=[challenge.to_dict() for challenge in buckets.active],
        completed=[challenge.to_dict() for challenge in buckets.completed],
        expired=[challenge.to_dict() for challenge in buckets.expired],
    )


def _default_service() -> ClashService:
    return create_service(load_settings())


def create_app(service: ClashService | None = None) -> FastAPI:
    app = FastAPI(title="Clash API", version="0.1.0")
    clash_service = service if service is not None else _default_service()
    websocket_hub = GameWebSocketHub()
    app.state.websocket_hub = websocket_hub

    async def publish_state(session_id: int, game: dict[str, Any]) -> None:
        await websocket_hub.broadcast_state(session_id=session_id, game=game)

    app.state.publish_state = publish_state

    def get_service() -> ClashService:
        return clash_service

    @app.exception_handler(ClashError)
    async def handle_clash_error(request: Request, exc: ClashError) -> JSONResponse:
        return JSONResponse(
            status_code=STATUS_BY_KIND[exc.kind],
            content={"error": exc.code, "kind": exc.kind.value, "detail": exc.message},
        )

    @app.post("/api/players", response_model=RegisterPlayerResponse)
    def register_player(local_service: ClashService = Depends(get_service)) -> RegisterPlayerResponse:
        registered = local_service.register_player()
        return RegisterPlayerResponse(player_id=registered.player_id, token=registered.token)

    @app.put("/api/players/{player_id}/username", response_model=UsernameResponse)
    def set_username(
        player_id: str,
        payload: SetUsernameRequest,
        local_service: ClashService = Depends(get_service),
    ) -> UsernameResponse:
        username = local_service.set_username(player=player_id, token=payload.token, username=payload.username)
        return UsernameResponse(player_id=player_id, username=username)

    @app.get("/api/players/{player_id}/username", response_model=UsernameResponse)
    def get_username(player_id: str, local_service: ClashService = Depends(get_service)) -> UsernameResponse:
        return UsernameResponse(player_id=player_id, username=local_service.get_username(player_id))

    @app.get("/api/usernames/{username}", response_model=UsernameResponse)
    def get_player_by_username(username: str, local_service: ClashService = Depends(get_service)) -> UsernameResponse:
        return UsernameResponse(player_id=local_service.get_player_by_username(username), username=username)

    @app.get("/api/players/{player_id}/challenges", response_model=PlayerChallengesResponse)
    def get_player_challenges(
        player_id: str,
        local_service: ClashService = Depends(get_service),
    ) -> PlayerChallengesResponse:
        return _buckets_response(local_service.get_player_challenges(player_id))

    @app.post("/api/players/{player_id}/start-grants", response_model=StartGrantResponse)
    def authorize_start(
        player_id: str,
        payload: StartGrantRequest,
        local_service: ClashService = Depends(get_service),
    ) -> StartGrantResponse:
        authorization = local_service.authorize_start(
            player=player_id,
            token=payload.token,
            session_id=payload.session_id,
            stake=payload.stake,
        )
        return StartGrantResponse(**authorization.to_dict())

    @app.post("/api/games", response_model=GameStateResponse)
    async def start_game(
        payload: StartGameRequest,
        local_service: ClashService = Depends(get_service),
    ) -> GameStateResponse:
        session = await run_in_threadpool(
            local_service.start_game,
            session_id=payload.session_id,
            player_a=payload.player_a,
            player_b=payload.player_b,
            stake_a=payload.stake_a,
            stake_b=payload.stake_b,
            grant_a=payload.grant_a,
            grant_b=payload.grant_b,
        )
        return GameStateResponse(game=session.to_dict())

    @app.get("/api/games/{session_id}", response_model=GameStateResponse)
    def get_game(
        session_id: int = Path(ge=0, le=MAX_SESSION_ID),
        local_service: ClashService = Depends(get_service),
    ) -> GameStateResponse:
        return GameStateResponse(game=local_service.get_game(session_id).to_dict())

    @app.post("/api/games/{session_id}/commit", response_model=CommitResponse)
    async def commit_moves(
        payload: CommitRequest,
        session_id: int = Path(ge=0, le=MAX_SESSION_ID),
        local_service: ClashService = Depends(get_service),
    ) -> CommitResponse:
        binding = await run_in_threadpool(
            local_service.commit_moves,
            session_id=session_id,
            player=payload.player,
            token=payload.token,
            public_inputs=_decode_hex(payload.public_inputs),
            proof=_decode_hex(payload.proof),
        )
        game = await run_in_threadpool(local_service.get_game, session_id)
        await publish_state(session_id=session_id, game=game.to_dict())
        return CommitResponse(binding_value=binding.hex())

    @app.post("/api/games/{session_id}/reveal", response_model=GameStateResponse)
    async def reveal_moves(
        payload: RevealRequest,
        session_id: int = Path(ge=0, le=MAX_SESSION_ID),
        local_service: ClashService = Depends(get_service),
    ) -> GameStateResponse:
        session = await run_in_threadpool(
            local_service.reveal_moves,
            session_id=session_id,
            player=payload.player,
            token=payload.token,
            public_inputs=_decode_hex(payload.public_inputs),
            proof=_decode_hex(payload.proof),
            plan=[Move(attack=move.attack, defense=move.defense) for move in payload.moves],
        )
        game = session.to_dict()
        await publish_state(session_id=session_id, game=game)
        return GameStateResponse(game=game)

    @app.post("/api/games/{session_id}/resolve", response_model=GameStateResponse)
    async def resolve_battle(
        session_id: int = Path(ge=0, le=MAX_SESSION_ID),
        local_service: ClashService = Depends(get_service),
    ) -> GameStateResponse:
        session = await run_in_threadpool(local_service.resolve_battle, session_id)
        game = session.to_dict()
        await publish_state(session_id=session_id, game=game)
        return GameStateResponse(game=game)

    @app.get("/api/games/{session_id}/playback", response_model=PlaybackResponse)
    def get_game_playback(
        session_id: int = Path(ge=0, le=MAX_SESSION_ID),
        local_service: ClashService = Depends(get_service),
    ) -> PlaybackResponse:
        return PlaybackResponse(playback=local_service.get_game_playback(session_id).to_dict())

    @app.post("/api/challenges", response_model=ChallengeResponse)
    def send_challenge(
        payload: SendChallengeRequest,
        local_service: ClashService = Depends(get_service),
    ) -> ChallengeResponse:
        challenge = local_service.send_challenge(
            challenger=payload.challenger,
            token=payload.token,
            challenged=payload.challenged,
            points_wagered=payload.points_wagered,
        )
        return ChallengeResponse(challenge=challenge.to_dict())

    @app.post("/api/challenges/{challenge_id}/accept", response_model=GameStateResponse)
    def accept_challenge(
        payload: AcceptChallengeRequest,
        challenge_id: int = Path(ge=1, le=MAX_CHALLENGE_ID),
        local_service: ClashService = Depends(get_service),
    ) -> GameStateResponse:
        session = local_service.accept_challenge(
            challenge_id=challenge_id,
            player=payload.player,
            token=payload.token,
            session_id=payload.session_id,
        )
        return GameStateResponse(game=session.to_dict())

    @app.websocket("/ws/games/{session_id}")
    async def game_ws(
        websocket: WebSocket,
        session_id: int,
        local_service: ClashService = Depends(get_service),
    ) -> None:
        player = websocket.query_params.get("player")
        token = websocket.query_params.get("token")
        if not player or not token:
            await websocket.close(code=1008)
            return
        try:
            await run_in_threadpool(local_service.authenticate, player, token)
            session = await run_in_threadpool(local_service.get_game, session_id)
        except ClashError:
            await websocket.close(code=1008)
            return
        if session.side_of(player) is None:
            await websocket.close(code=1008)
            return

        await websocket_hub.connect(session_id=session_id, websocket=websocket)
        await websocket_hub.send_state(websocket=websocket, game=session.to_dict())

        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            websocket_hub.disconnect(session_id=session_id, websocket=websocket)

    return app


app = create_app()
