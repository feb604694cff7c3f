"""FastAPI web gateway for the BichoRP ledger."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Set, Tuple, Union

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field

from bicho_rp.lottery import errors
from bicho_rp.lottery.auth import INITIAL_CREDITS, NewUserSpec
from bicho_rp.lottery.ledger import EVENT_TYPES, LedgerStore
from bicho_rp.lottery.models import UserRole
from bicho_rp.utils.logger import get_logger

logger = get_logger(__name__)

_ERROR_STATUS: Dict[type, int] = {
    errors.InvalidAmount: 400,
    errors.UnknownAnimal: 400,
    errors.InvalidUserSpec: 400,
    errors.MalformedSnapshot: 400,
    errors.InsufficientBalance: 409,
    errors.DuplicateUsername: 409,
    errors.NotAuthenticated: 401,
    errors.InvalidPassword: 401,
    errors.UserNotFound: 404,
    errors.AdminRequired: 403,
}


class LoginRequest(BaseModel):
    username: str
    password: str = ""


class PlaceBetRequest(BaseModel):
    animal_id: int = Field(alias="animalId")
    amount: Union[int, float]

    model_config = ConfigDict(populate_by_name=True)


class CreateUserRequest(BaseModel):
    username: str
    rp_name: str = Field("", alias="rpName")
    password: str = ""
    role: UserRole = UserRole.USER
    balance: Optional[int] = None

    model_config = ConfigDict(populate_by_name=True)


class ImportRequest(BaseModel):
    data: str


class LedgerWebServer:
    """HTTP and WebSocket gateway over a single LedgerStore."""

    def __init__(self, config: Dict[str, Any], store: LedgerStore) -> None:
        self.config = config
        self._store = store
        self._initial_credits = int(config.get("ledger", {}).get("initial_credits", INITIAL_CREDITS))

        self.app = FastAPI(
            title="BichoRP API",
            description="Roleplay animal lottery ledger",
            version="1.0.0",
            lifespan=self._lifespan,
        )

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._broadcast_queue: Optional[asyncio.Queue[Tuple[str, Dict[str, Any] | None]]] = None
        self._broadcast_task: Optional[asyncio.Task[None]] = None
        self._ws_lock: Optional[asyncio.Lock] = None
        self._listeners_registered = False
        self._websockets: Set[WebSocket] = set()

        self._setup_middleware()
        self._setup_error_handlers()
        self._setup_static_files()
        self._setup_routes()

    # ------------------------------------------------------------------
    # FastAPI scaffolding
    # ------------------------------------------------------------------
    def _setup_middleware(self) -> None:
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def _setup_error_handlers(self) -> None:
        @self.app.exception_handler(errors.LedgerError)
        async def ledger_error_handler(request: Request, exc: errors.LedgerError) -> JSONResponse:
            status = _ERROR_STATUS.get(type(exc), 500)
            if status >= 500:
                logger.error("Ledger failure on %s: %s", request.url.path, exc.message)
            else:
                logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.code)
            return JSONResponse(
                status_code=status,
                content={"detail": {"error": exc.code, "message": exc.message}},
            )

    def _setup_static_files(self) -> None:
        frontend_dist = Path(__file__).parent / "frontend" / "dist"
        if frontend_dist.exists():
            assets_dir = frontend_dist / "assets"
            if assets_dir.exists():
                self.app.mount("/assets", StaticFiles(directory=str(assets_dir)), name="assets")
            logger.info("Frontend static assets mounted from %s", frontend_dist)
        else:
            logger.info("Frontend build directory not found; API-only mode")

    def _setup_routes(self) -> None:  # noqa: C901 - routing setup intentionally verbose
        store = self._store

        @self.app.get("/")
        def serve_frontend() -> HTMLResponse:
            frontend_file = Path(__file__).parent / "frontend" / "dist" / "index.html"
            if not frontend_file.exists():
                return HTMLResponse("<h1>BichoRP frontend not built</h1>")
            return HTMLResponse(frontend_file.read_text(encoding="utf-8"))

        # ------------------------------------------------------------------
        # Health & reference data
        # ------------------------------------------------------------------
        @self.app.get("/api/health")
        def health_check() -> Dict[str, Any]:
            return {
                "status": "ok",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "ledger": store.counts(),
                "websocket_connections": len(self._websockets),
            }

        @self.app.get("/api/animals")
        def get_animals() -> Dict[str, Any]:
            return {"animals": store.registry.to_list()}

        # ------------------------------------------------------------------
        # Session
        # ------------------------------------------------------------------
        @self.app.post("/api/auth/login")
        def login(request: LoginRequest) -> Dict[str, Any]:
            user = store.login(request.username, request.password)
            return {"user": user.to_dict(include_password=False), "message": f"Bem-vindo, {user.rp_name}!"}

        @self.app.post("/api/auth/logout")
        def logout() -> Dict[str, Any]:
            store.logout()
            return {"status": "logged_out", "message": "Sessão encerrada."}

        @self.app.get("/api/session")
        def get_session() -> Dict[str, Any]:
            user = store.current_user
            return {"user": user.to_dict(include_password=False) if user else None}

        @self.app.get("/api/dashboard")
        def get_dashboard() -> Dict[str, Any]:
            return store.dashboard()

        # ------------------------------------------------------------------
        # Bets
        # ------------------------------------------------------------------
        @self.app.post("/api/bets")
        def place_bet(request: PlaceBetRequest) -> Dict[str, Any]:
            bet = store.place_bet(request.animal_id, request.amount)
            animal = store.registry.get(bet.animal_id)
            user = store.current_user
            return {
                "bet": store.bet_manager.format_bet_summary(bet),
                "balance": user.balance if user else None,
                "message": f"Aposta confirmada no {animal.name}!",
            }

        @self.app.get("/api/bets")
        def get_bets(limit: int = 100) -> Dict[str, Any]:
            limit = max(1, min(limit, 1000))
            bets = store.get_bets()
            return {
                "bets": [store.bet_manager.format_bet_summary(bet) for bet in bets[:limit]],
                "total": len(bets),
            }

        # ------------------------------------------------------------------
        # Draws
        # ------------------------------------------------------------------
        @self.app.get("/api/draws")
        def get_draws(limit: int = 50) -> Dict[str, Any]:
            limit = max(1, min(limit, 200))
            draws = store.get_draws()
            return {
                "draws": store.engine.get_draw_history(draws, limit=limit),
                "pagination": {"limit": limit, "returned": min(limit, len(draws)), "total": len(draws)},
            }

        @self.app.post("/api/draws")
        def execute_draw() -> Dict[str, Any]:
            result = store.execute_draw()
            return {
                "draw": store.engine.get_draw_history([result.draw], limit=1)[0],
                "settledBets": len(result.settled_bet_ids),
                "winningBets": len(result.winning_bets),
                "totalPaid": result.total_paid,
                "message": f"SORTEIO REALIZADO: {result.animal.name.upper()}!",
            }

        # ------------------------------------------------------------------
        # User administration
        # ------------------------------------------------------------------
        @self.app.get("/api/users")
        def list_users() -> Dict[str, Any]:
            users = store.get_users()
            return {"users": [u.to_dict(include_password=False) for u in users], "total": len(users)}

        @self.app.post("/api/users", status_code=201)
        def create_user(request: CreateUserRequest) -> Dict[str, Any]:
            user = store.create_user(
                NewUserSpec(
                    username=request.username,
                    rp_name=request.rp_name,
                    password=request.password,
                    role=request.role,
                    balance=self._initial_credits if request.balance is None else request.balance,
                )
            )
            return {
                "user": user.to_dict(include_password=False),
                "message": f"Usuário {user.rp_name} criado com sucesso!",
            }

        @self.app.delete("/api/users/{user_id}")
        def delete_user(user_id: str) -> Dict[str, Any]:
            deleted = store.delete_user(user_id)
            return {"deleted": deleted, "user_id": user_id}

        # ------------------------------------------------------------------
        # Manual sync
        # ------------------------------------------------------------------
        @self.app.get("/api/sync/export")
        def export_ledger() -> Dict[str, Any]:
            return {"data": store.export_sync(), "timestamp": datetime.now(timezone.utc).isoformat()}

        @self.app.post("/api/sync/import")
        def import_ledger(request: ImportRequest) -> Dict[str, Any]:
            collections = store.import_sync(request.data)
            return {
                "status": "imported",
                "users": len(collections.users),
                "bets": len(collections.bets),
                "draws": len(collections.draws),
            }

        # ------------------------------------------------------------------
        # WebSocket endpoint
        # ------------------------------------------------------------------
        @self.app.websocket("/ws/ledger")
        async def websocket_endpoint(websocket: WebSocket) -> None:
            await websocket.accept()
            if self._ws_lock is None:
                self._ws_lock = asyncio.Lock()
            async with self._ws_lock:
                self._websockets.add(websocket)
            logger.info("WebSocket client connected (%s total)", len(self._websockets))
            try:
                await websocket.send_json({"type": "snapshot", "payload": self._build_initial_snapshot()})
                while True:
                    try:
                        await websocket.receive_text()
                    except WebSocketDisconnect:
                        break
            finally:
                async with self._ws_lock:
                    self._websockets.discard(websocket)
                logger.info("WebSocket client disconnected (%s remaining)", len(self._websockets))

        @self.app.get("/{file_path:path}")
        def serve_spa(file_path: str) -> HTMLResponse:
            if file_path.startswith("api") or file_path.startswith("ws"):
                raise HTTPException(status_code=404, detail="Not found")
            index = Path(__file__).parent / "frontend" / "dist" / "index.html"
            if index.exists():
                return HTMLResponse(index.read_text(encoding="utf-8"))
            raise HTTPException(status_code=404, detail="Frontend not found")

    # ------------------------------------------------------------------
    # Lifecycle management
    # ------------------------------------------------------------------
    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncIterator[None]:
        await self._start_broadcasting()
        try:
            yield
        finally:
            await self._stop_broadcasting()

    async def _start_broadcasting(self) -> None:
        # routes run in the threadpool; store events hop back onto this loop
        self._loop = asyncio.get_running_loop()
        self._broadcast_queue = asyncio.Queue()
        self._ws_lock = asyncio.Lock()
        self._register_store_listeners()
        if self._broadcast_task is None:
            self._broadcast_task = asyncio.create_task(self._broadcast_loop(), name="ledger-web-broadcast")
        logger.info("Ledger broadcasts started")

    async def _stop_broadcasting(self) -> None:
        if self._broadcast_task:
            self._broadcast_task.cancel()
            try:
                await self._broadcast_task
            except asyncio.CancelledError:
                pass
            self._broadcast_task = None
        self._loop = None

    async def start(self, host: str = "0.0.0.0", port: int = 6080) -> None:
        import uvicorn

        logger.info("Starting BichoRP web server on %s:%s", host, port)
        config = uvicorn.Config(self.app, host=host, port=port, log_level="info", access_log=True)
        server = uvicorn.Server(config)
        try:
            await server.serve()
        finally:
            logger.info("BichoRP web server stopped")

    async def stop(self) -> None:
        logger.info("Stopping BichoRP web server")
        await self._stop_broadcasting()
        if self._ws_lock is None:
            self._ws_lock = asyncio.Lock()
        async with self._ws_lock:
            for websocket in list(self._websockets):
                try:
                    await websocket.close(code=1001, reason="Server shutdown")
                except Exception as exc:  # pragma: no cover - defensive
                    logger.debug("Error closing websocket: %s", exc)
            self._websockets.clear()

    # ------------------------------------------------------------------
    # Store listeners & broadcasting
    # ------------------------------------------------------------------
    def _register_store_listeners(self) -> None:
        if self._listeners_registered:
            return
        for event in EVENT_TYPES:
            self._store.add_listener(event, lambda payload, evt=event: self._enqueue_broadcast(evt, payload))
        self._listeners_registered = True

    def _enqueue_broadcast(self, event_type: str, payload: Dict[str, Any] | None) -> None:
        if not self._broadcast_queue or not self._loop:
            return
        try:
            self._loop.call_soon_threadsafe(self._broadcast_queue.put_nowait, (event_type, payload))
            logger.debug("Enqueued broadcast for %s", event_type)
        except RuntimeError:  # pragma: no cover - loop already closing
            logger.debug("Failed to enqueue broadcast for %s", event_type)

    async def _broadcast_loop(self) -> None:
        assert self._broadcast_queue is not None
        while True:
            try:
                event_type, payload = await self._broadcast_queue.get()
                await self._broadcast_to_clients(event_type, payload)
            except asyncio.CancelledError:
                break
            except Exception as exc:  # pragma: no cover - defensive
                logger.exception("Broadcast loop error: %s", exc)

    async def _broadcast_to_clients(self, event_type: str, payload: Dict[str, Any] | None) -> None:
        if self._ws_lock is None:
            self._ws_lock = asyncio.Lock()
        message = {"type": event_type, "payload": payload, "timestamp": datetime.now(timezone.utc).isoformat()}
        async with self._ws_lock:
            if not self._websockets:
                return
            to_remove: List[WebSocket] = []
            for websocket in self._websockets:
                try:
                    await websocket.send_json(message)
                except Exception as exc:  # pragma: no cover - defensive
                    logger.debug("WebSocket send failed: %s", exc)
                    to_remove.append(websocket)
            for websocket in to_remove:
                self._websockets.discard(websocket)

    def _build_initial_snapshot(self) -> Dict[str, Any]:
        user = self._store.current_user
        return {
            "user": user.to_dict(include_password=False) if user else None,
            "animals": self._store.registry.to_list(),
            "draws": self._store.engine.get_draw_history(self._store.get_draws(), limit=10),
            "ledger": self._store.counts(),
        }
