import os
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .service import IndexerService
from tokenwatch.clients.ledger import LedgerClient
from tokenwatch.core.config import APIConfig, Config
from tokenwatch.core.exceptions import RepositoryError
from tokenwatch.database.connection import DatabaseConnection
from tokenwatch.database.repositories import TokenRepository
from tokenwatch.messaging.hub import FanoutHub
from tokenwatch.utils.logger import LoggerSetup

logger = LoggerSetup.setup(__name__)

MAX_LIST_LIMIT = 100


@dataclass
class AppContext:
    """Components shared by the HTTP handlers and the indexer loop"""
    repository: TokenRepository
    ledger: LedgerClient
    hub: FanoutHub
    service: IndexerService
    db: DatabaseConnection | None = None


async def build_context(config: Config) -> AppContext:
    """Wire the database, ledger client, hub and indexer from configuration"""
    db = DatabaseConnection(config.database)
    await db.initialize()

    repository = TokenRepository(db)
    ledger = LedgerClient(config.ledger)
    hub = FanoutHub(queue_size=config.fanout.queue_size)
    service = IndexerService(
        repository=repository,
        ledger=ledger,
        hub=hub,
        config=config.indexer
    )
    return AppContext(repository=repository, ledger=ledger, hub=hub, service=service, db=db)


def create_app(context: AppContext | None = None, api_config: APIConfig | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Without a context the lifespan wires everything from the environment and
    runs the indexer; with one, the caller owns the components' lifecycle.
    """
    api_config = api_config or APIConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Service lifecycle manager"""
        if context is not None:
            app.state.context = context
            yield
            return

        ctx: AppContext | None = None
        try:
            ctx = await build_context(Config())
            app.state.context = ctx
            await ctx.service.start()

            yield  # Service is running

        except Exception as e:
            logger.error(f"Service initialization failed: {e}")
            raise

        finally:
            if ctx:
                await ctx.service.stop()
                await ctx.hub.close()
                await ctx.ledger.cleanup()
                if ctx.db:
                    await ctx.db.close()

    app = FastAPI(
        title="Tokenwatch",
        description="Token ownership indexer with a live transfer feed",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=api_config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    async def health_check(request: Request):
        """Report the remote ledger height, or an error when it is unreachable"""
        ctx: AppContext = request.app.state.context
        try:
            height = await ctx.ledger.current_height()
            return {"status": "ok", "currentRemoteHeight": height}
        except Exception as e:
            return JSONResponse(
                status_code=503,
                content={"status": "error", "error": str(e)}
            )

    @app.get("/api/tokens")
    async def list_tokens(
        request: Request,
        limit: int = Query(MAX_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT, description="Maximum number of tokens")
    ):
        """Most recently transferred tokens first"""
        ctx: AppContext = request.app.state.context
        try:
            records = await ctx.repository.list_recent(limit)
            return [record.to_api() for record in records]
        except RepositoryError as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch tokens: {str(e)}")

    @app.get("/api/tokens/{token_id}")
    async def get_token(token_id: str, request: Request):
        """Current owner of a single token"""
        ctx: AppContext = request.app.state.context
        try:
            record = await ctx.repository.get(token_id)
        except RepositoryError as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch token: {str(e)}")

        if record is None:
            raise HTTPException(status_code=404, detail=f"Token {token_id} not found")
        return record.to_api()

    @app.get("/api/status")
    async def get_status(request: Request):
        """Get detailed indexer status"""
        ctx: AppContext = request.app.state.context
        return {
            "status": ctx.service.get_service_status(),
            "database": await ctx.db.check_health() if ctx.db else None
        }

    @app.websocket("/ws")
    async def transfer_feed(websocket: WebSocket):
        """Push every applied transfer to the connected client"""
        ctx: AppContext = websocket.app.state.context
        await websocket.accept()
        subscription = await ctx.hub.register(websocket)
        try:
            # Client frames are ignored; reading only detects the disconnect
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            await ctx.hub.unregister(subscription)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler"""
        logger.error(f"Unhandled error: {exc}")
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    return app


app = create_app(api_config=Config().api)


def run() -> None:
    """Console entry point"""
    import uvicorn
    uvicorn.run(
        "tokenwatch.services.indexer.main:app",
        host="0.0.0.0",
        port=Config().api.port,
        reload=bool(os.getenv("DEBUG", False))
    )


if __name__ == "__main__":
    run()
