from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from gatepass.config import Settings
from gatepass.database.connection import init_db, make_engine, make_session_factory
from gatepass.routes import guests, scan
from gatepass.services.issuance import IssuanceService
from gatepass.services.lifecycle import LifecycleMachine
from gatepass.services.store import SqlLifecycleStore
from gatepass.services.verification import VerificationService
from gatepass.utils.logger import logger


def create_app(settings: Settings = None) -> FastAPI:
    """Build the gate API. Run with ``uvicorn gatepass.main:create_app --factory``."""
    settings = settings or Settings.from_env()
    logger.setLevel(settings.log_level)

    app = FastAPI(title="GatePass")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    engine = make_engine(settings.database_url)
    try:
        init_db(engine)
        logger.info("All SQLAlchemy tables created successfully.")
    except SQLAlchemyError:
        logger.exception("Error while creating tables")
        raise

    session_factory = make_session_factory(engine)
    machine = LifecycleMachine(SqlLifecycleStore(session_factory))

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.machine = machine
    app.state.verifier = VerificationService(machine)
    app.state.issuance = IssuanceService(settings.qr_key, machine)

    app.include_router(guests.router)
    app.include_router(scan.router)

    @app.get("/")
    def root():
        return {"message": "GatePass is Running!"}

    @app.middleware("http")
    async def catch_exceptions_middleware(request: Request, call_next):
        try:
            response = await call_next(request)
            return response
        except Exception:
            logger.exception("Unhandled exception")
            return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app
