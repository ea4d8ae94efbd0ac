from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.clock import Clock, SystemClock
from core.config import settings
from core.exceptions import PharmacyEngineError
from core.logging_config import configure_logging, get_logger
from db.database import async_session_maker, build_engine, build_session_maker, create_db_and_tables, engine
from routers.pharmacy import router as pharmacy_router
from routers.reports import router as reports_router
from routers.suppliers import router as suppliers_router
from services.analytics import AnalyticsAggregator
from services.catalog import ItemCatalog, SupplierRegistry
from services.dispense_history import DispenseHistoryStore
from services.dispense_processor import DispenseProcessor
from services.stock_ledger import StockLedger
from services.supplier_distribution import SupplierDistributionAnalyzer

logger = get_logger("api")


def create_app(
    database_url: Optional[str] = None,
    clock: Optional[Clock] = None,
    timezone: Optional[str] = None,
) -> FastAPI:
    if database_url:
        app_engine = build_engine(database_url)
        session_maker = build_session_maker(app_engine)
    else:
        app_engine, session_maker = engine, async_session_maker

    clock = clock or SystemClock()
    tz_name = timezone or settings.reporting_timezone

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        await create_db_and_tables(app_engine)
        logger.info("app_started", extra={"timezone": tz_name})
        yield
        await app_engine.dispose()

    app = FastAPI(
        title="Pharmacy Inventory API",
        description="Stock ledger, dispensing and inventory analytics for a pharmacy",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    ledger = StockLedger(session_maker, clock=clock, timezone=tz_name)
    history = DispenseHistoryStore(session_maker)
    app.state.ledger = ledger
    app.state.history = history
    app.state.processor = DispenseProcessor(session_maker, ledger=ledger, history=history, clock=clock)
    app.state.analytics = AnalyticsAggregator(
        session_maker, ledger=ledger, history=history, clock=clock, timezone=tz_name
    )
    app.state.supplier_distribution = SupplierDistributionAnalyzer(session_maker, ledger)
    app.state.catalog = ItemCatalog(session_maker, clock=clock)
    app.state.suppliers = SupplierRegistry(session_maker)

    @app.exception_handler(PharmacyEngineError)
    async def _engine_error(request: Request, exc: PharmacyEngineError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_payload()})

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok"}

    app.include_router(pharmacy_router, prefix="/pharmacy", tags=["pharmacy"])
    app.include_router(reports_router, prefix="/reports", tags=["reports"])
    app.include_router(suppliers_router, prefix="/suppliers", tags=["suppliers"])
    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
