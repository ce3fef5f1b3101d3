from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from app.database.database import sync_engine, Base

# Import middleware
from app.common.middleware import TenantMiddleware, SecurityHeadersMiddleware

# Import routers
from app.modules.sequences.router import sequences_router
from app.modules.banking.router import bank_accounts_router
from app.modules.receivables.router import receivables_router
from app.modules.payables.router import payables_router, cash_flow_router
from app.modules.cash.router import tills_router, cash_sessions_router
from app.modules.inventory.router import inventory_counts_router

# Import models for table creation
import app.modules.audit.models
import app.modules.sequences.models
import app.modules.banking.models
import app.modules.receivables.models
import app.modules.payables.models
import app.modules.cash.models
import app.modules.products.models
import app.modules.inventory.models

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Ledger ERP API",
    description="Multi-tenant ERP ledger API: receivables, payables, cash sessions and inventory counts",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TenantMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(sequences_router)
app.include_router(bank_accounts_router)
app.include_router(receivables_router)
app.include_router(payables_router)
app.include_router(cash_flow_router)
app.include_router(tills_router)
app.include_router(cash_sessions_router)
app.include_router(inventory_counts_router)

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=sync_engine)


@app.get("/")
async def read_root():
    return {
        "message": "Ledger ERP API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Ledger ERP API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Ledger ERP API shutting down...")
