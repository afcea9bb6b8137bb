"""
FastAPI entrypoint for the TripLedger backend application.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.core.config import settings
from app.core.errors import register_exception_handlers
from app.core.logging import init_logging, request_context_middleware
from app.api.router import api_router

init_logging(level=settings.LOG_LEVEL, debug=settings.DEBUG)

app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Shared trip expenses, balances and settlement plans",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request id for log records
app.middleware("http")(request_context_middleware)

register_exception_handlers(app)

# Include API routes
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"message": "TripLedger API is running"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
