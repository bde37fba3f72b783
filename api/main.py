"""FastAPI application entry point"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# Setup logging
from orderdesk.logging_config import setup_logging
setup_logging()

load_dotenv()

from orderdesk.config import settings

app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Call-center order and lead desk",
    version=settings.APP_VERSION,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def _init_database() -> None:
    """Ensure database tables exist (no migrations)."""
    from orderdesk.models.database import init_models
    await init_models()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": f"{settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy"}


# Import routes
from api.routes import orders, leads, call_logs, duplicates, products
app.include_router(orders.router, prefix="/api", tags=["orders"])
app.include_router(leads.router, prefix="/api", tags=["leads"])
app.include_router(call_logs.router, prefix="/api", tags=["call-logs"])
app.include_router(duplicates.router, prefix="/api", tags=["duplicates"])
app.include_router(products.router, prefix="/api", tags=["products"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
