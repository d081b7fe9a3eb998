from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
from sqlalchemy import text
from app.database import get_db
from app.routers import auth, surveys, mappings, learned_mappings, sync, storage, analytics
from app.services.cloud_sync import cloud_sync_service
from app.core.logging_config import logger

# Tables are managed by Alembic migrations


@asynccontextmanager
async def lifespan(app: FastAPI):
    cloud_sync_service.configure()
    cloud_sync_service.monitor.start()
    yield
    await cloud_sync_service.shutdown()


app = FastAPI(
    title="Survey Aggregation API",
    version="1.0.0",
    redirect_slashes=False,  # Disable automatic redirects to prevent POST data loss
    lifespan=lifespan,
)

# Configure CORS for frontend applications
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(surveys.router, prefix="/api/surveys", tags=["Surveys"])
app.include_router(mappings.router, prefix="/api/mappings", tags=["Mappings"])
app.include_router(learned_mappings.router, prefix="/api/learned-mappings", tags=["Learned Mappings"])
app.include_router(sync.router, prefix="/api/sync", tags=["Cloud Sync"])
app.include_router(storage.router, prefix="/api/storage", tags=["Storage"])
app.include_router(analytics.router, prefix="/api/analytics", tags=["Analytics"])


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "database": "connected",
            "cloud_sync": cloud_sync_service.monitor.state,
        }
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service unhealthy"
        )
