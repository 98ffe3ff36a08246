from fastapi import FastAPI
from contextlib import asynccontextmanager
from voicesched.api.endpoints import voice, cron
from voicesched.services.scheduler_service import start_scheduler, stop_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - start/stop scheduler."""
    start_scheduler()
    yield
    stop_scheduler()


app = FastAPI(title="Voice Scheduler API", version="0.1.0", lifespan=lifespan)

@app.get("/")
async def root():
    return {"message": "Voice Scheduler API is online"}

@app.get("/health")
async def health():
    return {"status": "healthy"}

# Include routers
app.include_router(voice.router, prefix="/api/v1/voice", tags=["voice"])
app.include_router(cron.router, prefix="/api/v1/cron", tags=["cron"])
