"""
Main FastAPI application
Nano Banana Friends API: generation proxies, asset relocation and community prompts
"""
from fastapi import FastAPI, Request, Response
from contextlib import asynccontextmanager
import logging
import uvicorn
from banana_friends.config.settings import settings
from banana_friends.database import init_db
from banana_friends.api.endpoints import router
from banana_friends.api.generation import router as generation_router
from banana_friends.api.generation_queue import router as generation_queue_router
from banana_friends.api.assets import router as assets_router
from banana_friends.api.prompts import router as prompts_router
from banana_friends.api.errors import CORS_HEADERS, register_exception_handlers
# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler(settings.LOG_FILE)
    ]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting Nano Banana Friends API...")
    # Initialize database
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise
    logger.info("Service startup completed")
    yield
    logger.info("Shutting down Nano Banana Friends API...")
# Create FastAPI application
app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description="""
    Backend of the Nano Banana Friends image and video generation app:
    - Proxies for KIE.AI (Nano-Banana, VEO), Seedream and Kling AI that keep provider keys server-side
    - Queued Gemini generations that survive a phone going to sleep
    - Relocation of generated images from temporary storage to the public FTP host
    - Community prompt gallery
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


# Every OPTIONS request is a preflight; every response carries the CORS headers
@app.middleware("http")
async def cors(request: Request, call_next):
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response
# Include API routers
app.include_router(router, prefix="/api", tags=["Service"])
app.include_router(generation_router, prefix="/api", tags=["Generation"])
app.include_router(generation_queue_router, prefix="/api", tags=["Generation Queue"])
app.include_router(assets_router, prefix="/api", tags=["Assets"])
app.include_router(prompts_router, prefix="/api", tags=["Community Prompts"])
register_exception_handlers(app)


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with service information"""
    return {
        "service": "Nano Banana Friends API",
        "version": settings.API_VERSION,
        "docs": "/docs",
        "health": "/api/health",
        "status": "/api/status"
    }
# Additional utility endpoints
@app.get("/ping")
async def ping():
    """Simple ping endpoint"""
    return {"message": "pong"}
if __name__ == "__main__":
    uvicorn.run(
        "banana_friends.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.API_RELOAD,
        log_level=settings.LOG_LEVEL.lower()
    )
