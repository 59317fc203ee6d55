from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from clinic_queue.config.gateway import create_gateway
from clinic_queue.config.settings import settings
from clinic_queue.api.queue import router as queue_router
from clinic_queue.services.triage_service import TriageService
from clinic_queue.tools.mock_fhir import InMemoryEncounterGateway
import logging

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=settings.log_file,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    # Startup
    logger.info("Starting Clinic Triage Queue Service...")
    logger.info(f"Environment: {settings.environment}")

    gateway = create_gateway(settings)
    app.state.gateway = gateway
    app.state.triage_service = TriageService(gateway)

    yield

    # Shutdown
    logger.info("Shutting down Clinic Triage Queue Service...")
    await gateway.aclose()
    logger.info("Encounter gateway closed")


# Initialize FastAPI app
app = FastAPI(
    title="Clinic Triage Queue",
    description="Front-desk check-in, triage and patient queue backed by FHIR encounters.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(queue_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    gateway = getattr(app.state, "gateway", None)
    if gateway is None:
        fhir_status = "not initialized"
    elif isinstance(gateway, InMemoryEncounterGateway):
        fhir_status = "mock"
    else:
        fhir_status = f"configured ({settings.fhir_base_url})"

    return {
        "status": "ok",
        "service": settings.service_name,
        "version": "1.0.0",
        "dependencies": {"fhir": fhir_status},
    }


@app.get("/")
async def root():
    return {
        "message": "Clinic Triage Queue Service",
        "description": "Check-in, triage and queue ordering for clinic front desks",
        "version": "1.0.0",
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.clinic_queue_port,
        reload=settings.environment == "development",
    )
