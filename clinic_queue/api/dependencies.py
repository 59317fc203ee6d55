"""FastAPI dependencies for service access.

The encounter gateway and the triage service are created once in the
application lifespan (see ``main.py``) and stored on ``app.state``.
"""

from fastapi import HTTPException, Request, status
import logging

from clinic_queue.services.triage_service import TriageService

logger = logging.getLogger(__name__)


def get_triage_service(request: Request) -> TriageService:
    """Return the TriageService attached to the running application.

    Raises:
        HTTP 503 – if the lifespan did not set up the service
    """
    service = getattr(request.app.state, "triage_service", None)
    if service is None:
        logger.error("Triage service requested before startup completed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Triage service is not initialized.",
        )
    return service
