"""
Medication Safety Review - FastAPI Application

API endpoints for:
- Per-medication risk review against patient lab signals
- Knowledge base inspection and reload
- Health checks
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from medsafety.config import settings
from medsafety.core.knowledge import KnowledgeBaseStore
from medsafety.core.llm import GeminiClient, GeminiDrugClassOracle
from medsafety.core.resolution import MedicationResolver
from medsafety.models import DrugClassesResponse, HealthResponse, ReviewRequest
from medsafety.services import LabResultsClient, MedicationReviewService
from medsafety.utils import (
    get_logger,
    setup_logging,
    InvalidInputError,
    LabResultsError,
    LoadError,
    MedicationSafetyError,
)

logger = get_logger(__name__)

START_TIME = datetime.now()

REQUIRED_FIELDS_MESSAGE = (
    "Required fields: labDate, patientSex, biomarkers, medicationList, organizationId, patientId"
)


# ---- Application Lifespan ----

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the knowledge base and services: startup → yield → shutdown."""
    setup_logging(settings.log_level, settings.log_file)

    store = KnowledgeBaseStore(settings.rules_csv_path, settings.abnormal_ranges_csv_path)
    try:
        await run_in_threadpool(store.load)
    except LoadError as e:
        # Keep serving; /health reports the error and reload can recover.
        logger.error(f"Knowledge base failed to load at startup: {e.message}")

    gemini = GeminiClient()
    if not gemini.is_available:
        logger.warning("GEMINI_API_KEY not set. Unknown medications will not be classified.")

    resolver = MedicationResolver(store, GeminiDrugClassOracle(gemini))
    app.state.review_service = MedicationReviewService(store, resolver, LabResultsClient())

    logger.info("API ready to accept requests")
    yield
    logger.info("Medication Safety Review API shut down.")


# ---- FastAPI Application ----

app = FastAPI(
    title=settings.app_name,
    description="Medication review against lab-derived organ and biomarker signals",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MedicationSafetyError)
async def medication_safety_error_handler(request: Request, exc: MedicationSafetyError):
    if isinstance(exc, InvalidInputError):
        status_code = 400
    elif isinstance(exc, LabResultsError):
        status_code = 502
    else:
        status_code = 500
    logger.error(f"{request.method} {request.url.path} failed: [{exc.code}] {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# ---- Dependencies ----

def get_review_service(request: Request) -> MedicationReviewService:
    service = getattr(request.app.state, "review_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return service


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


def _health(service: MedicationReviewService) -> HealthResponse:
    oracle = getattr(service.resolver.oracle, "client", None)
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        timestamp=datetime.now().isoformat(),
        uptime_seconds=(datetime.now() - START_TIME).total_seconds(),
        knowledge_base=service.knowledge_base_summary(),
        oracle=oracle.get_stats() if oracle is not None else {},
    )


# ---- API Endpoints ----

@app.get("/", response_model=HealthResponse, tags=["Health"])
async def root(service: MedicationReviewService = Depends(get_review_service)):
    """API root - health check."""
    return _health(service)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(service: MedicationReviewService = Depends(get_review_service)):
    """Health check endpoint."""
    return _health(service)


@app.post("/api/v1/medications/review", tags=["Review"])
async def review_medications(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    service: MedicationReviewService = Depends(get_review_service),
):
    """
    Review a patient's medication list.

    Each medication is resolved to a knowledge-base rule and reported with the
    organ and biomarker signals that rule declares relevant. Medications whose
    drug class was learned during this request are listed under
    ``skippedMedications``.
    """
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail=REQUIRED_FIELDS_MESSAGE)

    try:
        review_request = ReviewRequest.model_validate(body)
    except ValidationError as e:
        logger.warning(f"Rejected review request: {e.error_count()} validation error(s)")
        raise HTTPException(status_code=400, detail=REQUIRED_FIELDS_MESSAGE)

    if review_request.missing_fields():
        raise HTTPException(status_code=400, detail=REQUIRED_FIELDS_MESSAGE)
    if not review_request.medication_list:
        raise HTTPException(status_code=400, detail="medicationList must be a non-empty array")

    token = _bearer_token(authorization)
    if review_request.organ_data is None and token is None:
        raise HTTPException(status_code=401, detail="Bearer token required in Authorization header")

    logger.info(f"Reviewing {len(review_request.medication_list)} medication(s)")
    response = await service.review(review_request, bearer_token=token)
    return JSONResponse(content=response.to_payload())


@app.get("/api/v1/drug-classes", response_model=DrugClassesResponse, tags=["Reference"])
async def list_drug_classes(service: MedicationReviewService = Depends(get_review_service)):
    """
    List the class-based drug classes the classification oracle can choose from.
    """
    classes = service.store.all_drug_classes()
    return DrugClassesResponse(count=len(classes), drug_classes=classes)


@app.post("/api/v1/knowledge-base/reload", tags=["Reference"])
async def reload_knowledge_base(service: MedicationReviewService = Depends(get_review_service)):
    """
    Re-read both knowledge-base tables from disk.

    On failure the previously loaded tables stay active.
    """
    try:
        await run_in_threadpool(service.store.load)
    except LoadError as e:
        logger.error(f"Knowledge base reload failed: {e.message}")
        return JSONResponse(status_code=500, content=e.to_dict())
    return {"status": "reloaded", "knowledge_base": service.knowledge_base_summary()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
