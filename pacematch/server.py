"""
FastAPI server for the PaceMatch proximity service.

Exposes:
  - GET /health - Health check
  - POST /run-graph - Execute a graph (nearby, matching)
  - GET /docs - Interactive API documentation (Swagger UI)
  - GET /openapi.json - OpenAPI schema
"""

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException, Request, status, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Dict, Any, Optional, Annotated
import time

# Import configuration (loads .env automatically)
from pacematch.config import config, validate_config

# Import logging setup
from pacematch.utils.logging_config import logger, setup_logging

# Import graphs
from pacematch.graphs.matching import create_matching_graph
from pacematch.graphs.nearby import create_nearby_graph
from pacematch.tools.store import get_store
from pacematch.utils.errors import GraphExecutionError, StoreUnavailableError

# Setup logging
setup_logging(debug=config.DEBUG)

# ============================================================
# VALIDATE CONFIGURATION AT STARTUP
# ============================================================
try:
    config_status = validate_config()
    logger.info("Configuration validated successfully")
    for key, value in config_status.items():
        logger.info(f"  {key}: {value}")
except ValueError as e:
    logger.error(f"Configuration error: {e}")
    raise SystemExit(1)

# ============================================================
# FASTAPI APPLICATION
# ============================================================
app = FastAPI(
    title="PaceMatch Proximity Service",
    description="Nearby-user discovery and workout-partner matching over the Realtime Database",
    version="1.0.0",
)

# ============================================================
# CORS CONFIGURATION
# ============================================================
origins = [
    "http://localhost:5173",  # Vite dev
    "http://localhost:3000",  # React dev
    "capacitor://localhost",  # iOS shell
    "http://localhost",  # Android shell
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

GRAPH_FACTORIES = {
    "nearby": create_nearby_graph,
    "matching": create_matching_graph,
}


# ============================================================
# REQUEST/RESPONSE MODELS
# ============================================================
class GraphRequest(BaseModel):
    """
    Request body for /run-graph endpoint.

    Attributes:
        graph (str): Name of graph to execute. Options: 'nearby', 'matching'
        input (dict): Input state for the graph.
    """
    graph: str
    input: Dict[str, Any]


class GraphResponse(BaseModel):
    """
    Response body for /run-graph endpoint.

    Attributes:
        success (bool): Whether graph executed successfully
        graph (str): Name of the graph that was executed
        data (dict): Output from the graph
        error (Optional[str]): Error message if something went wrong
    """
    success: bool
    graph: str
    data: Dict[str, Any] = {}
    error: Optional[str] = None


# ============================================================
# MIDDLEWARE
# ============================================================
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add an X-Process-Time header showing how long the request took."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


# ============================================================
# ROUTES
# ============================================================

@app.get("/health", tags=["System"])
async def health_check() -> Dict[str, str]:
    """Health check endpoint. Returns {"status": "healthy"}."""
    return {"status": "healthy"}


@app.post("/run-graph", response_model=GraphResponse, tags=["Graphs"])
def run_graph(
    request: GraphRequest,
    authorization: Annotated[Optional[str], Header()] = None,
) -> GraphResponse:
    """
    Execute a graph and return results.

    Supported graphs:
      - nearby: Active, visible users within a radius, closest first
      - matching: Ranked workout partners by distance, pace and fitness level

    Raises:
        HTTPException: If the token is wrong, the graph is unknown, or it fails
    """
    if config.SERVICE_TOKEN:
        expected = f"Bearer {config.SERVICE_TOKEN}"
        if authorization != expected:
            logger.warning("Unauthorized request: invalid or missing token")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
            )

    logger.info(f"Received request for graph: {request.graph}")
    logger.debug(f"Input keys: {list(request.input.keys())}")

    factory = GRAPH_FACTORIES.get(request.graph)
    if factory is None:
        logger.error(f"Unknown graph: {request.graph}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown graph: {request.graph}. "
                   f"Valid options: {', '.join(GRAPH_FACTORIES)}"
        )

    start_time = time.time()
    try:
        graph = factory(store=get_store())
        result = graph.invoke(request.input)
    except StoreUnavailableError as e:
        logger.error(f"{request.graph} graph could not reach the store: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Location store unavailable",
        )
    except GraphExecutionError as e:
        logger.error(f"{request.graph} graph could not be built: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Graph execution failed: {str(e)}"
        )
    except TimeoutError:
        logger.error(f"{request.graph} graph timed out")
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail=f"Graph execution timed out after {config.GRAPH_TIMEOUT}s"
        )
    except Exception as e:
        logger.exception(f"{request.graph} graph failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Graph execution failed: {str(e)}"
        )

    execution_time = time.time() - start_time
    metadata = result.get("response_metadata") or {}
    logger.info(
        "run-graph summary: graph=%s input_keys=%s success=%s time=%.2fs",
        request.graph,
        list(request.input.keys()),
        metadata.get("success", True),
        execution_time,
    )

    return GraphResponse(
        success=bool(metadata.get("success", True)),
        graph=request.graph,
        data=result,
        error=metadata.get("error"),
    )


@app.get("/", tags=["System"])
async def root() -> Dict[str, str]:
    """Information about the API and where its documentation lives."""
    return {
        "service": "PaceMatch Proximity Service",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


# ============================================================
# ERROR HANDLERS
# ============================================================

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Return HTTP exceptions in a consistent error format."""
    logger.error(f"HTTP Exception: {exc.status_code} - {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "status_code": exc.status_code
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Catch-all: log the traceback, never leak it to the client."""
    logger.exception(f"Unhandled exception: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Internal server error",
            "status_code": 500
        }
    )


# ============================================================
# STARTUP EVENTS
# ============================================================

@app.on_event("startup")
async def startup_event():
    """Log startup configuration."""
    logger.info("=" * 60)
    logger.info("PaceMatch Proximity Service Starting Up")
    logger.info("=" * 60)
    logger.info(f"Firebase Project: {config.FIREBASE_PROJECT_ID}")
    logger.info(f"Debug Mode: {config.DEBUG}")
    logger.info(f"Active threshold: {config.ACTIVE_THRESHOLD_MS}ms")
    logger.info(f"Graph Timeout: {config.GRAPH_TIMEOUT}s")
    logger.info("=" * 60)


@app.on_event("shutdown")
async def shutdown_event():
    """Run when the application shuts down."""
    logger.info("PaceMatch Proximity Service Shutting Down")


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    """
    Run with: python -m uvicorn pacematch.server:app --reload
    """
    import uvicorn
    uvicorn.run(
        app,
        host=config.HOST,
        port=config.PORT,
        log_level="info" if not config.DEBUG else "debug"
    )
