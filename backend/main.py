import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

_project_root = Path(__file__).resolve().parents[1]
if str(_project_root) not in sys.path:
    sys.path.append(str(_project_root))

try:
    from backend.app.routes.checkout import router as checkout_router
    from backend.app.services.checkout import get_checkout_registry
except ModuleNotFoundError as exc:
    if exc.name != "backend":
        raise
    from app.routes.checkout import router as checkout_router  # type: ignore[no-redef]
    from app.services.checkout import get_checkout_registry  # type: ignore[no-redef]


load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("checkout")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]

app = FastAPI(title="Checkout Reconciliation API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(checkout_router)


@app.on_event("shutdown")
async def teardown_checkout_flows() -> None:
    registry = get_checkout_registry()
    open_flows = len(registry)
    registry.close_all()
    logger.info("Closed %s checkout flows on shutdown", open_flows)


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}
