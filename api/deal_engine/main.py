import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .config import LOG_JSON, LOG_LEVEL
from .db import init_db
from .errors import DealError
from .logging_config import configure_logging
from .routers import access, credits, nda, offers, projects, unlocks, users

configure_logging(LOG_LEVEL, json_format=LOG_JSON)
logger = logging.getLogger(__name__)

app = FastAPI(title="Deal Access & Lifecycle API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(DealError)
async def deal_error_handler(request: Request, exc: DealError):
    if exc.status_code == 409:
        logger.warning("%s %s rejected: %s %s", request.method, request.url.path, exc.code, exc.context)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.on_event("startup")
def on_startup():
    init_db()

app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(projects.router, prefix="/api/projects", tags=["projects"])
app.include_router(credits.router, prefix="/api", tags=["credits"])
app.include_router(unlocks.router, prefix="/api", tags=["unlocks"])
app.include_router(nda.router, prefix="/api/nda", tags=["nda"])
app.include_router(access.router, prefix="/api", tags=["access"])
app.include_router(offers.router, prefix="/api/offers", tags=["offers"])

@app.get("/")
def root():
    return {"ok": True, "service": "deal-engine"}
