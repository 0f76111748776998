import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hrsign.auth.router import router as auth_router
from hrsign.config import settings
from hrsign.documents.router import router as documents_router
from hrsign.esign.router import router as esign_router
from hrsign.middleware import CorrelationIDMiddleware

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    docs_url="/api/docs",
    openapi_url="/api/openapi.json",
)

# Middleware
app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.backend_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
app.include_router(documents_router, prefix="/api/documents", tags=["Documents"])
app.include_router(esign_router, prefix="/api/esign", tags=["E-Signatures"])


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "version": settings.app_version}
