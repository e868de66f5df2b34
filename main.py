from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.database import init_db
from app.core.logging_config import setup_logging
from app.core.middleware import RequestContextMiddleware
from app.web.routes import api, health

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize app on startup."""
    await init_db()
    yield


app = FastAPI(
    title=settings.APP_NAME,
    description="Smart import of spreadsheets, PDFs and images into personal finance records",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)

app.include_router(api.router, prefix="/api", tags=["api"])
app.include_router(health.router, tags=["health"])


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
