from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from callprep.logger import logger
from callprep.services.analysis_monitor import analysis_monitor
from callprep.settings import settings
from callprep.views.compression import router as compression_router
from callprep.views.monitoring import router as monitoring_router
from callprep.views.uploads import router as uploads_router


# lifespan events
@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.ANALYSIS_MONITOR_ENABLED:
        if analysis_monitor.source is None:
            logger.info(
                "Analysis monitor has no source, tracking registered analyses only"
            )
        analysis_monitor.start()
    else:
        logger.info("Analysis monitor disabled")
    yield
    await analysis_monitor.stop()


# build app
app = FastAPI(lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS or False,
    allow_origins=settings.CORS_ORIGIN.split(","),
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health():
    return {"status": "healthy"}


# metrics
Instrumentator(
    excluded_handlers=["/docs", "/metrics"],
).instrument(app).expose(app)

# register views
app.include_router(compression_router, prefix="/v1")
app.include_router(uploads_router, prefix="/v1")
app.include_router(monitoring_router, prefix="/v1")


if __name__ == "__main__":
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser()
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=1250)
    args = parser.parse_args()

    uvicorn.run("callprep.app:app", host=args.host, port=args.port)
