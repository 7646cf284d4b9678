import logging

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

from cloudserve.config import config
from cloudserve.dependencies import get_db
from cloudserve.endpoints import admin, checkout, orders, servers, status, webhooks
from cloudserve.errors.config_errors import ConfigurationError

logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)

logger = logging.getLogger(__name__)

for problem in config.configuration_problems():
    logger.warning(f"Configuration: {problem}")

logger.info("Application started and logger configured.")


app = FastAPI(
    title="CloudServe API",
    description="Game-server provisioning, billing events and server status",
    version="1.0.0"
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(webhooks.router)
app.include_router(servers.router)
app.include_router(servers.internal_router)
app.include_router(orders.router)
app.include_router(checkout.router)
app.include_router(status.router)
app.include_router(admin.router)


@app.get("/healthz")
async def healthz():
    return {"message": "Healthy!"}


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        if 'ctx' in error and 'error' in error['ctx']:
            # ValueError raised by a validator: keep its message, drop the unserializable ctx
            if isinstance(error['ctx']['error'], ValueError):
                error['msg'] = str(error['ctx']['error'])
                del error['ctx']
        errors.append(error)

    return JSONResponse(
        status_code=422,
        content={"detail": errors},
    )


@app.exception_handler(ConfigurationError)
async def configuration_exception_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Configuration error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Service configuration error"},
    )


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        return {"status": "unhealthy", "database": "disconnected"}
