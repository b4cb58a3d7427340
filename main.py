import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core import config
from app.core.errors import InstallmentError, installment_error_handler

import app.models  # ensure models are registered
from app.utils.database import engine, Base
from app.initial_data import init_seed

from app.routers import (
    courses_router,
    installments_router,
    payments_router,
    settings_router,
)

config.configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="LMS Installments Backend API", version="1.0")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(InstallmentError, installment_error_handler)

# Routers
app.include_router(courses_router.router)
app.include_router(installments_router.router)
app.include_router(payments_router.router)
app.include_router(settings_router.router)


@app.on_event("startup")
def on_startup():
    # DEV ONLY – schema is created in place, no migrations yet
    Base.metadata.create_all(bind=engine)

    logger.info("Running initial database seeding")
    init_seed()
    logger.info("Seeding complete")


@app.get("/")
def root():
    return {"message": "LMS Installments Backend is running!!"}
