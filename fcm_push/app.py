from __future__ import annotations

import logging
import time

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from fcm_push.api.routes import get_fcm_service, router
from fcm_push.config import settings
from fcm_push.models.db import init_db

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(
    title=settings.app_name,
    description="Firebase Cloud Messaging delivery with token validation and cleanup",
    version="0.1.0",
    debug=settings.app_debug,
)


@app.on_event("startup")
def startup_event() -> None:
    max_attempts = 8
    delay_seconds = 3
    last_error: Exception | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            init_db()
            logging.info("Database initialization completed", extra={"attempt": attempt})
            break
        except SQLAlchemyError as exc:
            last_error = exc
            logging.exception(
                "Database initialization failed",
                extra={"attempt": attempt, "max_attempts": max_attempts},
            )
            if attempt < max_attempts:
                time.sleep(delay_seconds)
    else:
        raise RuntimeError("Database initialization failed after retries") from last_error

    fcm = get_fcm_service()
    logging.info("FCM delivery engine ready", extra={"state": fcm.credential_state.state})


app.include_router(router)
