import logging

from fastapi import FastAPI

from .db import init_db
from .errors import register_error_handlers
from .settings import settings
from .routers import auth
from .routers import children
from .routers import curriculum
from .routers import lessons

logging.basicConfig(
	level=settings.log_level.upper(),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Writing Coach API")
register_error_handlers(app)
app.include_router(auth.router)
app.include_router(children.router)
app.include_router(lessons.router)
app.include_router(curriculum.router)


@app.get("/info")
def root():
	return {"status": "ok", "gemini_configured": bool(settings.gemini_api_key)}


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	init_db()
