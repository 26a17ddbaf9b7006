import logging

from fastapi import FastAPI

from .db import SessionLocal, init_db
from .settings import settings
from .routers import auth
from .routers import practice
from .routers import quota
from .routers import smart_test
from .routers import topics

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="IELTS Practice API")
app.include_router(auth.router)
app.include_router(topics.router)
app.include_router(smart_test.router)
app.include_router(practice.router)
app.include_router(quota.router)


@app.get("/info")
def root():
	return {"status": "ok", "gemini_configured": bool(settings.gemini_api_key)}


@app.on_event("startup")
async def startup_event():
	init_db()
	db = SessionLocal()
	try:
		auth.seed_user(db)
	finally:
		db.close()
