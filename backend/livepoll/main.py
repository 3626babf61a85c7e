import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from livepoll.core.broadcaster import broadcaster
from livepoll.core.config import settings
from livepoll.core.handlers import register_exception_handlers
from livepoll.core.logging_config import configure_logging
from livepoll.db.client import close_client, get_db
from livepoll.db.indexes import create_indexes
from livepoll.routes import auth, polls

configure_logging()

app = FastAPI(title="LivePoll API", version="1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)

# Routers
app.include_router(auth.router)
app.include_router(polls.router)

@app.on_event("startup")
async def startup_event():
    await create_indexes(get_db())

@app.on_event("shutdown")
async def shutdown_event():
    # ends every open stream so clients reconnect elsewhere
    broadcaster.close_all()
    close_client()


def run():
    uvicorn.run("livepoll.main:app", host=settings.APP_HOST, port=settings.APP_PORT)


if __name__ == "__main__":
    run()
