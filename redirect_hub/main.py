from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .auth.service import init_storage
from .auth.throttling import reset_login_rate_limiter
from .config import settings
from .routes_auth import router as auth_router
from .routes_redirect import router as redirect_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    init_storage()
    reset_login_rate_limiter()
    yield


app = FastAPI(title="Preferred Redirect Hub", version="1.0", lifespan=lifespan)

app.include_router(redirect_router)
app.include_router(auth_router)


@app.get("/healthz", include_in_schema=False)
def healthz():
    return {"status": "ok"}


def run() -> None:
    import uvicorn

    ssl_options = {}
    if settings.SSL_CERTFILE and settings.SSL_KEYFILE:
        ssl_options = {
            "ssl_certfile": settings.SSL_CERTFILE,
            "ssl_keyfile": settings.SSL_KEYFILE,
        }
    uvicorn.run(app, host=settings.WEB_HOST, port=settings.WEB_PORT, **ssl_options)


if __name__ == "__main__":
    run()
