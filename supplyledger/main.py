from prometheus_fastapi_instrumentator import Instrumentator

from supplyledger.core.config import settings
from supplyledger.core.logging import configure_logging
from . import app as ledger_app

configure_logging()
app = ledger_app
instrumentator = Instrumentator(excluded_handlers=["/health", "/metrics"])
instrumentator.instrument(app).expose(app, include_in_schema=False)


@app.get("/health")
async def health() -> dict[str, object]:
    return {"ok": True, "service": settings.APP_NAME, "env": settings.APP_ENV}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("supplyledger.main:app", host=settings.HOST, port=settings.PORT)
