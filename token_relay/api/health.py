from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["Monitoring"])


@router.get("/", response_class=PlainTextResponse)
async def root():
    return "Hello World!"


@router.get("/health")
async def health_check(request: Request):
    """Liveness probe reporting which token store backs the service."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    store = orchestrator.store.kind if orchestrator else "not_initialized"
    return {"status": "ok", "store": store}
