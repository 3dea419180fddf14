from __future__ import annotations

from fastapi import APIRouter

from chainchat.api.deps import get_available_models
from chainchat.models.schemas import ModelInfo, ModelsResponse

router = APIRouter(prefix="/api/models", tags=["models"])


@router.get("", response_model=ModelsResponse)
async def list_models():
    """List models selectable for single or chained chat."""
    models = get_available_models()
    return ModelsResponse(models=[ModelInfo(**m) for m in models])
