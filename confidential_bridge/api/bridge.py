from typing import Any, Dict, Optional

from fastapi import APIRouter, Query

from ..core.session import ActionResult
from ..services.bridge import get_orchestrator
from ..types import ActionResponse, AssetInfo, AssetsResponse, HolderRequest, MintRequest, UnwrapRequest, WrapRequest

router = APIRouter(prefix="/assets")
panels_router = APIRouter()


def _respond(result: ActionResult) -> ActionResponse:
    return ActionResponse(result=result.to_dict(), message=result.status_line())


@router.get("", response_model=AssetsResponse)
async def list_assets() -> AssetsResponse:
    assets = get_orchestrator().list_assets()
    return AssetsResponse(assets=[AssetInfo(**asset.to_dict()) for asset in assets])


@router.get("/{asset_key}/panel")
async def asset_panel(asset_key: str, holder: Optional[str] = Query(default=None)) -> Dict[str, Any]:
    panel = await get_orchestrator().panel(asset_key, holder)
    return panel.to_dict()


@panels_router.get("/panels")
async def all_panels(holder: Optional[str] = Query(default=None)) -> Dict[str, Any]:
    panels = await get_orchestrator().panels(holder)
    return {"panels": [panel.to_dict() for panel in panels]}


@router.post("/{asset_key}/mint", response_model=ActionResponse)
async def mint(asset_key: str, request: MintRequest) -> ActionResponse:
    orchestrator = get_orchestrator()
    asset = orchestrator.registry.resolve(asset_key)
    result = await orchestrator.mint(asset.key, asset.parse_units(request.amount), to=request.to)
    return _respond(result)


@router.post("/{asset_key}/wrap", response_model=ActionResponse)
async def wrap(asset_key: str, request: WrapRequest) -> ActionResponse:
    orchestrator = get_orchestrator()
    asset = orchestrator.registry.resolve(asset_key)
    result = await orchestrator.wrap(asset.key, asset.parse_units(request.amount), recipient=request.recipient)
    return _respond(result)


@router.post("/{asset_key}/unwrap", response_model=ActionResponse)
async def unwrap(asset_key: str, request: UnwrapRequest) -> ActionResponse:
    orchestrator = get_orchestrator()
    asset = orchestrator.registry.resolve(asset_key)
    result = await orchestrator.unwrap(
        asset.key,
        asset.parse_units(request.amount),
        from_=request.from_address,
        recipient=request.recipient,
    )
    return _respond(result)


@router.post("/{asset_key}/decrypt", response_model=ActionResponse)
async def decrypt(asset_key: str, request: Optional[HolderRequest] = None) -> ActionResponse:
    result = await get_orchestrator().decrypt_balance(asset_key, holder=request.holder if request else None)
    return _respond(result)


@router.post("/{asset_key}/reset", response_model=ActionResponse)
async def reset(asset_key: str, request: Optional[HolderRequest] = None) -> ActionResponse:
    result = await get_orchestrator().reset(asset_key, holder=request.holder if request else None)
    return _respond(result)
