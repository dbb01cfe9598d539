from .requests import HolderRequest, MintRequest, UnwrapRequest, WrapRequest
from .responses import ActionResponse, AssetInfo, AssetsResponse, ErrorResponse

__all__ = [
    "MintRequest",
    "WrapRequest",
    "UnwrapRequest",
    "HolderRequest",
    "AssetInfo",
    "AssetsResponse",
    "ActionResponse",
    "ErrorResponse",
]
