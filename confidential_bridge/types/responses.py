from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AssetInfo(BaseModel):
    key: str = Field(description="Registry key")
    label: str = Field(description="Display label")
    symbol: str = Field(description="Token symbol")
    decimals: int = Field(description="Decimals of the underlying token")
    underlyingAddress: str = Field(description="ERC20 underlying token address")
    confidentialAddress: str = Field(description="Confidential wrapper address")


class AssetsResponse(BaseModel):
    assets: List[AssetInfo] = Field(default_factory=list)


class ActionResponse(BaseModel):
    success: bool = Field(default=True, description="Whether the action committed")
    result: Dict[str, Any] = Field(description="Action result")
    message: str = Field(description="Human-readable status line")


class ErrorResponse(BaseModel):
    error: str = Field(description="Error message")
    code: str = Field(description="Machine-readable error code")
    category: str = Field(description="Error category")
    recoverable: bool = Field(description="Whether re-invoking the same action can succeed")
    suggestedAction: Optional[str] = Field(default=None)
    txHash: Optional[str] = Field(default=None)
    details: Dict[str, Any] = Field(default_factory=dict)
