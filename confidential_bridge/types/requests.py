from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MintRequest(BaseModel):
    amount: str = Field(description="Whole-token amount, e.g. \"250\" or \"12.5\"")
    to: Optional[str] = Field(default=None, description="Recipient; defaults to the signer")


class WrapRequest(BaseModel):
    amount: str = Field(description="Whole-token amount of underlying to wrap")
    recipient: Optional[str] = Field(default=None, description="Confidential balance owner; defaults to the signer")


class UnwrapRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: str = Field(description="Whole-token amount of confidential balance to unwrap")
    from_address: Optional[str] = Field(default=None, alias="from", description="Holder to debit; defaults to the signer")
    recipient: Optional[str] = Field(default=None, description="Receiver of the underlying; defaults to the signer")


class HolderRequest(BaseModel):
    holder: Optional[str] = Field(default=None, description="Holder address; defaults to the signer")
