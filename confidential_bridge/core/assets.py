"""Asset registry: the underlying / confidential token pairs the bridge knows about.

Descriptors are immutable and loaded once from YAML, either the bundled
``assets.yaml`` or the file named by ``settings.assets_file``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

import yaml
from eth_utils import is_address, to_checksum_address

from ..config import settings
from .errors import UnknownAssetError, ValidationError

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
DEFAULT_ASSETS_FILE = Path(__file__).resolve().parent.parent / "assets.yaml"


@dataclass(frozen=True)
class AssetDescriptor:
    """An underlying token and its confidential wrapper."""

    key: str
    label: str
    symbol: str
    decimals: int
    underlying_address: str
    confidential_address: str

    @property
    def is_deployed(self) -> bool:
        return ZERO_ADDRESS not in (
            self.underlying_address.lower(),
            self.confidential_address.lower(),
        )

    def parse_units(self, amount: Union[str, Decimal, int]) -> int:
        """Convert a whole-token amount ("12.5") into integer base units."""
        try:
            value = Decimal(str(amount).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid amount {amount!r}", asset=self.key)
        if not value.is_finite():
            raise ValidationError(f"Invalid amount {amount!r}", asset=self.key)

        scaled = value.scaleb(self.decimals)
        if scaled != scaled.to_integral_value():
            raise ValidationError(
                f"Amount {amount} has more than {self.decimals} decimal places",
                asset=self.key,
            )
        return int(scaled)

    def format_units(self, base_units: int) -> str:
        """Render integer base units as a whole-token decimal string."""
        value = Decimal(base_units).scaleb(-self.decimals)
        text = f"{value:f}"
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return text or "0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "underlyingAddress": self.underlying_address,
            "confidentialAddress": self.confidential_address,
        }


def _descriptor_from_definition(definition: Mapping[str, Any]) -> AssetDescriptor:
    key = str(definition["key"]).lower()
    addresses = {}
    for field_name in ("underlying_address", "confidential_address"):
        raw = str(definition.get(field_name) or ZERO_ADDRESS)
        if not is_address(raw):
            raise ValueError(f"Asset {key}: {field_name} {raw!r} is not an address")
        addresses[field_name] = to_checksum_address(raw)

    return AssetDescriptor(
        key=key,
        label=str(definition.get("label") or key.upper()),
        symbol=str(definition.get("symbol") or key.upper()),
        decimals=int(definition.get("decimals", 18)),
        **addresses,
    )


class AssetRegistry:
    """Lookup of asset descriptors by key.

    Usage:
        registry = AssetRegistry.load()
        usdc = registry.resolve("USDC")
    """

    def __init__(self, assets: List[AssetDescriptor]):
        self._assets: Dict[str, AssetDescriptor] = {}
        for asset in assets:
            if asset.key in self._assets:
                raise ValueError(f"Duplicate asset key: {asset.key}")
            self._assets[asset.key] = asset

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "AssetRegistry":
        """Load the registry from YAML (settings override, then the bundled file)."""
        if path is None:
            path = Path(settings.assets_file) if settings.assets_file else DEFAULT_ASSETS_FILE

        with open(path, "r") as f:
            document = yaml.safe_load(f) or {}

        definitions = document.get("assets") or []
        assets = [_descriptor_from_definition(d) for d in definitions]
        logger.debug(f"Loaded {len(assets)} assets from {path}")
        return cls(assets)

    def resolve(self, key: str) -> AssetDescriptor:
        asset = self._assets.get(key.strip().lower())
        if asset is None:
            supported = ", ".join(self._assets)
            raise UnknownAssetError(f"Unsupported token {key}. Use {supported}.", asset=key)
        return asset

    def with_addresses(self, addresses: Mapping[str, Tuple[str, str]]) -> "AssetRegistry":
        """Return a copy with (underlying, confidential) addresses replaced per key."""
        updated = []
        for asset in self._assets.values():
            if asset.key in addresses:
                underlying, confidential = addresses[asset.key]
                asset = replace(
                    asset,
                    underlying_address=to_checksum_address(underlying),
                    confidential_address=to_checksum_address(confidential),
                )
            updated.append(asset)
        return AssetRegistry(updated)

    def keys(self) -> List[str]:
        return list(self._assets)

    def __iter__(self) -> Iterator[AssetDescriptor]:
        return iter(self._assets.values())

    def __len__(self) -> int:
        return len(self._assets)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._assets
