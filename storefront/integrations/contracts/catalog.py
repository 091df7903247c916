from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class CatalogProduct:
    id: str
    name: str
    price: float
    sku: str = ""
    stock_count: float = 0
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    description: str = ""
    images: Tuple[str, ...] = ()
    custom_flags: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    status: str = "active"
    last_synced_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "sku": self.sku,
            "stock": self.stock_count,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "description": self.description,
            "images": list(self.images),
            "custom_flags": dict(self.custom_flags),
            "status": self.status,
            "last_synced_at": self.last_synced_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogProduct":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            price=float(data.get("price") or 0),
            sku=data.get("sku") or "",
            stock_count=data.get("stock") or 0,
            category_id=data.get("category_id"),
            category_name=data.get("category_name"),
            description=data.get("description") or "",
            images=tuple(data.get("images") or ()),
            custom_flags=MappingProxyType(dict(data.get("custom_flags") or {})),
            status=data.get("status") or "active",
            last_synced_at=data.get("last_synced_at"),
        )


@dataclass(frozen=True)
class CatalogSnapshot:
    """The unit of atomic replacement in the product cache."""

    products: Tuple[CatalogProduct, ...]
    synced_at: datetime
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "products": [p.to_dict() for p in self.products],
            "synced_at": self.synced_at.isoformat(),
            "duration_ms": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogSnapshot":
        return cls(
            products=tuple(CatalogProduct.from_dict(p) for p in data.get("products", [])),
            synced_at=datetime.fromisoformat(data["synced_at"]),
            duration_ms=int(data.get("duration_ms") or 0),
        )


@dataclass
class SyncResult:
    product_count: int
    duration_ms: int
    synced_at: datetime


@dataclass
class CacheStats:
    last_sync: Optional[datetime]
    cache_age_ms: Optional[int]
    product_count: int
    sync_status: Optional[Dict[str, Any]]
    healthy: bool
    resync_recommended: bool
