from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..exceptions import NotFoundError
from ..models import LookupResult, PosProductsPage
from .base import BaseClient, unwrap_data

POS_BASE_PATH = "/api/v1/pos"
MIN_LOOKUP_CODE_LENGTH = 2


@dataclass
class CatalogClient(BaseClient):
    """Branch product listing and barcode/SKU lookup."""

    module: str = "catalog"

    def list_products(
        self,
        *,
        branch_id: str | None = None,
        category: str | None = None,
        search: str | None = None,
        in_stock_only: bool | None = None,
        limit: int = 50,
        after: str | None = None,
        sort: str = "name",
    ) -> PosProductsPage:
        params: dict[str, Any] = {"limit": limit, "sort": sort}
        for key, value in (
            ("branchId", branch_id or self.branch_id),
            ("category", category),
            ("search", search),
            ("after", after),
        ):
            if value:
                params[key] = value
        if in_stock_only is not None:
            params["inStockOnly"] = str(in_stock_only).lower()
        payload = self._request(
            "GET",
            f"{POS_BASE_PATH}/products",
            params=params,
            operation="list_products",
            use_get_cache=True,
        )
        data = unwrap_data(payload, expected="products")
        if not isinstance(data, dict):
            raise ValueError("Expected products response to be a JSON object")
        return PosProductsPage.model_validate(data)

    def lookup(self, code: str, *, branch_id: str | None = None) -> LookupResult | None:
        """Resolve a scanned barcode or typed SKU; ``None`` when nothing matches."""
        trimmed = (code or "").strip()
        if len(trimmed) < MIN_LOOKUP_CODE_LENGTH:
            raise ValueError(f"Code must be at least {MIN_LOOKUP_CODE_LENGTH} characters")
        params = {"code": trimmed}
        if branch_id or self.branch_id:
            params["branchId"] = branch_id or self.branch_id
        try:
            payload = self._request("GET", f"{POS_BASE_PATH}/lookup", params=params, operation="lookup")
        except NotFoundError:
            return None
        if isinstance(payload, dict) and payload.get("success") is False:
            return None
        data = unwrap_data(payload, expected="lookup")
        if not isinstance(data, dict) or not data.get("product"):
            return None
        return LookupResult.model_validate(data)
