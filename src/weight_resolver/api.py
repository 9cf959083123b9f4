"""FastAPI service exposing weight resolution and valuation to the quoting app."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .config import load_config
from .engine import WeightResolver
from .models import Dimensions, InvalidInputError, ProductDescriptor
from .normalize import normalize_hts_code
from .resolver import NoCandidateError
from .valuation import select_basis

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Weight Resolver API",
    description=(
        "Resolve product weights from tariff, pattern, volumetric and manual sources, "
        "and compute the customs valuation basis for a quote line item."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_resolver() -> WeightResolver:
    """Shared resolver; ``WEIGHT_RESOLVER_CONFIG`` points at an optional config.yaml."""
    cfg = load_config(os.environ.get("WEIGHT_RESOLVER_CONFIG") or None)
    logger.info("Weight resolver initialised (threshold %.2f)", cfg.resolution.discrepancy_threshold)
    return WeightResolver(config=cfg)


# ── Request bodies ────────────────────────────────────────────────────────────

class DimensionsIn(BaseModel):
    length: float = Field(gt=0)
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    unit: str = "cm"


class ResolveRequest(BaseModel):
    name: str = Field(min_length=1)
    price: float = Field(ge=0)
    url: str | None = None
    hsn_code: str | None = None
    quantity: int = Field(default=1, ge=1)
    dimensions: DimensionsIn | None = None
    brand: str | None = None
    material: str | None = None
    size: str | None = None
    category: str | None = None
    manual_weight: float | None = Field(default=None, description="Manual override in kg")
    carrier: str | None = None
    valuation_method: str | None = None
    minimum_valuation: float | None = None


class ValuationRequest(BaseModel):
    product_value: float
    minimum_valuation: float | None = None
    method: str = "auto"
    tariff_rate: float | None = None
    local_tax_rate: float | None = None
    hsn_code: str | None = Field(
        default=None, description="Fill missing rates and minimum valuation from this tariff line"
    )


# ── Health ───────────────────────────────────────────────────────────────────

@app.get("/health", tags=["meta"])
def health() -> dict[str, str]:
    return {"status": "ok", "version": "1.0.0"}


# ── Tariff lookup ─────────────────────────────────────────────────────────────

@app.get("/tariff/{code}", tags=["tariff"])
def get_tariff(code: str, resolver: WeightResolver = Depends(get_resolver)) -> dict[str, Any]:
    """
    Return the tariff entry for an HSN code.

    Dots and spaces are stripped; a code with no exact entry falls back to its
    longest known prefix (down to the 4-digit heading).

    **Example:** `/tariff/8517.13.00` or `/tariff/6109`
    """
    normalized = normalize_hts_code(code)
    if not normalized or not normalized.isdigit():
        raise HTTPException(status_code=422, detail=f"Invalid HSN code: {code!r}")

    entry = resolver.store.lookup(normalized)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"No tariff entry for HSN '{normalized}'")
    return {"query": normalized, **entry.as_dict()}


# ── Resolution ────────────────────────────────────────────────────────────────

@app.post("/resolve", tags=["resolve"])
def resolve_item(
    body: ResolveRequest, resolver: WeightResolver = Depends(get_resolver)
) -> dict[str, Any]:
    """
    Resolve weight (and valuation when the tariff line has a duty rate) for one item.

    When no source can estimate a weight the response is 422 with
    ``error = "no_candidate"``; the client should then ask for a manual weight.
    """
    try:
        descriptor = ProductDescriptor(
            name=body.name,
            price=body.price,
            url=body.url,
            hsn_code=body.hsn_code,
            quantity=body.quantity,
            dimensions=Dimensions(**body.dimensions.model_dump()) if body.dimensions else None,
            brand=body.brand,
            material=body.material,
            size=body.size,
            category=body.category,
        )
        result = resolver.resolve_item(
            descriptor,
            manual_override=body.manual_weight,
            carrier=body.carrier,
            valuation_method=body.valuation_method,
            minimum_valuation=body.minimum_valuation,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except NoCandidateError as exc:
        raise HTTPException(
            status_code=422,
            detail={
                "error": "no_candidate",
                "message": str(exc),
                "action": "Enter the item weight manually (manual_weight, kg).",
            },
        ) from exc
    return result.as_dict()


@app.post("/valuation", tags=["valuation"])
def valuation(
    body: ValuationRequest, resolver: WeightResolver = Depends(get_resolver)
) -> dict[str, Any]:
    """Select the valuation basis and compute duty and local tax."""
    tariff_rate = body.tariff_rate
    local_tax_rate = body.local_tax_rate
    minimum = body.minimum_valuation

    if body.hsn_code:
        entry = resolver.store.lookup(body.hsn_code)
        if entry is None:
            raise HTTPException(status_code=404, detail=f"No tariff entry for HSN '{body.hsn_code}'")
        tariff_rate = entry.duty_rate_pct if tariff_rate is None else tariff_rate
        local_tax_rate = entry.local_tax_pct if local_tax_rate is None else local_tax_rate
        minimum = entry.minimum_valuation if minimum is None else minimum

    try:
        basis = select_basis(
            body.product_value,
            minimum_valuation=minimum,
            method=body.method,
            tariff_rate=tariff_rate or 0.0,
            local_tax_rate=local_tax_rate or 0.0,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return basis.as_dict()
