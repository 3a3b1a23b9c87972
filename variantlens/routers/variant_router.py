# variantlens/routers/variant_router.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from ..clients.providers import ProviderChain
from ..errors import SubjectUnavailableError, UnknownSubjectError, VariantValidationError
from ..net import Gateway
from ..pipeline import VariantPipeline
from ..utils.evidence import VariantReport

log = logging.getLogger("variantlens.router")

router = APIRouter(prefix="/v1", tags=["variant"])


class VariantRequest(BaseModel):
    hgvs: str = Field(..., description="Protein HGVS, e.g. BRAF:p.Val600Glu")
    transcript: Optional[str] = Field(None, description="Required transcript, e.g. NM_004333.6")


def get_pipeline(request: Request) -> VariantPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="pipeline not initialised")
    return pipeline


def get_gateway(request: Request) -> Gateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="gateway not initialised")
    return gateway


def get_providers(request: Request) -> Optional[ProviderChain]:
    return getattr(request.app.state, "providers", None)


@router.post("/variant", response_model=VariantReport)
async def analyze_variant(req: VariantRequest, pipeline: VariantPipeline = Depends(get_pipeline)) -> VariantReport:
    try:
        return await pipeline.analyze(req.hgvs, req.transcript)
    except VariantValidationError as e:
        raise HTTPException(status_code=400, detail={"code": e.code, "message": str(e), **e.details})
    except UnknownSubjectError as e:
        raise HTTPException(status_code=404, detail={"code": "UNKNOWN_GENE", "message": str(e)})
    except SubjectUnavailableError as e:
        log.warning("[router] %s", e)
        raise HTTPException(status_code=503, detail={"code": "SUBJECT_UNAVAILABLE", "message": str(e), "reason": e.reason})


@router.get("/status")
async def status(
    gateway: Gateway = Depends(get_gateway),
    providers: Optional[ProviderChain] = Depends(get_providers),
) -> Dict[str, Any]:
    # circuits + gateway defaults + per-dependency outcome rollup
    out = await gateway.status()
    out["providers"] = providers.describe() if providers is not None else []
    return out
