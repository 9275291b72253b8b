"""FX rate API endpoints."""

import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from api.helpers import get_fx_service
from integrations.exceptions import UpstreamError
from schemas.system import HistoricalRateResponse
from services.fx_service import FxService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/fx", tags=["fx"])


@router.get("/all", response_model=dict[str, Any])
async def all_rates(service: FxService = Depends(get_fx_service)):
    """Majors vs USD; ``_fallback: true`` when serving last-known rates."""
    table = await service.get_all()
    return table.to_dict()


@router.get("/historical/{on_date}/{from_ccy}/{to_ccy}", response_model=HistoricalRateResponse)
async def historical_rate(
    on_date: date,
    from_ccy: str,
    to_ccy: str,
    service: FxService = Depends(get_fx_service),
):
    """Date-pinned rate; permanent once cached."""
    try:
        rate, cached = await service.get_historical(on_date.isoformat(), from_ccy, to_ccy)
    except UpstreamError as e:
        logger.warning("FX historical fetch failed: %s", e)
        raise HTTPException(status_code=502, detail=f"FX historical fetch failed: {e}")
    return HistoricalRateResponse(
        rate=rate,
        date=on_date.isoformat(),
        from_=from_ccy.upper(),
        to=to_ccy.upper(),
        cached=cached,
    )
