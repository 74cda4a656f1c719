# app/routes/quotes.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.exceptions import BusinessNotFoundError
from app.dependencies import get_services
from app.schemas.quote import ProviderQuote, UnifiedQuoteRequest
from app.services.container import BrokerServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.post("", response_model=List[ProviderQuote])
async def get_quotes(
    request: UnifiedQuoteRequest,
    business_id: Optional[int] = Query(None, description="Only return quotes this business can afford"),
    services: BrokerServices = Depends(get_services),
):
    """Quote every eligible carrier for a shipment"""
    wallet_balance = None
    if business_id is not None:
        try:
            wallet_balance = await services.balance_store.get_balance(business_id)
        except BusinessNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))

    quotes = await services.aggregator.get_quotes(request, wallet_balance=wallet_balance)
    logger.info(f"Returning {len(quotes)} quotes")
    return quotes
