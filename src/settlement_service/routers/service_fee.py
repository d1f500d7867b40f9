"""Service fee quote and configuration endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request

from settlement_service.core.state import get_app_state
from settlement_service.errors import ValidationError
from settlement_service.routers.validation import parse_json_body, require_field, require_string
from settlement_service.schemas import FeeConfigResponse, FeeQuoteResponse

if TYPE_CHECKING:
    from settlement_service.services.fee_calculator import FeeCalculator

router = APIRouter()


def _fee_calculator() -> FeeCalculator:
    state = get_app_state()
    if state.fee_calculator is None:
        msg = "FeeCalculator not initialized"
        raise RuntimeError(msg)
    return state.fee_calculator


@router.post("/service-fee/calculate", response_model=FeeQuoteResponse)
async def calculate_service_fee(request: Request) -> dict[str, Any]:
    """Quote the fee and total charge for an amount."""
    data = parse_json_body(await request.body())
    amount = require_field(data, "amount")
    currency = require_string(data, "currency")

    calculator = _fee_calculator()
    if not calculator.money.is_supported(currency):
        raise ValidationError(
            "UNSUPPORTED_CURRENCY",
            f"Currency {currency} is not supported",
            {"supported": calculator.supported_currencies},
        )
    budget = calculator.money.to_minor_units(amount, currency, "amount")
    return calculator.quote_view(calculator.quote(budget, currency))


@router.get("/service-fee/config", response_model=FeeConfigResponse)
async def get_service_fee_config() -> dict[str, Any]:
    """Fee rules with bounds converted for every supported currency."""
    return _fee_calculator().describe()
