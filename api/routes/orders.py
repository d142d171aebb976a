"""
Marketplace order API routes
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_order_service
from application.dtos.orders import (
    EscrowReleaseResponseDTO,
    OrderCancelDTO,
    OrderPaymentConfirmationDTO,
    OrderResponseDTO,
    OrderStatusUpdateDTO,
    PayoutCompleteDTO,
    PlaceOrderDTO,
    PlaceOrderResponseDTO,
    ReturnRequestDTO,
)
from application.services.order_service import OrderApplicationService
from core.config import settings
from core.response import Response as ApiResponse, success_response
from domain.order.status import OrderStatus

router = APIRouter(
    prefix="/orders",
    tags=["Orders"]
)


@router.post("", summary="Place an order", response_model=ApiResponse[PlaceOrderResponseDTO])
async def place_order(
    data: PlaceOrderDTO,
    service: OrderApplicationService = Depends(get_order_service),
):
    """
    Price the cart with the vendor's commission and open the payment.

    Wallet orders are held in escrow immediately; gateway orders return the
    checkout parameters.
    """
    result = await service.place_order(data)
    return success_response(data=result, message="Order placed")


@router.get("/customer/{customer_id}", summary="List a customer's orders", response_model=ApiResponse[List[OrderResponseDTO]])
async def list_customer_orders(
    customer_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    service: OrderApplicationService = Depends(get_order_service),
):
    orders = await service.list_for_customer(customer_id, skip=skip, limit=limit)
    return success_response(data=orders)


@router.get("/vendor/{vendor_id}", summary="List a vendor's orders", response_model=ApiResponse[List[OrderResponseDTO]])
async def list_vendor_orders(
    vendor_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    status: Optional[OrderStatus] = Query(None, description="Filter by status"),
    service: OrderApplicationService = Depends(get_order_service),
):
    orders = await service.list_for_vendor(vendor_id, skip=skip, limit=limit, status=status)
    return success_response(data=orders)


@router.get("/{order_id}", summary="Get an order", response_model=ApiResponse[OrderResponseDTO])
async def get_order(
    order_id: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.get_order(order_id)
    return success_response(data=order)


@router.post("/{order_id}/confirm-payment", summary="Confirm a checkout payment", response_model=ApiResponse[OrderResponseDTO])
async def confirm_order_payment(
    order_id: str,
    data: OrderPaymentConfirmationDTO,
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.confirm_payment(order_id, data)
    return success_response(data=order, message="Payment held in escrow")


@router.patch("/{order_id}/status", summary="Update fulfilment status", response_model=ApiResponse[OrderResponseDTO])
async def update_order_status(
    order_id: str,
    data: OrderStatusUpdateDTO,
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.update_status(order_id, data)
    return success_response(data=order)


@router.post("/{order_id}/release-escrow", summary="Release escrow to the vendor", response_model=ApiResponse[EscrowReleaseResponseDTO])
async def release_order_escrow(
    order_id: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    result = await service.release_escrow(order_id)
    return success_response(data=result, message="Escrow released")


@router.post("/{order_id}/payout", summary="Record the vendor payout", response_model=ApiResponse[OrderResponseDTO])
async def complete_order_payout(
    order_id: str,
    data: PayoutCompleteDTO,
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.complete_payout(order_id, data)
    return success_response(data=order, message="Payout completed")


@router.post("/{order_id}/return", summary="Request a return", response_model=ApiResponse[OrderResponseDTO])
async def request_order_return(
    order_id: str,
    data: ReturnRequestDTO,
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.request_return(order_id, data)
    return success_response(data=order, message="Return requested")


@router.post("/{order_id}/return/approve", summary="Approve a return and refund", response_model=ApiResponse[OrderResponseDTO])
async def approve_order_return(
    order_id: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.approve_return(order_id)
    return success_response(data=order, message="Return approved")


@router.post("/{order_id}/return/reject", summary="Reject a return", response_model=ApiResponse[OrderResponseDTO])
async def reject_order_return(
    order_id: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.reject_return(order_id)
    return success_response(data=order, message="Return rejected")


@router.post("/{order_id}/cancel", summary="Cancel and refund", response_model=ApiResponse[OrderResponseDTO])
async def cancel_order(
    order_id: str,
    data: Optional[OrderCancelDTO] = None,
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.cancel(order_id, data)
    return success_response(data=order, message="Order cancelled")
