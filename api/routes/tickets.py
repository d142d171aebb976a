"""
Ticket API routes
"""
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_ticket_service
from application.dtos.tickets import (
    PaymentConfirmationDTO,
    TicketCancelDTO,
    TicketPurchaseDTO,
    TicketPurchaseResponseDTO,
    TicketRefundResponseDTO,
    TicketResponseDTO,
    TicketValidateDTO,
)
from application.services.ticket_service import TicketApplicationService
from core.config import settings
from core.response import Response as ApiResponse, success_response
from domain.ticket.entity import TicketStatus

router = APIRouter(
    prefix="/tickets",
    tags=["Tickets"]
)


@router.post("", summary="Purchase a ticket", response_model=ApiResponse[TicketPurchaseResponseDTO])
async def purchase_ticket(
    data: TicketPurchaseDTO,
    service: TicketApplicationService = Depends(get_ticket_service),
):
    """
    Price the ticket and open its payment.

    - **payment_method=wallet**: debited and confirmed immediately
    - anything else: returns the gateway checkout parameters; the ticket stays
      pending until `/confirm-payment` or the gateway webhook
    """
    result = await service.purchase(data)
    return success_response(data=result, message="Ticket created")


@router.get("/user/{user_id}", summary="List a user's tickets", response_model=ApiResponse[List[TicketResponseDTO]])
async def list_user_tickets(
    user_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    status: Optional[TicketStatus] = Query(None, description="Filter by status"),
    service: TicketApplicationService = Depends(get_ticket_service),
):
    tickets = await service.list_for_user(user_id, skip=skip, limit=limit, status=status)
    return success_response(data=tickets)


@router.post("/expire", summary="Expire tickets past their validity", response_model=ApiResponse[Any])
async def expire_tickets(
    limit: int = Query(100, ge=1, le=1000),
    service: TicketApplicationService = Depends(get_ticket_service),
):
    expired = await service.expire_due(limit=limit)
    return success_response(data={"expired": expired})


@router.get("/{ticket_id}", summary="Get a ticket", response_model=ApiResponse[TicketResponseDTO])
async def get_ticket(
    ticket_id: str,
    service: TicketApplicationService = Depends(get_ticket_service),
):
    ticket = await service.get_ticket(ticket_id)
    return success_response(data=ticket)


@router.post(
    "/{ticket_id}/confirm-payment",
    summary="Confirm a checkout payment",
    response_model=ApiResponse[TicketResponseDTO],
)
async def confirm_ticket_payment(
    ticket_id: str,
    data: PaymentConfirmationDTO,
    service: TicketApplicationService = Depends(get_ticket_service),
):
    """Verifies the checkout signature; repeating a confirmation is harmless."""
    ticket = await service.confirm_payment(ticket_id, data)
    return success_response(data=ticket, message="Payment confirmed")


@router.post("/{ticket_id}/cancel", summary="Cancel and refund", response_model=ApiResponse[TicketRefundResponseDTO])
async def cancel_ticket(
    ticket_id: str,
    data: Optional[TicketCancelDTO] = None,
    service: TicketApplicationService = Depends(get_ticket_service),
):
    result = await service.cancel(ticket_id, data)
    return success_response(data=result, message="Ticket cancelled")


@router.post("/{ticket_id}/validate", summary="Validate at the gate", response_model=ApiResponse[TicketResponseDTO])
async def validate_ticket(
    ticket_id: str,
    data: TicketValidateDTO,
    service: TicketApplicationService = Depends(get_ticket_service),
):
    ticket = await service.validate(ticket_id, data)
    return success_response(data=ticket, message="Ticket validated")
