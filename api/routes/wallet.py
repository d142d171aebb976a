"""
Wallet and rewards API routes
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_wallet_service
from application.dtos.wallet import (
    AccountResponseDTO,
    OpenAccountDTO,
    RechargeConfirmDTO,
    RechargeDTO,
    RechargeResultDTO,
    RechargeStartResponseDTO,
    RedeemPointsDTO,
    RedemptionResultDTO,
    WalletPaymentDTO,
    WalletPaymentResultDTO,
)
from application.services.wallet_service import WalletApplicationService
from core.response import Response as ApiResponse, success_response

router = APIRouter(
    prefix="/wallet",
    tags=["Wallet"]
)


@router.post("/accounts", summary="Open an account", response_model=ApiResponse[AccountResponseDTO])
async def open_account(
    data: OpenAccountDTO,
    service: WalletApplicationService = Depends(get_wallet_service),
):
    account = await service.open_account(data)
    return success_response(data=account, message="Account opened")


@router.get("/accounts/{user_id}", summary="Wallet and rewards summary", response_model=ApiResponse[AccountResponseDTO])
async def get_account(
    user_id: str,
    service: WalletApplicationService = Depends(get_wallet_service),
):
    account = await service.get_account(user_id)
    return success_response(data=account)


@router.post("/{user_id}/recharge", summary="Start a wallet top-up", response_model=ApiResponse[RechargeStartResponseDTO])
async def start_recharge(
    user_id: str,
    data: RechargeDTO,
    service: WalletApplicationService = Depends(get_wallet_service),
):
    result = await service.start_recharge(user_id, data)
    return success_response(data=result, message="Recharge order created")


@router.post("/{user_id}/recharge/confirm", summary="Confirm a wallet top-up", response_model=ApiResponse[RechargeResultDTO])
async def confirm_recharge(
    user_id: str,
    data: RechargeConfirmDTO,
    service: WalletApplicationService = Depends(get_wallet_service),
):
    """Credits the stored amount plus any bonus; a repeat reports `already_applied`."""
    result = await service.confirm_recharge(user_id, data)
    return success_response(data=result, message="Wallet recharged")


@router.post("/{user_id}/redeem", summary="Redeem reward points", response_model=ApiResponse[RedemptionResultDTO])
async def redeem_points(
    user_id: str,
    data: RedeemPointsDTO,
    service: WalletApplicationService = Depends(get_wallet_service),
):
    result = await service.redeem_points(user_id, data)
    return success_response(data=result, message="Points redeemed")


@router.post("/{user_id}/pay", summary="Pay from the wallet", response_model=ApiResponse[WalletPaymentResultDTO])
async def pay_with_wallet(
    user_id: str,
    data: WalletPaymentDTO,
    service: WalletApplicationService = Depends(get_wallet_service),
):
    result = await service.pay_with_wallet(user_id, data)
    return success_response(data=result, message="Payment completed")
