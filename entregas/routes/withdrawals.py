# SPDX-License-Identifier: Apache-2.0

"""
Withdrawal endpoints: drivers request payouts, admins review them.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
import logging
from typing import Any, Dict

from ..domain import withdrawals as withdrawal_domain
from ..models.base import from_document
from ..models.entities import UserContext, WalletTransaction, WithdrawalRequest
from ..models.enums import NotificationType, WithdrawalStatus
from ..models.requests import CreateWithdrawalRequest, RejectWithdrawalRequest, WithdrawalPath
from ..services.mongodb import WALLET_TRANSACTIONS, WITHDRAWAL_REQUESTS
from ..middleware.auth import require_jwt, require_permission
from ..middleware.validation import validate_body
from ..middleware.error_handler import (
    AuthorizationException,
    ConflictException,
    ValidationException
)
from ..utils.context import current_profile, load_entity, store_new, store_transition
from ..utils.request import RequestParser

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

withdrawals_tag = Tag(name="Withdrawals", description="Driver payouts")
withdrawals_bp = APIBlueprint(
    'withdrawals',
    __name__,
    url_prefix='/api/withdrawals',
    abp_tags=[withdrawals_tag]
)

PENDING_ONLY = {"status": WithdrawalStatus.PENDING.value}


def _withdrawal_response(withdrawal: WithdrawalRequest, user_context: UserContext) -> Dict[str, Any]:
    return current_app.hal_formatter.format_resource(
        withdrawal.to_public_dict(), "withdrawal", user_context.permissions, user_context.user_id
    )


def _available_balance(driver_id: str) -> float:
    mongodb_service = current_app.mongodb_service
    transactions = [
        from_document(WalletTransaction, doc)
        for doc in mongodb_service.find(WALLET_TRANSACTIONS, {"driverId": driver_id})
    ]
    pending = [
        from_document(WithdrawalRequest, doc)
        for doc in mongodb_service.find(
            WITHDRAWAL_REQUESTS,
            {"driverId": driver_id, "status": WithdrawalStatus.PENDING.value}
        )
    ]
    return withdrawal_domain.calculate_balance(transactions, pending)


@withdrawals_bp.post('')
@require_jwt
@require_permission("withdrawal:create")
@validate_body(CreateWithdrawalRequest)
def create_withdrawal(user_context: UserContext, withdrawal_request: CreateWithdrawalRequest):
    """Request a payout of part of the available balance."""
    with tracer.start_as_current_span(
        "withdrawals.create",
        attributes={"driver.id": user_context.user_id, "withdrawal.amount": withdrawal_request.amount}
    ) as span:
        driver = current_profile(user_context)
        if not driver.is_active_driver():
            raise AuthorizationException("Only approved drivers can request withdrawals")

        balance = _available_balance(driver.id)
        check = withdrawal_domain.validate_withdrawal(
            withdrawal_request,
            balance,
            current_app.config.get('WITHDRAWAL_MIN_AMOUNT', withdrawal_domain.MIN_WITHDRAWAL_AMOUNT)
        )
        if not check.is_valid:
            span.set_status(Status(StatusCode.ERROR, "Invalid withdrawal"))
            raise ValidationException("Invalid withdrawal request", check.errors)

        withdrawal = withdrawal_domain.build_withdrawal(withdrawal_request, driver.id)
        store_new(WITHDRAWAL_REQUESTS, withdrawal, driver.id)

        # A concurrent request may have locked the same balance
        if _available_balance(driver.id) < 0:
            current_app.mongodb_service.soft_delete(WITHDRAWAL_REQUESTS, withdrawal.id, driver.id)
            span.set_attribute("withdrawal.create_result", "lost_race")
            raise ConflictException("Balance changed while the request was being placed")

        logger.info(
            "Withdrawal requested",
            extra={
                "withdrawal_id": withdrawal.id,
                "driver_id": driver.id,
                "amount": withdrawal.amount,
                "payment_method": withdrawal.payment_method
            }
        )
        return jsonify(_withdrawal_response(withdrawal, user_context)), 201


@withdrawals_bp.get('')
@require_jwt
def list_withdrawals(user_context: UserContext):
    """Admins see every request, drivers their own. ``status`` narrows the list."""
    with tracer.start_as_current_span("withdrawals.list", attributes={"user.id": user_context.user_id}):
        pagination = RequestParser.get_pagination_params()
        query = RequestParser.get_filter_params(allowed_filters=["status"])

        if user_context.has_permission("withdrawal:read_all"):
            filters: Dict[str, Any] = {}
        elif user_context.has_permission("withdrawal:read_own"):
            filters = {"driverId": user_context.user_id}
        else:
            raise AuthorizationException("Missing required permission: withdrawal:read_own")

        status = query.get("status")
        if status:
            if status not in [s.value for s in WithdrawalStatus]:
                raise ValidationException(f"Unknown status '{status}'")
            filters["status"] = status

        result = current_app.mongodb_service.paginate(
            WITHDRAWAL_REQUESTS,
            page=pagination["page"],
            page_size=pagination["page_size"],
            filters=filters
        )
        items = [from_document(WithdrawalRequest, doc).to_public_dict() for doc in result.items]
        response = current_app.hal_formatter.format_collection(
            items,
            "withdrawal",
            result.total,
            result.page,
            result.page_size,
            "/api/withdrawals",
            user_context.permissions,
            user_context.user_id,
            query
        )
        return jsonify(response), 200


@withdrawals_bp.post('/<withdrawal_id>/approve')
@require_jwt
@require_permission("withdrawal:review")
def approve_withdrawal(user_context: UserContext, path: WithdrawalPath):
    """Approve a pending payout; the amount is debited from the wallet."""
    withdrawal_id = path.withdrawal_id
    with tracer.start_as_current_span("withdrawals.approve", attributes={"withdrawal.id": withdrawal_id}) as span:
        withdrawal = load_entity(WITHDRAWAL_REQUESTS, withdrawal_id, WithdrawalRequest, "Withdrawal")

        result = withdrawal_domain.approve_withdrawal(withdrawal, user_context.user_id)
        if not result.success:
            span.set_status(Status(StatusCode.ERROR, result.error_message))
            raise ConflictException(result.error_message)

        approved = result.entity
        if not store_transition(WITHDRAWAL_REQUESTS, approved, PENDING_ONLY, user_context.user_id):
            span.set_attribute("withdrawal.review_result", "lost_race")
            raise ConflictException("Withdrawal was already reviewed")
        for debit in result.side_effects:
            store_new(WALLET_TRANSACTIONS, debit, user_context.user_id)

        logger.info(
            "Withdrawal approved",
            extra={"withdrawal_id": withdrawal_id, "admin_id": user_context.user_id, "amount": approved.amount}
        )

        current_app.notifier.notify(
            approved.driver_id,
            "Saque aprovado",
            f"Seu saque de R$ {approved.amount:.2f} foi aprovado.",
            NotificationType.PAYMENT.value,
            {"withdrawal_id": approved.id, "status": approved.status}
        )
        return jsonify(_withdrawal_response(approved, user_context)), 200


@withdrawals_bp.post('/<withdrawal_id>/reject')
@require_jwt
@require_permission("withdrawal:review")
@validate_body(RejectWithdrawalRequest)
def reject_withdrawal(user_context: UserContext, reject_request: RejectWithdrawalRequest, path: WithdrawalPath):
    withdrawal_id = path.withdrawal_id
    with tracer.start_as_current_span("withdrawals.reject", attributes={"withdrawal.id": withdrawal_id}) as span:
        withdrawal = load_entity(WITHDRAWAL_REQUESTS, withdrawal_id, WithdrawalRequest, "Withdrawal")

        result = withdrawal_domain.reject_withdrawal(withdrawal, user_context.user_id, reject_request.reason)
        if not result.success:
            span.set_status(Status(StatusCode.ERROR, result.error_message))
            raise ConflictException(result.error_message)

        rejected = result.entity
        if not store_transition(WITHDRAWAL_REQUESTS, rejected, PENDING_ONLY, user_context.user_id):
            span.set_attribute("withdrawal.review_result", "lost_race")
            raise ConflictException("Withdrawal was already reviewed")

        logger.info(
            "Withdrawal rejected",
            extra={"withdrawal_id": withdrawal_id, "admin_id": user_context.user_id}
        )

        current_app.notifier.notify(
            rejected.driver_id,
            "Saque recusado",
            f"Seu saque de R$ {rejected.amount:.2f} foi recusado: {rejected.rejection_reason}",
            NotificationType.PAYMENT.value,
            {"withdrawal_id": rejected.id, "status": rejected.status}
        )
        return jsonify(_withdrawal_response(rejected, user_context)), 200
