# SPDX-License-Identifier: Apache-2.0

"""
Driver dashboard endpoints: statistics, rank progress and wallet.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging
from typing import Any, Dict

from ..domain import ranking
from ..domain.withdrawals import calculate_balance
from ..models.base import from_document
from ..models.entities import Profile, UserContext, WalletTransaction, WithdrawalRequest
from ..models.enums import TransactionType, UserRole, WithdrawalStatus
from ..models.requests import DriverPath
from ..models.responses import DriverStatsResponse, RankProgress, WalletResponse
from ..services.mongodb import PROFILES, WALLET_TRANSACTIONS, WITHDRAWAL_REQUESTS
from ..middleware.auth import require_jwt, require_permission
from ..middleware.error_handler import NotFoundException
from ..utils.context import load_driver_stats, load_entity

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

drivers_tag = Tag(name="Drivers", description="Driver stats, rank and wallet")
drivers_bp = APIBlueprint('drivers', __name__, url_prefix='/api/drivers', abp_tags=[drivers_tag])


def build_stats_payload(driver_id: str) -> Dict[str, Any]:
    """Stats with rank data, served from cache when fresh."""
    redis_service = current_app.redis_service

    cached = redis_service.get_cached_driver_stats(driver_id)
    if cached is not None:
        return cached

    stats = load_driver_stats(driver_id)
    rank = ranking.calculate_rank(stats)
    upcoming = ranking.next_rank(rank)

    payload = DriverStatsResponse(
        stats=stats.to_public_dict(),
        rank=rank.value,
        next_rank=upcoming.value if upcoming else None,
        next_rank_requirements=ranking.next_rank_requirements(rank),
        completion_rate=ranking.completion_rate(stats),
        progress=[RankProgress(**item) for item in ranking.rank_progress(stats)]
    ).model_dump(mode='json')

    redis_service.cache_driver_stats(driver_id, payload)
    return payload


def _with_links(payload: Dict[str, Any], path: str) -> Dict[str, Any]:
    link_builder = current_app.hal_formatter.builder.link_builder
    response = dict(payload)
    response["_links"] = {"self": link_builder.build_self_link(path).model_dump()}
    return response


@drivers_bp.get('/me/stats')
@require_jwt
@require_permission("driver:stats_own")
def get_own_stats(user_context: UserContext):
    with tracer.start_as_current_span("drivers.stats_own", attributes={"driver.id": user_context.user_id}):
        payload = build_stats_payload(user_context.user_id)
        return jsonify(_with_links(payload, "/api/drivers/me/stats")), 200


@drivers_bp.get('/<driver_id>/stats')
@require_jwt
@require_permission("driver:stats_any")
def get_driver_stats(user_context: UserContext, path: DriverPath):
    driver_id = path.driver_id
    with tracer.start_as_current_span("drivers.stats", attributes={"driver.id": driver_id}):
        profile = load_entity(PROFILES, driver_id, Profile, "Driver")
        if profile.role != UserRole.DRIVER.value:
            raise NotFoundException(f"Driver '{driver_id}' not found")

        payload = build_stats_payload(driver_id)
        return jsonify(_with_links(payload, f"/api/drivers/{driver_id}/stats")), 200


@drivers_bp.get('/me/wallet')
@require_jwt
@require_permission("wallet:read_own")
def get_own_wallet(user_context: UserContext):
    """
    Wallet balance and history.

    The available balance already discounts withdrawals waiting for review.
    """
    with tracer.start_as_current_span("drivers.wallet", attributes={"driver.id": user_context.user_id}) as span:
        mongodb_service = current_app.mongodb_service
        driver_id = user_context.user_id

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

        total_credits = round(sum(t.amount for t in transactions if t.type == TransactionType.CREDIT.value), 2)
        total_debits = round(sum(t.amount for t in transactions if t.type == TransactionType.DEBIT.value), 2)
        balance = calculate_balance(transactions, pending)
        span.set_attribute("wallet.balance", balance)

        wallet = WalletResponse(
            driver_id=driver_id,
            available_balance=balance,
            total_credits=total_credits,
            total_debits=total_debits,
            pending_withdrawals=round(sum(w.amount for w in pending), 2),
            transactions=[t.to_public_dict() for t in transactions]
        ).model_dump(mode='json')

        response = _with_links(wallet, "/api/drivers/me/wallet")
        link_builder = current_app.hal_formatter.builder.link_builder
        if user_context.has_permission("withdrawal:create"):
            response["_links"]["withdraw"] = link_builder.build_link(
                "/api/withdrawals", method="POST", content_type="application/json", title="Request withdrawal"
            ).model_dump()
        return jsonify(response), 200
