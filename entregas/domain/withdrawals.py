# SPDX-License-Identifier: Apache-2.0

"""
Driver wallet balance and withdrawal review rules.

The available balance is every credit minus every debit, minus the amount
already locked in pending withdrawal requests. Approving a withdrawal turns
it into a debit transaction.
"""

from datetime import datetime
from typing import Iterable, List

from ..models.entities import WalletTransaction, WithdrawalRequest
from ..models.enums import PaymentMethod, TransactionType, WithdrawalStatus
from ..models.requests import CreateWithdrawalRequest
from .results import ValidationResult, WorkflowResult

MIN_WITHDRAWAL_AMOUNT = 10.00


def _value(enum_or_str):
    return getattr(enum_or_str, 'value', enum_or_str)


def calculate_balance(
    transactions: Iterable[WalletTransaction],
    pending_withdrawals: Iterable[WithdrawalRequest] = ()
) -> float:
    """Credits minus debits minus pending withdrawal amounts, rounded to cents."""
    balance = 0.0
    for transaction in transactions:
        if transaction.is_deleted():
            continue
        if transaction.type == TransactionType.CREDIT.value:
            balance += transaction.amount
        elif transaction.type == TransactionType.DEBIT.value:
            balance -= transaction.amount

    for withdrawal in pending_withdrawals:
        if withdrawal.status == WithdrawalStatus.PENDING.value:
            balance -= withdrawal.amount

    return round(balance, 2)


def validate_withdrawal(
    request: CreateWithdrawalRequest,
    balance: float,
    min_amount: float = MIN_WITHDRAWAL_AMOUNT
) -> ValidationResult:
    """
    Validate a payout request against the available balance.

    PIX payouts need a key. Bank transfers need bank name, account and agency.
    """
    errors: List[str] = []
    amount = request.amount

    if amount is None or amount <= 0:
        errors.append("Amount must be greater than zero")
    elif round(amount, 2) < min_amount:
        errors.append(f"Minimum withdrawal amount is R$ {min_amount:.2f}")
    elif round(amount, 2) > round(balance, 2):
        errors.append(f"Insufficient balance. Available: R$ {balance:.2f}")

    method = _value(request.payment_method)
    if method == PaymentMethod.PIX.value:
        if not request.pix_key or not request.pix_key.strip():
            errors.append("PIX key is required for PIX withdrawals")
    elif method == PaymentMethod.BANK_TRANSFER.value:
        missing = [
            label for label, value in (
                ("bank name", request.bank_name),
                ("bank account", request.bank_account),
                ("bank agency", request.bank_agency),
            )
            if not value or not value.strip()
        ]
        if missing:
            errors.append(f"Bank transfer requires {', '.join(missing)}")

    return ValidationResult.from_errors(errors)


def build_withdrawal(request: CreateWithdrawalRequest, driver_id: str) -> WithdrawalRequest:
    is_pix = _value(request.payment_method) == PaymentMethod.PIX.value
    return WithdrawalRequest(
        driver_id=driver_id,
        amount=round(request.amount, 2),
        payment_method=request.payment_method,
        pix_key=request.pix_key.strip() if is_pix and request.pix_key else None,
        bank_name=None if is_pix else request.bank_name,
        bank_account=None if is_pix else request.bank_account,
        bank_agency=None if is_pix else request.bank_agency,
        created_by=driver_id,
        updated_by=driver_id
    )


def approve_withdrawal(withdrawal: WithdrawalRequest, admin_id: str) -> WorkflowResult:
    """
    Approve a pending request.

    Returns:
        WorkflowResult with the approved request and the debit transaction
        as its only side effect
    """
    if withdrawal.status != WithdrawalStatus.PENDING.value:
        return WorkflowResult.fail(f"Withdrawal is already {withdrawal.status}")

    now = datetime.utcnow()
    approved = withdrawal.model_copy(update={
        "status": WithdrawalStatus.APPROVED.value,
        "reviewed_by": admin_id,
        "reviewed_at": now
    })
    approved.update_timestamp(admin_id)

    debit = WalletTransaction(
        driver_id=withdrawal.driver_id,
        withdrawal_id=withdrawal.id,
        type=TransactionType.DEBIT,
        amount=withdrawal.amount,
        description="Saque aprovado",
        created_by=admin_id,
        updated_by=admin_id
    )
    return WorkflowResult.ok(approved, side_effects=[debit])


def reject_withdrawal(withdrawal: WithdrawalRequest, admin_id: str, reason: str) -> WorkflowResult:
    if withdrawal.status != WithdrawalStatus.PENDING.value:
        return WorkflowResult.fail(f"Withdrawal is already {withdrawal.status}")
    if not reason or not reason.strip():
        return WorkflowResult.fail("Rejection reason is required")

    rejected = withdrawal.model_copy(update={
        "status": WithdrawalStatus.REJECTED.value,
        "rejection_reason": reason.strip(),
        "reviewed_by": admin_id,
        "reviewed_at": datetime.utcnow()
    })
    rejected.update_timestamp(admin_id)
    return WorkflowResult.ok(rejected)
