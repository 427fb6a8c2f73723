# SPDX-License-Identifier: Apache-2.0

"""
Profile domain logic: sign-up rules, admin approval and blocking.

Approval and blocking are mutually exclusive. Blocking clears approval and
unblocking returns the profile to the pending queue, so an approved profile
is never blocked.
"""

from datetime import datetime
from typing import Dict, Iterable, List

from ..models.entities import Profile
from ..models.enums import UserRole, DocumentType, VehicleType, ProfileStatus
from ..models.requests import RegisterRequest, UpdateProfileRequest
from . import validation
from .results import ValidationResult, WorkflowResult

SELF_REGISTER_ROLES = (UserRole.CLIENT.value, UserRole.WHOLESALE.value, UserRole.DRIVER.value)


def _value(enum_or_str):
    return getattr(enum_or_str, 'value', enum_or_str)


def _validate_document(request: RegisterRequest, allowed_types: Iterable[str], errors: List[str]) -> None:
    document_type = _value(request.document_type)
    if not request.document:
        errors.append("Document is required")
        return
    if document_type not in allowed_types:
        errors.append(f"Document type must be one of: {', '.join(allowed_types)}")
        return
    if not validation.validate_document(request.document, document_type):
        errors.append(f"Invalid {document_type.upper()}")


def _validate_vehicle(vehicle_type, vehicle_plate, errors: List[str]) -> None:
    if not vehicle_type:
        errors.append("Vehicle type is required for drivers")
        return
    if _value(vehicle_type) == VehicleType.BICYCLE.value:
        return
    if not validation.validate_vehicle_plate(vehicle_plate):
        errors.append("Invalid vehicle plate. Use AAA-0000 or AAA0A00")


def validate_registration(request: RegisterRequest) -> ValidationResult:
    """
    Validate a sign-up request against the rules of its portal.

    Clients need a phone, an address and a CPF or CNPJ. Wholesale accounts
    need a CNPJ and a company name. Drivers need a CPF, a driver licence, a
    vehicle and must accept the work policy. Admin accounts are created by
    seeding only.

    Args:
        request: Validated request body

    Returns:
        ValidationResult with every failing rule
    """
    errors: List[str] = []
    role = _value(request.role)

    if role not in SELF_REGISTER_ROLES:
        return ValidationResult.from_errors([f"Role '{role}' cannot self-register"])

    if not validation.validate_full_name(request.full_name):
        errors.append("Full name must have 3-100 characters, letters and spaces only")

    if not request.privacy_policy_accepted:
        errors.append("Privacy policy must be accepted")

    if not validation.validate_phone(request.phone):
        errors.append("Invalid phone. Use (DD) 9XXXX-XXXX or (DD) XXXX-XXXX")

    if role in (UserRole.CLIENT.value, UserRole.WHOLESALE.value):
        address_check = validation.validate_address_fields(
            request.address, request.city, request.state, request.cep
        )
        errors.extend(address_check.errors)

    if role == UserRole.CLIENT.value:
        _validate_document(request, (DocumentType.CPF.value, DocumentType.CNPJ.value), errors)

    elif role == UserRole.WHOLESALE.value:
        _validate_document(request, (DocumentType.CNPJ.value,), errors)
        if not request.company_name or not request.company_name.strip():
            errors.append("Company name is required for wholesale accounts")

    elif role == UserRole.DRIVER.value:
        _validate_document(request, (DocumentType.CPF.value,), errors)
        if not validation.validate_cnh_number(request.cnh_number):
            errors.append("CNH must contain 11 digits")
        _validate_vehicle(request.vehicle_type, request.vehicle_plate, errors)
        if not request.work_policy_accepted:
            errors.append("Work policy must be accepted by drivers")
        if request.cep and not validation.validate_cep(request.cep):
            errors.append("Invalid CEP. Expected 00000-000 or 00000000")

    return ValidationResult.from_errors(errors)


def build_profile(request: RegisterRequest, password_hash: str) -> Profile:
    """
    Create the profile entity for a validated sign-up.

    Clients are approved right away. Drivers and wholesale accounts wait in
    the admin approval queue.
    """
    now = datetime.utcnow()
    role = _value(request.role)
    document_type = _value(request.document_type)

    return Profile(
        email=request.email,
        password_hash=password_hash,
        full_name=request.full_name.strip(),
        role=role,
        phone=validation.format_phone(request.phone) if request.phone else None,
        document=validation.format_document(request.document, document_type) if request.document else None,
        document_type=document_type,
        company_name=request.company_name.strip() if request.company_name else None,
        address=request.address.strip() if request.address else None,
        city=request.city.strip() if request.city else None,
        state=request.state.strip().upper() if request.state else None,
        cep=validation.format_cep(request.cep) if request.cep else None,
        cnh_number=request.cnh_number,
        vehicle_type=_value(request.vehicle_type),
        vehicle_plate=validation.normalize_plate(request.vehicle_plate) if request.vehicle_plate else None,
        is_approved=role == UserRole.CLIENT.value,
        is_blocked=False,
        work_policy_accepted_at=now if request.work_policy_accepted else None,
        privacy_policy_accepted_at=now if request.privacy_policy_accepted else None
    )


def check_login_allowed(profile: Profile) -> ValidationResult:
    """Blocked or deleted profiles cannot start a session."""
    errors = []
    if profile.is_deleted():
        errors.append("Account no longer exists")
    elif profile.is_blocked:
        errors.append("Account is blocked. Contact support")
    return ValidationResult.from_errors(errors)


def approve_profile(profile: Profile, admin_id: str) -> WorkflowResult:
    """Approve a pending or blocked profile; approval always clears the block."""
    if profile.is_deleted():
        return WorkflowResult.fail("Cannot approve a deleted profile")
    if profile.is_approved:
        return WorkflowResult.fail("Profile is already approved")

    updated = profile.model_copy(update={"is_blocked": False, "is_approved": True})
    updated.update_timestamp(admin_id)
    return WorkflowResult.ok(updated)


def block_profile(profile: Profile, admin_id: str) -> WorkflowResult:
    if profile.is_blocked:
        return WorkflowResult.fail("Profile is already blocked")
    if profile.role == UserRole.ADMIN.value:
        return WorkflowResult.fail("Admin profiles cannot be blocked")
    if profile.id == admin_id:
        return WorkflowResult.fail("You cannot block your own profile")

    updated = profile.model_copy(update={"is_approved": False, "is_blocked": True})
    updated.update_timestamp(admin_id)
    return WorkflowResult.ok(updated)


def unblock_profile(profile: Profile, admin_id: str) -> WorkflowResult:
    """Lift a block. The profile goes back to pending and needs a new approval."""
    if not profile.is_blocked:
        return WorkflowResult.fail("Profile is not blocked")

    updated = profile.model_copy(update={"is_blocked": False, "is_approved": False})
    updated.update_timestamp(admin_id)
    return WorkflowResult.ok(updated)


def profile_status(profile: Profile) -> str:
    return profile.status


def classify_drivers(profiles: Iterable[Profile]) -> Dict[str, List[Profile]]:
    """Split driver profiles into the pending, approved and blocked admin tabs."""
    groups: Dict[str, List[Profile]] = {
        ProfileStatus.PENDING.value: [],
        ProfileStatus.APPROVED.value: [],
        ProfileStatus.BLOCKED.value: [],
    }
    for profile in profiles:
        if profile.role != UserRole.DRIVER.value or profile.is_deleted():
            continue
        groups[profile.status].append(profile)
    return groups


def apply_profile_update(profile: Profile, request: UpdateProfileRequest, user_id: str) -> WorkflowResult:
    """
    Apply a self-service profile edit.

    Only fields present in the request are validated and changed; values are
    stored in their formatted form.
    """
    changes = request.model_dump(exclude_unset=True, exclude_none=True)
    errors: List[str] = []

    if not changes:
        return WorkflowResult.fail("No changes provided")

    if "full_name" in changes and not validation.validate_full_name(changes["full_name"]):
        errors.append("Full name must have 3-100 characters, letters and spaces only")

    if "phone" in changes:
        if validation.validate_phone(changes["phone"]):
            changes["phone"] = validation.format_phone(changes["phone"])
        else:
            errors.append("Invalid phone. Use (DD) 9XXXX-XXXX or (DD) XXXX-XXXX")

    if "cep" in changes:
        if validation.validate_cep(changes["cep"]):
            changes["cep"] = validation.format_cep(changes["cep"])
        else:
            errors.append("Invalid CEP. Expected 00000-000 or 00000000")

    if "state" in changes:
        if validation.validate_state(changes["state"]):
            changes["state"] = changes["state"].strip().upper()
        else:
            errors.append("State must be a valid two letter UF code")

    if "address" in changes and not 5 <= len(changes["address"].strip()) <= 200:
        errors.append("Address must have between 5 and 200 characters")

    if "city" in changes and not 2 <= len(changes["city"].strip()) <= 100:
        errors.append("City must have between 2 and 100 characters")

    if "vehicle_type" in changes or "vehicle_plate" in changes:
        if profile.role != UserRole.DRIVER.value:
            errors.append("Only drivers have vehicle data")
        else:
            vehicle_type = changes.get("vehicle_type", profile.vehicle_type)
            vehicle_plate = changes.get("vehicle_plate", profile.vehicle_plate)
            _validate_vehicle(vehicle_type, vehicle_plate, errors)
            if "vehicle_plate" in changes:
                changes["vehicle_plate"] = validation.normalize_plate(changes["vehicle_plate"])
            if "vehicle_type" in changes:
                changes["vehicle_type"] = _value(changes["vehicle_type"])

    if errors:
        return WorkflowResult.fail("Invalid profile data", errors)

    updated = profile.model_copy(update=changes)
    updated.update_timestamp(user_id)
    return WorkflowResult.ok(updated)
