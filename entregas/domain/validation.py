# SPDX-License-Identifier: Apache-2.0

"""
Brazilian document, phone and address validation.

Pure functions for CPF/CNPJ checksums, phone and CEP checks, and the
progressive formatters used to store normalised values.
"""

import re
from typing import Optional

from .results import ValidationResult

VALID_DDDS = frozenset([
    '11', '12', '13', '14', '15', '16', '17', '18', '19',
    '21', '22', '24', '27', '28',
    '31', '32', '33', '34', '35', '37', '38',
    '41', '42', '43', '44', '45', '46', '47', '48', '49',
    '51', '53', '54', '55',
    '61', '62', '63', '64', '65', '66', '67', '68', '69',
    '71', '73', '74', '75', '77', '79',
    '81', '82', '83', '84', '85', '86', '87', '88', '89',
    '91', '92', '93', '94', '95', '96', '97', '98', '99'
])

VALID_STATES = frozenset([
    'AC', 'AL', 'AP', 'AM', 'BA', 'CE', 'DF', 'ES', 'GO', 'MA', 'MT', 'MS', 'MG',
    'PA', 'PB', 'PR', 'PE', 'PI', 'RJ', 'RN', 'RS', 'RO', 'RR', 'SC', 'SP', 'SE', 'TO'
])

CEP_PATTERN = re.compile(r'[0-9]{5}-?[0-9]{3}')
# Legacy AAA-0000 and Mercosul AAA0A00, hyphen optional
PLATE_PATTERN = re.compile(r'[A-Z]{3}-?[0-9][A-Z0-9][0-9]{2}', re.IGNORECASE)
CNH_PATTERN = re.compile(r'[0-9]{11}')
NAME_PATTERN = re.compile(r'[a-zA-ZÀ-ÿ\s]+')
MOBILE_REPEATED = re.compile(r'([0-9])\1{8,}')
LANDLINE_REPEATED = re.compile(r'([0-9])\1{7,}')
# ASCII digits only
_DIGITS = re.compile(r'[0-9]+')


def only_digits(value: Optional[str]) -> str:
    """Strip everything but digits."""
    if not value:
        return ''
    return re.sub(r'[^0-9]', '', value)


def _is_repeated(digits: str) -> bool:
    return len(set(digits)) == 1


def _cpf_check_digit(digits: str, first_weight: int) -> int:
    total = sum(int(d) * (first_weight - i) for i, d in enumerate(digits))
    remainder = (total * 10) % 11
    return 0 if remainder in (10, 11) else remainder


def validate_cpf(value: Optional[str]) -> bool:
    """
    Validate a CPF checksum.

    Dots, hyphens and whitespace are ignored. Sequences of a single repeated
    digit pass the checksum but are not valid documents.
    """
    if not value:
        return False
    cpf = re.sub(r'[\s.\-]', '', value)
    if not _DIGITS.fullmatch(cpf) or len(cpf) != 11 or _is_repeated(cpf):
        return False

    if _cpf_check_digit(cpf[:9], 10) != int(cpf[9]):
        return False
    return _cpf_check_digit(cpf[:10], 11) == int(cpf[10])


def _cnpj_check_digit(numbers: str) -> int:
    size = len(numbers)
    total = 0
    pos = size - 7
    for i in range(size, 0, -1):
        total += int(numbers[size - i]) * pos
        pos -= 1
        if pos < 2:
            pos = 9
    return 0 if total % 11 < 2 else 11 - (total % 11)


def validate_cnpj(value: Optional[str]) -> bool:
    """Validate a CNPJ checksum ignoring ``.``, ``/``, ``-`` and whitespace."""
    if not value:
        return False
    cnpj = re.sub(r'[\s./\-]', '', value)
    if not _DIGITS.fullmatch(cnpj) or len(cnpj) != 14 or _is_repeated(cnpj):
        return False

    if _cnpj_check_digit(cnpj[:12]) != int(cnpj[12]):
        return False
    return _cnpj_check_digit(cnpj[:13]) == int(cnpj[13])


def validate_document(value: Optional[str], document_type: Optional[str]) -> bool:
    """Dispatch on ``cpf`` or ``cnpj``."""
    if document_type == 'cpf':
        return validate_cpf(value)
    if document_type == 'cnpj':
        return validate_cnpj(value)
    return False


def format_cpf(value: Optional[str]) -> str:
    """Format up to 11 digits as ``000.000.000-00``."""
    numbers = only_digits(value)[:11]
    numbers = re.sub(r'(\d{3})(\d)', r'\1.\2', numbers, count=1)
    numbers = re.sub(r'(\d{3})(\d)', r'\1.\2', numbers, count=1)
    return re.sub(r'(\d{3})(\d{1,2})', r'\1-\2', numbers, count=1)


def format_cnpj(value: Optional[str]) -> str:
    """Format up to 14 digits as ``00.000.000/0000-00``."""
    numbers = only_digits(value)[:14]
    numbers = re.sub(r'(\d{2})(\d)', r'\1.\2', numbers, count=1)
    numbers = re.sub(r'(\d{3})(\d)', r'\1.\2', numbers, count=1)
    numbers = re.sub(r'(\d{3})(\d)', r'\1/\2', numbers, count=1)
    return re.sub(r'(\d{4})(\d)', r'\1-\2', numbers, count=1)


def format_document(value: Optional[str], document_type: str = 'cpf') -> str:
    if document_type == 'cnpj':
        return format_cnpj(value)
    return format_cpf(value)


def validate_phone(value: Optional[str]) -> bool:
    """
    Validate a Brazilian phone number with area code.

    Eleven digits are a mobile number and must have 9 right after the DDD.
    The subscriber part may not be one digit repeated throughout.
    """
    numbers = only_digits(value)
    if len(numbers) not in (10, 11):
        return False

    if numbers[:2] not in VALID_DDDS:
        return False

    subscriber = numbers[2:]
    if len(numbers) == 11:
        if numbers[2] != '9':
            return False
        return MOBILE_REPEATED.search(subscriber) is None

    return LANDLINE_REPEATED.search(subscriber) is None


def format_phone(value: Optional[str]) -> str:
    """Format as ``(DD) 9XXXX-XXXX`` or ``(DD) XXXX-XXXX``."""
    numbers = only_digits(value)[:11]
    numbers = re.sub(r'(\d{2})(\d)', r'(\1) \2', numbers, count=1)
    if len(only_digits(value)) <= 10:
        return re.sub(r'(\d{4})(\d)', r'\1-\2', numbers, count=1)
    return re.sub(r'(\d{5})(\d)', r'\1-\2', numbers, count=1)


def validate_cep(value: Optional[str]) -> bool:
    """Accept ``00000-000`` or ``00000000``."""
    if not value:
        return False
    return CEP_PATTERN.fullmatch(value) is not None


def format_cep(value: Optional[str]) -> str:
    numbers = only_digits(value)[:8]
    return re.sub(r'(\d{5})(\d)', r'\1-\2', numbers, count=1)


def validate_cnh_number(value: Optional[str]) -> bool:
    return bool(value) and CNH_PATTERN.fullmatch(value) is not None


def validate_vehicle_plate(value: Optional[str]) -> bool:
    return bool(value) and PLATE_PATTERN.fullmatch(value.strip()) is not None


def normalize_plate(value: str) -> str:
    return value.strip().upper()


def validate_state(value: Optional[str]) -> bool:
    return bool(value) and value.strip().upper() in VALID_STATES


def validate_full_name(value: Optional[str]) -> bool:
    if not value:
        return False
    name = value.strip()
    return 3 <= len(name) <= 100 and NAME_PATTERN.fullmatch(name) is not None


def validate_address_fields(
    address: Optional[str],
    city: Optional[str],
    state: Optional[str],
    cep: Optional[str]
) -> ValidationResult:
    """
    Validate a full postal address.

    Args:
        address: Street and number (5-200 characters)
        city: City name (2-100 characters)
        state: Two letter UF code
        cep: Postal code

    Returns:
        ValidationResult listing every failing field
    """
    errors = []

    if not address or not 5 <= len(address.strip()) <= 200:
        errors.append("Address must have between 5 and 200 characters")

    if not city or not 2 <= len(city.strip()) <= 100:
        errors.append("City must have between 2 and 100 characters")

    if not validate_state(state):
        errors.append("State must be a valid two letter UF code")

    if not validate_cep(cep):
        errors.append("Invalid CEP. Expected 00000-000 or 00000000")

    return ValidationResult.from_errors(errors)
