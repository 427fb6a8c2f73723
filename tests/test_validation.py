# SPDX-License-Identifier: Apache-2.0

"""
Tests for Brazilian document, phone and address validation.
"""

import pytest

from entregas.domain import validation


class TestCpf:
    """CPF checksum validation."""

    def test_valid_cpf_plain_and_formatted(self):
        assert validation.validate_cpf("52998224725")
        assert validation.validate_cpf("529.982.247-25")
        assert validation.validate_cpf(" 529 982 247 25 ")

    def test_wrong_check_digits(self):
        assert not validation.validate_cpf("52998224726")
        assert not validation.validate_cpf("52998224715")

    @pytest.mark.parametrize("value", ["00000000000", "111.111.111-11", "99999999999"])
    def test_repeated_digits_rejected(self, value):
        assert not validation.validate_cpf(value)

    @pytest.mark.parametrize("value", [None, "", "5299822472", "529982247250", "5299822472a"])
    def test_malformed_cpf(self, value):
        assert not validation.validate_cpf(value)


class TestCnpj:
    """CNPJ checksum validation."""

    def test_valid_cnpj_plain_and_formatted(self):
        assert validation.validate_cnpj("11222333000181")
        assert validation.validate_cnpj("11.222.333/0001-81")

    def test_wrong_check_digits(self):
        assert not validation.validate_cnpj("11222333000182")
        assert not validation.validate_cnpj("11222333000191")

    def test_repeated_digits_rejected(self):
        assert not validation.validate_cnpj("00000000000000")
        assert not validation.validate_cnpj("11.111.111/1111-11")

    def test_wrong_length(self):
        assert not validation.validate_cnpj("1122233300018")
        assert not validation.validate_cnpj(None)

    def test_validate_document_dispatch(self):
        assert validation.validate_document("52998224725", "cpf")
        assert validation.validate_document("11222333000181", "cnpj")
        assert not validation.validate_document("52998224725", "cnpj")
        assert not validation.validate_document("52998224725", "rg")


class TestFormatting:
    """Progressive formatters used when storing values."""

    def test_format_cpf(self):
        assert validation.format_cpf("52998224725") == "529.982.247-25"
        assert validation.format_cpf("529.982.247-25") == "529.982.247-25"

    def test_format_cnpj(self):
        assert validation.format_cnpj("11222333000181") == "11.222.333/0001-81"

    def test_format_document_defaults_to_cpf(self):
        assert validation.format_document("52998224725") == "529.982.247-25"
        assert validation.format_document("11222333000181", "cnpj") == "11.222.333/0001-81"

    def test_format_phone(self):
        assert validation.format_phone("11987654321") == "(11) 98765-4321"
        assert validation.format_phone("1134567890") == "(11) 3456-7890"

    def test_format_cep(self):
        assert validation.format_cep("01310100") == "01310-100"
        assert validation.format_cep("01310-100") == "01310-100"

    def test_only_digits(self):
        assert validation.only_digits("(11) 98765-4321") == "11987654321"
        assert validation.only_digits(None) == ""


class TestPhone:
    """Phone numbers with DDD."""

    @pytest.mark.parametrize("value", ["(11) 98765-4321", "11987654321", "(21) 3456-7890", "8532123456"])
    def test_valid_phones(self, value):
        assert validation.validate_phone(value)

    def test_unknown_ddd(self):
        assert not validation.validate_phone("(20) 98765-4321")
        assert not validation.validate_phone("(10) 3456-7890")

    def test_mobile_needs_leading_nine(self):
        assert not validation.validate_phone("(11) 88765-4321")

    def test_repeated_subscriber_digits(self):
        assert not validation.validate_phone("(11) 99999-9999")
        assert not validation.validate_phone("(11) 3333-3333")

    def test_wrong_length(self):
        assert not validation.validate_phone("119876543")
        assert not validation.validate_phone("119876543210")
        assert not validation.validate_phone(None)


class TestAddress:
    """CEP, plate, CNH, state and address checks."""

    def test_cep_with_and_without_hyphen(self):
        assert validation.validate_cep("01310-100")
        assert validation.validate_cep("01310100")
        assert not validation.validate_cep("0131-0100")
        assert not validation.validate_cep("0131010")
        assert not validation.validate_cep(None)

    @pytest.mark.parametrize("plate", ["ABC-1234", "ABC1234", "abc1d23", "BRA2E19"])
    def test_valid_plates(self, plate):
        assert validation.validate_vehicle_plate(plate)

    @pytest.mark.parametrize("plate", ["AB-1234", "ABCD123", "1234ABC", "", None])
    def test_invalid_plates(self, plate):
        assert not validation.validate_vehicle_plate(plate)

    def test_cnh_needs_eleven_digits(self):
        assert validation.validate_cnh_number("12345678901")
        assert not validation.validate_cnh_number("1234567890")
        assert not validation.validate_cnh_number("1234567890a")

    def test_state_codes(self):
        assert validation.validate_state("sp")
        assert validation.validate_state("DF")
        assert not validation.validate_state("XX")

    def test_full_name(self):
        assert validation.validate_full_name("José da Conceição")
        assert not validation.validate_full_name("Jo")
        assert not validation.validate_full_name("R2D2 Robot")

    def test_address_fields_collect_every_error(self):
        result = validation.validate_address_fields("Rua", "S", "XX", "123")

        assert not result.is_valid
        assert len(result.errors) == 4

    def test_address_fields_valid(self):
        result = validation.validate_address_fields("Rua das Flores, 123", "São Paulo", "SP", "01310-100")

        assert result.is_valid
        assert result.errors == []


class TestNonAsciiDigits:
    """Only ASCII digits count, whatever Unicode considers a digit."""

    @pytest.mark.parametrize("value", ["5299822472²", "٥٢٩٩٨٢٢٤٧٢٥", "５２９９８２２４７２５"])
    def test_cpf(self, value):
        assert not validation.validate_cpf(value)

    def test_cnpj(self):
        assert not validation.validate_cnpj("1122233300018¹")
        assert not validation.validate_cnpj("١١٢٢٢٣٣٣٠٠٠١٨١")

    def test_cep_and_cnh(self):
        assert not validation.validate_cep("٠١٣١٠١٠٠")
        assert not validation.validate_cnh_number("١٢٣٤٥٦٧٨٩٠١")

    def test_trailing_newline(self):
        assert not validation.validate_cep("01310-100\n")
        assert not validation.validate_cnh_number("12345678901\n")
        assert not validation.validate_vehicle_plate("ABC1234\n")

    def test_only_digits_drops_other_digits(self):
        assert validation.only_digits("11 ٩8765-4321") == "1187654321"
        assert validation.format_cep("٠١٣١٠١٠٠") == ""
