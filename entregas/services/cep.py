# SPDX-License-Identifier: Apache-2.0

"""
Postal code (CEP) lookup against the ViaCEP public API.
"""

import os
import logging
from typing import Dict, Optional

import requests
from opentelemetry import trace

from ..domain.validation import only_digits, format_cep

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 5


class InvalidCepError(ValueError):
    """Raised when the CEP does not have 8 digits."""
    pass


class CepLookupError(Exception):
    """Raised when ViaCEP cannot be reached or answers with garbage."""
    pass


class CepService:
    """ViaCEP client returning addresses with the platform's field names."""

    def __init__(self, base_url: Optional[str] = None, session: Optional[requests.Session] = None):
        self.base_url = (base_url or os.getenv("VIACEP_URL", "https://viacep.com.br/ws")).rstrip('/')
        self.session = session or requests.Session()

    def lookup(self, cep: str) -> Optional[Dict[str, str]]:
        """
        Resolve a CEP into an address.

        Args:
            cep: Postal code with or without hyphen

        Returns:
            Address dictionary, or None when ViaCEP does not know the CEP

        Raises:
            InvalidCepError: If the CEP does not have 8 digits
            CepLookupError: If the lookup itself failed
        """
        digits = only_digits(cep)
        if len(digits) != 8:
            raise InvalidCepError("CEP must contain 8 digits")

        with tracer.start_as_current_span("cep.lookup") as span:
            span.set_attribute("cep.value", digits)

            try:
                response = self.session.get(f"{self.base_url}/{digits}/json/", timeout=REQUEST_TIMEOUT)
                response.raise_for_status()
                data = response.json()
            except requests.RequestException as e:
                span.set_attribute("cep.result", "error")
                logger.error("CEP lookup failed", extra={"cep": digits, "error": str(e)})
                raise CepLookupError(f"CEP lookup failed: {e}")
            except ValueError as e:
                span.set_attribute("cep.result", "error")
                logger.error("CEP lookup returned invalid JSON", extra={"cep": digits, "error": str(e)})
                raise CepLookupError("CEP lookup returned an invalid response")

            if data.get("erro"):
                span.set_attribute("cep.result", "not_found")
                logger.info("CEP not found", extra={"cep": digits})
                return None

            span.set_attribute("cep.result", "found")
            return {
                "cep": format_cep(data.get("cep") or digits),
                "address": data.get("logradouro", ""),
                "complement": data.get("complemento", ""),
                "neighborhood": data.get("bairro", ""),
                "city": data.get("localidade", ""),
                "state": data.get("uf", ""),
            }
