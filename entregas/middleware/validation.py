# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request validation helpers using Pydantic models.
Invalid input is raised as ValidationException and rendered by the
registered error handlers.
"""

from functools import wraps
from flask import request
from typing import Type, Callable, Dict, Any, List
from pydantic import BaseModel, ValidationError
from opentelemetry import trace
import logging

from .error_handler import ValidationException

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


def format_validation_errors(validation_error: ValidationError) -> List[Dict[str, Any]]:
    """
    Format Pydantic validation errors for API response.

    Args:
        validation_error: Pydantic ValidationError

    Returns:
        List of formatted error dictionaries
    """
    errors = []

    for error in validation_error.errors():
        field_path = ".".join(str(loc) for loc in error["loc"])
        input_value = error.get("input")
        errors.append({
            "field": field_path,
            "message": error["msg"],
            "type": error["type"],
            "input": input_value if isinstance(input_value, (str, int, float, bool, type(None))) else None
        })

    return errors


def parse_model(model_class: Type[BaseModel], data: Dict[str, Any], source: str = "body") -> BaseModel:
    """
    Validate ``data`` against ``model_class``.

    Raises:
        ValidationException: With one entry per failing field
    """
    try:
        return model_class.model_validate(data)
    except ValidationError as e:
        validation_errors = format_validation_errors(e)
        logger.warning(
            "Request validation failed",
            extra={
                "model": model_class.__name__,
                "source": source,
                "path": request.path,
                "method": request.method,
                "errors": validation_errors
            }
        )
        raise ValidationException(
            f"Request validation failed for {model_class.__name__}",
            validation_errors
        )


def validate_body(model_class: Type[BaseModel]) -> Callable:
    """
    Decorator validating the JSON body against ``model_class``.

    The validated model is passed as the first argument, or right after the
    user context when stacked under ``require_jwt``.
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            with tracer.start_as_current_span("validation.validate_json_body") as span:
                span.set_attributes({
                    "validation.model": model_class.__name__,
                    "http.method": request.method,
                    "http.path": request.path
                })

                json_data = request.get_json(silent=True)
                if not isinstance(json_data, dict):
                    span.set_attribute("validation.result", "invalid_json")
                    raise ValidationException(
                        "Request body must be a JSON object",
                        [{
                            "field": "body",
                            "message": "Expected a JSON object with Content-Type: application/json",
                            "type": "json_error",
                            "input": None
                        }]
                    )

                validated = parse_model(model_class, json_data)
                span.set_attribute("validation.result", "success")

            return f(*args, validated, **kwargs)

        return decorated_function
    return decorator
