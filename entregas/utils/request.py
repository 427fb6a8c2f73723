# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request utilities for extracting pagination and filter parameters.
"""

from flask import request
from typing import Dict, Any, Optional, List
import logging

logger = logging.getLogger(__name__)

_RESERVED_PARAMS = ('page', 'page_size', 'sort_by', 'sort_order')


class RequestParser:
    """Utility for parsing and extracting request data."""

    @staticmethod
    def get_pagination_params(
        default_page: int = 1,
        default_page_size: int = 20,
        max_page_size: int = 100
    ) -> Dict[str, int]:
        """
        Extract pagination parameters from request.

        Invalid values fall back to the defaults; page size is clamped to
        ``max_page_size``.
        """
        try:
            page = max(1, int(request.args.get('page', default_page)))
        except (ValueError, TypeError):
            page = default_page

        try:
            page_size = int(request.args.get('page_size', default_page_size))
            page_size = max(1, min(page_size, max_page_size))
        except (ValueError, TypeError):
            page_size = default_page_size

        return {
            'page': page,
            'page_size': page_size
        }

    @staticmethod
    def get_filter_params(
        allowed_filters: Optional[List[str]] = None,
        type_conversions: Optional[Dict[str, type]] = None
    ) -> Dict[str, Any]:
        """
        Extract filter parameters from request.

        Args:
            allowed_filters: List of allowed filter parameters
            type_conversions: Dictionary mapping filter names to types

        Returns:
            Dictionary with filter parameters
        """
        filters = {}
        type_conversions = type_conversions or {}

        for key, value in request.args.items():
            if key in _RESERVED_PARAMS:
                continue

            if allowed_filters and key not in allowed_filters:
                continue

            if key in type_conversions:
                target_type = type_conversions[key]
                try:
                    if target_type == bool:
                        value = value.lower() in ['true', '1', 'yes', 'on']
                    else:
                        value = target_type(value)
                except (ValueError, TypeError):
                    logger.warning(f"Failed to convert filter {key} to {target_type}")
                    continue

            filters[key] = value

        return filters
