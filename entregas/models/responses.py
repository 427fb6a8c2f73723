# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models for API endpoints with HAL support.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class HalLink(BaseModel):
    """HAL link representation."""

    href: str = Field(..., description="Link URL")
    method: Optional[str] = Field(None, description="HTTP method")
    type: Optional[str] = Field(None, description="Content type")
    title: Optional[str] = Field(None, description="Link title")
    templated: Optional[bool] = Field(None, description="Whether URL is templated")


class AuthTokenResponse(BaseModel):
    """Token pair returned by login and registration."""

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_in: int
    access_expires_at: Optional[str] = None
    refresh_expires_at: Optional[str] = None
    user: Dict[str, Any] = Field(default_factory=dict)
    permissions: List[str] = Field(default_factory=list)


class RankProgress(BaseModel):
    """Progress of one criterion towards the next rank."""

    criterion: str
    current: float
    required: float
    percent: float


class DriverStatsResponse(BaseModel):
    """Driver statistics with rank information."""

    stats: Dict[str, Any]
    rank: str
    next_rank: Optional[str] = None
    next_rank_requirements: Optional[Dict[str, float]] = None
    completion_rate: float
    progress: List[RankProgress] = Field(default_factory=list)


class WalletResponse(BaseModel):
    """Driver wallet summary."""

    driver_id: str
    available_balance: float
    total_credits: float
    total_debits: float
    pending_withdrawals: float
    transactions: List[Dict[str, Any]] = Field(default_factory=list)
