# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Request and result objects of the points core service."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class AwardRequest:
    """Add points to both ``total_exp`` and ``balance``."""

    amount: int
    description: str = ""
    source: str = "api"
    source_plugin: Optional[str] = None
    idempotency_key: Optional[str] = None
    apply_level_bonus: bool = False
    multiplier: float = 1.0
    operator_id: Optional[str] = None
    nickname: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ConsumeRequest:
    """Spend points from ``balance``; ``idempotency_key`` is mandatory."""

    amount: int
    idempotency_key: Optional[str]
    description: str = ""
    source_plugin: Optional[str] = None
    order_id: Optional[str] = None
    operator_id: Optional[str] = None
    nickname: str = ""


@dataclass(frozen=True)
class AwardResult:
    success: bool
    group_id: str = ""
    user_id: str = ""
    amount_awarded: int = 0
    new_balance: int = 0
    new_total_exp: int = 0
    level: int = 1
    level_name: str = ""
    level_up: bool = False
    new_titles: Tuple[str, ...] = ()
    transaction_id: Optional[str] = None
    replayed: bool = False
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["new_titles"] = list(self.new_titles)
        return data


@dataclass(frozen=True)
class ConsumeResult:
    success: bool
    group_id: str = ""
    user_id: str = ""
    amount: int = 0
    new_balance: int = 0
    transaction_id: Optional[str] = None
    replayed: bool = False
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TransferResult:
    success: bool
    group_id: str = ""
    from_user_id: str = ""
    to_user_id: str = ""
    amount: int = 0
    from_balance: int = 0
    to_balance: int = 0
    replayed: bool = False
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BalanceInfo:
    """Read-only view of a user's two counters."""

    group_id: str
    user_id: str
    nickname: str = ""
    balance: int = 0
    total_exp: int = 0
    level: int = 1
    level_name: str = ""
    level_icon: str = ""
    exp_to_next_level: Optional[int] = None
    exists: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
