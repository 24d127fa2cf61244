# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK) - Points Core Service                                     #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""
Dual-ledger points service.

Every user record carries two counters:
- ``total_exp``: grows on every award, never shrinks, drives levels and rankings
- ``balance``: grows on awards, shrinks on consumption, never negative

Each mutation runs Validate -> Lookup/Create -> Idempotency check -> Mutate a
copy -> Persist -> Return, under the per-user lock of the group record.
"""

from __future__ import annotations

import math
import time
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

from services.checkin.key_locks import KeyedLocks, group_user_key
from services.checkin.ledger_store import LedgerStore
from services.checkin.levels import (
    apply_level,
    equip_title,
    exp_to_next_level,
    get_title,
    grant_eligible_titles,
    is_title_active,
    signin_bonus_for,
)
from services.checkin.models import (
    TX_AWARD,
    TX_CONSUME,
    TX_RESET,
    TransactionRecord,
    UserLedgerRecord,
    new_transaction_id,
    now_utc_iso,
)
from services.checkin.points_requests import (
    AwardRequest,
    AwardResult,
    ConsumeRequest,
    BalanceInfo,
    ConsumeResult,
    TransferResult,
)
from services.checkin.validation import validate_amount, validate_award, validate_consume
from services.exceptions import LedgerPersistenceError, LedgerValidationError, MissingIdempotencyKeyError
from utils.logging_utils import get_module_logger
from utils.observability import get_structured_logger, metrics

logger = get_module_logger("points")
structured_logger = get_structured_logger("dck.points.events", context={"service": "PointsService"})

BeforePersistHook = Callable[[UserLedgerRecord, int], None]


def bonus_amount(amount: int, multiplier: float, level: int) -> int:
    """``floor(amount * multiplier * (1 + signin_bonus(level)))``."""
    # Rounding first keeps 20 * 1.15 at 23 instead of 22.999...
    return int(math.floor(round(amount * multiplier * (1 + signin_bonus_for(level)), 6)))


def _award_replay(group_id: str, record: UserLedgerRecord, tx: TransactionRecord) -> AwardResult:
    return AwardResult(
        success=True,
        group_id=group_id,
        user_id=record.user_id,
        amount_awarded=tx.amount,
        new_balance=tx.resulting_balance,
        new_total_exp=tx.resulting_exp,
        level=record.level,
        level_name=record.level_name,
        transaction_id=tx.id,
        replayed=True,
    )


class PointsService:
    """Award, consume and query points of group members."""

    def __init__(self, store: LedgerStore, locks: KeyedLocks,
                 now_fn: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.locks = locks
        self._now = now_fn or datetime.now

    # ------------------------------------------------------------------
    # Award
    # ------------------------------------------------------------------
    def award(self, group_id: str, user_id: str, request: AwardRequest) -> AwardResult:
        """Add points to exp and balance. A known idempotency key replays the original result."""
        group_id, user_id = str(group_id), str(user_id)
        start_time = time.time()
        metrics.increment("points.award.attempts")

        try:
            validate_award(request)
        except LedgerValidationError as exc:
            metrics.increment("points.award.validation_failed")
            logger.info("Award rejected for %s/%s: %s", group_id, user_id, exc)
            return AwardResult(success=False, group_id=group_id, user_id=user_id,
                               error_message=exc.message, error_code=exc.error_code)

        with self.locks.hold(group_user_key(group_id, user_id)):
            try:
                result = self.award_locked(group_id, user_id, request)
            except LedgerPersistenceError as exc:
                metrics.increment("points.award.persistence_failed")
                logger.error("Award persistence failed (group=%s, user=%s, operation=award): %s",
                             group_id, user_id, exc, exc_info=True)
                return AwardResult(success=False, group_id=group_id, user_id=user_id,
                                   error_message=exc.message, error_code=exc.error_code)

        metrics.histogram("points.award.duration_ms", (time.time() - start_time) * 1000)
        return result

    def award_locked(self, group_id: str, user_id: str, request: AwardRequest, *,
                     before_persist: Optional[BeforePersistHook] = None,
                     special_flags: Iterable[str] = (),
                     group_name: Optional[str] = None) -> AwardResult:
        """Award body for callers already holding the group user lock.

        ``before_persist(record, amount)`` runs on the mutated copy before it is saved so
        the check-in flow can add its history entry in the same write.
        Raises :class:`LedgerPersistenceError` when the save fails.
        """
        record = self.store.get_or_new_group_user(group_id, user_id, request.nickname)
        prior = record.find_transaction(request.idempotency_key)
        if prior is not None:
            metrics.increment("points.award.replayed")
            logger.debug("Award replay for %s/%s key=%s", group_id, user_id, request.idempotency_key)
            return _award_replay(group_id, record, prior)

        if request.apply_level_bonus:
            amount = bonus_amount(request.amount, request.multiplier, record.level)
        else:
            amount = int(math.floor(round(request.amount * request.multiplier, 6)))
        amount = max(amount, 1)

        record.total_exp += amount
        record.balance += amount
        if before_persist is not None:
            before_persist(record, amount)
        level_up = apply_level(record)
        today = self._now().date()
        new_titles = grant_eligible_titles(record, today, special_flags)

        tx = TransactionRecord(
            id=new_transaction_id(),
            timestamp=now_utc_iso(),
            type=TX_AWARD,
            amount=amount,
            resulting_balance=record.balance,
            resulting_exp=record.total_exp,
            description=request.description,
            idempotency_key=request.idempotency_key,
            operator_id=request.operator_id,
            source=request.source,
            source_plugin=request.source_plugin,
            details=dict(request.details),
        )
        record.transaction_log.append(tx)

        self.store.save_group_users(group_id, record, group_name=group_name)

        metrics.increment("points.award.total")
        metrics.histogram("points.award.amount", amount)
        if level_up:
            metrics.increment("points.level_up.total")
            logger.info("User %s in group %s reached level %d (%s)",
                        user_id, group_id, record.level, record.level_name)
        structured_logger.info("points_awarded", extra={
            "group_id": group_id,
            "user_id": user_id,
            "amount": amount,
            "source": request.source,
            "balance": record.balance,
            "total_exp": record.total_exp,
            "level_up": level_up,
        })

        return AwardResult(
            success=True,
            group_id=group_id,
            user_id=user_id,
            amount_awarded=amount,
            new_balance=record.balance,
            new_total_exp=record.total_exp,
            level=record.level,
            level_name=record.level_name,
            level_up=level_up,
            new_titles=tuple(new_titles),
            transaction_id=tx.id,
        )

    # ------------------------------------------------------------------
    # Consume
    # ------------------------------------------------------------------
    def consume(self, group_id: str, user_id: str, request: ConsumeRequest) -> ConsumeResult:
        """Spend balance. ``total_exp`` is never touched."""
        group_id, user_id = str(group_id), str(user_id)
        metrics.increment("points.consume.attempts")

        try:
            validate_consume(request)
        except LedgerValidationError as exc:
            metrics.increment("points.consume.validation_failed")
            logger.info("Consume rejected for %s/%s: %s", group_id, user_id, exc)
            return ConsumeResult(success=False, group_id=group_id, user_id=user_id,
                                 error_message=exc.message, error_code=exc.error_code)

        with self.locks.hold(group_user_key(group_id, user_id)):
            record = self.store.get_group_user(group_id, user_id)
            prior = record.find_transaction(request.idempotency_key) if record else None
            if prior is not None:
                metrics.increment("points.consume.replayed")
                return ConsumeResult(success=True, group_id=group_id, user_id=user_id,
                                     amount=abs(prior.amount), new_balance=prior.resulting_balance,
                                     transaction_id=prior.id, replayed=True)

            balance = record.balance if record else 0
            if record is None or balance < request.amount:
                metrics.increment("points.consume.insufficient")
                logger.info("Insufficient balance for %s/%s: balance=%d requested=%d",
                            group_id, user_id, balance, request.amount)
                return ConsumeResult(
                    success=False, group_id=group_id, user_id=user_id, amount=request.amount,
                    new_balance=balance,
                    error_message=f"Insufficient balance: {balance} < {request.amount}",
                    error_code="INSUFFICIENT_BALANCE",
                )

            if request.nickname:
                record.nickname = request.nickname
            record.balance -= request.amount
            tx = TransactionRecord(
                id=new_transaction_id(),
                timestamp=now_utc_iso(),
                type=TX_CONSUME,
                amount=-request.amount,
                resulting_balance=record.balance,
                resulting_exp=record.total_exp,
                description=request.description,
                idempotency_key=request.idempotency_key,
                operator_id=request.operator_id,
                source_plugin=request.source_plugin,
                order_id=request.order_id,
            )
            record.transaction_log.append(tx)

            try:
                self.store.save_group_users(group_id, record)
            except LedgerPersistenceError as exc:
                metrics.increment("points.consume.persistence_failed")
                logger.error("Consume persistence failed (group=%s, user=%s, operation=consume): %s",
                             group_id, user_id, exc, exc_info=True)
                return ConsumeResult(success=False, group_id=group_id, user_id=user_id,
                                     amount=request.amount, new_balance=balance,
                                     error_message=exc.message, error_code=exc.error_code)

        metrics.increment("points.consume.total")
        metrics.histogram("points.consume.amount", request.amount)
        structured_logger.info("points_consumed", extra={
            "group_id": group_id,
            "user_id": user_id,
            "amount": request.amount,
            "order_id": request.order_id,
            "balance": record.balance,
        })
        return ConsumeResult(success=True, group_id=group_id, user_id=user_id, amount=request.amount,
                             new_balance=record.balance, transaction_id=tx.id)

    # ------------------------------------------------------------------
    # Transfer / admin
    # ------------------------------------------------------------------
    def transfer(self, group_id: str, from_user_id: str, to_user_id: str, amount: int,
                 idempotency_key: str, description: str = "") -> TransferResult:
        """Move balance between two members of one group. Exp stays where it was earned."""
        group_id, from_user_id, to_user_id = str(group_id), str(from_user_id), str(to_user_id)
        base = TransferResult(success=False, group_id=group_id, from_user_id=from_user_id,
                              to_user_id=to_user_id, amount=amount if isinstance(amount, int) else 0)
        try:
            if not (idempotency_key or "").strip():
                raise MissingIdempotencyKeyError("Transfers require an idempotency key")
            validate_amount(amount)
            if from_user_id == to_user_id:
                raise LedgerValidationError("Cannot transfer points to yourself")
        except LedgerValidationError as exc:
            return replace(base, error_message=exc.message, error_code=exc.error_code)

        keys = sorted([group_user_key(group_id, from_user_id), group_user_key(group_id, to_user_id)])
        with self.locks.hold(*keys):
            sender = self.store.get_group_user(group_id, from_user_id)
            prior = sender.find_transaction(idempotency_key) if sender else None
            receiver = self.store.get_or_new_group_user(group_id, to_user_id)
            if prior is not None:
                return replace(base, success=True, from_balance=prior.resulting_balance,
                                to_balance=receiver.balance, replayed=True)

            balance = sender.balance if sender else 0
            if sender is None or balance < amount:
                return replace(base, from_balance=balance, to_balance=receiver.balance,
                                error_message=f"Insufficient balance: {balance} < {amount}",
                                error_code="INSUFFICIENT_BALANCE")

            sender.balance -= amount
            receiver.balance += amount
            timestamp = now_utc_iso()
            sender.transaction_log.append(TransactionRecord(
                id=new_transaction_id(), timestamp=timestamp, type=TX_CONSUME, amount=-amount,
                resulting_balance=sender.balance, resulting_exp=sender.total_exp,
                description=description or f"Transfer to {to_user_id}", idempotency_key=idempotency_key,
                source="transfer", details={"to_user_id": to_user_id},
            ))
            receiver.transaction_log.append(TransactionRecord(
                id=new_transaction_id(), timestamp=timestamp, type=TX_AWARD, amount=amount,
                resulting_balance=receiver.balance, resulting_exp=receiver.total_exp,
                description=description or f"Transfer from {from_user_id}",
                idempotency_key=f"{idempotency_key}:in", source="transfer",
                details={"from_user_id": from_user_id},
            ))
            try:
                self.store.save_group_users(group_id, sender, receiver)
            except LedgerPersistenceError as exc:
                logger.error("Transfer persistence failed (group=%s, user=%s, operation=transfer): %s",
                             group_id, from_user_id, exc, exc_info=True)
                return replace(base, from_balance=balance, error_message=exc.message,
                                error_code=exc.error_code)

        metrics.increment("points.transfer.total")
        logger.info("Transferred %d points in group %s from %s to %s",
                    amount, group_id, from_user_id, to_user_id)
        return replace(base, success=True, from_balance=sender.balance, to_balance=receiver.balance)

    def reset_balance(self, group_id: str, user_id: str, operator_id: Optional[str] = None,
                      description: str = "") -> ConsumeResult:
        """Admin reset: zero the balance, keep exp, level and history."""
        group_id, user_id = str(group_id), str(user_id)
        with self.locks.hold(group_user_key(group_id, user_id)):
            record = self.store.get_group_user(group_id, user_id)
            if record is None:
                return ConsumeResult(success=False, group_id=group_id, user_id=user_id,
                                     error_message="Unknown user", error_code="USER_NOT_FOUND")
            previous = record.balance
            record.balance = 0
            record.transaction_log.append(TransactionRecord(
                id=new_transaction_id(), timestamp=now_utc_iso(), type=TX_RESET, amount=-previous,
                resulting_balance=0, resulting_exp=record.total_exp,
                description=description or "Balance reset by administrator", operator_id=operator_id,
            ))
            try:
                self.store.save_group_users(group_id, record)
            except LedgerPersistenceError as exc:
                logger.error("Reset persistence failed (group=%s, user=%s, operation=reset): %s",
                             group_id, user_id, exc, exc_info=True)
                return ConsumeResult(success=False, group_id=group_id, user_id=user_id,
                                     new_balance=previous, error_message=exc.message,
                                     error_code=exc.error_code)

        logger.info("Balance of %s in group %s reset by %s (was %d)", user_id, group_id, operator_id, previous)
        return ConsumeResult(success=True, group_id=group_id, user_id=user_id, amount=previous, new_balance=0)

    # ------------------------------------------------------------------
    # Titles
    # ------------------------------------------------------------------
    def equip_title(self, group_id: str, user_id: str, title_id: Optional[str]) -> UserLedgerRecord:
        """Equip (or with ``None`` unequip) a title. Raises :class:`TitleError`."""
        group_id, user_id = str(group_id), str(user_id)
        today = self._now().date()
        with self.locks.hold(group_user_key(group_id, user_id)):
            def _equip(record: UserLedgerRecord) -> UserLedgerRecord:
                equip_title(record, title_id, today)
                return record

            return self.store.mutate_group_user(group_id, user_id, _equip)

    def list_titles(self, group_id: str, user_id: str) -> List[dict]:
        record = self.store.get_group_user(group_id, user_id)
        if record is None:
            return []
        today = self._now().date()
        titles = []
        for owned in record.titles:
            definition = get_title(owned.title_id)
            titles.append({
                "title_id": owned.title_id,
                "name": definition.name if definition else owned.title_id,
                "icon": definition.icon if definition else "",
                "acquired_at": owned.acquired_at,
                "expires_at": owned.expires_at,
                "equipped": owned.equipped,
                "active": is_title_active(owned, today),
            })
        return titles

    # ------------------------------------------------------------------
    # Queries (lock-free, copies only)
    # ------------------------------------------------------------------
    def check_balance(self, group_id: str, user_id: str) -> BalanceInfo:
        group_id, user_id = str(group_id), str(user_id)
        record = self.store.get_group_user(group_id, user_id)
        if record is None:
            return BalanceInfo(group_id=group_id, user_id=user_id, exp_to_next_level=exp_to_next_level(0))
        return BalanceInfo(
            group_id=group_id,
            user_id=user_id,
            nickname=record.nickname,
            balance=record.balance,
            total_exp=record.total_exp,
            level=record.level,
            level_name=record.level_name,
            level_icon=record.level_icon,
            exp_to_next_level=exp_to_next_level(record.total_exp),
            exists=True,
        )

    def get_user_points(self, group_id: str, user_id: str) -> Optional[UserLedgerRecord]:
        return self.store.get_group_user(group_id, user_id)

    def get_transactions(self, group_id: str, user_id: str, limit: int = 20, offset: int = 0,
                         tx_type: Optional[str] = None) -> Tuple[List[TransactionRecord], int]:
        """Newest-first page of the user's transactions plus the total count."""
        record = self.store.get_group_user(group_id, user_id)
        if record is None:
            return [], 0
        entries = [tx for tx in reversed(record.transaction_log) if tx_type is None or tx.type == tx_type]
        offset = max(0, offset)
        limit = max(1, limit)
        return entries[offset:offset + limit], len(entries)

