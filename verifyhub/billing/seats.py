"""
Seat arithmetic for per-seat subscriptions.

A seat is purchased capacity (Subscription.user_count). Active users are the
billable users currently in the directory. The two drift apart on purpose:
removing a user frees a seat for reuse rather than shrinking the
subscription, and concurrent adds can briefly push an organization over its
limit. Everything here is pure and never touches the database or Stripe.

Usage:
    info = calculate_seat_info(org.subscription, active_users=3)
    get_seat_status(info)   # "available" | "full" | "over-limit"
    format_seat_info(info)  # "3/5 seats used (2 available)"
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from verifyhub.billing.constants import SeatStatus

if TYPE_CHECKING:
    from verifyhub.billing.models import Subscription


@dataclass(frozen=True)
class SeatInfo:
    """Seat usage snapshot. Recomputed on every read, never stored."""

    subscribed_seats: int
    active_users: int
    available_seats: int

    def to_dict(self) -> dict:
        return {
            "subscribedSeats": self.subscribed_seats,
            "activeUsers": self.active_users,
            "availableSeats": self.available_seats,
        }


@dataclass(frozen=True)
class SeatCheck:
    can_add: bool
    needs_upgrade: bool


@dataclass(frozen=True)
class RemoveUserResult:
    subscribed_seats: int
    active_users: int
    available_seats: int
    message: str

    def to_dict(self) -> dict:
        return {
            "subscribedSeats": self.subscribed_seats,
            "activeUsers": self.active_users,
            "availableSeats": self.available_seats,
            "message": self.message,
        }


def subscribed_seats_for(subscription: Subscription | None) -> int:
    """
    Seats the organization pays for. A missing subscription or a null/zero
    user_count counts as one seat.
    """
    if subscription is None:
        return 1
    return subscription.user_count or 1


def seat_info_from_counts(subscribed_seats: int, active_users: int) -> SeatInfo:
    return SeatInfo(
        subscribed_seats=subscribed_seats,
        active_users=active_users,
        available_seats=max(0, subscribed_seats - active_users),
    )


def calculate_seat_info(
    subscription: Subscription | None,
    active_users: int,
) -> SeatInfo:
    return seat_info_from_counts(subscribed_seats_for(subscription), active_users)


def get_seat_status(info: SeatInfo) -> str:
    if info.available_seats > 0:
        return SeatStatus.AVAILABLE
    if info.active_users > info.subscribed_seats:
        return SeatStatus.OVER_LIMIT
    return SeatStatus.FULL


def can_add_user(info: SeatInfo) -> SeatCheck:
    """
    Adding is always possible in principle; the question is whether an
    existing seat covers the new user or the subscription has to grow.
    """
    if info.active_users + 1 <= info.subscribed_seats:
        return SeatCheck(can_add=True, needs_upgrade=False)
    return SeatCheck(can_add=True, needs_upgrade=True)


def handle_remove_user(
    subscription: Subscription | None,
    active_users: int,
) -> RemoveUserResult:
    """
    Seat bookkeeping after a billable user is removed.

    The subscription quantity is left alone; the freed seat stays paid for
    and is reused by the next add.
    """
    info = calculate_seat_info(subscription, max(0, active_users - 1))
    noun = "seat" if info.available_seats == 1 else "seats"
    return RemoveUserResult(
        subscribed_seats=info.subscribed_seats,
        active_users=info.active_users,
        available_seats=info.available_seats,
        message=(
            f"User removed. {info.available_seats} {noun} now available for reuse."
        ),
    )


def format_seat_info(info: SeatInfo) -> str:
    used = f"{info.active_users}/{info.subscribed_seats} seats used"
    if info.available_seats > 0:
        return f"{used} ({info.available_seats} available)"
    return f"{used} (at limit)"
