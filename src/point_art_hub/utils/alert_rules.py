"""Threshold rules that turn inventory and sales state into notifications.

Everything here is a pure function of its arguments: no storage access,
no clock reads beyond what the caller passes in.
"""

from collections.abc import Iterable, Mapping
from datetime import date, timedelta

from point_art_hub.models.collection import Collection, InventoryItem
from point_art_hub.models.notification import (
    LowStockItem,
    MilestoneType,
    NotificationEvent,
    NotificationPriority,
    NotificationType,
    SalesMilestone,
    SalesTotals,
)

COLLECTION_LABELS = {
    Collection.STATIONERY: "Stationery",
    Collection.GIFT_STORE: "Gift Store",
}


def format_currency(amount: float) -> str:
    """Format an amount in Ugandan shillings."""
    return f"UGX {amount:,.0f}"


def _format_quantity(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def low_stock_priority(current_stock: float, threshold: int) -> NotificationPriority:
    """Priority of a low stock alert by how far the item is below threshold.

    Out of stock is critical, at or below half the threshold is high,
    anything else up to the threshold is medium.
    """
    if current_stock <= 0:
        return NotificationPriority.CRITICAL
    if current_stock <= threshold // 2:
        return NotificationPriority.HIGH
    return NotificationPriority.MEDIUM


def find_low_stock_items(
    inventory: Mapping[Collection, Iterable[InventoryItem]],
    threshold: int,
) -> list[LowStockItem]:
    """Items whose stock is at or below `threshold`."""
    found: list[LowStockItem] = []
    for collection, items in inventory.items():
        for item in items:
            if item.current_stock <= threshold:
                found.append(
                    LowStockItem(
                        id=item.id,
                        item_name=item.item_name or item.id,
                        current_stock=item.current_stock,
                        threshold=threshold,
                        category=item.category,
                        collection=collection,
                    )
                )
    return found


def low_stock_event(item: LowStockItem) -> NotificationEvent:
    """Build the notification for one low stock item."""
    label = COLLECTION_LABELS.get(item.collection, item.collection.value)
    stock = _format_quantity(item.current_stock)
    if item.current_stock <= 0:
        message = f"{item.item_name} ({label}) is out of stock."
    else:
        message = (
            f"{item.item_name} ({label}) is running low: {stock} left, "
            f"threshold is {item.threshold}."
        )
    return NotificationEvent(
        type=NotificationType.LOW_STOCK,
        priority=low_stock_priority(item.current_stock, item.threshold),
        title=f"⚠️ Low Stock Alert - {label}",
        message=message,
        dedup_key=item.dedup_key,
        data=item.model_dump(mode="json"),
    )


def evaluate_low_stock(
    inventory: Mapping[Collection, Iterable[InventoryItem]],
    threshold: int,
    existing_events: Iterable[NotificationEvent],
) -> list[NotificationEvent]:
    """New low stock notifications for the current inventory.

    An item produces at most one event per pass, and none while an unread
    event with the same dedup key already exists.

    Args:
        inventory: Inventory records grouped by collection
        threshold: Stock level at or below which an item is low
        existing_events: Notifications already in the log

    Returns:
        Events to append, in inventory order
    """
    suppressed = {
        event.dedup_key
        for event in existing_events
        if not event.read and event.type == NotificationType.LOW_STOCK and event.dedup_key
    }

    events: list[NotificationEvent] = []
    for item in find_low_stock_items(inventory, threshold):
        if item.dedup_key in suppressed:
            continue
        suppressed.add(item.dedup_key)
        events.append(low_stock_event(item))
    return events


def period_keys(today: date) -> tuple[str, str, str]:
    """Identity of the current day, week (starting Sunday) and month."""
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)
    return today.isoformat(), week_start.isoformat(), today.strftime("%Y-%m")


def evaluate_sales_milestones(
    totals: SalesTotals,
    daily_target: float,
    weekly_target: float,
    monthly_target: float,
    revenue_milestones: Iterable[float],
    reached: set[str],
) -> list[SalesMilestone]:
    """Milestones crossed by `totals` that are not yet in `reached`.

    Period targets are keyed by their period, so each can fire once per
    day, week or month; revenue milestones fire once ever.
    """
    candidates = [
        (MilestoneType.DAILY_TARGET, daily_target, totals.daily, "today", totals.day),
        (MilestoneType.WEEKLY_TARGET, weekly_target, totals.weekly, "this week", totals.week_start),
        (MilestoneType.MONTHLY_TARGET, monthly_target, totals.monthly, "this month", totals.month),
    ]
    for amount in revenue_milestones:
        candidates.append(
            (MilestoneType.REVENUE_MILESTONE, amount, totals.lifetime, "lifetime", f"{amount:.0f}")
        )

    crossed: list[SalesMilestone] = []
    for milestone_type, target, achieved, period, identity in candidates:
        key = f"{milestone_type.value}:{identity}"
        if achieved < target or key in reached:
            continue
        crossed.append(
            SalesMilestone(
                type=milestone_type,
                target=target,
                achieved=achieved,
                percentage=achieved / target * 100,
                period=period,
                key=key,
            )
        )
    return crossed


def prune_reached(reached: Iterable[str], totals: SalesTotals) -> set[str]:
    """Drop reached keys whose day, week or month is over.

    Period keys only ever match the current period, so older ones can go.
    Revenue milestone keys are lifetime and always kept.
    """
    current = {
        f"{MilestoneType.DAILY_TARGET.value}:{totals.day}",
        f"{MilestoneType.WEEKLY_TARGET.value}:{totals.week_start}",
        f"{MilestoneType.MONTHLY_TARGET.value}:{totals.month}",
    }
    revenue_prefix = f"{MilestoneType.REVENUE_MILESTONE.value}:"
    return {key for key in reached if key in current or key.startswith(revenue_prefix)}


_MILESTONE_TEXT = {
    MilestoneType.DAILY_TARGET: (
        "🎯 Daily Sales Target Achieved!",
        "Congratulations! You've reached today's sales target of {target}. Total sales: {achieved}",
    ),
    MilestoneType.WEEKLY_TARGET: (
        "🏆 Weekly Sales Target Achieved!",
        "Amazing! You've hit this week's sales target of {target}. Total sales: {achieved}",
    ),
    MilestoneType.MONTHLY_TARGET: (
        "🌟 Monthly Sales Target Achieved!",
        "Outstanding! You've reached this month's sales target of {target}. Total sales: {achieved}",
    ),
    MilestoneType.REVENUE_MILESTONE: (
        "💰 Revenue Milestone Reached!",
        "Incredible! You've reached a major revenue milestone of {target}. "
        "Total lifetime revenue: {achieved}",
    ),
}


def milestone_event(milestone: SalesMilestone) -> NotificationEvent:
    """Build the notification for a crossed milestone."""
    title, template = _MILESTONE_TEXT[milestone.type]
    return NotificationEvent(
        type=NotificationType.SALES_MILESTONE,
        priority=NotificationPriority.MEDIUM,
        title=title,
        message=template.format(
            target=format_currency(milestone.target),
            achieved=format_currency(milestone.achieved),
        ),
        dedup_key=f"{NotificationType.SALES_MILESTONE.value}:{milestone.key}",
        data=milestone.model_dump(mode="json"),
    )
