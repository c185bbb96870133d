from enum import StrEnum


class PlayerRole(StrEnum):
    USER = "USER"
    ADMIN = "ADMIN"
    BOT = "BOT"


class ItemType(StrEnum):
    CARD = "CARD"
    SEALED_PRODUCT = "SEALED_PRODUCT"


class BattleStatus(StrEnum):
    WAITING = "WAITING"
    IN_PROGRESS = "IN_PROGRESS"
    FINISHED = "FINISHED"
    CANCELLED = "CANCELLED"


class BattleFormat(StrEnum):
    SOLO = "SOLO"
    TEAM = "TEAM"


class BattleMode(StrEnum):
    NORMAL = "NORMAL"
    UPSIDE_DOWN = "UPSIDE_DOWN"
    JACKPOT = "JACKPOT"


class OrderStatus(StrEnum):
    PENDING = "PENDING"
    PAID = "PAID"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


BLOCKING_ORDER_STATUSES = frozenset(
    {OrderStatus.PAID, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED}
)
"""Orders in these states hold their pulls; the pulls cannot be sold."""


class SellRejectReason(StrEnum):
    NOT_FOUND = "NOT_FOUND"
    BLOCKED_BY_ORDER = "BLOCKED_BY_ORDER"
    BLOCKED_BY_BATTLE = "BLOCKED_BY_BATTLE"


class EventType(StrEnum):
    PACK_OPEN = "PACK_OPEN"
    SELL_ITEM = "SELL_ITEM"
    BATTLE_CREATE = "BATTLE_CREATE"
    BATTLE_JOIN = "BATTLE_JOIN"
    BATTLE_WIN = "BATTLE_WIN"
    BOT_TOP_UP = "BOT_TOP_UP"
    ADMIN_INCREASE_CURRENCY = "ADMIN_INCREASE_CURRENCY"
    ADMIN_DECREASE_CURRENCY = "ADMIN_DECREASE_CURRENCY"
    ADMIN_SET_CURRENCY = "ADMIN_SET_CURRENCY"
