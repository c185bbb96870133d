import unittest

from app.core.enums import EventType, ItemType
from app.core.exceptions import (
    EmptyPoolError,
    InsufficientFundsError,
    InvalidQuantityError,
    NotFoundError,
    StateConflictError,
)
from app.models.box import Box
from app.models.event_log import EventLog
from app.models.pull import Pull
from tests.base import DatabaseTestCase, ScriptedRandom


class OpenPacksTests(DatabaseTestCase):
    async def test_two_packs_from_a_ninety_ten_box(self) -> None:
        player = await self.create_player(coins=250)
        box = await self.create_box(price=100, cards=[(90, 5), (10, 50)])
        service = self.pack_service(ScriptedRandom(0.5, 0.95))

        result = await service.open_packs(player.id, box.id, 2)

        self.assertEqual(result.balance, 50)
        self.assertEqual(result.total_cost, 200)
        self.assertEqual([item.coin_value for item in result.items], [5, 50])
        self.assertEqual([item.weight for item in result.items], [90, 10])
        self.assertEqual(await self.balance(player.id), 50)
        self.assertEqual(await self.count(Pull, Pull.player_id == player.id), 2)

        with self.assertRaises(InsufficientFundsError):
            await service.open_packs(player.id, box.id, 1)
        self.assertEqual(await self.balance(player.id), 50)
        self.assertEqual(await self.count(Pull, Pull.player_id == player.id), 2)

    async def test_items_per_pack_multiplies_draws(self) -> None:
        player = await self.create_player(coins=1000)
        box = await self.create_box(price=50, cards_per_pack=3, cards=[(1, 1), (1, 2)])

        result = await self.pack_service().open_packs(player.id, box.id, 4)

        self.assertEqual(len(result.items), 12)
        self.assertEqual(result.cards_per_pack, 3)
        self.assertEqual(await self.balance(player.id), 800)
        self.assertEqual(await self.count(Pull, Pull.player_id == player.id), 12)

    async def test_pulls_record_value_at_draw_time(self) -> None:
        player = await self.create_player()
        box = await self.create_box(cards=[(1, 7)], sealed_products=[(1, 400)])

        result = await self.pack_service(ScriptedRandom(0.75)).open_packs(player.id, box.id, 1)

        item = result.items[0]
        self.assertEqual(item.kind, ItemType.SEALED_PRODUCT)
        pull = await self.session.get(Pull, item.pull_id)
        assert pull is not None
        self.assertIsNone(pull.card_id)
        self.assertIsNotNone(pull.sealed_product_id)
        self.assertEqual(pull.coin_value, 400)

    async def test_popularity_and_event_log(self) -> None:
        player = await self.create_player()
        box = await self.create_box()

        await self.pack_service().open_packs(player.id, box.id, 3)

        box_after = await self.box_service().get_box(box.id)
        assert box_after is not None
        self.assertEqual(box_after.popularity, 3)
        self.assertEqual(
            await self.count(
                EventLog, EventLog.player_id == player.id, EventLog.event_type == EventType.PACK_OPEN
            ),
            1,
        )

    async def test_quantity_outside_allow_list_is_rejected(self) -> None:
        player = await self.create_player()
        box = await self.create_box()
        service = self.pack_service()

        for quantity in (0, 6, 10, -1):
            with self.assertRaises(InvalidQuantityError):
                await service.open_packs(player.id, box.id, quantity)
        self.assertEqual(await self.balance(player.id), 1000)

    async def test_inactive_box_is_rejected(self) -> None:
        player = await self.create_player()
        box = await self.create_box(is_active=False)

        with self.assertRaises(StateConflictError):
            await self.pack_service().open_packs(player.id, box.id, 1)
        self.assertEqual(await self.balance(player.id), 1000)

    async def test_missing_box_is_not_found(self) -> None:
        player = await self.create_player()
        with self.assertRaises(NotFoundError):
            await self.pack_service().open_packs(player.id, 999, 1)

    async def test_box_without_drawable_items_charges_nothing(self) -> None:
        player = await self.create_player()
        empty_box = await self.create_box(cards=[])
        zero_box = await self.create_box(cards=[(0, 10), (0, 20)])

        for box in (empty_box, zero_box):
            with self.assertRaises(EmptyPoolError):
                await self.pack_service().open_packs(player.id, box.id, 1)

        self.assertEqual(await self.balance(player.id), 1000)
        self.assertEqual(await self.count(Pull), 0)
        self.assertEqual(await self.count(Box, Box.popularity > 0), 0)

    async def test_failure_mid_transaction_rolls_everything_back(self) -> None:
        player = await self.create_player()
        box = await self.create_box(cards=[(1, 10)])
        # the second draw of the pack has no random value left
        service = self.pack_service(ScriptedRandom(0.1))

        with self.assertRaises(IndexError):
            await service.open_packs(player.id, box.id, 2)

        self.assertEqual(await self.balance(player.id), 1000)
        self.assertEqual(await self.count(Pull), 0)
        self.assertEqual(await self.count(EventLog), 0)


class PoolPreviewTests(DatabaseTestCase):
    async def test_pool_lists_cards_then_sealed_products_and_drops_zero_weights(self) -> None:
        box = await self.create_box(cards=[(3, 1), (0, 2)], sealed_products=[(1, 100)])

        preview = await self.box_service().get_pool_preview(box.id)

        self.assertEqual(
            [entry.item.kind for entry in preview], [ItemType.CARD, ItemType.SEALED_PRODUCT]
        )
        self.assertEqual([entry.probability for entry in preview], [0.75, 0.25])

    async def test_preview_of_missing_box_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            await self.box_service().get_pool_preview(123)


if __name__ == "__main__":
    unittest.main()
