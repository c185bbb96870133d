import unittest

from sqlmodel import col, select

from app.core.db import transaction
from app.core.enums import BattleFormat, BattleMode, BattleStatus, EventType, SellRejectReason
from app.core.exceptions import (
    EmptyPoolError,
    InsufficientFundsError,
    InvalidConfigurationError,
    NotFoundError,
    StateConflictError,
)
from app.models.battle import Battle, BattleParticipant
from app.models.battle_pull import BattlePull
from app.models.card import Card
from app.models.event_log import EventLog
from app.models.player import Player
from app.models.pull import Pull
from app.schemas.battle import BattleCreate
from tests.base import DatabaseTestCase, ScriptedRandom, pick

# coin values of the four equally weighted cards used by most battle tests
VALUES = (30, 20, 10, 15)


def draws_for(*values: int) -> ScriptedRandom:
    """Random source that makes the test box yield the given coin values in order."""
    return ScriptedRandom(*(pick(VALUES.index(value), len(VALUES)) for value in values))


class BattleTestCase(DatabaseTestCase):
    async def asyncSetUp(self) -> None:
        await super().asyncSetUp()
        self.box = await self.create_box(price=100, cards=[(1, value) for value in VALUES])


class CreateBattleTests(BattleTestCase):
    async def test_creator_pays_for_every_round_and_takes_team_one(self) -> None:
        player = await self.create_player(coins=1000)
        service = self.battle_service()

        battle = await service.create_battle(
            player.id, BattleCreate(box_id=self.box.id, entry_fee=50, rounds=3, max_participants=2)
        )

        self.assertEqual(battle.status, BattleStatus.WAITING)
        self.assertEqual(battle.participant_count, 1)
        self.assertEqual(battle.team_count, 2)
        self.assertEqual(await self.balance(player.id), 1000 - (50 + 100 * 3))
        participants = await self.get_participants(battle.id)
        self.assertEqual([p.team_number for p in participants], [1])
        self.assertEqual(
            await self.count(EventLog, EventLog.event_type == EventType.BATTLE_CREATE), 1
        )

    async def test_team_layout_must_match_seats(self) -> None:
        player = await self.create_player()
        service = self.battle_service()

        for data in (
            BattleCreate(
                box_id=self.box.id,
                format=BattleFormat.TEAM,
                team_size=2,
                team_count=2,
                max_participants=3,
            ),
            BattleCreate(
                box_id=self.box.id,
                format=BattleFormat.TEAM,
                team_size=2,
                team_count=1,
                max_participants=2,
            ),
            BattleCreate(box_id=self.box.id, rounds=0),
            BattleCreate(box_id=self.box.id, rounds=11),
            BattleCreate(box_id=self.box.id, max_participants=5),
            BattleCreate(box_id=self.box.id, entry_fee=-1),
        ):
            with self.assertRaises(InvalidConfigurationError):
                await service.create_battle(player.id, data)

        self.assertEqual(await self.balance(player.id), 1000)
        self.assertEqual(await self.count(Battle), 0)

    async def test_insufficient_funds_creates_nothing(self) -> None:
        player = await self.create_player(coins=150)

        with self.assertRaises(InsufficientFundsError):
            await self.battle_service().create_battle(
                player.id, BattleCreate(box_id=self.box.id, rounds=2)
            )

        self.assertEqual(await self.balance(player.id), 150)
        self.assertEqual(await self.count(Battle), 0)
        self.assertEqual(await self.count(BattleParticipant), 0)

    async def test_empty_box_is_rejected_before_charging(self) -> None:
        player = await self.create_player()
        empty_box = await self.create_box(cards=[])

        with self.assertRaises(EmptyPoolError):
            await self.battle_service().create_battle(
                player.id, BattleCreate(box_id=empty_box.id)
            )
        self.assertEqual(await self.balance(player.id), 1000)


class JoinBattleTests(BattleTestCase):
    async def test_last_seat_starts_the_battle(self) -> None:
        players = [await self.create_player() for _ in range(3)]
        service = self.battle_service()
        created = await service.create_battle(
            players[0].id, BattleCreate(box_id=self.box.id, max_participants=3)
        )

        joined = await service.join_battle(players[1].id, created.id)
        self.assertEqual(joined.status, BattleStatus.WAITING)
        self.assertEqual(joined.participant_count, 2)

        with self.assertRaises(StateConflictError):
            await service.pull_round(players[0].id, created.id)

        started = await service.join_battle(players[2].id, created.id)
        self.assertEqual(started.status, BattleStatus.IN_PROGRESS)
        self.assertIsNotNone(started.started_at)
        self.assertEqual(await self.balance(players[2].id), 900)

    async def test_duplicate_and_late_joins_are_rejected(self) -> None:
        players = [await self.create_player() for _ in range(3)]
        service = self.battle_service()
        created = await service.create_battle(
            players[0].id, BattleCreate(box_id=self.box.id, max_participants=2)
        )

        with self.assertRaises(StateConflictError):
            await service.join_battle(players[0].id, created.id)

        await service.join_battle(players[1].id, created.id)
        with self.assertRaises(StateConflictError):
            await service.join_battle(players[2].id, created.id)
        self.assertEqual(await self.balance(players[2].id), 1000)

    async def test_join_without_funds_leaves_seat_open(self) -> None:
        creator = await self.create_player()
        poor = await self.create_player(coins=99)
        service = self.battle_service()
        created = await service.create_battle(
            creator.id, BattleCreate(box_id=self.box.id, max_participants=2)
        )

        with self.assertRaises(InsufficientFundsError):
            await service.join_battle(poor.id, created.id)

        self.assertEqual(len(await self.get_participants(created.id)), 1)
        self.assertEqual((await self.get_battle(created.id)).status, BattleStatus.WAITING)

    async def test_join_missing_battle(self) -> None:
        player = await self.create_player()
        with self.assertRaises(NotFoundError):
            await self.battle_service().join_battle(player.id, 42)


class SoloBattleTests(BattleTestCase):
    async def test_higher_total_takes_the_whole_prize(self) -> None:
        alice, bob = await self.create_player(), await self.create_player()
        service = self.battle_service(draws_for(20, 10))
        battle_id = await self.start_battle(service, self.box, [alice, bob])

        first = await service.pull_round(alice.id, battle_id)
        self.assertFalse(first.battle_complete)
        last = await service.pull_round(bob.id, battle_id)

        self.assertTrue(last.battle_complete)
        self.assertEqual([(w.player_id, w.payout) for w in last.winners], [(alice.id, 30)])
        battle = await self.get_battle(battle_id)
        self.assertEqual(battle.status, BattleStatus.FINISHED)
        self.assertEqual(battle.total_prize, 30)
        self.assertEqual(battle.winner_id, alice.id)
        self.assertIsNone(battle.winning_team_number)
        self.assertIsNotNone(battle.finished_at)
        self.assertEqual(await self.balance(alice.id), 900 + 30)
        self.assertEqual(await self.balance(bob.id), 900)
        # the loser's pull now belongs to the winner
        self.assertEqual(await self.count(Pull, Pull.player_id == alice.id), 2)
        self.assertEqual(await self.count(Pull, Pull.player_id == bob.id), 0)

    async def test_tie_splits_the_prize(self) -> None:
        alice, bob = await self.create_player(), await self.create_player()
        service = self.battle_service(draws_for(15, 15))
        battle_id = await self.start_battle(service, self.box, [alice, bob])

        await service.pull_round(alice.id, battle_id)
        result = await service.pull_round(bob.id, battle_id)

        self.assertEqual(sorted(w.payout for w in result.winners), [15, 15])
        self.assertEqual(await self.balance(alice.id), 915)
        self.assertEqual(await self.balance(bob.id), 915)
        self.assertEqual(await self.count(Pull, Pull.player_id == alice.id), 1)
        self.assertEqual(await self.count(Pull, Pull.player_id == bob.id), 1)
        self.assertEqual(
            await self.count(EventLog, EventLog.event_type == EventType.BATTLE_WIN), 2
        )

    async def test_upside_down_lowest_total_wins(self) -> None:
        alice, bob = await self.create_player(), await self.create_player()
        service = self.battle_service(draws_for(30, 10))
        battle_id = await self.start_battle(
            service, self.box, [alice, bob], mode=BattleMode.UPSIDE_DOWN
        )

        await service.pull_round(alice.id, battle_id)
        result = await service.pull_round(bob.id, battle_id)

        self.assertEqual([(w.player_id, w.payout) for w in result.winners], [(bob.id, 40)])

    async def test_jackpot_single_best_pull_wins(self) -> None:
        alice, bob = await self.create_player(), await self.create_player()
        # alice totals 40 but bob draws the single best card
        service = self.battle_service(draws_for(20, 30, 20, 10))
        battle_id = await self.start_battle(
            service, self.box, [alice, bob], mode=BattleMode.JACKPOT, rounds=2
        )

        await service.pull_round(alice.id, battle_id)
        await service.pull_round(bob.id, battle_id)
        await service.pull_round(alice.id, battle_id)
        result = await service.pull_round(bob.id, battle_id)

        self.assertEqual([(w.player_id, w.payout) for w in result.winners], [(bob.id, 80)])

    async def test_rounds_are_dense_and_bounded(self) -> None:
        alice, bob = await self.create_player(), await self.create_player()
        # the rejected third pull still consumes a draw before it is rolled back
        service = self.battle_service(draws_for(10, 10, 30, 20))
        battle_id = await self.start_battle(service, self.box, [alice, bob], rounds=2)

        first = await service.pull_round(alice.id, battle_id)
        second = await service.pull_round(alice.id, battle_id)
        self.assertEqual((first.round_number, second.round_number), (1, 2))
        self.assertEqual(second.total_value, 20)

        with self.assertRaises(StateConflictError):
            await service.pull_round(alice.id, battle_id)
        self.assertEqual(await self.count(BattlePull), 2)

        third = await service.pull_round(bob.id, battle_id)
        self.assertFalse(third.battle_complete)

    async def test_outsider_cannot_pull(self) -> None:
        alice, bob, carol = [await self.create_player() for _ in range(3)]
        service = self.battle_service()
        battle_id = await self.start_battle(service, self.box, [alice, bob])

        with self.assertRaises(NotFoundError):
            await service.pull_round(carol.id, battle_id)

    async def test_battle_pulls_hold_their_items_until_finished(self) -> None:
        alice, bob = await self.create_player(), await self.create_player()
        service = self.battle_service(draws_for(20, 10))
        battle_id = await self.start_battle(service, self.box, [alice, bob])

        result = await service.pull_round(alice.id, battle_id)
        pull = await self.session.get(Pull, result.pull_id)
        assert pull is not None
        self.assertEqual(
            await self.inventory_service().get_lock_reason(pull),
            SellRejectReason.BLOCKED_BY_BATTLE,
        )

        await service.pull_round(bob.id, battle_id)
        self.assertIsNone(await self.inventory_service().get_lock_reason(pull))

    async def test_selling_a_won_pull_keeps_the_round_history(self) -> None:
        alice, bob = await self.create_player(), await self.create_player()
        service = self.battle_service(draws_for(20, 10))
        battle_id = await self.start_battle(service, self.box, [alice, bob])
        await service.pull_round(alice.id, battle_id)
        lost = await service.pull_round(bob.id, battle_id)

        await self.inventory_service().sell_pull(alice.id, lost.pull_id)

        result = await self.session.exec(
            select(BattlePull)
            .where(BattlePull.battle_id == battle_id)
            .execution_options(populate_existing=True)
        )
        history = {bp.coin_value: bp for bp in result.all()}
        self.assertIsNone(history[10].pull_id)
        self.assertEqual(history[10].item_name, "Card 3")
        self.assertIsNotNone(history[20].pull_id)

        detail = await service.get_battle_detail(battle_id)
        self.assertEqual(len(detail.pulls), 2)
        self.assertEqual(len(detail.participants), 2)

    async def test_catalog_rename_does_not_rewrite_the_round_history(self) -> None:
        alice, bob = await self.create_player(), await self.create_player()
        service = self.battle_service(draws_for(20, 10))
        battle_id = await self.start_battle(service, self.box, [alice, bob])
        await service.pull_round(alice.id, battle_id)
        lost = await service.pull_round(bob.id, battle_id)

        card = (await self.session.exec(select(Card).where(Card.name == "Card 3"))).one()
        card.name = "Renamed"
        card.coin_value = 999
        self.session.add(card)
        await self.session.commit()

        sale = await self.inventory_service().sell_pull(alice.id, lost.pull_id)

        self.assertEqual(sale.coins_received, 10)
        battle_pull = (
            await self.session.exec(
                select(BattlePull)
                .where(BattlePull.battle_id == battle_id, BattlePull.card_id == card.id)
                .execution_options(populate_existing=True)
            )
        ).one()
        self.assertIsNone(battle_pull.pull_id)
        self.assertEqual(battle_pull.item_name, "Card 3")
        self.assertEqual(battle_pull.coin_value, 10)

    async def test_finalize_runs_once(self) -> None:
        alice, bob = await self.create_player(), await self.create_player()
        service = self.battle_service(draws_for(20, 10))
        battle_id = await self.start_battle(service, self.box, [alice, bob])
        await service.pull_round(alice.id, battle_id)
        await service.pull_round(bob.id, battle_id)

        async with transaction(self.session):
            again = await service._finalize(battle_id)  # noqa: SLF001

        self.assertIsNone(again)
        self.assertEqual(await self.balance(alice.id), 930)
        self.assertEqual(
            await self.count(EventLog, EventLog.event_type == EventType.BATTLE_WIN), 1
        )
        with self.assertRaises(StateConflictError):
            await service.pull_round(alice.id, battle_id)


class TeamBattleTests(BattleTestCase):
    async def test_higher_team_aggregate_wins(self) -> None:
        players = [await self.create_player() for _ in range(4)]
        # join order seats teams 1, 2, 1, 2
        service = self.battle_service(draws_for(30, 20, 20, 10))
        battle_id = await self.start_battle(
            service, self.box, players, format=BattleFormat.TEAM, team_size=2, team_count=2
        )
        participants = await self.get_participants(battle_id)
        self.assertEqual([p.team_number for p in participants], [1, 2, 1, 2])

        for player in players[:-1]:
            await service.pull_round(player.id, battle_id)
        result = await service.pull_round(players[-1].id, battle_id)

        # team 1: 30 + 20 = 50, team 2: 20 + 10 = 30, prize 80
        self.assertEqual(result.winning_team_number, 1)
        self.assertEqual(
            [(w.player_id, w.payout) for w in result.winners],
            [(players[0].id, 40), (players[2].id, 40)],
        )
        battle = await self.get_battle(battle_id)
        self.assertEqual(battle.winner_id, players[0].id)
        self.assertEqual(battle.winning_team_number, 1)

        # pulls alternate between the two winners in draw order
        owners = (
            await self.session.exec(
                select(Pull.player_id).order_by(Pull.id)  # pyright: ignore[reportArgumentType]
            )
        ).all()
        self.assertEqual(list(owners), [players[0].id, players[2].id] * 2)

    async def test_odd_prize_remainder_goes_to_first_winner(self) -> None:
        players = [await self.create_player() for _ in range(4)]
        service = self.battle_service(draws_for(30, 10, 15, 10))
        battle_id = await self.start_battle(
            service, self.box, players, format=BattleFormat.TEAM, team_size=2, team_count=2
        )

        for player in players[:-1]:
            await service.pull_round(player.id, battle_id)
        result = await service.pull_round(players[-1].id, battle_id)

        # prize 65 split between the two members of team 1
        self.assertEqual([w.payout for w in result.winners], [33, 32])
        self.assertEqual(sum(w.payout for w in result.winners), 65)


class SimulateBattleTests(BattleTestCase):
    async def test_bots_fill_seats_and_battle_finishes(self) -> None:
        creator = await self.create_player()
        service = self.battle_service()
        created = await service.create_battle(
            creator.id, BattleCreate(box_id=self.box.id, max_participants=3, rounds=2)
        )

        result = await service.simulate_battle(created.id)

        self.assertEqual(result.added_bots, 2)
        battle = await self.get_battle(created.id)
        self.assertEqual(battle.status, BattleStatus.FINISHED)
        self.assertEqual(await self.count(BattlePull, BattlePull.battle_id == created.id), 6)
        self.assertEqual(sum(w.payout for w in result.winners), battle.total_prize)
        self.assertEqual(
            battle.total_prize, sum(p.total_value for p in await self.get_participants(created.id))
        )
        self.assertEqual(await self.count(Player, Player.is_bot == True), 2)  # noqa: E712

    async def test_existing_bots_are_reused_and_topped_up(self) -> None:
        creator = await self.create_player()
        service = self.battle_service()
        first = await service.create_battle(creator.id, BattleCreate(box_id=self.box.id, max_participants=2))
        await service.simulate_battle(first.id)

        bot_id = (await self.session.exec(select(Player.id).where(Player.is_bot == True))).one()  # noqa: E712
        await self.player_service().set_currency(bot_id, 0, "drain")

        second = await service.create_battle(creator.id, BattleCreate(box_id=self.box.id, max_participants=2))
        await service.simulate_battle(second.id)

        self.assertEqual(await self.count(Player, Player.is_bot == True), 1)  # noqa: E712
        self.assertEqual(
            await self.count(EventLog, EventLog.event_type == EventType.BOT_TOP_UP), 1
        )

    async def test_running_battle_is_played_out_from_where_it_stopped(self) -> None:
        alice, bob = await self.create_player(), await self.create_player()
        service = self.battle_service()
        battle_id = await self.start_battle(service, self.box, [alice, bob], rounds=2)
        await service.pull_round(alice.id, battle_id)

        result = await service.simulate_battle(battle_id)

        self.assertEqual(result.added_bots, 0)
        self.assertEqual((await self.get_battle(battle_id)).status, BattleStatus.FINISHED)
        for participant in await self.get_participants(battle_id):
            self.assertEqual(participant.rounds_pulled, 2)
            rounds = (
                await self.session.exec(
                    select(BattlePull.round_number)
                    .where(BattlePull.participant_id == participant.id)
                    .order_by(col(BattlePull.round_number))
                )
            ).all()
            self.assertEqual(list(rounds), [1, 2])
        self.assertEqual(await self.count(Player, Player.is_bot == True), 0)  # noqa: E712

    async def test_too_few_bots_changes_nothing(self) -> None:
        creator = await self.create_player()
        service = self.battle_service()
        created = await service.create_battle(
            creator.id, BattleCreate(box_id=self.box.id, max_participants=4)
        )

        with self.assertRaises(InvalidConfigurationError):
            await service.simulate_battle(created.id, bot_count=2)

        self.assertEqual(len(await self.get_participants(created.id)), 1)
        self.assertEqual(await self.count(Player), 1)

    async def test_finished_battle_cannot_be_simulated_but_can_be_deleted(self) -> None:
        creator = await self.create_player()
        service = self.battle_service()
        created = await service.create_battle(
            creator.id, BattleCreate(box_id=self.box.id, max_participants=2)
        )

        with self.assertRaises(StateConflictError):
            await service.delete_battle(created.id)

        await service.simulate_battle(created.id)
        with self.assertRaises(StateConflictError):
            await service.simulate_battle(created.id)

        self.assertTrue(await service.delete_battle(created.id))
        self.assertFalse(await service.delete_battle(created.id))
        self.assertEqual(await self.count(BattlePull), 0)
        # drawn items outlive the battle
        self.assertEqual(await self.count(Pull), 2)

    async def test_listing_is_newest_first(self) -> None:
        creator = await self.create_player(coins=10_000)
        service = self.battle_service()
        ids = [
            (await service.create_battle(creator.id, BattleCreate(box_id=self.box.id))).id
            for _ in range(3)
        ]
        await service.simulate_battle(ids[0])

        everything = await service.get_battles()
        waiting = await service.get_battles(BattleStatus.WAITING)

        self.assertEqual({b.id for b in everything}, set(ids))
        self.assertEqual({b.id for b in waiting}, set(ids[1:]))
        self.assertEqual(everything[-1].participant_count, 4)


if __name__ == "__main__":
    unittest.main()
