from collections.abc import Sequence
from typing import Annotated

from fastapi import Depends
from loguru import logger
from sqlalchemy import delete, func, update
from sqlalchemy.orm.attributes import set_committed_value
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings
from app.core.db import get_db, transaction
from app.core.enums import BattleFormat, BattleStatus, EventType
from app.core.exceptions import (
    EmptyPoolError,
    InvalidConfigurationError,
    NotFoundError,
    StateConflictError,
)
from app.models.battle import Battle, BattleParticipant
from app.models.battle_pull import BattlePull
from app.models.box import Box
from app.models.event_log import EventLog
from app.models.player import Player
from app.models.pull import Pull
from app.schemas.battle import (
    BattleCreate,
    BattleDetailResponse,
    BattleParticipantResponse,
    BattlePullResponse,
    BattlePullResult,
    BattleResponse,
    BattleRules,
    BattleSimulationResult,
    BattleWinnerSummary,
    ParticipantStanding,
    RoundDraw,
)
from app.schemas.box import CardPoolItem, PackItem, SealedPoolItem, pool_item_rarity
from app.services.box import BoxService
from app.services.bot import BotService
from app.services.pack import PackService
from app.services.player import PlayerService
from app.utils.battle import assign_pull_owners, next_team_number, resolve_winners, split_prize
from app.utils.misc import get_utc_now

MIN_PARTICIPANTS = 2
MAX_PARTICIPANTS = 4
MAX_ROUNDS = 10
MAX_TEAM_SIZE = 4
MAX_TEAM_COUNT = 4
BATTLE_LIST_LIMIT = 50

_STATUS_MESSAGES = {
    BattleStatus.WAITING: "對戰尚未開始",
    BattleStatus.IN_PROGRESS: "對戰已經開始",
    BattleStatus.FINISHED: "對戰已經結束",
    BattleStatus.CANCELLED: "對戰已取消",
}


def validate_battle_config(data: BattleCreate) -> tuple[int, int]:
    """Check a battle configuration against the allowed ranges.

    Returns:
        The ``(team_size, team_count)`` to store. Solo battles are stored as
        one-member teams, one per seat.

    Raises:
        InvalidConfigurationError: If any value is out of range, or a team
            battle's teams do not add up to its seats.
    """
    if not 1 <= data.rounds <= MAX_ROUNDS:
        msg = f"回合數必須為 1 到 {MAX_ROUNDS}"
        raise InvalidConfigurationError(msg)
    if data.entry_fee < 0:
        msg = "入場費不可為負數"
        raise InvalidConfigurationError(msg)
    if not MIN_PARTICIPANTS <= data.max_participants <= MAX_PARTICIPANTS:
        msg = f"參加人數必須為 {MIN_PARTICIPANTS} 到 {MAX_PARTICIPANTS}"
        raise InvalidConfigurationError(msg)

    if data.format == BattleFormat.SOLO:
        return 1, data.max_participants

    if not 1 <= data.team_size <= MAX_TEAM_SIZE or not 1 <= data.team_count <= MAX_TEAM_COUNT:
        msg = f"隊伍人數與隊伍數量必須為 1 到 {MAX_TEAM_SIZE}"
        raise InvalidConfigurationError(msg)
    if data.team_count < 2:  # noqa: PLR2004
        msg = "團隊對戰至少需要兩支隊伍"
        raise InvalidConfigurationError(msg)
    if data.team_size * data.team_count != data.max_participants:
        msg = (
            f"隊伍人數 ({data.team_size}) x 隊伍數量 ({data.team_count}) "
            f"必須等於參加人數 ({data.max_participants})"
        )
        raise InvalidConfigurationError(msg)
    return data.team_size, data.team_count


def battle_rules(battle: Battle) -> BattleRules:
    return BattleRules(
        format=battle.format,
        mode=battle.mode,
        team_size=battle.team_size,
        team_count=battle.team_count,
    )


def battle_to_response(battle: Battle, participant_count: int) -> BattleResponse:
    return BattleResponse(
        id=battle.id,
        creator_id=battle.creator_id,
        box_id=battle.box_id,
        status=battle.status,
        format=battle.format,
        mode=battle.mode,
        team_size=battle.team_size,
        team_count=battle.team_count,
        max_participants=battle.max_participants,
        rounds=battle.rounds,
        entry_fee=battle.entry_fee,
        total_prize=battle.total_prize,
        winner_id=battle.winner_id,
        winning_team_number=battle.winning_team_number,
        participant_count=participant_count,
        created_at=battle.created_at,
        started_at=battle.started_at,
        finished_at=battle.finished_at,
    )


class BattleService:
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db)],
        box_service: Annotated[BoxService, Depends()],
        pack_service: Annotated[PackService, Depends()],
        player_service: Annotated[PlayerService, Depends()],
        bot_service: Annotated[BotService, Depends()],
    ) -> None:
        self.db = db
        self.box_service = box_service
        self.pack_service = pack_service
        self.player_service = player_service
        self.bot_service = bot_service

    async def get_battles(self, status: BattleStatus | None = None) -> list[BattleResponse]:
        """Get the newest battles, optionally filtered by status."""
        stmt = (
            select(Battle, func.count(col(BattleParticipant.id)))
            .outerjoin(BattleParticipant, col(BattleParticipant.battle_id) == Battle.id)
            .group_by(col(Battle.id))
        )
        if status is not None:
            stmt = stmt.where(Battle.status == status)

        result = await self.db.exec(
            stmt.order_by(col(Battle.created_at).desc(), col(Battle.id).desc()).limit(
                BATTLE_LIST_LIMIT
            )
        )
        return [battle_to_response(battle, count) for battle, count in result.all()]

    async def get_battle(self, battle_id: int) -> Battle | None:
        result = await self.db.exec(
            select(Battle).where(Battle.id == battle_id).execution_options(populate_existing=True)
        )
        return result.first()

    async def get_participants(self, battle_id: int) -> Sequence[BattleParticipant]:
        """Get the participants of a battle in join order."""
        result = await self.db.exec(
            select(BattleParticipant)
            .where(BattleParticipant.battle_id == battle_id)
            .order_by(col(BattleParticipant.id))
            .execution_options(populate_existing=True)
        )
        return result.all()

    async def get_battle_pulls(self, battle_id: int) -> Sequence[BattlePull]:
        """Get every recorded round of a battle in chronological order."""
        result = await self.db.exec(
            select(BattlePull)
            .where(BattlePull.battle_id == battle_id)
            .order_by(col(BattlePull.pulled_at), col(BattlePull.id))
            .execution_options(populate_existing=True)
        )
        return result.all()

    async def get_battle_detail(self, battle_id: int) -> BattleDetailResponse:
        battle = await self.get_battle(battle_id)
        if not battle:
            msg = "找不到對戰"
            raise NotFoundError(msg)

        participant_result = await self.db.exec(
            select(BattleParticipant, Player.name)
            .join(Player, col(Player.id) == BattleParticipant.player_id)
            .where(BattleParticipant.battle_id == battle_id)
            .order_by(col(BattleParticipant.id))
        )
        participants = [
            BattleParticipantResponse(
                id=participant.id,
                player_id=participant.player_id,
                player_name=player_name,
                team_number=participant.team_number,
                total_value=participant.total_value,
                rounds_pulled=participant.rounds_pulled,
                joined_at=participant.created_at,
            )
            for participant, player_name in participant_result.all()
        ]
        pulls = [
            BattlePullResponse.model_validate(battle_pull, from_attributes=True)
            for battle_pull in await self.get_battle_pulls(battle_id)
        ]

        summary = battle_to_response(battle, len(participants))
        return BattleDetailResponse(
            **summary.model_dump(), participants=participants, pulls=pulls
        )

    async def _lock_battle(self, battle_id: int, *statuses: BattleStatus) -> Battle:
        """Claim the battle row for this transaction if it is in one of ``statuses``.

        The conditional touch takes the row lock, so concurrent joins and pulls
        on the same battle run one after another.

        Raises:
            NotFoundError: If the battle does not exist.
            StateConflictError: If the battle is in another state.
        """
        result = await self.db.exec(
            update(Battle)
            .where(col(Battle.id) == battle_id, col(Battle.status).in_(statuses))
            .values(updated_at=get_utc_now())
            .execution_options(synchronize_session=False)
        )
        battle = await self.get_battle(battle_id)
        if not battle:
            msg = "找不到對戰"
            raise NotFoundError(msg)
        if result.rowcount == 0:  # pyright: ignore[reportAttributeAccessIssue]
            raise StateConflictError(_STATUS_MESSAGES[battle.status])
        return battle

    async def _get_pool(self, box: Box) -> list[CardPoolItem | SealedPoolItem]:
        pool = await self.box_service.get_pool(box.id)
        if not pool:
            msg = "此卡盒沒有可抽取的物品"
            raise EmptyPoolError(msg)
        return pool

    def _total_cost(self, battle: Battle, box: Box) -> int:
        # every seat pre-pays its own pack for each round
        return battle.entry_fee + box.price * battle.rounds

    async def _seat(self, battle: Battle, player_id: int, total_cost: int) -> BattleParticipant:
        """Charge a player and give them the next seat, starting the battle when it fills.

        Must run inside a transaction that holds the battle row.
        """
        participants = await self.get_participants(battle.id)
        if any(p.player_id == player_id for p in participants):
            msg = "你已經加入此對戰"
            raise StateConflictError(msg)
        if len(participants) >= battle.max_participants:
            msg = "對戰人數已滿"
            raise StateConflictError(msg)

        await self.player_service.debit_coins(player_id, total_cost)

        team_number = next_team_number(battle_rules(battle), [p.team_number for p in participants])
        participant = BattleParticipant(
            battle_id=battle.id, player_id=player_id, team_number=team_number
        )
        self.db.add(participant)
        await self.db.flush()

        if len(participants) + 1 == battle.max_participants:
            await self.db.exec(
                update(Battle)
                .where(col(Battle.id) == battle.id, col(Battle.status) == BattleStatus.WAITING)
                .values(status=BattleStatus.IN_PROGRESS, started_at=get_utc_now())
                .execution_options(synchronize_session=False)
            )
            logger.info(f"Battle {battle.id} is full and has started")

        return participant

    async def create_battle(self, player_id: int, data: BattleCreate) -> BattleResponse:
        """Open a battle with the creator in the first seat.

        The creator pays ``entry_fee + price * rounds`` up front.

        Raises:
            InvalidConfigurationError: If the configuration is out of range.
            NotFoundError: If the box or the player does not exist.
            StateConflictError: If the box is not active.
            EmptyPoolError: If the box has nothing that can be drawn.
            InsufficientFundsError: If the creator cannot pay.
        """
        team_size, team_count = validate_battle_config(data)

        async with transaction(self.db):
            box = await self.box_service.require_box(data.box_id)
            await self.pack_service.get_drawable_pool(box)

            battle = Battle(
                creator_id=player_id,
                box_id=box.id,
                format=data.format,
                mode=data.mode,
                team_size=team_size,
                team_count=team_count,
                max_participants=data.max_participants,
                rounds=data.rounds,
                entry_fee=data.entry_fee,
            )
            total_cost = self._total_cost(battle, box)
            await self.player_service.debit_coins(player_id, total_cost)

            self.db.add(battle)
            await self.db.flush()

            participant = BattleParticipant(battle_id=battle.id, player_id=player_id, team_number=1)
            self.db.add(participant)

            self.db.add(
                EventLog(
                    player_id=player_id,
                    event_type=EventType.BATTLE_CREATE,
                    context={"battle_id": battle.id, "box_id": box.id, "total_cost": total_cost},
                )
            )

        logger.info(
            f"Player {player_id} created {battle.format} {battle.mode} battle {battle.id} "
            f"({battle.max_participants} seats, {battle.rounds} round(s))"
        )
        return battle_to_response(battle, 1)

    async def join_battle(self, player_id: int, battle_id: int) -> BattleResponse:
        """Take the next open seat of a waiting battle.

        Raises:
            NotFoundError: If the battle or the player does not exist.
            StateConflictError: If the battle is not waiting, is full, or the
                player is already seated.
            InsufficientFundsError: If the player cannot pay the battle's cost.
        """
        async with transaction(self.db):
            battle = await self._lock_battle(battle_id, BattleStatus.WAITING)
            box = await self.box_service.require_box(battle.box_id)
            total_cost = self._total_cost(battle, box)

            participant = await self._seat(battle, player_id, total_cost)

            self.db.add(
                EventLog(
                    player_id=player_id,
                    event_type=EventType.BATTLE_JOIN,
                    context={
                        "battle_id": battle_id,
                        "team_number": participant.team_number,
                        "total_cost": total_cost,
                    },
                )
            )

            battle = await self._require_battle(battle_id)
            participant_count = len(await self.get_participants(battle_id))

        logger.info(
            f"Player {player_id} joined battle {battle_id} as team {participant.team_number}"
        )
        return battle_to_response(battle, participant_count)

    async def _require_battle(self, battle_id: int) -> Battle:
        battle = await self.get_battle(battle_id)
        if not battle:
            msg = "找不到對戰"
            raise NotFoundError(msg)
        return battle

    async def _record_round(
        self,
        battle: Battle,
        participant: BattleParticipant,
        pool: Sequence[CardPoolItem | SealedPoolItem],
    ) -> tuple[BattlePull, PackItem]:
        """Draw one round for a participant and record it.

        The pull goes to the participant's player; the counters are advanced
        only while the participant still has rounds left.
        """
        item = self.pack_service.draw_item(pool)

        result = await self.db.exec(
            update(BattleParticipant)
            .where(
                col(BattleParticipant.id) == participant.id,
                col(BattleParticipant.rounds_pulled) < battle.rounds,
            )
            .values(
                rounds_pulled=col(BattleParticipant.rounds_pulled) + 1,
                total_value=col(BattleParticipant.total_value) + item.coin_value,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:  # pyright: ignore[reportAttributeAccessIssue]
            msg = "你已完成所有回合"
            raise StateConflictError(msg)

        await self.db.exec(
            update(Battle)
            .where(col(Battle.id) == battle.id)
            .values(total_prize=col(Battle.total_prize) + item.coin_value)
            .execution_options(synchronize_session=False)
        )

        pull = await self.pack_service.record_pull(participant.player_id, battle.box_id, item)
        round_number = participant.rounds_pulled + 1

        battle_pull = BattlePull(
            battle_id=battle.id,
            participant_id=participant.id,
            pull_id=pull.id,
            round_number=round_number,
            coin_value=item.coin_value,
            item_type=item.kind,
            item_name=item.name,
            item_image=item.image_url,
            item_set_name=item.set_name,
            item_rarity=pool_item_rarity(item),
            card_id=item.item_id if isinstance(item, CardPoolItem) else None,
            sealed_product_id=item.item_id if isinstance(item, SealedPoolItem) else None,
        )
        self.db.add(battle_pull)
        await self.db.flush()

        # mirror the counters already written above without marking the row dirty
        set_committed_value(participant, "rounds_pulled", round_number)
        set_committed_value(participant, "total_value", participant.total_value + item.coin_value)

        return battle_pull, PackItem.from_pool_item(pull.id, item)

    async def _is_complete(self, battle: Battle) -> bool:
        participants = await self.get_participants(battle.id)
        return len(participants) == battle.max_participants and all(
            p.rounds_pulled >= battle.rounds for p in participants
        )

    async def _finalize(self, battle_id: int) -> list[BattleWinnerSummary] | None:
        """Settle a battle whose every seat has pulled every round.

        Only the caller that moves the battle from IN_PROGRESS to FINISHED
        settles it; anyone else gets ``None`` and changes nothing.
        """
        result = await self.db.exec(
            update(Battle)
            .where(col(Battle.id) == battle_id, col(Battle.status) == BattleStatus.IN_PROGRESS)
            .values(status=BattleStatus.FINISHED, finished_at=get_utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:  # pyright: ignore[reportAttributeAccessIssue]
            logger.debug(f"Battle {battle_id} was already settled")
            return None

        battle = await self._require_battle(battle_id)
        participants = await self.get_participants(battle_id)
        battle_pulls = await self.get_battle_pulls(battle_id)

        standings = [
            ParticipantStanding(
                participant_id=p.id,
                player_id=p.player_id,
                total_value=p.total_value,
                team_number=p.team_number,
            )
            for p in participants
        ]
        draws = [
            RoundDraw(participant_id=bp.participant_id, coin_value=bp.coin_value, pull_id=bp.pull_id)
            for bp in battle_pulls
        ]
        resolution = resolve_winners(battle_rules(battle), standings, draws)

        for pull_id, owner_id in assign_pull_owners(resolution.winners, draws):
            await self.db.exec(
                update(Pull)
                .where(col(Pull.id) == pull_id)
                .values(player_id=owner_id)
                .execution_options(synchronize_session=False)
            )

        total_prize = sum(draw.coin_value for draw in draws)
        payouts = split_prize(total_prize, len(resolution.winners))

        winners: list[BattleWinnerSummary] = []
        for winner, payout in zip(resolution.winners, payouts, strict=True):
            await self.player_service.credit_coins(winner.player_id, payout)
            self.db.add(
                EventLog(
                    player_id=winner.player_id,
                    event_type=EventType.BATTLE_WIN,
                    context={
                        "battle_id": battle_id,
                        "payout": payout,
                        "total_prize": total_prize,
                        "winning_team_number": resolution.winning_team_number,
                    },
                )
            )
            winners.append(
                BattleWinnerSummary(
                    player_id=winner.player_id, total_value=winner.total_value, payout=payout
                )
            )

        await self.db.exec(
            update(Battle)
            .where(col(Battle.id) == battle_id)
            .values(
                winner_id=resolution.primary.player_id,
                winning_team_number=resolution.winning_team_number,
                total_prize=total_prize,
            )
            .execution_options(synchronize_session=False)
        )

        logger.info(
            f"Battle {battle_id} finished: prize {total_prize} split between "
            f"{len(winners)} winner(s), headline winner player {resolution.primary.player_id}"
        )
        return winners

    async def pull_round(self, player_id: int, battle_id: int) -> BattlePullResult:
        """Open the caller's next pack in a running battle.

        The participant who completes the last round also settles the battle
        in the same transaction.

        Raises:
            NotFoundError: If the battle does not exist or the player is not in it.
            StateConflictError: If the battle is not running or the player has
                no rounds left.
        """
        async with transaction(self.db):
            battle = await self._lock_battle(battle_id, BattleStatus.IN_PROGRESS)

            participant_result = await self.db.exec(
                select(BattleParticipant)
                .where(
                    BattleParticipant.battle_id == battle_id,
                    BattleParticipant.player_id == player_id,
                )
                .execution_options(populate_existing=True)
            )
            participant = participant_result.first()
            if not participant:
                msg = "你不是此對戰的參加者"
                raise NotFoundError(msg)

            box = await self.box_service.require_box(battle.box_id)
            pool = await self._get_pool(box)
            battle_pull, item = await self._record_round(battle, participant, pool)

            winners: list[BattleWinnerSummary] = []
            battle_complete = await self._is_complete(battle)
            if battle_complete:
                winners = await self._finalize(battle_id) or []
            battle = await self._require_battle(battle_id)

        logger.info(
            f"Player {player_id} pulled round {battle_pull.round_number} in battle {battle_id} "
            f"worth {item.coin_value}"
        )
        return BattlePullResult(
            pull_id=item.pull_id,
            round_number=battle_pull.round_number,
            item=item,
            total_value=participant.total_value,
            rounds_pulled=participant.rounds_pulled,
            battle_complete=battle_complete,
            winners=winners,
            winning_team_number=battle.winning_team_number,
        )

    async def _top_up_bot(self, bot_id: int, total_cost: int) -> None:
        balance = await self.player_service.get_balance(bot_id)
        if balance is None or balance >= total_cost:
            return

        target = max(settings.bot_default_coins, total_cost)
        await self.db.exec(
            update(Player)
            .where(col(Player.id) == bot_id)
            .values(coins=target)
            .execution_options(synchronize_session=False)
        )
        self.db.add(
            EventLog(
                player_id=bot_id,
                event_type=EventType.BOT_TOP_UP,
                context={"from": balance, "to": target},
            )
        )

    async def simulate_battle(
        self, battle_id: int, bot_count: int | None = None
    ) -> BattleSimulationResult:
        """Fill the open seats with bots and play the battle to the end.

        Bots are charged like any other participant, after being topped up if
        they are short. Every remaining round is then drawn for every
        participant, round by round in join order, and the battle is settled,
        all in one transaction.

        Args:
            battle_id: The battle to run
            bot_count: Number of bots to add; defaults to the number of open seats

        Raises:
            NotFoundError: If the battle does not exist.
            StateConflictError: If the battle has already finished.
            InvalidConfigurationError: If ``bot_count`` does not fill the open seats.
        """
        async with transaction(self.db):
            battle = await self._lock_battle(
                battle_id, BattleStatus.WAITING, BattleStatus.IN_PROGRESS
            )
            box = await self.box_service.require_box(battle.box_id)
            pool = await self._get_pool(box)
            total_cost = self._total_cost(battle, box)

            participants = await self.get_participants(battle_id)
            open_seats = battle.max_participants - len(participants)
            if bot_count is not None and bot_count < open_seats:
                msg = f"需要至少 {open_seats} 個機器人才能填滿對戰"
                raise InvalidConfigurationError(msg)

            bots = await self.bot_service.ensure_bots(
                open_seats, exclude_ids={p.player_id for p in participants}
            )
            for bot in bots:
                await self._top_up_bot(bot.id, total_cost)
                await self._seat(battle, bot.id, total_cost)

            battle = await self._require_battle(battle_id)
            if battle.status != BattleStatus.IN_PROGRESS:
                raise StateConflictError(_STATUS_MESSAGES[battle.status])

            participants = await self.get_participants(battle_id)
            for round_index in range(battle.rounds):
                for participant in participants:
                    if participant.rounds_pulled <= round_index:
                        await self._record_round(battle, participant, pool)

            winners = await self._finalize(battle_id) or []
            battle = await self._require_battle(battle_id)

        logger.info(f"Simulated battle {battle_id} with {len(bots)} bot(s)")
        return BattleSimulationResult(
            battle_id=battle_id,
            added_bots=len(bots),
            total_prize=battle.total_prize,
            winner_id=battle.winner_id or 0,
            winning_team_number=battle.winning_team_number,
            winners=winners,
        )

    async def delete_battle(self, battle_id: int) -> bool:
        """Delete a finished battle and its history. Pulls drawn in it are kept.

        Returns:
            False if the battle does not exist.

        Raises:
            StateConflictError: If the battle has not finished.
        """
        async with transaction(self.db):
            battle = await self.get_battle(battle_id)
            if not battle:
                return False
            if battle.status != BattleStatus.FINISHED:
                msg = "只能刪除已結束的對戰"
                raise StateConflictError(msg)

            await self.db.exec(
                delete(BattlePull)
                .where(col(BattlePull.battle_id) == battle_id)
                .execution_options(synchronize_session=False)
            )
            await self.db.exec(
                delete(BattleParticipant)
                .where(col(BattleParticipant.battle_id) == battle_id)
                .execution_options(synchronize_session=False)
            )
            await self.db.delete(battle)

        logger.info(f"Deleted battle {battle_id}")
        return True
