from collections.abc import Sequence

from app.core.enums import BattleFormat, BattleMode
from app.core.exceptions import StateConflictError, UnresolvedWinnerError
from app.schemas.battle import BattleRules, ParticipantStanding, RoundDraw, WinnerResolution


def next_team_number(rules: BattleRules, taken: Sequence[int | None]) -> int:
    """Team number for the next seat.

    Team battles are filled breadth-first: every team gets its first member
    before any team gets a second, lowest team number first. Solo battles hand
    out the lowest unused number so each seat is its own "team".
    """
    if rules.format == BattleFormat.TEAM:
        counts = dict.fromkeys(range(1, rules.team_count + 1), 0)
        for team_number in taken:
            if team_number in counts:
                counts[team_number] += 1

        open_teams = [team for team, count in counts.items() if count < rules.team_size]
        if not open_teams:
            msg = "所有隊伍皆已滿員"
            raise StateConflictError(msg)
        return min(open_teams, key=lambda team: (counts[team], team))

    used = {team_number for team_number in taken if team_number is not None}
    candidate = 1
    while candidate in used:
        candidate += 1
    return candidate


def _pick_primary(candidates: Sequence[ParticipantStanding]) -> ParticipantStanding:
    # max() keeps the first of equal values, i.e. the earliest joiner
    return max(candidates, key=lambda p: p.total_value)


def _best_draw(
    participants: Sequence[ParticipantStanding], draws: Sequence[RoundDraw]
) -> ParticipantStanding | None:
    """Participant holding the highest single draw; the earliest draw wins ties."""
    by_id = {p.participant_id: p for p in participants}
    best: RoundDraw | None = None
    for round_draw in draws:
        if round_draw.participant_id not in by_id:
            continue
        if best is None or round_draw.coin_value > best.coin_value:
            best = round_draw
    return by_id[best.participant_id] if best else None


def _team_of(participant: ParticipantStanding, index: int) -> int:
    return participant.team_number if participant.team_number is not None else index + 1


def _resolve_solo(
    mode: BattleMode, participants: Sequence[ParticipantStanding], draws: Sequence[RoundDraw]
) -> WinnerResolution:
    if mode == BattleMode.JACKPOT:
        winner = _best_draw(participants, draws)
        if winner is None:
            msg = "無法判定大獎模式的勝者"
            raise UnresolvedWinnerError(msg)
        return WinnerResolution(winners=[winner], primary=winner)

    totals = [p.total_value for p in participants]
    target = min(totals) if mode == BattleMode.UPSIDE_DOWN else max(totals)
    winners = [p for p in participants if p.total_value == target]
    return WinnerResolution(winners=winners, primary=_pick_primary(winners))


def _resolve_team(
    mode: BattleMode, participants: Sequence[ParticipantStanding], draws: Sequence[RoundDraw]
) -> WinnerResolution:
    team_totals: dict[int, int] = {}
    for index, participant in enumerate(participants):
        team_number = _team_of(participant, index)
        team_totals[team_number] = team_totals.get(team_number, 0) + participant.total_value

    best = _best_draw(participants, draws) if mode == BattleMode.JACKPOT else None
    if best is not None:
        # the team holding the best single draw takes the jackpot
        winning_teams = [_team_of(best, participants.index(best))]
    else:
        pick = min if mode == BattleMode.UPSIDE_DOWN else max
        target = pick(team_totals.values())
        winning_teams = sorted(team for team, total in team_totals.items() if total == target)

    winners = [p for index, p in enumerate(participants) if _team_of(p, index) in winning_teams]
    if not winners:
        msg = "無法判定獲勝隊伍"
        raise UnresolvedWinnerError(msg)

    # a tie between teams has no single winning team; their members share the prize
    winning_team_number = winning_teams[0] if len(winning_teams) == 1 else None
    return WinnerResolution(
        winners=winners, primary=_pick_primary(winners), winning_team_number=winning_team_number
    )


def resolve_winners(
    rules: BattleRules,
    participants: Sequence[ParticipantStanding],
    draws: Sequence[RoundDraw],
) -> WinnerResolution:
    """Decide who takes a finished battle.

    Args:
        rules: Format and mode of the battle.
        participants: Final standings in join order.
        draws: Every recorded round in chronological order.

    Raises:
        UnresolvedWinnerError: If nobody can be identified as the winner.
    """
    if not participants:
        msg = "此對戰沒有參加者, 無法判定勝者"
        raise UnresolvedWinnerError(msg)

    if rules.format == BattleFormat.TEAM:
        return _resolve_team(rules.mode, participants, draws)
    return _resolve_solo(rules.mode, participants, draws)


def assign_pull_owners(
    winners: Sequence[ParticipantStanding], draws: Sequence[RoundDraw]
) -> list[tuple[int, int]]:
    """Map every still-existing pull of the battle to the winner who receives it.

    A single winner takes everything. Several winners receive the pulls in turn,
    following the chronological order of the draws.

    Returns:
        ``(pull_id, player_id)`` pairs.
    """
    if not winners:
        msg = "沒有勝者可接收卡片"
        raise UnresolvedWinnerError(msg)

    live_pull_ids = [d.pull_id for d in draws if d.pull_id is not None]
    return [
        (pull_id, winners[index % len(winners)].player_id)
        for index, pull_id in enumerate(live_pull_ids)
    ]


def split_prize(total_prize: int, winner_count: int) -> list[int]:
    """Split an integer prize evenly; the first ``remainder`` winners get one extra coin."""
    if winner_count < 1:
        msg = "沒有勝者可分配獎金"
        raise UnresolvedWinnerError(msg)
    if total_prize < 0:
        msg = f"Prize pool cannot be negative: {total_prize}"
        raise ValueError(msg)

    base_share, remainder = divmod(total_prize, winner_count)
    return [base_share + (1 if index < remainder else 0) for index in range(winner_count)]
