"""
Lockpick Simulation Runner

Plays complete single-session games with a greedy bot at every seat.
No server/websocket needed - runs the turn engine directly.

Usage:
    python simulate.py [num_games] [num_players]
    python simulate.py detail [num_players]

Examples:
    python simulate.py 10        # Run 10 games with 4 players each
    python simulate.py 50 2      # Run 50 games with 2 players each
    python simulate.py detail 1  # Play one solo game turn by turn
"""

import sys
from typing import Optional

from constants import REVERSE_STEP
from game import GameState, end_turn, get_game_status, handle_cant_play, initialize_game, play_card
from rules import PileType, pile_type_for, playable_moves

# Extra plays past the turn minimum are only worth it when the pile barely moves.
EXTRA_PLAY_MAX_GAP = 1
MAX_TURNS = 1000


class SimulationStats:
    """Track simulation statistics."""

    def __init__(self):
        self.games_played = 0
        self.games_won = 0
        self.total_turns = 0
        self.cards_left: list[int] = []
        self.reverse_plays = 0

    def record_game(self, state: GameState, turns: int):
        self.games_played += 1
        self.total_turns += turns
        if state.game_won:
            self.games_won += 1
        self.cards_left.append(state.total_cards - sum(len(p) for p in state.discard_piles))

    @property
    def win_rate(self) -> float:
        if self.games_played == 0:
            return 0.0
        return self.games_won / self.games_played * 100

    def report(self) -> str:
        avg_left = sum(self.cards_left) / len(self.cards_left) if self.cards_left else 0
        lines = [
            "=" * 50,
            "SIMULATION RESULTS",
            "=" * 50,
            f"Games played: {self.games_played}",
            f"Games won: {self.games_won} ({self.win_rate:.1f}%)",
            f"Total turns: {self.total_turns}",
            f"Avg turns/game: {self.total_turns / max(1, self.games_played):.1f}",
            f"Avg cards left unplayed: {avg_left:.1f}",
            f"Reverse plays (jumps of {REVERSE_STEP}): {self.reverse_plays}",
        ]
        return "\n".join(lines)


def pile_start(state: GameState, pile_index: int) -> int:
    """Conceptual top of an empty pile."""
    if pile_type_for(pile_index) == PileType.ASCENDING:
        return 1
    return state.descending_start


def move_gap(state: GameState, card: int, pile_index: int) -> int:
    """
    How far a play moves a pile away from its open end.

    Reverse plays come out negative, so a lower gap is always a better move.
    """
    pile = state.discard_piles[pile_index]
    top = pile[-1] if pile else pile_start(state, pile_index)
    if pile_type_for(pile_index) == PileType.ASCENDING:
        return card - top
    return top - card


def choose_move(state: GameState) -> Optional[tuple[int, int]]:
    """Pick the legal (card, pile_index) with the smallest gap, or None."""
    moves = playable_moves(state.current_hand, state.discard_piles)
    if not moves:
        return None
    return min(moves, key=lambda move: move_gap(state, *move))


def run_turn(state: GameState, stats: Optional[SimulationStats] = None, log: Optional[list[str]] = None) -> GameState:
    """
    Play one full turn for the current seat.

    Plays the minimum, keeps playing while moves are nearly free, then ends
    the turn. Declares "can't play" when the minimum cannot be reached.
    """
    while not state.is_finished:
        move = choose_move(state)
        if move is None:
            break
        gap = move_gap(state, *move)
        if state.turn_complete and gap > EXTRA_PLAY_MAX_GAP:
            break

        state = play_card(state, *move).game_state
        if stats and gap < 0:
            stats.reverse_plays += 1
        if log is not None:
            log.append(f"  plays {move[0]} on pile {move[1]} (gap {gap})")

    if state.is_finished:
        return state

    if state.turn_complete:
        return end_turn(state).game_state

    if log is not None:
        log.append("  can't play!")
    return handle_cant_play(state).game_state


def run_game(num_players: int, stats: Optional[SimulationStats] = None, verbose: bool = False) -> GameState:
    """Play one game to completion and return the final state."""
    state = initialize_game(num_players)
    turns = 0

    while not state.is_finished and turns < MAX_TURNS:
        log: Optional[list[str]] = [] if verbose else None
        hand = sorted(state.current_hand)
        player = state.current_player
        state = run_turn(state, stats, log)
        turns += 1

        if verbose:
            print(f"\nTurn {turns}: Player {player + 1}")
            print(f"  Hand: {hand}")
            print("\n".join(log))
            print(f"  Piles: {[p[-1] if p else '-' for p in state.discard_piles]}")

    if stats:
        stats.record_game(state, turns)
    return state


def run_simulation(num_games: int = 10, num_players: int = 4, verbose: bool = True) -> SimulationStats:
    """Run multiple games and report statistics."""

    print(f"\nRunning {num_games} games with {num_players} players each...")
    print("=" * 50)

    stats = SimulationStats()
    for i in range(num_games):
        state = run_game(num_players, stats)
        if verbose:
            played = sum(len(p) for p in state.discard_piles)
            result = "won" if state.game_won else "lost"
            print(f"Game {i+1}/{num_games}: {result} ({played}/{state.total_cards} cards)")

    print("\n")
    print(stats.report())
    return stats


def run_detailed_game(num_players: int = 4) -> GameState:
    """Run a single game with detailed output."""

    print(f"\nRunning detailed game with {num_players} players...")
    print("=" * 50)

    stats = SimulationStats()
    state = run_game(num_players, stats, verbose=True)

    print("\n" + "=" * 50)
    print(get_game_status(state))
    return state


def main(argv: Optional[list[str]] = None):
    """Command-line entry point."""
    args = sys.argv[1:] if argv is None else argv
    if args and args[0] == "detail":
        # Detailed single game
        num_players = int(args[1]) if len(args) > 1 else 4
        run_detailed_game(num_players)
    else:
        # Batch simulation
        num_games = int(args[0]) if args else 10
        num_players = int(args[1]) if len(args) > 1 else 4
        run_simulation(num_games, num_players)


if __name__ == "__main__":
    main()
