import collections
import random
import uuid
from typing import List, Optional, Sequence

import tqdm

from engine.config import ROLE_TABLE, get_player_names
from engine.state import AgentProfile, GameState, Phase, Player, Role


# Returns the fixed role multiset for a seat count
def get_role_configuration(num_players) -> List[Role]:
    if num_players not in ROLE_TABLE:
        raise ValueError(
            f"Unsupported number of players {num_players}; expected one of {sorted(ROLE_TABLE)}"
        )
    return [Role(name) for name in ROLE_TABLE[num_players]]


def _player_id_for_seat(seed_player_ids, seat):
    if seed_player_ids and seat < len(seed_player_ids):
        player_id = seed_player_ids[seat]
        if isinstance(player_id, str) and player_id.strip():
            return player_id
    return str(uuid.uuid4())


# Assigns roles to seats and binds each seat to the human or to a decision source
def setup_players(
    num_players: int,
    agent_pool: Sequence[AgentProfile],
    human_seat: Optional[int] = None,
    human_name: str = "",
    fixed_roles: Optional[Sequence[Role]] = None,
    seed_player_ids: Optional[Sequence[str]] = None,
    rng=random,
) -> List[Player]:
    roles = get_role_configuration(num_players)
    if fixed_roles is not None:
        fixed_roles = [Role(r) for r in fixed_roles]
        if collections.Counter(fixed_roles) != collections.Counter(roles):
            raise ValueError(
                f"Fixed roles {fixed_roles} do not match the {num_players}-player configuration"
            )
        assigned_roles = fixed_roles
    else:
        assigned_roles = list(roles)
        rng.shuffle(assigned_roles)

    if human_seat is not None and not 0 <= human_seat < num_players:
        raise ValueError(f"Human seat {human_seat} is outside 0..{num_players - 1}")
    if not agent_pool:
        raise ValueError("agent_pool must contain at least one profile for AI seats")

    names = get_player_names(num_players, rng)
    players = []
    for seat, role in enumerate(assigned_roles):
        player_id = _player_id_for_seat(seed_player_ids, seat)
        if seat == human_seat:
            players.append(Player(
                seat=seat,
                player_id=player_id,
                display_name=human_name.strip() or "You",
                role=role,
                is_human=True,
            ))
        else:
            players.append(Player(
                seat=seat,
                player_id=player_id,
                display_name=names[seat],
                role=role,
                agent_profile=rng.choice(list(agent_pool)),
            ))
        tqdm.tqdm.write(f"{players[-1].label} has role {role.value}")
    return players


def create_initial_game_state(players=()) -> GameState:
    return GameState(players=tuple(players))


# Sets up players and returns the first snapshot of a new game
def new_game(num_players, agent_pool, rng=random, **kwargs) -> GameState:
    players = setup_players(num_players, agent_pool, rng=rng, **kwargs)
    return GameState(phase=Phase.SETUP, players=tuple(players))
