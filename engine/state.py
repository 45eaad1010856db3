import dataclasses
import enum
import json
import uuid
from typing import Dict, List, Optional, Tuple


# ============================================================================
# ENUMS
# ============================================================================

class Role(str, enum.Enum):
    WEREWOLF = "Werewolf"
    SEER = "Seer"
    WITCH = "Witch"
    HUNTER = "Hunter"
    GUARD = "Guard"
    VILLAGER = "Villager"


class Alignment(str, enum.Enum):
    VILLAGE = "village"
    WOLF = "wolf"


class Phase(str, enum.Enum):
    LOBBY = "LOBBY"
    SETUP = "SETUP"
    NIGHT_START = "NIGHT_START"
    NIGHT_GUARD_ACTION = "NIGHT_GUARD_ACTION"
    NIGHT_WOLF_ACTION = "NIGHT_WOLF_ACTION"
    NIGHT_WITCH_ACTION = "NIGHT_WITCH_ACTION"
    NIGHT_SEER_ACTION = "NIGHT_SEER_ACTION"
    NIGHT_RESOLVE = "NIGHT_RESOLVE"
    DAY_START = "DAY_START"
    DAY_BADGE_SIGNUP = "DAY_BADGE_SIGNUP"
    DAY_BADGE_SPEECH = "DAY_BADGE_SPEECH"
    DAY_BADGE_ELECTION = "DAY_BADGE_ELECTION"
    DAY_PK_SPEECH = "DAY_PK_SPEECH"
    DAY_DISCUSSION = "DAY_DISCUSSION"
    DAY_VOTE = "DAY_VOTE"
    DAY_RESOLVE = "DAY_RESOLVE"
    DAY_LAST_WORDS = "DAY_LAST_WORDS"
    BADGE_TRANSFER = "BADGE_TRANSFER"
    HUNTER_SHOOT = "HUNTER_SHOOT"
    GAME_END = "GAME_END"

    @property
    def is_night(self):
        return self.value.startswith("NIGHT_")


class SpeechDirection(str, enum.Enum):
    CLOCKWISE = "clockwise"
    COUNTERCLOCKWISE = "counterclockwise"


# Alignment is never stored independently of the role
def alignment_for(role: Role) -> Alignment:
    return Alignment.WOLF if role == Role.WEREWOLF else Alignment.VILLAGE


# ============================================================================
# JSON SERIALIZATION
# ============================================================================

# Custom JSON encoder that handles nested dataclasses and enums
class JsonEncoder(json.JSONEncoder):
    def default(self, o):
        if isinstance(o, enum.Enum):
            return o.value
        if isinstance(o, (set, frozenset)):
            return sorted(o)
        if isinstance(o, Player):
            return {**o.__dict__, "alignment": o.alignment}
        return o.__dict__


# Converts an object to plain JSON types using the custom encoder
def to_dict(o):
    return json.loads(JsonEncoder().encode(o))


# ============================================================================
# PLAYERS
# ============================================================================

# Decision-source binding for a non-human seat
@dataclasses.dataclass(frozen=True)
class AgentProfile:
    model: str
    persona: str = ""


@dataclasses.dataclass(frozen=True)
class Player:
    seat: int  # 0-indexed, stable for the whole game
    player_id: str
    display_name: str
    role: Role
    is_human: bool = False
    alive: bool = True
    agent_profile: Optional[AgentProfile] = None

    @property
    def alignment(self) -> Alignment:
        return alignment_for(self.role)

    @property
    def is_wolf(self):
        return self.role == Role.WEREWOLF

    # 1-indexed label used everywhere a seat is shown to a person or a model
    @property
    def label(self):
        return f"Seat {self.seat + 1} ({self.display_name})"


# ============================================================================
# SUB-STATES
# ============================================================================

@dataclasses.dataclass(frozen=True)
class Badge:
    holder_seat: Optional[int] = None
    candidates: Tuple[int, ...] = ()
    signup: Dict[str, bool] = dataclasses.field(default_factory=dict)  # player_id -> signed up
    votes: Dict[str, int] = dataclasses.field(default_factory=dict)  # player_id -> target seat
    history: Dict[int, Dict[str, int]] = dataclasses.field(default_factory=dict)  # day -> votes
    revote_count: int = 0


@dataclasses.dataclass(frozen=True)
class SeerCheck:
    day: int
    target_seat: int
    is_wolf: bool


@dataclasses.dataclass(frozen=True)
class NightActions:
    guard_target: Optional[int] = None
    last_guard_target: Optional[int] = None  # drives the guard's no-repeat rule
    wolf_votes: Dict[str, int] = dataclasses.field(default_factory=dict)  # wolf player_id -> seat
    wolf_target: Optional[int] = None
    witch_save: bool = False
    witch_poison: Optional[int] = None
    seer_target: Optional[int] = None
    seer_history: Tuple[SeerCheck, ...] = ()
    pending_wolf_victim: Optional[int] = None  # announced at dawn
    pending_poison_victim: Optional[int] = None


@dataclasses.dataclass(frozen=True)
class RoleAbilities:
    witch_heal_used: bool = False
    witch_poison_used: bool = False
    hunter_can_shoot: bool = True  # false once the hunter dies by poison


class WitchChoice(str, enum.Enum):
    SAVE = "save"
    POISON = "poison"
    PASS = "pass"


@dataclasses.dataclass(frozen=True)
class WitchAction:
    choice: WitchChoice = WitchChoice.PASS
    target: Optional[int] = None  # poison target; the save target is always the wolf target

    @property
    def is_pass(self):
        return self.choice == WitchChoice.PASS


@dataclasses.dataclass(frozen=True)
class ChatMessage:
    id: str
    player_id: str
    player_name: str
    content: str
    day: int
    phase: Phase
    timestamp: float
    is_system: bool = False
    is_last_words: bool = False


# ============================================================================
# GAME STATE
# ============================================================================

# One immutable snapshot of a game. Every rule returns a new snapshot via
# dataclasses.replace; dicts and tuples inside are rebuilt, never mutated.
@dataclasses.dataclass(frozen=True)
class GameState:
    game_id: str = dataclasses.field(default_factory=lambda: str(uuid.uuid4()))
    phase: Phase = Phase.LOBBY
    day: int = 0
    players: Tuple[Player, ...] = ()
    messages: Tuple[ChatMessage, ...] = ()
    current_speaker_seat: Optional[int] = None
    speech_direction: SpeechDirection = SpeechDirection.CLOCKWISE
    pk_targets: Tuple[int, ...] = ()  # runoff subset for the day vote
    badge: Badge = dataclasses.field(default_factory=Badge)
    votes: Dict[str, int] = dataclasses.field(default_factory=dict)  # voter player_id -> seat
    vote_history: Dict[int, Dict[str, int]] = dataclasses.field(default_factory=dict)
    night_actions: NightActions = dataclasses.field(default_factory=NightActions)
    role_abilities: RoleAbilities = dataclasses.field(default_factory=RoleAbilities)
    daily_summaries: Dict[int, Tuple[str, ...]] = dataclasses.field(default_factory=dict)
    night_history: Dict[int, Dict[str, object]] = dataclasses.field(default_factory=dict)
    day_history: Dict[int, Dict[str, object]] = dataclasses.field(default_factory=dict)
    winner: Optional[Alignment] = None

    def player_by_seat(self, seat) -> Optional[Player]:
        for player in self.players:
            if player.seat == seat:
                return player
        return None

    def player_by_id(self, player_id) -> Optional[Player]:
        for player in self.players:
            if player.player_id == player_id:
                return player
        return None

    def alive_players(self) -> List[Player]:
        return [p for p in self.players if p.alive]

    def alive_seats(self) -> List[int]:
        return sorted(p.seat for p in self.players if p.alive)

    def alive_with_role(self, role: Role) -> List[Player]:
        return [p for p in self.players if p.alive and p.role == role]

    def is_alive(self, seat) -> bool:
        player = self.player_by_seat(seat)
        return player is not None and player.alive

    # The badge holder, if the badge has one
    def sheriff(self) -> Optional[Player]:
        if self.badge.holder_seat is None:
            return None
        return self.player_by_seat(self.badge.holder_seat)

    def human(self) -> Optional[Player]:
        return next((p for p in self.players if p.is_human), None)

    def to_dict(self):
        return to_dict(self)
