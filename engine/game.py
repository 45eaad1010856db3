import concurrent.futures
import dataclasses
import random
from concurrent.futures import ThreadPoolExecutor

import tqdm
from absl import logging

from agent import decisions
from agent.lm import ModelSource
from agent.speech import SpeechError, generate_speech
from agent.summary import summarize_day
from agent.view import seat_label
from engine import rules
from engine.config import BADGE_RUNOFFS, SUMMARY_MODEL, WOLF_REVOTE_ROUNDS
from engine.state import Alignment, Phase, Role


# Orchestrates the Werewolf game - runs night/day phases, manages turns, determines winner.
# Every phase method takes a GameState and returns the next one; the master keeps no game state.
class GameMaster:
    def __init__(self, sources=None, sink=None, summary_source=None, num_threads=1,
                 rng=None, on_state=None, summarize=True):
        self.sources = dict(sources or {})  # player_id -> DecisionSource
        self.sink = sink  # audit sink, optional
        self.summary_source = summary_source or ModelSource(SUMMARY_MODEL)
        self.num_threads = num_threads  # For parallel decisions
        self.rng = rng or random.Random()
        self.on_state = on_state  # called with every new phase snapshot
        self.summarize = summarize
        self._summary_executor = ThreadPoolExecutor(max_workers=1)
        self._pending_summaries = {}  # day -> Future

    # Decision source for a seat: explicit binding first, then the seat's model
    def source_for(self, player):
        source = self.sources.get(player.player_id)
        if source is not None:
            return source
        if player.agent_profile is None:
            raise ValueError(f"No decision source for {player.label}")
        source = ModelSource(player.agent_profile.model)
        self.sources[player.player_id] = source
        return source

    def _publish(self, state):
        if self.on_state is not None:
            self.on_state(state)
        return state

    def _transition(self, state, phase):
        return self._publish(rules.transition_phase(state, phase))

    def _announce(self, state, announcement):
        tqdm.tqdm.write(announcement)
        return rules.add_system_message(state, announcement)

    # Asks every player in `players` in parallel; results are keyed by player id in seat order
    def _collect(self, state, players, decide, **kwargs):
        with ThreadPoolExecutor(max_workers=self.num_threads) as executor:
            tasks = {
                player.player_id: executor.submit(
                    decide, state, player, self.source_for(player), self.sink, self.rng, **kwargs
                )
                for player in sorted(players, key=lambda p: p.seat)
            }
            return {player_id: task.result() for player_id, task in tasks.items()}

    def _speak(self, state, seat, occasion):
        player = state.player_by_seat(seat)
        state = dataclasses.replace(state, current_speaker_seat=seat)
        try:
            speech = generate_speech(state, player, self.source_for(player), self.sink, occasion)
        except SpeechError as e:
            logging.warning("Skipping speaker: %s", e)
            tqdm.tqdm.write(f"{player.label} stays silent")
            return state
        tqdm.tqdm.write(f"{player.label} ({player.role.value}): {speech}")
        return rules.add_player_message(
            state, player.player_id, speech, is_last_words=occasion == "last_words"
        )

    # ========================================================================
    # NIGHT
    # ========================================================================

    # Guard protects a player; never the same one two nights running
    def protect(self, state):
        guards = state.alive_with_role(Role.GUARD)
        if not guards:
            return state
        state = self._transition(state, Phase.NIGHT_GUARD_ACTION)
        guard = guards[0]
        target = decisions.guard_protect(state, guard, self.source_for(guard), self.sink, self.rng)
        if target is None:
            return state
        tqdm.tqdm.write(f"{guard.label} protected Seat {target + 1}")
        return rules.set_guard_target(state, target)

    # Werewolves vote on a target, revoting while the team is split
    def eliminate(self, state):
        wolves = state.alive_with_role(Role.WEREWOLF)
        if not wolves:
            return state
        state = self._transition(state, Phase.NIGHT_WOLF_ACTION)
        notes = ""
        votes = {}
        for _ in range(WOLF_REVOTE_ROUNDS):
            votes = self._collect(state, wolves, decisions.wolf_kill, notes=notes)
            votes = {player_id: seat for player_id, seat in votes.items() if seat is not None}
            tally = rules.tally_votes(state, votes, weighted=False)
            if not tally.is_tie:
                break
            split = ", ".join(f"Seat {seat + 1}" for seat in tally.leaders)
            notes = f"Your team is split between {split}. Agree on one target."
            tqdm.tqdm.write(f"Werewolves are split between {split}, voting again")

        target = rules.aggregate_wolf_votes(state, votes)
        if target is not None:
            tqdm.tqdm.write(f"Werewolves chose Seat {target + 1}")
        return rules.set_wolf_votes(state, votes, target)

    # Witch may save the wolf target or poison someone, once each per game
    def brew(self, state):
        witches = state.alive_with_role(Role.WITCH)
        abilities = state.role_abilities
        if not witches or (abilities.witch_heal_used and abilities.witch_poison_used):
            return state
        state = self._transition(state, Phase.NIGHT_WITCH_ACTION)
        witch = witches[0]
        action = decisions.witch_action(state, witch, self.source_for(witch), self.sink, self.rng)
        if not action.is_pass:
            target = state.night_actions.wolf_target if action.target is None else action.target
            tqdm.tqdm.write(f"{witch.label} used {action.choice.value} on Seat {target + 1}")
        return rules.apply_witch_action(state, action)

    # Seer learns whether a player is a Werewolf
    def unmask(self, state):
        seers = state.alive_with_role(Role.SEER)
        if not seers:
            return state
        state = self._transition(state, Phase.NIGHT_SEER_ACTION)
        seer = seers[0]
        target = decisions.seer_check(state, seer, self.source_for(seer), self.sink, self.rng)
        if target is None:
            return state
        state, check = rules.record_seer_check(state, target)
        tqdm.tqdm.write(
            f"{seer.label} investigated Seat {target + 1}: "
            f"{'Werewolf' if check.is_wolf else 'not a Werewolf'}"
        )
        return state

    def run_night(self, state):
        state = self.merge_summaries(state)
        state = self._publish(rules.start_night(state))
        tqdm.tqdm.write(f"NIGHT {state.day}")
        for action, message in [
            (self.protect, "The Guard is protecting someone"),
            (self.eliminate, "The Werewolves are picking someone to remove from the game"),
            (self.brew, "The Witch is deciding on her potions"),
            (self.unmask, "The Seer is investigating someone"),
        ]:
            tqdm.tqdm.write(message)
            state = action(state)
        return self._publish(rules.resolve_night(state))

    # ========================================================================
    # DAY
    # ========================================================================

    def run_badge_election(self, state):
        state = self._transition(state, Phase.DAY_BADGE_SIGNUP)
        signup = self._collect(state, state.alive_players(), decisions.badge_signup)
        state = rules.record_badge_signup(state, signup)
        candidates = state.badge.candidates
        if not candidates:
            return self._announce(state, "Nobody ran for Sheriff. There is no Sheriff.")
        if len(candidates) == 1:
            state = rules.set_badge_holder(state, candidates[0])
            return self._announce(state, f"{state.sheriff().label} is the only candidate and becomes Sheriff.")

        names = ", ".join(seat_label(state, seat) for seat in candidates)
        state = self._announce(state, f"Candidates for Sheriff: {names}.")
        state = self._transition(state, Phase.DAY_BADGE_SPEECH)
        for seat in candidates:
            state = self._speak(state, seat, "badge_speech")

        for runoff in range(BADGE_RUNOFFS + 1):
            state = self._transition(state, Phase.DAY_BADGE_ELECTION)
            voters = [p for p in state.alive_players() if p.seat not in state.badge.candidates]
            if not voters:
                break
            votes = self._collect(state, voters, decisions.badge_vote)
            state = rules.record_badge_votes(state, votes)
            tally = rules.tally_badge_votes(state)
            if tally.winner is not None:
                state = rules.set_badge_holder(state, tally.winner)
                return self._announce(state, f"{state.sheriff().label} is elected Sheriff.")
            if runoff == BADGE_RUNOFFS or not tally.leaders:
                break
            state = rules.start_badge_runoff(state, tally.leaders)
            names = ", ".join(seat_label(state, seat) for seat in tally.leaders)
            state = self._announce(state, f"The Sheriff election is tied between {names}.")
            state = self._transition(state, Phase.DAY_PK_SPEECH)
            for seat in state.badge.candidates:
                state = self._speak(state, seat, "pk_speech")

        return self._announce(state, "The Sheriff election ended without a winner. There is no Sheriff.")

    # Departing sheriff passes the badge on
    def transfer_badge(self, state, sheriff):
        state = self._transition(state, Phase.BADGE_TRANSFER)
        target = decisions.badge_transfer(state, sheriff, self.source_for(sheriff), self.sink, self.rng)
        state = rules.set_badge_holder(state, target)
        if target is None:
            return self._announce(state, "The Sheriff badge is lost.")
        return self._announce(state, f"{sheriff.label} hands the Sheriff badge to {seat_label(state, target)}.")

    def hunter_shot(self, state, hunter, last_words):
        state = self._transition(state, Phase.HUNTER_SHOOT)
        target = decisions.hunter_shoot(state, hunter, self.source_for(hunter), self.sink, self.rng)
        state = rules.disable_hunter(state)
        if target is None:
            return self._announce(state, f"{hunter.label} the Hunter holds fire.")
        state = rules.kill_player(state, target)
        state = rules.record_day_event(state, hunter_shot=target)
        state = self._announce(state, f"{hunter.label} the Hunter shoots {seat_label(state, target)}.")
        state = rules.apply_win_check(state)
        if state.winner is not None:
            return self._publish(state)
        return self.handle_death(state, target, "hunter", last_words)

    # Chained effects of a death: last words, badge transfer, hunter shot
    def handle_death(self, state, seat, cause, last_words):
        player = state.player_by_seat(seat)
        if last_words:
            state = self._transition(state, Phase.DAY_LAST_WORDS)
            state = self._speak(state, seat, "last_words")
        if state.badge.holder_seat == seat:
            state = self.transfer_badge(state, player)
        if (player.role == Role.HUNTER and cause != "poison"
                and state.role_abilities.hunter_can_shoot):
            state = self.hunter_shot(state, player, last_words)
        return state

    # Dawn: reveal the night's victims
    def resolve_dawn(self, state):
        state = self._transition(state, Phase.DAY_START)
        tqdm.tqdm.write(f"DAY {state.day}")
        state, deaths = rules.apply_night_deaths(state)

        # A decided game skips the election and goes straight to the reveal
        decided = rules.check_win_condition(state) is not None
        if not decided and state.day == 1 and state.badge.holder_seat is None:
            state = self.run_badge_election(state)

        state = self._transition(state, Phase.DAY_RESOLVE)
        if deaths:
            names = ", ".join(seat_label(state, seat) for seat, _ in deaths)
            state = self._announce(state, f"Last night {names} died.")
        else:
            state = self._announce(state, "Last night was peaceful. Nobody died.")
        state = rules.apply_win_check(state)
        if state.winner is not None:
            return self._publish(state), deaths

        for seat, cause in deaths:
            state = self.handle_death(state, seat, cause, last_words=state.day == 1)
            if state.winner is not None:
                break
        return state, deaths

    # Everyone alive speaks once; `start_seat` overrides the usual first speaker
    def run_discussion(self, state, dead_seat=None, start_seat=None):
        state = self._transition(state, Phase.DAY_DISCUSSION)
        start = rules.resolve_speech_start_seat(state, dead_seat) if start_seat is None else start_seat
        if start is None:
            return state
        direction = rules.resolve_speech_direction(state, start)
        state = dataclasses.replace(state, speech_direction=direction)
        for seat in rules.speaking_order(state, start, direction=direction):
            state = self._speak(state, seat, "discussion")
        return state

    # Conduct a vote among players to exile someone, with one runoff on a tie
    def run_voting(self, state):
        state = self._transition(state, Phase.DAY_VOTE)
        votes = self._collect(state, state.alive_players(), decisions.vote)
        state = rules.record_day_votes(state, votes)
        tally = rules.tally_day_votes(state)
        for player_id, seat in votes.items():
            tqdm.tqdm.write(f"{state.player_by_id(player_id).label} voted to remove Seat {seat + 1}")

        if tally.is_tie:
            state = dataclasses.replace(state, pk_targets=tally.leaders)
            names = ", ".join(seat_label(state, seat) for seat in tally.leaders)
            state = self._announce(state, f"The vote is tied between {names}. They speak again before a runoff.")
            state = self._transition(state, Phase.DAY_PK_SPEECH)
            for seat in tally.leaders:
                state = self._speak(state, seat, "pk_speech")
            state = self._transition(state, Phase.DAY_VOTE)
            voters = [p for p in state.alive_players() if p.seat not in tally.leaders]
            votes = self._collect(state, voters or state.alive_players(), decisions.vote)
            state = rules.record_day_votes(state, votes)
            tally = rules.tally_day_votes(state)

        state = dataclasses.replace(state, pk_targets=())
        return self.exile(state, tally)

    # Exile the player with a unique top vote total, if there is one
    def exile(self, state, tally):
        state = self._transition(state, Phase.DAY_RESOLVE)
        if tally.winner is None:
            state = rules.record_day_event(state, executed=None)
            return self._announce(state, "The vote did not produce a single player, so no one was removed.")

        seat = tally.winner
        state = rules.kill_player(state, seat)
        state = rules.record_day_event(state, executed=seat, totals=tally.totals)
        state = self._announce(state, f"The village voted to remove {seat_label(state, seat)} from the game.")
        state = rules.apply_win_check(state)
        if state.winner is not None:
            return self._publish(state)
        return self.handle_death(state, seat, "vote", last_words=True)

    def run_day(self, state):
        state = self.merge_summaries(state)
        state, deaths = self.resolve_dawn(state)
        if state.winner is not None:
            return state
        dead_seat = deaths[-1][0] if deaths else None
        state = self.run_discussion(state, dead_seat)
        state = self.run_voting(state)
        if state.winner is None:
            self.start_summary(state)
        return state

    # ========================================================================
    # DAILY SUMMARIES
    # ========================================================================

    # Summaries run in the background so the next phase never waits for them
    def start_summary(self, state):
        if not self.summarize or state.day in self._pending_summaries:
            return
        self._pending_summaries[state.day] = self._summary_executor.submit(
            summarize_day, state, self.summary_source, self.sink
        )

    # Merges finished summaries into the state; with `wait`, blocks for the rest
    def merge_summaries(self, state, wait=False):
        for day in sorted(self._pending_summaries):
            future = self._pending_summaries[day]
            if not wait and not future.done():
                continue
            del self._pending_summaries[day]
            try:
                bullets = future.result()
            except concurrent.futures.CancelledError:
                continue
            except Exception as e:
                logging.warning("Summary for day %d failed: %s", day, e)
                continue
            if bullets:
                state = rules.record_daily_summary(state, day, bullets)
        return state

    # ========================================================================
    # GAME LOOP
    # ========================================================================

    # Run the entire Werewolf game until there's a winner
    def run_game(self, state):
        tqdm.tqdm.write("STARTING GAME")
        try:
            while state.winner is None:
                state = self.run_night(state)
                state = self.run_day(state)
            state = self.merge_summaries(state, wait=True)
        finally:
            self._summary_executor.shutdown(wait=False)
        winner = "Villagers" if state.winner == Alignment.VILLAGE else "Werewolves"
        tqdm.tqdm.write(f"The winner is {winner}!")
        return self._publish(state)
