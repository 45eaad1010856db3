import datetime
import itertools
import os
import random
import traceback

import pandas as pd
import tqdm
from absl import flags

from agent.lm import DecisionCancelled, DecisionSource
from engine import game
from engine import game_logging as logging
from engine.config import DEFAULT_NUM_PLAYERS
from engine.roles import new_game
from engine.state import AgentProfile

_RUN_GAME = flags.DEFINE_boolean("run", False, "Runs a single game.")
_EVAL = flags.DEFINE_boolean("eval", False, "Collect eval data by running many games.")
_NUM_GAMES = flags.DEFINE_integer(
    "num_games", 2, "Number of games to run used with eval."
)
_PLAYERS = flags.DEFINE_integer("players", DEFAULT_NUM_PLAYERS, "Number of seats, 8 to 12.")
_HUMAN_SEAT = flags.DEFINE_integer(
    "human_seat", 0, "1-indexed seat played from the console; 0 for an all-AI game."
)
_HUMAN_NAME = flags.DEFINE_string("human_name", "", "Display name of the human player.")
_MODELS = flags.DEFINE_list(
    "models", "", "Models the AI seats are drawn from, values are: llama3-8b, qwen"
)
_THREADS = flags.DEFINE_integer("threads", 2, "Number of threads to run.")
_SEED = flags.DEFINE_integer("seed", None, "Random seed for roles, names and fallbacks.")
DEFAULT_MODELS = ["llama3-8b"]

model_to_id = {
    "llama3-8b": "llama3:8b",
    "qwen": "qwen3:8b",
}


# Human seat: reads answers from the console, "skip" withdraws the decision
class ConsoleSource(DecisionSource):
    def __init__(self, input_fn=input):
        self.input_fn = input_fn

    def respond(self, request):
        tqdm.tqdm.write(f"\n{request.question}")
        for option in request.options:
            tqdm.tqdm.write(f"  - {option}")
        answer = self.input_fn("> ").strip()
        if answer.lower() == "skip":
            raise DecisionCancelled("skipped at the console")
        return answer


def run_game(models, num_players=DEFAULT_NUM_PLAYERS, human_seat=None, human_name="",
             num_threads=2, seed=None):
    rng = random.Random(seed)
    agent_pool = [AgentProfile(model=model) for model in models]
    state = new_game(num_players, agent_pool, rng=rng, human_seat=human_seat, human_name=human_name)

    sources = {}
    human = state.human()
    if human is not None:
        sources[human.player_id] = ConsoleSource()
        tqdm.tqdm.write(f"You are {human.label}, the {human.role.value}.")

    # Create log directory upfront
    log_directory = logging.log_directory()
    snapshots = [state]
    gamemaster = game.GameMaster(
        sources=sources,
        sink=logging.JsonlAuditSink(log_directory),
        num_threads=num_threads,
        rng=rng,
        on_state=snapshots.append,
    )

    try:
        print(f"Game started. Audit log writing to: {log_directory}")
        snapshots.append(gamemaster.run_game(state))
    except KeyboardInterrupt:
        print("\n\nGame interrupted. Saving current state...")
    except Exception as e:
        print(f"Error encountered during game: {e}")
        traceback.print_exc()
    finally:
        # Always save game state (even if interrupted)
        logging.save_game(snapshots[-1], log_directory)
        print(f"Game logs saved to: {log_directory}")

    final = snapshots[-1]
    winner = final.winner.value if final.winner else None
    return winner, final.day, log_directory


def run():
    models = [model_to_id.get(m, m) for m in (_MODELS.value or DEFAULT_MODELS)]

    if _RUN_GAME.value:
        human_seat = _HUMAN_SEAT.value - 1 if _HUMAN_SEAT.value > 0 else None
        print(f"Running a {_PLAYERS.value}-player game with models: {', '.join(models)}")
        run_game(
            models,
            num_players=_PLAYERS.value,
            human_seat=human_seat,
            human_name=_HUMAN_NAME.value,
            num_threads=_THREADS.value,
            seed=_SEED.value,
        )

    elif _EVAL.value:
        results = []
        base_seed = _SEED.value
        for model, game_index in itertools.product(models, range(_NUM_GAMES.value)):
            print(f"Running game {game_index + 1} with model {model}")
            seed = None if base_seed is None else base_seed + game_index
            winner, days, log_dir = run_game(
                [model],
                num_players=_PLAYERS.value,
                num_threads=_THREADS.value,
                seed=seed,
            )
            results.append([model, _PLAYERS.value, winner, days, log_dir])

        df = pd.DataFrame(
            results, columns=["Model", "Players", "Winner", "Days", "Log"]
        )
        print("######## Eval results ########")
        print(df)
        print(df.groupby("Model")["Winner"].value_counts())

        pacific_timezone = datetime.timezone(datetime.timedelta(hours=-8))
        timestamp = datetime.datetime.now(pacific_timezone).strftime("%Y%m%d_%H%M%S")
        os.makedirs(f"{os.getcwd()}/output_metrics", exist_ok=True)
        csv_file = f"{os.getcwd()}/output_metrics/eval_results_{timestamp}.csv"
        df.to_csv(csv_file)
        print(f"Wrote eval results to {csv_file}")
