#!/usr/bin/env python3
"""
Run a Werewolf game against local Ollama models.

Usage:
    python run_game.py --run --players=10 --human_seat=3 --models=llama3-8b
    python run_game.py --eval --num_games=5 --models=llama3-8b,qwen
"""

from absl import app

# Import runner first to register flags
from runners import runner


def main(argv):
    runner.run()


if __name__ == '__main__':
    app.run(main)
