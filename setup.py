
from setuptools import setup, find_packages

setup(
    name="werewolf-engine",
    version="0.1",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["apis", "utils", "run_game"],
    install_requires=[
        'pandas',
        'absl-py',
        'tqdm',
        'jinja2',
        'requests',
        'marko',
        'pyyaml'
    ],
    extras_require={
        'test': ['pytest'],
    },
)
