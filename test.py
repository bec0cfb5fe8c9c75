#!/usr/bin/env python
"""Runs the linters, formatter, type checker and test suite through poetry.

Set NO_RUFF, NO_BLACK or NO_MYPY to skip the corresponding step.
"""
import os
from pathlib import Path
from subprocess import run

ROOT_DIR = Path(__file__).resolve().parent
SRC_DIR = ROOT_DIR.joinpath("provida")
TESTS_DIR = ROOT_DIR.joinpath("tests")

STEPS = [
    ("NO_RUFF", ["ruff", "check", f"{SRC_DIR}", f"{TESTS_DIR}"]),
    ("NO_BLACK", ["black", f"{SRC_DIR}", f"{TESTS_DIR}"]),
    ("NO_MYPY", ["mypy", f"{SRC_DIR}"]),
]

for skip_var, cmd in STEPS:
    if os.getenv(skip_var):
        print(f"{skip_var} set. Skipping {cmd[0]}...")
        continue
    run(["poetry", "run", *cmd], check=True)

run(["poetry", "run", "pytest", "--strict-markers", f"{TESTS_DIR}"], check=True)
