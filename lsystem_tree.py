#!/usr/bin/env python3
"""lsystem_tree.py

A 3D L-system tree generator that emits placement commands for a renderer.

Key features:
- JSON-based input configuration.
- Iterative grammar expansion with a fixed, known symbol alphabet.
- 3D turtle with push/pop branching and per-branch shrink of width and length.
- Branch/blossom classification by lookahead in the expanded string.
- Seeded, injected randomness (jitter table + length sampling) for reproducible trees.
- Random config generator for experimentation.

Run:
  python lsystem_tree.py generate config.json commands.json
  python lsystem_tree.py expand config.json
  python lsystem_tree.py random out.json --seed 123
  python lsystem_tree.py --help
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import math
import os
import random
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, cast

import numpy as np

logger = logging.getLogger(__name__)

Vec3 = tuple[float, float, float]
Mat3 = tuple[Vec3, Vec3, Vec3]


# -------------------------
# Errors / Validation
# -------------------------


class ConfigError(ValueError):
    pass


class LSystemError(Exception):
    """Base class for failures while interpreting an expanded string."""


class MalformedStructure(LSystemError):
    """Brackets in the expanded string do not balance."""

    def __init__(self, index: int | None, message: str | None = None) -> None:
        self.index = index
        if message is None:
            message = f"']' at index {index} has no matching '['"
        super().__init__(message)


class UnrecognizedSymbol(LSystemError):
    def __init__(self, symbol: str, index: int) -> None:
        self.symbol = symbol
        self.index = index
        super().__init__(f"Not a valid symbol {symbol!r} at index {index}")


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigError(msg)


def _as_float(x: Any, path: str) -> float:
    _require(
        isinstance(x, (int, float)) and not isinstance(x, bool),
        f"{path} must be a number",
    )
    return float(x)


def _as_int(x: Any, path: str) -> int:
    _require(
        isinstance(x, int) and not isinstance(x, bool), f"{path} must be an integer"
    )
    return int(x)


def _as_str(x: Any, path: str) -> str:
    _require(isinstance(x, str), f"{path} must be a string")
    return cast(str, x)


def _as_dict(x: Any, path: str) -> dict[str, Any]:
    _require(isinstance(x, dict), f"{path} must be an object")
    return cast(dict[str, Any], x)


def _as_range(x: Any, path: str) -> tuple[float, float]:
    _require(
        isinstance(x, list) and len(x) == 2, f"{path} must be a [min, max] pair"
    )
    lo = _as_float(x[0], f"{path}[0]")
    hi = _as_float(x[1], f"{path}[1]")
    _require(lo <= hi, f"{path} min must be <= max")
    return (lo, hi)


def _as_vec3(x: Any, path: str) -> Vec3:
    _require(isinstance(x, list) and len(x) == 3, f"{path} must be an [x, y, z] list")
    return (
        _as_float(x[0], f"{path}[0]"),
        _as_float(x[1], f"{path}[1]"),
        _as_float(x[2], f"{path}[2]"),
    )


# -------------------------
# Symbols / rules
# -------------------------


class Symbol(str, Enum):
    FORWARD = "F"
    CONTROL = "X"
    TURN_FORWARD = "-"
    TURN_BACK = "+"
    TURN_LEFT = "*"
    TURN_RIGHT = "/"
    PUSH = "["
    POP = "]"


KNOWN_SYMBOLS = frozenset(s.value for s in Symbol)

DEFAULT_AXIOM = "X"

DEFAULT_RULES: Mapping[str, str] = {
    "X": "F[-FX][/FX][+FX][*FX]",
    "F": "FF",
    "*": "F*[[X]+X]+F[/FX]-X",
    "/": "F/[[X]-X]-F[*FX]+X",
}


def check_rules(rules: Mapping[str, str]) -> None:
    """Every replacement symbol must be a rule key or a symbol the turtle knows."""
    for key, repl in rules.items():
        _require(
            isinstance(key, str) and len(key) == 1,
            "rules keys must be single-character strings",
        )
        for pos, ch in enumerate(repl):
            _require(
                ch in rules or ch in KNOWN_SYMBOLS,
                f"rules['{key}'] has unknown symbol {ch!r} at position {pos}",
            )


# -------------------------
# Grammar expansion
# -------------------------


def expand(
    axiom: str,
    rules: Mapping[str, str],
    iterations: int,
    *,
    max_length: int | None = None,
) -> str:
    """Rewrite every symbol of `axiom` through `rules`, `iterations` times.

    Symbols without a rule are copied unchanged. If `max_length` is given and an
    iteration produces a longer string, ConfigError is raised.
    """
    _require(iterations >= 0, "iterations must be >= 0")

    current = axiom
    for n in range(iterations):
        current = "".join(rules.get(ch, ch) for ch in current)
        if max_length is not None and len(current) > max_length:
            raise ConfigError(
                f"expansion exceeds {max_length} symbols at iteration {n + 1}; "
                "lower iterations or simplify the rules"
            )
    return current


# -------------------------
# Geometry helpers
# -------------------------


AXIS_RIGHT = np.array([1.0, 0.0, 0.0])
AXIS_UP = np.array([0.0, 1.0, 0.0])
AXIS_FORWARD = np.array([0.0, 0.0, 1.0])

_TURN_AXES: dict[Symbol, np.ndarray] = {
    Symbol.TURN_FORWARD: AXIS_FORWARD,
    Symbol.TURN_BACK: -AXIS_FORWARD,
    Symbol.TURN_LEFT: -AXIS_RIGHT,
    Symbol.TURN_RIGHT: AXIS_RIGHT,
}

# Blossoms are modelled at a tenth of the sampled petal length.
PETAL_SCALE = 0.1


def axis_rotation(axis: np.ndarray, degrees: float) -> np.ndarray:
    """3x3 rotation matrix about a unit `axis` (Rodrigues' formula)."""
    x, y, z = axis / np.linalg.norm(axis)
    k = np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])
    theta = math.radians(degrees)
    return np.eye(3) + math.sin(theta) * k + (1.0 - math.cos(theta)) * (k @ k)


def _vec(a: np.ndarray) -> Vec3:
    return (float(a[0]), float(a[1]), float(a[2]))


def _mat(m: np.ndarray) -> Mat3:
    return (_vec(m[0]), _vec(m[1]), _vec(m[2]))


# -------------------------
# Command model
# -------------------------


class GeometryKind(str, Enum):
    BRANCH = "branch"
    BLOSSOM = "blossom"


@dataclass(frozen=True)
class PlacementCommand:
    kind: GeometryKind
    position: Vec3
    # Row-major rotation matrix; columns are the local right/up/forward axes.
    orientation: Mat3
    scale: Vec3

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "position": list(self.position),
            "orientation": [list(row) for row in self.orientation],
            "scale": list(self.scale),
        }


@dataclass(frozen=True, eq=False)
class JitterTable:
    """Read-only table of pseudo-random values in [-1, 1], indexed modulo its length."""

    values: np.ndarray

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=float)
        _require(values.ndim == 1 and values.size > 0, "jitter table must be non-empty")
        _require(
            bool(np.all(np.abs(values) <= 1.0)), "jitter values must lie in [-1, 1]"
        )
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    @classmethod
    def generate(cls, rng: np.random.Generator, size: int = 1000) -> JitterTable:
        _require(size > 0, "jitter table size must be > 0")
        return cls(rng.uniform(-1.0, 1.0, size))

    def __len__(self) -> int:
        return int(self.values.size)

    def __getitem__(self, i: int) -> float:
        return float(self.values[i % self.values.size])


@dataclass(frozen=True)
class TreeParams:
    angle_deg: float
    width: float
    min_petal_length: float
    max_petal_length: float
    min_branch_length: float
    max_branch_length: float
    variance: float
    length_scale: float
    width_scale: float


@dataclass(frozen=True, eq=False)
class CursorState:
    position: np.ndarray
    orientation: np.ndarray
    width: float
    min_branch_length: float
    max_branch_length: float


# -------------------------
# Turtle interpreter
# -------------------------


ReportFn = Callable[[UnrecognizedSymbol], None]


def _log_unrecognized(err: UnrecognizedSymbol) -> None:
    logger.error("%s", err)


def classify(symbols: str, i: int) -> GeometryKind:
    """Decide whether the `F` at index `i` is a blossom or a branch.

    An `F` directly before an `X`, or three symbols before an `FX` pair, is the
    last segment of a sub-branch and becomes a blossom. Lookahead wraps around
    to the start of the string.
    """
    n = len(symbols)
    if symbols[(i + 1) % n] == Symbol.CONTROL.value or (
        symbols[(i + 3) % n] == Symbol.FORWARD.value
        and symbols[(i + 4) % n] == Symbol.CONTROL.value
    ):
        return GeometryKind.BLOSSOM
    return GeometryKind.BRANCH


class Turtle:
    def __init__(
        self,
        params: TreeParams,
        jitter: JitterTable,
        *,
        rng: np.random.Generator,
        start: Vec3 | None = None,
    ) -> None:
        _require(params.length_scale > 0, "length_scale must be > 0")
        _require(params.width_scale > 0, "width_scale must be > 0")

        self.params = params
        self.jitter = jitter
        self.rng = rng

        if start is None:
            start = (0.0, 0.0, 0.0)
        self.position = np.array(start, dtype=float)
        self.orientation = np.eye(3)
        self.width = params.width
        self.min_branch_length = params.min_branch_length
        self.max_branch_length = params.max_branch_length

        self.stack: list[CursorState] = []
        self.commands: list[PlacementCommand] = []

    @property
    def up(self) -> np.ndarray:
        return self.orientation @ AXIS_UP

    def run(
        self, symbols: str, report: ReportFn | None = None
    ) -> list[PlacementCommand]:
        """Interpret every symbol and return the commands emitted by this call.

        Unknown symbols are passed to `report` and skipped. An unmatched `]` or
        an unclosed `[` raises MalformedStructure.
        """
        if report is None:
            report = _log_unrecognized

        first = len(self.commands)
        for i in range(len(symbols)):
            try:
                self.step(symbols, i)
            except UnrecognizedSymbol as e:
                report(e)

        if self.stack:
            raise MalformedStructure(
                None, f"{len(self.stack)} '[' left unclosed at end of input"
            )
        return self.commands[first:]

    def step(self, symbols: str, i: int) -> None:
        ch = symbols[i]
        try:
            sym = Symbol(ch)
        except ValueError:
            raise UnrecognizedSymbol(ch, i) from None

        if sym is Symbol.FORWARD:
            self._forward(classify(symbols, i))
        elif sym is Symbol.CONTROL:
            pass
        elif sym is Symbol.PUSH:
            self.push()
        elif sym is Symbol.POP:
            self.pop(i)
        else:
            self.turn(_TURN_AXES[sym], i)

    def turn(self, axis: np.ndarray, i: int) -> None:
        p = self.params
        degrees = p.angle_deg * (1.0 + p.variance / 100.0 * self.jitter[i])
        self.orientation = self.orientation @ axis_rotation(axis, degrees)

    def push(self) -> None:
        self.stack.append(
            CursorState(
                position=self.position.copy(),
                orientation=self.orientation.copy(),
                width=self.width,
                min_branch_length=self.min_branch_length,
                max_branch_length=self.max_branch_length,
            )
        )
        self.width *= self.params.width_scale
        self.min_branch_length *= self.params.length_scale
        self.max_branch_length *= self.params.length_scale

    def pop(self, i: int) -> None:
        if not self.stack:
            raise MalformedStructure(i)
        # Restoring the saved record undoes the push shrink exactly.
        st = self.stack.pop()
        self.position = st.position
        self.orientation = st.orientation
        self.width = st.width
        self.min_branch_length = st.min_branch_length
        self.max_branch_length = st.max_branch_length

    def _forward(self, kind: GeometryKind) -> None:
        position = _vec(self.position)
        orientation = _mat(self.orientation)

        if kind is GeometryKind.BLOSSOM:
            p = self.params
            size = float(self.rng.uniform(p.min_petal_length, p.max_petal_length))
            size *= PETAL_SCALE
            scale: Vec3 = (size, size, size)
        else:
            length = float(
                self.rng.uniform(self.min_branch_length, self.max_branch_length)
            )
            scale = (self.width, length, self.width)
            self.position = self.position + self.up * (2.0 * length)

        self.commands.append(
            PlacementCommand(
                kind=kind, position=position, orientation=orientation, scale=scale
            )
        )


def interpret(
    symbols: str,
    params: TreeParams,
    jitter: JitterTable,
    *,
    rng: np.random.Generator,
    start: Vec3 | None = None,
    report: ReportFn | None = None,
) -> list[PlacementCommand]:
    """Walk an expanded string and return its placement commands in order."""
    turtle = Turtle(params, jitter, rng=rng, start=start)
    return turtle.run(symbols, report)


# -------------------------
# Config parsing
# -------------------------


@dataclass(frozen=True)
class TreeConfig:
    name: str
    axiom: str
    iterations: int
    rules: dict[str, str]
    seed: int | None
    max_symbols: int

    params: TreeParams
    jitter_size: int
    start: Vec3


def parse_config(obj: dict[str, Any]) -> TreeConfig:
    obj = _as_dict(obj, "root")

    name = _as_str(obj.get("name", "L-System Tree"), "name")

    _require("iterations" in obj, "iterations is required")
    iterations = _as_int(obj["iterations"], "iterations")
    _require(iterations >= 0, "iterations must be >= 0")

    rules_obj = _as_dict(obj.get("rules", dict(DEFAULT_RULES)), "rules")
    rules: dict[str, str] = {}
    for k, v in rules_obj.items():
        rules[k] = _as_str(v, f"rules['{k}']")
    check_rules(rules)

    axiom = _as_str(obj.get("axiom", DEFAULT_AXIOM), "axiom")
    for pos, ch in enumerate(axiom):
        _require(
            ch in rules or ch in KNOWN_SYMBOLS,
            f"axiom has unknown symbol {ch!r} at position {pos}",
        )

    seed = obj.get("seed")
    if seed is not None:
        seed = _as_int(seed, "seed")

    max_symbols = _as_int(obj.get("max_symbols", 2_000_000), "max_symbols")
    _require(max_symbols > 0, "max_symbols must be > 0")

    _require("tree" in obj, "tree is required")
    tree = _as_dict(obj["tree"], "tree")
    for key in ("angle", "width", "petal_length", "branch_length", "variance"):
        _require(key in tree, f"tree.{key} is required")

    width = _as_float(tree["width"], "tree.width")
    variance = _as_float(tree["variance"], "tree.variance")
    min_petal, max_petal = _as_range(tree["petal_length"], "tree.petal_length")
    min_branch, max_branch = _as_range(tree["branch_length"], "tree.branch_length")

    length_scale = _as_float(tree.get("length_scale", 0.75), "tree.length_scale")
    _require(length_scale > 0, "tree.length_scale must be > 0")
    width_scale = _as_float(tree.get("width_scale", 0.95), "tree.width_scale")
    _require(width_scale > 0, "tree.width_scale must be > 0")

    jitter_size = _as_int(tree.get("jitter_size", 1000), "tree.jitter_size")
    _require(jitter_size > 0, "tree.jitter_size must be > 0")

    start = _as_vec3(tree.get("start", [0, 0, 0]), "tree.start")

    params = TreeParams(
        angle_deg=_as_float(tree["angle"], "tree.angle"),
        width=width,
        min_petal_length=min_petal,
        max_petal_length=max_petal,
        min_branch_length=min_branch,
        max_branch_length=max_branch,
        variance=variance,
        length_scale=length_scale,
        width_scale=width_scale,
    )

    return TreeConfig(
        name=name,
        axiom=axiom,
        iterations=iterations,
        rules=rules,
        seed=seed,
        max_symbols=max_symbols,
        params=params,
        jitter_size=jitter_size,
        start=start,
    )


def _ensure_parent_dir(path: str) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(path)) or ".", exist_ok=True)


def load_json(path: str) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        try:
            return cast(dict[str, Any], json.load(f))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e


def dump_json(obj: dict[str, Any], path: str) -> None:
    _ensure_parent_dir(path)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, ensure_ascii=False)
        f.write("\n")


# -------------------------
# Pipeline
# -------------------------


@dataclass(frozen=True)
class Generation:
    symbols: str
    commands: list[PlacementCommand]

    def count(self, kind: GeometryKind) -> int:
        return sum(1 for c in self.commands if c.kind is kind)


def generate(
    config: TreeConfig,
    *,
    rng: np.random.Generator | None = None,
    report: ReportFn | None = None,
) -> Generation:
    if rng is None:
        rng = np.random.default_rng(config.seed)

    jitter = JitterTable.generate(rng, config.jitter_size)
    symbols = expand(
        config.axiom, config.rules, config.iterations, max_length=config.max_symbols
    )
    logger.debug("expanded %s: %s", config.name, symbols)

    commands = interpret(
        symbols, config.params, jitter, rng=rng, start=config.start, report=report
    )
    gen = Generation(symbols=symbols, commands=commands)
    logger.info(
        "generated %s: %d symbols, %d branches, %d blossoms",
        config.name,
        len(symbols),
        gen.count(GeometryKind.BRANCH),
        gen.count(GeometryKind.BLOSSOM),
    )
    return gen


# -------------------------
# Random config generator
# -------------------------


_TURNS = "-+*/"


def _random_balanced_word(
    rng: random.Random, length: int, *, p_branch: float = 0.20
) -> str:
    """Generate a random replacement word for X with balanced brackets.

    Produces symbols from: F, X, - + * /, [, ]
    Every bracket pair ends in an X so sub-branches keep growing.
    """
    word: list[str] = []
    depth = 0

    for _ in range(length):
        r = rng.random()
        if r < p_branch and depth < 3:
            word.append("[")
            depth += 1
            continue
        if r < p_branch * 2 and depth > 0:
            word.append("FX]")
            depth -= 1
            continue

        t = rng.random()
        if t < 0.5:
            word.append("F")
        else:
            word.append(rng.choice(_TURNS))

    word.extend("FX]" * depth)

    if "X" not in "".join(word):
        word.append("[FX]")

    return "".join(word)


def generate_random_config(seed: int | None = None) -> dict[str, Any]:
    rng = random.Random(seed)

    angle = rng.choice([15, 20, 22.5, 25, 30, 35, 45])
    iterations = rng.randint(2, 4)
    min_branch = rng.choice([0.2, 0.3, 0.4, 0.5])
    min_petal = rng.choice([1.0, 1.5, 2.0])

    # Either the classic four-way blossom tree or a random X rule.
    if rng.random() < 0.5:
        rules = dict(DEFAULT_RULES)
    else:
        rules = {"X": _random_balanced_word(rng, rng.randint(6, 14)), "F": "FF"}

    cfg = {
        "name": "Random L-System Tree",
        "axiom": DEFAULT_AXIOM,
        "iterations": iterations,
        "rules": rules,
        "seed": rng.randint(0, 2**31 - 1),
        "tree": {
            "angle": angle,
            "width": rng.choice([0.1, 0.15, 0.2, 0.3]),
            "petal_length": [min_petal, min_petal * 2],
            "branch_length": [min_branch, min_branch * 1.5],
            "variance": rng.choice([0, 5, 10, 20, 30]),
            "length_scale": 0.75,
            "width_scale": 0.95,
        },
    }

    # Internal sanity check: generated config must always parse cleanly.
    parse_config(cfg)
    return cfg


# -------------------------
# CLI / Help
# -------------------------

HELP_EPILOG = r"""
INPUT JSON SYNTAX

The generator consumes a single JSON file describing:
  - an L-system (axiom, rules, iterations)
  - the tree parameters used by the 3D turtle

Top-level keys

  name: string (optional)
      A human-readable title; copied into the generated command file.

  axiom: string (default "X")
      The initial word.

  iterations: integer >= 0 (required)
      Number of rewriting steps.

  rules: object mapping single-character string -> string (optional)
      Production rules. Symbols without a rule rewrite to themselves.
      Every symbol must be a rule key or one of: F X - + * / [ ]
      Default:
          X -> F[-FX][/FX][+FX][*FX]
          F -> FF
          * -> F*[[X]+X]+F[/FX]-X
          / -> F/[[X]-X]-F[*FX]+X

  seed: integer (optional)
      Seed for the jitter table and length sampling. Omit for a new tree per run.

  max_symbols: integer (default 2000000)
      Expansion is aborted once the string grows past this length.

  tree: object (required)

    tree.angle: number degrees (required)
        Base turn angle.

    tree.width: number (required)
        Trunk width; multiplied by width_scale on every '['.

    tree.petal_length: [min, max] (required)
        Blossom size range; blossoms are scaled to a tenth of the sample.

    tree.branch_length: [min, max] (required)
        Branch length range; multiplied by length_scale on every '['.

    tree.variance: number percent (required)
        Turn angle noise: angle * (1 + variance/100 * jitter).

    tree.length_scale: number > 0 (default 0.75)
    tree.width_scale: number > 0 (default 0.95)
    tree.jitter_size: integer > 0 (default 1000)
    tree.start: [x, y, z] (default [0, 0, 0])

Symbols

  F   emit a branch (advances 2 * length along local up) or, when followed by X
      (or by ??FX), a blossom (does not advance)
  X   no-op, grows under rewriting
  -   turn about local +Z        +   turn about local -Z
  *   turn about local -X        /   turn about local +X
  [   save cursor, shrink width and length
  ]   restore cursor, width and length

Examples

  Classic blossom tree:

    {
      "iterations": 4,
      "seed": 7,
      "tree": {
        "angle": 25,
        "width": 0.2,
        "petal_length": [2, 4],
        "branch_length": [0.3, 0.5],
        "variance": 10
      }
    }

RANDOM INPUT GENERATION (random)

  python lsystem_tree.py random out.json --seed 123
"""


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lsystem_tree.py",
        description="3D L-system tree generator that outputs placement commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=HELP_EPILOG,
    )
    p.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging verbosity. DEBUG also logs the expanded string.",
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    pg = sub.add_parser(
        "generate",
        help="Generate placement commands from a JSON config.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pg.add_argument("config", help="Path to the input JSON config.")
    pg.add_argument("output", help="Path to write the command JSON.")
    pg.add_argument(
        "--seed", type=int, default=None, help="Override the config seed."
    )

    pe = sub.add_parser(
        "expand",
        help="Print the expanded symbol string of a JSON config.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pe.add_argument("config", help="Path to the input JSON config.")
    pe.add_argument(
        "--output", default=None, help="Write the string to a file instead of stdout."
    )

    pv = sub.add_parser(
        "validate",
        help="Validate a JSON config and print a brief summary.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pv.add_argument("config", help="Path to the input JSON config.")

    pr = sub.add_parser(
        "random",
        help="Generate a random JSON config for experimentation.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pr.add_argument("output", help="Where to write the generated JSON file.")
    pr.add_argument(
        "--seed", type=int, default=None, help="Seed for repeatable randomness."
    )

    return p


# -------------------------
# Commands
# -------------------------


def cmd_generate(config_path: str, output_path: str, seed: int | None) -> None:
    cfg = parse_config(load_json(config_path))
    if seed is not None:
        cfg = dataclasses.replace(cfg, seed=seed)

    gen = generate(cfg)
    dump_json(
        {
            "name": cfg.name,
            "iterations": cfg.iterations,
            "seed": cfg.seed,
            "symbols_length": len(gen.symbols),
            "commands": [c.to_dict() for c in gen.commands],
        },
        output_path,
    )


def cmd_expand(config_path: str, output_path: str | None) -> None:
    cfg = parse_config(load_json(config_path))
    symbols = expand(
        cfg.axiom, cfg.rules, cfg.iterations, max_length=cfg.max_symbols
    )
    if output_path is None:
        print(symbols)
        return
    _ensure_parent_dir(output_path)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(symbols)
        f.write("\n")


_VALIDATE_SYMBOL_LIMIT = 10_000


def _balanced_prefix(symbols: str, limit: int) -> str:
    """Longest prefix within `limit` that ends with every '[' closed.

    A ']' with nothing to close ends the prefix and is kept, so the
    interpreter still reports it.
    """
    depth = 0
    end = 0
    for i, ch in enumerate(symbols[:limit]):
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth < 0:
                return symbols[: i + 1]
        if depth == 0:
            end = i + 1
    return symbols[:end]


def cmd_validate(config_path: str) -> None:
    cfg = parse_config(load_json(config_path))
    p = cfg.params

    print(f"name: {cfg.name}")
    print(f"axiom: {cfg.axiom}")
    print(f"iterations: {cfg.iterations}")
    print(f"rules: {len(cfg.rules)}")
    print(
        "tree: "
        f"angle={p.angle_deg} width={p.width} variance={p.variance} "
        f"petal=[{p.min_petal_length},{p.max_petal_length}] "
        f"branch=[{p.min_branch_length},{p.max_branch_length}]"
    )
    print(f"shrink: length={p.length_scale} width={p.width_scale}")

    # Interpret a bounded prefix to catch generation-time failures.
    symbols = expand(cfg.axiom, cfg.rules, cfg.iterations, max_length=cfg.max_symbols)
    truncated = len(symbols) > _VALIDATE_SYMBOL_LIMIT
    sample = _balanced_prefix(symbols, _VALIDATE_SYMBOL_LIMIT) if truncated else symbols

    rng = np.random.default_rng(cfg.seed)
    jitter = JitterTable.generate(rng, cfg.jitter_size)
    unrecognized: list[UnrecognizedSymbol] = []
    commands = interpret(
        sample, p, jitter, rng=rng, start=cfg.start, report=unrecognized.append
    )
    branches = sum(1 for c in commands if c.kind is GeometryKind.BRANCH)

    print(f"symbols: {len(symbols)}")
    print(f"commands (sampled): {len(commands)}")
    print(f"branches: {branches} blossoms: {len(commands) - branches}")
    if truncated:
        print(
            f"warning: expansion exceeds {_VALIDATE_SYMBOL_LIMIT} symbols; "
            "command stats are based on the first portion only"
        )
    if unrecognized:
        raise ConfigError(f"{len(unrecognized)} unrecognized symbols in expansion")


def cmd_random(output_path: str, seed: int | None) -> None:
    cfg = generate_random_config(seed)
    dump_json(cfg, output_path)


def main(argv: list[str] | None = None) -> int:
    ap = build_argparser()
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.cmd == "generate":
            cmd_generate(args.config, args.output, args.seed)
        elif args.cmd == "expand":
            cmd_expand(args.config, args.output)
        elif args.cmd == "validate":
            cmd_validate(args.config)
        elif args.cmd == "random":
            cmd_random(args.output, args.seed)
        else:
            raise AssertionError("unreachable")
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2
    except LSystemError as e:
        print(f"Generation error: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"File error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
