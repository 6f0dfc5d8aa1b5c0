"""
Command-line inspection tool for narrative states.

Usage:
    narrative-engine new profile.yaml --seed 7 --out state.json
    narrative-engine show state.json
    narrative-engine directive state.json --days 3 --profile profile.yaml
"""

import argparse
import logging
import random
import sys
from pathlib import Path

import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import load_config
from ..prompts.templates import create_template_engine
from ..state.schema import Difficulty, NarrativeState, PlaythroughProfile
from ..state.serialization import StateDeserializationError, deserialize_state, serialize_state
from ..state.store import JsonNarrativeStore
from ..systems.arcs import initialize_narrative
from ..systems.simulation import build_simulation_prompt, generate_simulation_directive

logger = logging.getLogger(__name__)

console = Console()

THEME = {
    "primary": "steel_blue",
    "secondary": "grey70",
    "warning": "dark_goldenrod",
    "danger": "dark_red",
    "accent": "cyan",
    "dim": "dim",
}


# -----------------------------------------------------------------------------
# Loading
# -----------------------------------------------------------------------------

def load_profile(path: Path, default_difficulty: str | None = None) -> PlaythroughProfile:
    """Read a playthrough profile from YAML."""
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if default_difficulty and "difficulty" not in data:
        data["difficulty"] = default_difficulty
    return PlaythroughProfile.model_validate(data)


def load_state(path: Path) -> NarrativeState | None:
    return deserialize_state(path.read_text(encoding="utf-8"))


def _rng(seed: int | None) -> random.Random:
    return random.Random(seed) if seed is not None else random.Random()


# -----------------------------------------------------------------------------
# Rendering
# -----------------------------------------------------------------------------

def tension_style(value: float) -> str:
    if value > 70:
        return THEME["danger"]
    if value > 50:
        return THEME["warning"]
    return THEME["primary"]


def render_state(state: NarrativeState) -> None:
    tension = state.global_tension
    console.print(Panel(
        f"Day [bold]{state.current_day}[/bold]  ·  "
        f"{state.difficulty.value}  ·  "
        f"tension [{tension_style(tension)}]{tension:.0f}[/{tension_style(tension)}]"
        + (f"\nThemes: {', '.join(state.current_themes)}" if state.current_themes else ""),
        title=f"[{THEME['accent']}]{state.identity_id}[/{THEME['accent']}]",
        border_style=THEME["primary"],
    ))

    arcs = Table(title="Active Arcs", border_style=THEME["secondary"])
    arcs.add_column("Arc")
    arcs.add_column("Type", style=THEME["dim"])
    arcs.add_column("Phase")
    arcs.add_column("Beats", justify="right")
    arcs.add_column("Tension", justify="right")
    for arc in state.active_arcs:
        fired = sum(1 for b in arc.beats if b.triggered)
        arcs.add_row(
            arc.title,
            arc.type.value,
            arc.phase.value,
            f"{fired}/{len(arc.beats)}",
            f"[{tension_style(arc.tension)}]{arc.tension:.0f}[/{tension_style(arc.tension)}]",
        )
    console.print(arcs)

    facts = Table(title="World Facts", border_style=THEME["secondary"])
    facts.add_column("Importance", style=THEME["dim"])
    facts.add_column("Category")
    facts.add_column("Fact")
    facts.add_column("Known by", justify="right")
    for fact in state.world_facts:
        facts.add_row(fact.importance.value, fact.category.value, fact.content, str(len(fact.known_by)))
    console.print(facts)

    if state.story_seeds:
        seeds = Table(title="Story Seeds", border_style=THEME["secondary"])
        seeds.add_column("#", justify="right", style=THEME["dim"])
        seeds.add_column("Severity")
        seeds.add_column("Seed")
        seeds.add_column("Revealed")
        for seed in sorted(state.story_seeds, key=lambda s: s.narrative_priority):
            seeds.add_row(
                str(seed.narrative_priority),
                seed.severity.value,
                seed.fact,
                "yes" if seed.revealed_to_player else "",
            )
        console.print(seeds)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

def cmd_new(args: argparse.Namespace, config: dict) -> int:
    profile = load_profile(args.profile, config.get("difficulty"))
    seed = args.seed if args.seed is not None else config.get("random_seed")
    state = initialize_narrative(
        profile,
        rng=_rng(seed),
        seed_count=config.get("seed_count"),
    )

    if args.out:
        args.out.write_text(serialize_state(state, indent=2), encoding="utf-8")
        console.print(f"[{THEME['accent']}]Wrote {args.out}[/{THEME['accent']}]")
    else:
        store = JsonNarrativeStore(config.get("saves_dir", "saves"))
        store.save(state)
        console.print(f"[{THEME['accent']}]Saved {state.identity_id}[/{THEME['accent']}]")

    render_state(state)
    return 0


def cmd_show(args: argparse.Namespace, config: dict) -> int:
    state = load_state(args.state)
    if state is None:
        console.print(f"[{THEME['warning']}]No state in {args.state}[/{THEME['warning']}]")
        return 1
    render_state(state)
    return 0


def cmd_directive(args: argparse.Namespace, config: dict) -> int:
    state = load_state(args.state)
    if state is None:
        console.print(f"[{THEME['warning']}]No state in {args.state}[/{THEME['warning']}]")
        return 1

    profile = load_profile(args.profile) if args.profile else None
    seed = args.seed if args.seed is not None else config.get("random_seed")
    directive = generate_simulation_directive(state, args.days, profile, rng=_rng(seed))

    if profile is None:
        console.print_json(directive.model_dump_json())
        return 0

    engine = create_template_engine(config.get("template_dir"))
    console.print(build_simulation_prompt(
        directive, profile, current_tension=state.global_tension, engine=engine,
    ))
    return 0


COMMANDS = {
    "new": cmd_new,
    "show": cmd_show,
    "directive": cmd_directive,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="narrative-engine",
        description="Create and inspect narrative states",
    )
    parser.add_argument(
        "--saves-dir",
        type=Path,
        default=Path("saves"),
        help="Directory holding saves and .narrative_config.json",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log engine activity",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    new = sub.add_parser("new", help="Create a state from a YAML profile")
    new.add_argument("profile", type=Path)
    new.add_argument("--seed", type=int, help="Random seed for reproducible generation")
    new.add_argument("--out", type=Path, help="Write the state here instead of the saves dir")

    show = sub.add_parser("show", help="Summarize a saved state")
    show.add_argument("state", type=Path)

    directive = sub.add_parser("directive", help="Build a simulation directive")
    directive.add_argument("state", type=Path)
    directive.add_argument("--days", type=int, default=1)
    directive.add_argument("--profile", type=Path, help="Profile YAML; enables the prompt text")
    directive.add_argument("--seed", type=int)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    )

    config = dict(load_config(args.saves_dir))
    config["saves_dir"] = str(args.saves_dir)
    if config.get("difficulty") not in {d.value for d in Difficulty}:
        logger.warning(f"Unknown difficulty in config: {config.get('difficulty')}")
        config["difficulty"] = None

    try:
        return COMMANDS[args.command](args, config)
    except StateDeserializationError as e:
        console.print(f"[{THEME['danger']}]Could not read state: {e}[/{THEME['danger']}]")
        return 2
    except (OSError, yaml.YAMLError, ValidationError) as e:
        console.print(f"[{THEME['danger']}]{e}[/{THEME['danger']}]")
        return 2


if __name__ == "__main__":
    sys.exit(main())
