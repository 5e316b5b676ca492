"""Helpers to Onkyo Control."""
from eiscp import commands

from .const import DEFAULT_ZONE, EXCLUDED_ZONES


def build_zone_list() -> tuple[str, ...]:
    """Retrieve the receiver zones, main first.

    eiscp carries no per-model data, so every zone it knows is offered.
    """
    zones = [zone for zone in commands.COMMANDS if zone not in EXCLUDED_ZONES]
    if DEFAULT_ZONE in zones:
        zones.remove(DEFAULT_ZONE)
    return (DEFAULT_ZONE, *zones)


def build_input_list() -> list[str]:
    """Retrieve input selector values."""
    inputs = []
    for value in commands.COMMANDS["main"]["SLI"]["values"].values():
        name = value["name"]
        if isinstance(name, tuple):
            name = name[0]
        if name in ["07", "08", "09", "up", "down", "query"] or name in inputs:
            continue
        inputs.append(name)
    return inputs
