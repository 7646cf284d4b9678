"""
Built-in provisioning defaults per supported game.

A product or variant may carry its own egg, nest, docker image and startup
command. Whatever they leave empty is filled from the preset of the game,
and games without a preset fall back to the Minecraft preset once an egg id
is known.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

MINECRAFT_VERSION_PATTERN = re.compile(r"^(latest|[0-9]+\.[0-9]+(\.[0-9]+)?)$")


@dataclass(frozen=True)
class GamePreset:
    game_id: str
    nest_id: int
    egg_id: int
    startup: str
    docker_image: str
    environment: Dict[str, str] = field(default_factory=dict)
    # Environment variables that receive a requested game version
    version_variables: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ProvisioningOverrides:
    """Optional per-product or per-variant values, None means 'not set'."""
    egg_id: Optional[int] = None
    nest_id: Optional[int] = None
    docker_image: Optional[str] = None
    startup_command: Optional[str] = None

    def merged_over(self, base: "ProvisioningOverrides") -> "ProvisioningOverrides":
        """Field-by-field merge: values set here win, the rest come from base."""
        return ProvisioningOverrides(
            egg_id=self.egg_id or base.egg_id,
            nest_id=self.nest_id or base.nest_id,
            docker_image=self.docker_image or base.docker_image,
            startup_command=self.startup_command or base.startup_command,
        )


@dataclass(frozen=True)
class ResolvedProvisioning:
    egg_id: int
    nest_id: int
    docker_image: str
    startup: str
    environment: Dict[str, str]


GAME_PRESETS: Dict[str, GamePreset] = {
    "minecraft": GamePreset(
        game_id="minecraft",
        nest_id=1,
        egg_id=1,
        startup="java -Xms128M -Xmx{{SERVER_MEMORY}}M -jar {{SERVER_JARFILE}}",
        docker_image="ghcr.io/pterodactyl/yolks:java_17",
        environment={
            "SERVER_JARFILE": "server.jar",
            "VANILLA_VERSION": "latest",
            "BUILD_NUMBER": "latest",
        },
        version_variables=("VANILLA_VERSION", "MINECRAFT_VERSION"),
    ),
    "rust": GamePreset(
        game_id="rust",
        nest_id=4,
        egg_id=15,
        startup=(
            './RustDedicated -batchmode +server.port {{SERVER_PORT}} +server.identity "rust" '
            '+rcon.port {{RCON_PORT}} +rcon.web true +server.hostname "{{HOSTNAME}}" '
            "+server.maxplayers {{MAX_PLAYERS}} +server.worldsize {{WORLD_SIZE}} "
            "+server.saveinterval {{SAVE_INTERVAL}}"
        ),
        docker_image="ghcr.io/pterodactyl/games:rust",
        environment={
            "HOSTNAME": "Rust Server",
            "MAX_PLAYERS": "50",
            "WORLD_SIZE": "3000",
            "SAVE_INTERVAL": "60",
        },
    ),
    "ark": GamePreset(
        game_id="ark",
        nest_id=2,
        egg_id=3,
        startup=(
            "./ShooterGame/Binaries/Linux/ShooterGameServer {{SERVER_MAP}}?listen?SessionName={{SESSION_NAME}}"
            "?ServerPassword={{SERVER_PASSWORD}}?ServerAdminPassword={{ADMIN_PASSWORD}}?Port={{SERVER_PORT}}"
            "?QueryPort={{QUERY_PORT}}?MaxPlayers={{MAX_PLAYERS}} -server -log"
        ),
        docker_image="ghcr.io/pterodactyl/games:source",
        environment={
            "SERVER_MAP": "TheIsland",
            "SESSION_NAME": "ARK Server",
            "SERVER_PASSWORD": "",
            "ADMIN_PASSWORD": "changeme",
            "MAX_PLAYERS": "70",
        },
    ),
    "valheim": GamePreset(
        game_id="valheim",
        nest_id=5,
        egg_id=20,
        startup='./valheim_server.x86_64 -name "{{SERVER_NAME}}" -port {{SERVER_PORT}} -world "{{WORLD_NAME}}" -password "{{SERVER_PASSWORD}}" -public 1',
        docker_image="ghcr.io/pterodactyl/games:source",
        environment={
            "SERVER_NAME": "Valheim Server",
            "WORLD_NAME": "Dedicated",
            "SERVER_PASSWORD": "changeme",
        },
    ),
}

FALLBACK_GAME_ID = "minecraft"


def _validate_presets(presets: Dict[str, GamePreset]) -> None:
    for key, preset in presets.items():
        if key != preset.game_id:
            raise ValueError(f"Preset registered as {key!r} declares game_id {preset.game_id!r}")
        if preset.egg_id <= 0 or preset.nest_id <= 0:
            raise ValueError(f"Preset {key!r} needs positive egg and nest ids")
        if not preset.docker_image or not preset.startup:
            raise ValueError(f"Preset {key!r} needs a docker image and a startup command")
        for variable in preset.version_variables:
            if not variable.isupper():
                raise ValueError(f"Preset {key!r} has a malformed version variable {variable!r}")
    if FALLBACK_GAME_ID not in presets:
        raise ValueError("The fallback preset is missing")


_validate_presets(GAME_PRESETS)


def normalize_game_id(value: str) -> str:
    """'Minecraft Java' -> 'minecraft-java'"""
    return re.sub(r"\s+", "-", (value or "").strip().lower())


def get_preset(game_id: str) -> Optional[GamePreset]:
    return GAME_PRESETS.get(normalize_game_id(game_id))


def is_supported_game(game_id: str) -> bool:
    return get_preset(game_id) is not None


def resolve_provisioning(
    game_id: str,
    overrides: ProvisioningOverrides,
    version: Optional[str] = None,
) -> ResolvedProvisioning:
    """
    Produce the egg, image, startup command and environment for a new server.

    Raises ValueError when the game has no preset and no egg id was given,
    or when the version string is malformed.
    """
    preset = get_preset(game_id)
    if preset is None and not overrides.egg_id:
        raise ValueError(f"Unsupported game type: {game_id}")

    base = preset or GAME_PRESETS[FALLBACK_GAME_ID]
    merged = overrides.merged_over(
        ProvisioningOverrides(
            egg_id=base.egg_id,
            nest_id=base.nest_id,
            docker_image=base.docker_image,
            startup_command=base.startup,
        )
    )

    environment = dict(base.environment)
    if version:
        if not MINECRAFT_VERSION_PATTERN.match(version):
            raise ValueError(f"Invalid version format: {version}")
        if preset is not None:
            for variable in preset.version_variables:
                environment[variable] = version

    return ResolvedProvisioning(
        egg_id=merged.egg_id,
        nest_id=merged.nest_id,
        docker_image=merged.docker_image,
        startup=merged.startup_command,
        environment=environment,
    )


def overrides_from(source) -> ProvisioningOverrides:
    """Read override fields off a Product or ProductVariant row (or None)."""
    if source is None:
        return ProvisioningOverrides()
    return ProvisioningOverrides(
        egg_id=source.egg_id,
        nest_id=source.nest_id,
        docker_image=source.docker_image,
        startup_command=source.startup_command,
    )


def product_overrides(product, variant=None) -> ProvisioningOverrides:
    """Variant fields take precedence over product defaults, one field at a time."""
    return overrides_from(variant).merged_over(overrides_from(product))

