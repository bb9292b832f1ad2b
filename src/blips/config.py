"""Directory configuration.

Resolution order for each directory: explicit argument, then environment,
then a default under the assistant directory.

    ASSISTANT_DIR   base directory           (default: ~/.assistant)
    BLIPS_DIR       one file per blip        (default: $ASSISTANT_DIR/blips)
    CAPTURES_DIR    full-page captures       (default: $ASSISTANT_DIR/captures)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel


class BlipsConfig(BaseModel):
    assistant_dir: Path
    blips_dir: Path
    captures_dir: Path


def _env_path(env: Mapping[str, str], key: str) -> Path | None:
    value = env.get(key, "").strip()
    return Path(value).expanduser() if value else None


def load_config(
    blips_dir: Path | str | None = None,
    captures_dir: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> BlipsConfig:
    """Resolve directories from arguments and environment."""
    if env is None:
        env = os.environ

    assistant_dir = _env_path(env, "ASSISTANT_DIR") or Path.home() / ".assistant"

    return BlipsConfig(
        assistant_dir=assistant_dir,
        blips_dir=(
            Path(blips_dir).expanduser() if blips_dir
            else _env_path(env, "BLIPS_DIR") or assistant_dir / "blips"
        ),
        captures_dir=(
            Path(captures_dir).expanduser() if captures_dir
            else _env_path(env, "CAPTURES_DIR") or assistant_dir / "captures"
        ),
    )
