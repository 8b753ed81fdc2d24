import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def load_env(path: Optional[str] = None) -> bool:
    """
    Load config.env from the project root (or DOSE_ENGINE_ENV_FILE / `path`).
    Variables already present in the environment win.
    """
    env_path = Path(path or os.getenv("DOSE_ENGINE_ENV_FILE") or PROJECT_ROOT / "config.env")
    return load_dotenv(dotenv_path=env_path, override=False)
