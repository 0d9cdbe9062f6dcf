from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

SECRET_BYTES = 32


def default_key_dir() -> Path:
    return Path(os.getenv("ENVELOP_HOME", str(Path.home() / ".envelop")))


@dataclass
class SharedSecret:
    value: str

    @classmethod
    def generate(cls, size: int = SECRET_BYTES) -> "SharedSecret":
        return cls(value=os.urandom(size).hex())


def _key_file(path: Path) -> Path:
    return path if path.suffix == ".key" else path.with_name(path.name + ".key")


def save_secret(path: Path, secret: SharedSecret, overwrite: bool = False) -> Path:
    target = _key_file(path)
    if target.exists() and not overwrite:
        raise FileExistsError(f"{target} already exists")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(secret.value + "\n", encoding="utf-8")
    target.chmod(0o600)
    return target


def load_secret(path: Path) -> Optional[SharedSecret]:
    """Read a secret file; a bare name is looked up as <name>.key"""
    candidates = [path] if path.suffix == ".key" else [path, _key_file(path)]
    for p in candidates:
        if p.is_file():
            return SharedSecret(value=p.read_text(encoding="utf-8").strip())
    return None
