"""Settings for the command line, read from the environment and an optional
JSON config file."""

from __future__ import annotations

import getpass
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional

from fieldcrypt.core.exceptions import IOReadError, UsageError, WeakPasswordError
from fieldcrypt.core.transcoder import DEFAULT_WORKERS
from fieldcrypt.security.crypto import DEFAULT_ALGORITHM, get_suite
from fieldcrypt.security.kdf import ARGON2ID, KDF_NAMES, PBKDF2_DEFAULT_ITERATIONS, KdfParams

ENV_PREFIX = "FIELDCRYPT_"

# Keys a --config file may set; each maps to FIELDCRYPT_<KEY>. The password
# is never read from a config file.
CONFIG_KEYS = (
    "algorithm",
    "kdf",
    "pbkdf2_iterations",
    "argon2_time_cost",
    "argon2_memory_cost",
    "argon2_parallelism",
    "workers",
    "log_level",
    "sftp_host",
    "sftp_port",
    "sftp_user",
    "sftp_key",
    "remote_dir",
)


@dataclass
class CliSettings:
    """Defaults for every command; command line flags override them."""

    algorithm: str = DEFAULT_ALGORITHM
    kdf: KdfParams = field(default_factory=KdfParams)
    workers: int = DEFAULT_WORKERS
    log_level: int = logging.WARNING
    password: Optional[str] = None
    sftp_host: Optional[str] = None
    sftp_port: int = 22
    sftp_user: Optional[str] = None
    sftp_key: Optional[str] = None
    remote_dir: str = "/uploads"


def _int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise UsageError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None


def _log_level(raw: Optional[str]) -> int:
    if not raw:
        return logging.WARNING
    level = logging.getLevelName(raw.strip().upper())
    if not isinstance(level, int):
        raise UsageError(f"{ENV_PREFIX}LOG_LEVEL: unknown level {raw!r}")
    return level


def build_kdf_params(
    name: str,
    iterations: int = PBKDF2_DEFAULT_ITERATIONS,
    time_cost: int = 3,
    memory_cost: int = 65536,
    parallelism: int = 1,
) -> KdfParams:
    if name not in KDF_NAMES:
        raise UsageError(f"Unsupported KDF {name!r} (supported: {', '.join(KDF_NAMES)})")
    return KdfParams(
        name=name,
        iterations=iterations,
        time_cost=time_cost,
        memory_cost=memory_cost,
        parallelism=parallelism,
    )


def load_config_file(path: Path | str) -> Dict[str, str]:
    """Read a JSON config file into ``FIELDCRYPT_*`` style entries."""
    path = Path(path).expanduser()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except ValueError as e:
        raise UsageError(f"config file {path} is not valid JSON: {e}") from e
    except OSError as e:
        raise IOReadError(f"could not read config file {path}: {e.strerror or e}") from e
    if not isinstance(data, dict):
        raise UsageError(f"config file {path} must contain a JSON object")

    unknown = sorted(set(data) - set(CONFIG_KEYS))
    if unknown:
        raise UsageError(f"config file {path}: unknown key(s) {', '.join(unknown)}")
    return {
        ENV_PREFIX + key.upper(): str(value)
        for key, value in data.items()
        if value is not None
    }


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    config: Optional[Mapping[str, str]] = None,
) -> CliSettings:
    """
    Build CliSettings from ``FIELDCRYPT_*`` environment variables, layered
    over the entries of a config file (see load_config_file) when given.

    Recognised: ALGORITHM, KDF, PBKDF2_ITERATIONS, ARGON2_TIME_COST,
    ARGON2_MEMORY_COST, ARGON2_PARALLELISM, WORKERS, LOG_LEVEL, PASSWORD,
    SFTP_HOST, SFTP_PORT, SFTP_USER, SFTP_KEY, REMOTE_DIR.
    """
    env = dict(config or {})
    env.update(os.environ if environ is None else environ)

    algorithm = env.get(ENV_PREFIX + "ALGORITHM") or DEFAULT_ALGORITHM
    get_suite(algorithm)  # fail early on typos

    kdf = build_kdf_params(
        env.get(ENV_PREFIX + "KDF") or ARGON2ID,
        iterations=_int(env, "PBKDF2_ITERATIONS", PBKDF2_DEFAULT_ITERATIONS),
        time_cost=_int(env, "ARGON2_TIME_COST", 3),
        memory_cost=_int(env, "ARGON2_MEMORY_COST", 65536),
        parallelism=_int(env, "ARGON2_PARALLELISM", 1),
    )

    workers = _int(env, "WORKERS", DEFAULT_WORKERS)
    if workers < 1:
        raise UsageError(f"{ENV_PREFIX}WORKERS must be at least 1")

    return CliSettings(
        algorithm=algorithm.lower(),
        kdf=kdf,
        workers=workers,
        log_level=_log_level(env.get(ENV_PREFIX + "LOG_LEVEL")),
        password=env.get(ENV_PREFIX + "PASSWORD") or None,
        sftp_host=env.get(ENV_PREFIX + "SFTP_HOST") or None,
        sftp_port=_int(env, "SFTP_PORT", 22),
        sftp_user=env.get(ENV_PREFIX + "SFTP_USER") or None,
        sftp_key=env.get(ENV_PREFIX + "SFTP_KEY") or None,
        remote_dir=env.get(ENV_PREFIX + "REMOTE_DIR") or "/uploads",
    )


def resolve_password(
    explicit: Optional[str],
    settings: CliSettings,
    prompt: Callable[[str], str] = getpass.getpass,
    confirm: bool = False,
) -> str:
    """Flag first, then FIELDCRYPT_PASSWORD, then an interactive prompt."""
    password = explicit if explicit is not None else settings.password
    if password is None:
        password = prompt("Password: ")
        if confirm and prompt("Repeat password: ") != password:
            raise UsageError("passwords do not match")
    if not password:
        raise WeakPasswordError("Password must not be empty")
    return password
