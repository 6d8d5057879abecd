"""
settings.py - Engine settings, built once at boot

Layers, lowest to highest priority:
    built-in defaults < TOML file < CUPCAKE__SECTION__KEY env vars < CLI

`.env` is loaded once here. Nothing else in the package reads the
environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import toml
from dotenv import load_dotenv
from loguru import logger
from solana.rpc.commitment import Commitment

from ..domain.models import SequencingPolicy
from ..ports.ledger import commitment_rank
from .clusters import get_cluster_url

DEFAULT_ENV_PREFIX = "CUPCAKE__"

DEFAULTS: Dict[str, Any] = {
    "engine": {
        "cluster": "devnet",
        "rpc_url": "",
        "ws_url": "",
        "commitment": "confirmed",
        "simulate_commitment": "processed",
        "timeout_seconds": 15.0,
        "rebroadcast_interval_seconds": 0.5,
        "poll_interval_seconds": 2.0,
        "policy": "parallel",
    },
    "logging": {
        "level": "INFO",
        "file": "",
    },
}


@dataclass(frozen=True)
class OverrideRecord:
    key: str
    source: str
    old: Any
    new: Any


@dataclass(frozen=True)
class EngineSettings:
    """
    Immutable settings for one engine instance.

    Validated in __post_init__; an invalid value fails at boot, not mid-batch.
    """
    rpc_url: str
    cluster: str = "devnet"
    ws_url: Optional[str] = None
    commitment: str = "confirmed"
    simulate_commitment: str = "processed"
    timeout_seconds: float = 15.0
    rebroadcast_interval_seconds: float = 0.5
    poll_interval_seconds: float = 2.0
    policy: str = "parallel"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    overrides: Tuple[OverrideRecord, ...] = field(default=(), compare=False)
    loaded_files: Tuple[str, ...] = field(default=(), compare=False)

    def __post_init__(self):
        if not self.rpc_url:
            raise ValueError("rpc_url is required")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")
        if self.rebroadcast_interval_seconds <= 0:
            raise ValueError(
                f"rebroadcast_interval_seconds must be > 0, got {self.rebroadcast_interval_seconds}"
            )
        if self.poll_interval_seconds <= 0:
            raise ValueError(f"poll_interval_seconds must be > 0, got {self.poll_interval_seconds}")
        for label in ("commitment", "simulate_commitment"):
            if commitment_rank(getattr(self, label)) < 0:
                raise ValueError(f"Unknown {label} '{getattr(self, label)}'")
        SequencingPolicy.parse(self.policy)

    @property
    def sequencing_policy(self) -> SequencingPolicy:
        return SequencingPolicy.parse(self.policy)

    @property
    def commitment_level(self) -> Commitment:
        return Commitment(self.commitment)

    @property
    def simulate_commitment_level(self) -> Commitment:
        return Commitment(self.simulate_commitment)

    def log_summary(self) -> None:
        logger.info(f"CONFIG | files={', '.join(self.loaded_files) or '<none>'}")
        for o in self.overrides:
            logger.info(f"CONFIG_OVERRIDE | {o.key} from {o.source} | {o.old} -> {o.new}")
        logger.info(
            f"CONFIG | cluster={self.cluster} | rpc={self.rpc_url} | commitment={self.commitment} | "
            f"timeout={self.timeout_seconds}s | rebroadcast={self.rebroadcast_interval_seconds}s | "
            f"poll={self.poll_interval_seconds}s | policy={self.policy}"
        )


def load_settings(
    path: Optional[str] = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    cli_overrides: Optional[Dict[str, Any]] = None,
    dotenv: bool = True,
) -> EngineSettings:
    """
    Build EngineSettings from defaults, an optional TOML file, environment
    overrides and CLI overrides.

    Raises:
        ValueError: on a missing config file or any invalid value
    """
    if dotenv:
        load_dotenv()

    layers: List[Tuple[Dict[str, Any], str]] = [(DEFAULTS, "defaults")]
    loaded_files: List[str] = []

    if path:
        if not os.path.exists(path):
            raise ValueError(f"Config file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            layers.append((toml.load(f), os.path.basename(path)))
        loaded_files.append(os.path.basename(path))

    env_overrides = _load_env_overrides(env_prefix)
    if env_overrides:
        layers.append((env_overrides, "env"))

    if cli_overrides:
        layers.append(({"engine": {k: v for k, v in cli_overrides.items() if v is not None}}, "cli"))

    merged: Dict[str, Any] = {}
    overrides: List[OverrideRecord] = []
    for payload, source in layers:
        _merge_dicts(merged, payload, source, overrides)

    engine = merged.get("engine", {}) or {}
    logging_section = merged.get("logging", {}) or {}

    cluster = str(engine.get("cluster") or "devnet")
    rpc_url = str(engine.get("rpc_url") or "").strip() or get_cluster_url(cluster)

    settings = EngineSettings(
        rpc_url=rpc_url,
        cluster=cluster,
        ws_url=str(engine.get("ws_url") or "").strip() or None,
        commitment=str(engine.get("commitment")),
        simulate_commitment=str(engine.get("simulate_commitment")),
        timeout_seconds=_to_float(engine.get("timeout_seconds"), "engine.timeout_seconds"),
        rebroadcast_interval_seconds=_to_float(
            engine.get("rebroadcast_interval_seconds"), "engine.rebroadcast_interval_seconds"
        ),
        poll_interval_seconds=_to_float(engine.get("poll_interval_seconds"), "engine.poll_interval_seconds"),
        policy=str(engine.get("policy")),
        log_level=str(logging_section.get("level") or "INFO").upper(),
        log_file=str(logging_section.get("file") or "").strip() or None,
        overrides=tuple(o for o in overrides if o.source != "defaults"),
        loaded_files=tuple(loaded_files),
    )
    return settings


def _merge_dicts(
    dst: Dict[str, Any],
    src: Dict[str, Any],
    source: str,
    overrides: List[OverrideRecord],
    prefix: str = "",
) -> None:
    for key, value in src.items():
        full_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict) and isinstance(dst.get(key), dict):
            _merge_dicts(dst[key], value, source, overrides, full_key)
        elif isinstance(value, dict):
            dst[key] = {}
            _merge_dicts(dst[key], value, source, overrides, full_key)
        else:
            if key in dst and dst[key] != value:
                overrides.append(OverrideRecord(full_key, source, dst[key], value))
            dst[key] = value


def _load_env_overrides(prefix: str) -> Dict[str, Any]:
    """
    Collect CUPCAKE__SECTION__KEY variables for keys that exist in DEFAULTS.

    CUPCAKE__KEY is shorthand for the engine section. Values take the type of
    the default they replace; unknown keys are logged and skipped.
    """
    overrides: Dict[str, Dict[str, Any]] = {}
    for env_key, env_val in os.environ.items():
        if not env_key.startswith(prefix):
            continue
        parts = env_key[len(prefix):].lower().split("__")
        section, key = ("engine", parts[0]) if len(parts) == 1 else (parts[0], "__".join(parts[1:]))
        if key not in DEFAULTS.get(section, {}):
            logger.warning(f"CONFIG_ENV | unknown key ignored | {env_key}")
            continue
        overrides.setdefault(section, {})[key] = _coerce_env_value(section, key, env_val)
    return overrides


def _coerce_env_value(section: str, key: str, raw: str) -> Any:
    if isinstance(DEFAULTS[section][key], float):
        return _to_float(raw, f"{section}.{key}")
    return raw.strip()


def _to_float(value: Any, label: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid numeric value for {label}: {value}") from exc
