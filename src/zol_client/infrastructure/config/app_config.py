import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import toml
from dotenv import load_dotenv
from loguru import logger
from solders.pubkey import Pubkey

from ...chain.constants import DEFAULT_PROGRAM_ID, DEFAULT_USDC_MINT

VALID_COMMITMENTS = {"processed", "confirmed", "finalized"}


@dataclass(frozen=True)
class RpcSettings:
    primary_url: str = "https://api.devnet.solana.com"
    fallback_urls: Tuple[str, ...] = ()
    max_concurrent_requests: int = 10
    freshness_ttl_seconds: float = 30.0
    backoff_base_seconds: float = 1.0
    max_retries: int = 2
    commitment: str = "confirmed"
    request_timeout_seconds: float = 10.0

    @property
    def endpoints(self) -> List[str]:
        return [self.primary_url, *self.fallback_urls]


@dataclass(frozen=True)
class ProgramSettings:
    program_id: str = DEFAULT_PROGRAM_ID
    usdc_mint: str = DEFAULT_USDC_MINT
    cluster: str = "devnet"

    @property
    def program_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.program_id)

    @property
    def usdc_mint_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.usdc_mint)


@dataclass(frozen=True)
class CacheSettings:
    game_state_ttl: float = 10.0
    user_position_ttl: float = 5.0
    token_account_ttl: float = 30.0
    token_balance_ttl: float = 5.0


@dataclass(frozen=True)
class TransactionSettings:
    skip_preflight: bool = False
    confirm_commitment: str = "confirmed"
    finalize_commitment: str = "finalized"
    # After this long without confirmation callers may show a delay notice.
    delay_threshold_seconds: float = 10.0


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class OverrideRecord:
    key: str
    source: str
    old: Any
    new: Any


@dataclass
class ZolConfig:
    rpc: RpcSettings = field(default_factory=RpcSettings)
    program: ProgramSettings = field(default_factory=ProgramSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    transaction: TransactionSettings = field(default_factory=TransactionSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    overrides: List[OverrideRecord] = field(default_factory=list)
    loaded_files: List[str] = field(default_factory=list)

    @classmethod
    def load(
        cls,
        settings_path: Optional[str] = None,
        env_prefix: str = "ZOL__",
        use_dotenv: bool = True,
    ) -> "ZolConfig":
        """
        Layered load: defaults, then `settings_path` (TOML) if it exists,
        then `{env_prefix}SECTION__KEY` environment overrides.
        """
        if use_dotenv:
            load_dotenv()

        layers: List[Tuple[Dict[str, Any], str]] = []
        loaded_files: List[str] = []

        if settings_path and os.path.exists(settings_path):
            with open(settings_path, "r", encoding="utf-8") as f:
                data = toml.load(f)
            label = os.path.basename(settings_path) or "settings.toml"
            layers.append((data, label))
            loaded_files.append(label)

        env_overrides = _load_env_overrides(env_prefix)
        if env_overrides:
            layers.append((env_overrides, "env"))

        merged: Dict[str, Any] = {}
        overrides: List[OverrideRecord] = []
        for payload, source in layers:
            _merge_dicts(merged, payload, source, overrides)

        cfg = cls(
            rpc=_build_rpc(merged),
            program=_build_program(merged),
            cache=_build_cache(merged),
            transaction=_build_transaction(merged),
            logging=_build_logging(merged),
            overrides=overrides,
            loaded_files=loaded_files,
        )
        cfg.log_summary()
        return cfg

    def log_summary(self) -> None:
        logger.info(f"CONFIG | files={', '.join(self.loaded_files) or '<none>'}")
        for o in self.overrides:
            logger.info(f"CONFIG_OVERRIDE | {o.key} from {o.source} | old={o.old} -> new={o.new}")
        logger.info(
            f"CONFIG_RPC | endpoints={len(self.rpc.endpoints)} | max_concurrent={self.rpc.max_concurrent_requests} | "
            f"freshness_ttl={self.rpc.freshness_ttl_seconds}s | max_retries={self.rpc.max_retries}"
        )
        logger.info(f"CONFIG_PROGRAM | cluster={self.program.cluster} | program={self.program.program_id}")


def _merge_dicts(dst: Dict[str, Any], src: Dict[str, Any], source: str, overrides: List[OverrideRecord], prefix: str = "") -> None:
    for key, value in src.items():
        full_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict) and isinstance(dst.get(key), dict):
            _merge_dicts(dst[key], value, source, overrides, full_key)
        elif isinstance(value, dict):
            dst[key] = value.copy()
        else:
            if key in dst and dst[key] != value:
                overrides.append(OverrideRecord(full_key, source, dst[key], value))
            dst[key] = value


def _load_env_overrides(prefix: str) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env_key, env_val in os.environ.items():
        if not env_key.startswith(prefix):
            continue
        path_parts = env_key[len(prefix):].lower().split("__")
        _assign_env_override(overrides, path_parts, env_val)
    return overrides


def _assign_env_override(dst: Dict[str, Any], path_parts: List[str], raw_val: str) -> None:
    cur = dst
    for part in path_parts[:-1]:
        if part not in cur or not isinstance(cur[part], dict):
            cur[part] = {}
        cur = cur[part]
    leaf = path_parts[-1]
    # List-like settings are comma separated in the environment
    if leaf == "fallback_urls":
        cur[leaf] = [s.strip() for s in raw_val.split(",") if s.strip()]
        return
    cur[leaf] = _coerce_env_value(raw_val)


def _coerce_env_value(val: str) -> Any:
    lowered = val.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    try:
        return int(val)
    except ValueError:
        pass
    try:
        return float(val)
    except ValueError:
        pass
    return val


def _commitment(value: Any, key: str) -> str:
    text = str(value).lower()
    if text not in VALID_COMMITMENTS:
        raise ValueError(f"{key} must be one of {sorted(VALID_COMMITMENTS)}, got {value!r}")
    return text


def _positive(value: Any, key: str, cast=float):
    number = cast(value)
    if number <= 0:
        raise ValueError(f"{key} must be > 0, got {value!r}")
    return number


def _build_rpc(cfg: Dict[str, Any]) -> RpcSettings:
    section = cfg.get("rpc", {}) or {}
    primary = str(section.get("primary_url", RpcSettings.primary_url)).strip()
    if not primary:
        raise ValueError("rpc.primary_url is required")
    fallbacks = section.get("fallback_urls", []) or []
    if isinstance(fallbacks, str):
        fallbacks = [s.strip() for s in fallbacks.split(",")]
    max_retries = int(section.get("max_retries", RpcSettings.max_retries))
    if max_retries < 0:
        raise ValueError(f"rpc.max_retries must be >= 0, got {max_retries}")
    return RpcSettings(
        primary_url=primary,
        fallback_urls=tuple(u for u in fallbacks if u),
        max_concurrent_requests=_positive(
            section.get("max_concurrent_requests", RpcSettings.max_concurrent_requests),
            "rpc.max_concurrent_requests",
            int,
        ),
        freshness_ttl_seconds=_positive(
            section.get("freshness_ttl_seconds", RpcSettings.freshness_ttl_seconds), "rpc.freshness_ttl_seconds"
        ),
        backoff_base_seconds=float(section.get("backoff_base_seconds", RpcSettings.backoff_base_seconds)),
        max_retries=max_retries,
        commitment=_commitment(section.get("commitment", RpcSettings.commitment), "rpc.commitment"),
        request_timeout_seconds=_positive(
            section.get("request_timeout_seconds", RpcSettings.request_timeout_seconds), "rpc.request_timeout_seconds"
        ),
    )


def _build_program(cfg: Dict[str, Any]) -> ProgramSettings:
    section = cfg.get("program", {}) or {}
    settings = ProgramSettings(
        program_id=str(section.get("program_id", ProgramSettings.program_id)).strip(),
        usdc_mint=str(section.get("usdc_mint", ProgramSettings.usdc_mint)).strip(),
        cluster=str(section.get("cluster", ProgramSettings.cluster)),
    )
    for key, value in (("program.program_id", settings.program_id), ("program.usdc_mint", settings.usdc_mint)):
        try:
            Pubkey.from_string(value)
        except ValueError as e:
            raise ValueError(f"{key} is not a valid base58 address: {value!r}") from e
    return settings


def _build_cache(cfg: Dict[str, Any]) -> CacheSettings:
    section = cfg.get("cache", {}) or {}
    return CacheSettings(
        game_state_ttl=_positive(section.get("game_state_ttl", CacheSettings.game_state_ttl), "cache.game_state_ttl"),
        user_position_ttl=_positive(
            section.get("user_position_ttl", CacheSettings.user_position_ttl), "cache.user_position_ttl"
        ),
        token_account_ttl=_positive(
            section.get("token_account_ttl", CacheSettings.token_account_ttl), "cache.token_account_ttl"
        ),
        token_balance_ttl=_positive(
            section.get("token_balance_ttl", CacheSettings.token_balance_ttl), "cache.token_balance_ttl"
        ),
    )


def _build_transaction(cfg: Dict[str, Any]) -> TransactionSettings:
    section = cfg.get("transaction", {}) or {}
    return TransactionSettings(
        skip_preflight=bool(section.get("skip_preflight", TransactionSettings.skip_preflight)),
        confirm_commitment=_commitment(
            section.get("confirm_commitment", TransactionSettings.confirm_commitment), "transaction.confirm_commitment"
        ),
        finalize_commitment=_commitment(
            section.get("finalize_commitment", TransactionSettings.finalize_commitment),
            "transaction.finalize_commitment",
        ),
        delay_threshold_seconds=float(
            section.get("delay_threshold_seconds", TransactionSettings.delay_threshold_seconds)
        ),
    )


def _build_logging(cfg: Dict[str, Any]) -> LoggingSettings:
    section = cfg.get("logging", {}) or {}
    return LoggingSettings(
        level=str(section.get("level", LoggingSettings.level)).upper(),
        file=section.get("file"),
    )
