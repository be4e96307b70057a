"""Scenario parsing and decoding."""

import json
from typing import Any

from vault_ledger.constants import DEFAULT_LOSS_LIMIT_RATIO, DEFAULT_PROFIT_LIMIT_RATIO, MAX_BPS
from vault_ledger.formatters import as_int
from vault_ledger.health_check import validate_loss_limit_ratio, validate_profit_limit_ratio
from vault_ledger.models import Scenario, Step

MODES = ("donating", "skimming")

# Operation name -> parameters it requires.
STEP_OPS: dict[str, tuple[str, ...]] = {
    "mint_asset": ("account", "amount"),
    "deposit": ("account", "amount"),
    "withdraw": ("account", "amount"),
    "redeem": ("account", "shares"),
    "transfer": ("from", "to", "shares"),
    "vault_deposit": ("account", "amount"),
    "vault_redeem": ("account", "shares"),
    "rebalance": ("target_debt",),
    "process_report": (),
    "gain": ("amount",),
    "loss": ("amount",),
    "set_rate": ("rate",),
    "report": (),
    "set_health_check": (),
    "set_enable_burning": ("enabled",),
    "set_dragon_router": ("address",),
    "advance_time": ("seconds",),
    "finalize_dragon_router": (),
    "shutdown": (),
}

# Parameters holding integer amounts; "all" is accepted for share amounts.
_INT_PARAMS = ("amount", "target_debt", "max_loss", "rate", "seconds", "profit_limit_ratio", "loss_limit_ratio")
_SHARE_PARAMS = ("shares",)


def parse_scenario_json(raw_bytes: bytes) -> dict[str, Any]:
    """Parse scenario JSON from raw bytes."""
    data = json.loads(raw_bytes.decode("utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Unexpected scenario format (expected JSON object)")
    return data


def _parse_step(index: int, raw: Any) -> Step:
    if not isinstance(raw, dict):
        raise ValueError(f"step {index}: expected an object, got {type(raw).__name__}")
    op = raw.get("op")
    if op not in STEP_OPS:
        raise ValueError(f"step {index}: unknown op {op!r} (expected one of {', '.join(STEP_OPS)})")
    missing = [name for name in STEP_OPS[op] if name not in raw]
    if missing:
        raise ValueError(f"step {index} ({op}): missing {', '.join(missing)}")

    params: dict[str, Any] = {}
    for key, value in raw.items():
        if key in ("op", "expect_error"):
            continue
        if key in _INT_PARAMS:
            params[key] = as_int(value)
        elif key in _SHARE_PARAMS:
            params[key] = "all" if value == "all" else as_int(value)
        else:
            params[key] = value

    if "max_loss" in params and not 0 <= params["max_loss"] <= MAX_BPS:
        raise ValueError(f"step {index} ({op}): max_loss must be within [0, {MAX_BPS}]")

    expect_error = raw.get("expect_error")
    if expect_error is not None and not isinstance(expect_error, str):
        raise ValueError(f"step {index} ({op}): expect_error must be an exception name")
    return Step(op=op, params=params, expect_error=expect_error)


def parse_scenario(data: dict[str, Any]) -> Scenario:
    """
    Build a Scenario from decoded JSON.

    Integers may be JSON numbers, decimal strings ("1_000") or hex strings ("0x3e8").
    Raises ValueError on an unknown mode or op, a missing step parameter or an
    out-of-range ratio.
    """
    mode = data.get("mode", "donating")
    if mode not in MODES:
        raise ValueError(f"Unknown mode {mode!r} (expected one of {', '.join(MODES)})")

    asset = data.get("asset") or {}
    health = data.get("health_check") or {}
    vault = data.get("vault") or {}
    source = data.get("yield_source") or {}
    rate = data.get("rate") or {}

    if mode == "skimming" and "value" not in rate:
        raise ValueError("Skimming scenarios need rate.value")

    steps_raw = data.get("steps") or []
    if not isinstance(steps_raw, list):
        raise ValueError("steps must be a list")

    deposit_limit = source.get("deposit_limit")
    return Scenario(
        name=str(data.get("name") or "scenario"),
        mode=mode,
        asset_symbol=str(asset.get("symbol") or "TKN"),
        asset_decimals=as_int(asset.get("decimals"), default=18),
        balances={str(k): as_int(v) for k, v in (data.get("balances") or {}).items()},
        steps=[_parse_step(i, raw) for i, raw in enumerate(steps_raw)],
        profit_limit_ratio=validate_profit_limit_ratio(
            as_int(health.get("profit_limit_ratio"), default=DEFAULT_PROFIT_LIMIT_RATIO)
        ),
        loss_limit_ratio=validate_loss_limit_ratio(
            as_int(health.get("loss_limit_ratio"), default=DEFAULT_LOSS_LIMIT_RATIO)
        ),
        enable_burning=bool(data.get("enable_burning", True)),
        dragon_router=str(data.get("dragon_router") or "dragon"),
        rate=as_int(rate.get("value")),
        rate_decimals=as_int(rate.get("decimals"), default=18),
        minimum_total_idle=as_int(vault.get("minimum_total_idle")),
        max_debt=as_int(vault.get("max_debt")),
        deposit_limit=None if deposit_limit is None else as_int(deposit_limit),
        exit_fee_bps=as_int(source.get("exit_fee_bps")),
        start_time=as_int(data.get("start_time")),
    )
