"""
Configuration validation run before the first tick.

- Range checks for numeric parameters
- Starknet address format for the account and every vault
- Warnings for configurations that work but are probably a mistake
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

logger = logging.getLogger("vault_keeper.config")

# felt252 addresses: 0x followed by up to 64 hex digits
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")
# parsed with int(key, 16), so the 0x prefix is optional
_PRIVATE_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{1,64}$")


class ValidationSeverity(Enum):
    """Severity levels for validation issues."""
    ERROR = auto()    # Blocks startup
    WARNING = auto()  # Logs warning but allows startup
    INFO = auto()     # Informational only


@dataclass
class ValidationIssue:
    """A single validation issue."""
    field: str
    message: str
    severity: ValidationSeverity
    value: Any = None
    suggestion: Optional[str] = None


@dataclass
class ValidationResult:
    """Result of config validation."""
    valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)

    def has_errors(self) -> bool:
        return any(i.severity == ValidationSeverity.ERROR for i in self.issues)

    def has_warnings(self) -> bool:
        return any(i.severity == ValidationSeverity.WARNING for i in self.issues)

    def get_errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.ERROR]

    def get_warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]


def is_address(value: str) -> bool:
    return bool(_ADDRESS_RE.match(value or ""))


def is_private_key(value: str) -> bool:
    return bool(_PRIVATE_KEY_RE.match(value or ""))


class ConfigValidator:
    """
    Validates Settings before the keeper starts.

    Checks:
    - Numeric values are within sane ranges
    - URLs are http(s)
    - Account and vault addresses are hex felts, vaults are unique
    """

    # Range definitions: (min, max)
    NUMERIC_RANGES: Dict[str, Tuple[float, float]] = {
        "interval_sec": (5.0, 86400.0),
        "http_timeout": (1.0, 300.0),
        "rpc_retries": (0, 10),
        "pricing_lag_alert_sec": (0.0, 30 * 86400.0),
        "metrics_port": (0, 65535),
    }

    URL_FIELDS: List[str] = ["starknet_rpc", "fossil_api_url"]

    def validate(self, cfg) -> ValidationResult:
        issues: List[ValidationIssue] = []
        issues.extend(self._validate_numeric_ranges(cfg))
        issues.extend(self._validate_urls(cfg))
        issues.extend(self._validate_addresses(cfg))
        issues.extend(self._check_risky_configs(cfg))
        has_errors = any(i.severity == ValidationSeverity.ERROR for i in issues)
        return ValidationResult(valid=not has_errors, issues=issues)

    def _validate_numeric_ranges(self, cfg) -> List[ValidationIssue]:
        issues = []
        for field_name, (min_val, max_val) in self.NUMERIC_RANGES.items():
            value = getattr(cfg, field_name, None)
            try:
                num_value = float(value)
            except (TypeError, ValueError):
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"'{field_name}' has invalid numeric value: {value}",
                    severity=ValidationSeverity.ERROR,
                    value=value,
                ))
                continue
            if num_value < min_val:
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"'{field_name}' value {num_value} is below minimum {min_val}",
                    severity=ValidationSeverity.ERROR,
                    value=num_value,
                    suggestion=f"Set to at least {min_val}",
                ))
            elif num_value > max_val:
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"'{field_name}' value {num_value} is above maximum {max_val}",
                    severity=ValidationSeverity.ERROR,
                    value=num_value,
                    suggestion=f"Set to at most {max_val}",
                ))
        return issues

    def _validate_urls(self, cfg) -> List[ValidationIssue]:
        issues = []
        for field_name in self.URL_FIELDS:
            value = getattr(cfg, field_name, "") or ""
            parsed = urlparse(value)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"'{field_name}' is not an http(s) URL: {value!r}",
                    severity=ValidationSeverity.ERROR,
                    value=value,
                ))
        return issues

    def _validate_addresses(self, cfg) -> List[ValidationIssue]:
        issues = []
        account = getattr(cfg, "account_address", "")
        if not is_address(account):
            issues.append(ValidationIssue(
                field="account_address",
                message=f"Invalid Starknet account address '{account}'",
                severity=ValidationSeverity.ERROR,
                value=account,
            ))

        # Never echo the key itself
        if not is_private_key(getattr(cfg, "private_key", "")):
            issues.append(ValidationIssue(
                field="private_key",
                message="STARKNET_PRIVATE_KEY is not a hex felt",
                severity=ValidationSeverity.ERROR,
                suggestion="Use the 0x-prefixed hex private key of the account",
            ))

        vaults = getattr(cfg, "vault_addresses", None) or []
        if not vaults:
            issues.append(ValidationIssue(
                field="vault_addresses",
                message="No vaults configured",
                severity=ValidationSeverity.ERROR,
                suggestion="Set VAULT_ADDRESSES to a comma separated list",
            ))
            return issues

        seen = set()
        for vault in vaults:
            if not is_address(vault):
                issues.append(ValidationIssue(
                    field="vault_addresses",
                    message=f"Invalid vault address '{vault}', expected 0x-prefixed hex",
                    severity=ValidationSeverity.ERROR,
                    value=vault,
                ))
            key = vault.lower()
            if key in seen:
                issues.append(ValidationIssue(
                    field="vault_addresses",
                    message=f"Vault '{vault}' listed more than once",
                    severity=ValidationSeverity.WARNING,
                    value=vault,
                    suggestion="Duplicate vaults are checked twice per tick",
                ))
            seen.add(key)
        return issues

    def _check_risky_configs(self, cfg) -> List[ValidationIssue]:
        issues = []
        if getattr(cfg, "alert_enabled", False) and not getattr(cfg, "alert_webhook_url", None):
            issues.append(ValidationIssue(
                field="alert_webhook_url",
                message="Alerting enabled but no webhook configured; alerts will only be logged",
                severity=ValidationSeverity.INFO,
            ))
        lag = getattr(cfg, "pricing_lag_alert_sec", 0.0) or 0.0
        interval = getattr(cfg, "interval_sec", 0.0) or 0.0
        if 0 < lag < interval:
            issues.append(ValidationIssue(
                field="pricing_lag_alert_sec",
                message=f"Pricing lag threshold ({lag}s) is shorter than the tick interval ({interval}s)",
                severity=ValidationSeverity.WARNING,
                value=lag,
                suggestion="The alarm can only fire on a tick; use a multiple of the interval",
            ))
        return issues


def validate_config(cfg) -> ValidationResult:
    return ConfigValidator().validate(cfg)


def validate_and_log(cfg, logger_instance=None) -> bool:
    """
    Validate config and log all issues.

    Returns:
        True if config is valid (no errors), False otherwise
    """
    log = logger_instance or logger
    result = validate_config(cfg)

    for issue in result.get_errors():
        msg = f"CONFIG ERROR: {issue.message}"
        if issue.suggestion:
            msg += f" (suggestion: {issue.suggestion})"
        log.error(msg)

    for issue in result.get_warnings():
        msg = f"CONFIG WARNING: {issue.message}"
        if issue.suggestion:
            msg += f" (suggestion: {issue.suggestion})"
        log.warning(msg)

    if result.valid:
        log.info("Configuration validation passed")
    else:
        log.error(f"Configuration validation failed with {len(result.get_errors())} error(s)")

    return result.valid
