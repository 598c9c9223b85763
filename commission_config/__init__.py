"""
commission_config -- single public entrypoint for commission configuration.

Responsibility:
    Provides the ONLY way to obtain the commission policy at runtime through
    ``get_active_policy()``.  No other component reads configuration files
    or environment variables.  Services receive the returned
    ``CommissionPolicy`` in their constructor.

Architecture position:
    Configuration.  Sits above ``commission_kernel``; the kernel never
    imports from this package.

Audit relevance:
    Every successful ``get_active_policy()`` call emits a
    ``COMMISSION_POLICY_TRACE`` log entry with the policy name, version and
    source checksum, tying each ledger write back to the policy version that
    governed it.
"""

from __future__ import annotations

import os
from pathlib import Path

from commission_config.loader import compute_checksum, load_policy, parse_policy
from commission_kernel.domain.policy import CommissionPolicy
from commission_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_POLICY_PATH = Path(__file__).parent / "sets" / "default.yaml"

POLICY_PATH_ENV = "COMMISSION_POLICY_PATH"


def get_active_policy(config_path: Path | None = None) -> CommissionPolicy:
    """The ONLY public configuration entrypoint.

    Resolution order: ``config_path``, then the ``COMMISSION_POLICY_PATH``
    environment variable, then the bundled ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the policy file does not exist.
        InvalidPolicyError: If the policy fails validation.
    """
    env_path = os.environ.get(POLICY_PATH_ENV)
    path = Path(config_path or env_path or _DEFAULT_POLICY_PATH)

    policy, checksum = load_policy(path)

    _logger.info(
        "COMMISSION_POLICY_TRACE",
        extra={
            "trace_type": "COMMISSION_POLICY_TRACE",
            "policy_name": policy.name,
            "policy_version": policy.version,
            "checksum": checksum,
            "source": str(path),
            "fee_mode": policy.fee_mode.value,
            "referrer_reduces_remainder": policy.referrer_reduces_remainder,
        },
    )
    return policy


__all__ = [
    "CommissionPolicy",
    "compute_checksum",
    "get_active_policy",
    "load_policy",
    "parse_policy",
]
