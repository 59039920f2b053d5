from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Tuple, Dict

from epost_parcel.errors import ConfigurationError
from epost_parcel.models import CarrierCredentials, CarrierSettings, EnvCfg
from epost_parcel.models.env_cfg import DEFAULT_BASE_URL, DEFAULT_DELIVERY_CODE_URL, DEFAULT_TRACE_URL

try:
    # De facto standard for .env files
    from dotenv import dotenv_values, find_dotenv, load_dotenv  # type: ignore
except Exception as e:  # pragma: no cover
    raise RuntimeError(
        "Missing dependency 'python-dotenv'. Install it with:\n"
        "  pip install python-dotenv"
    ) from e

logger = logging.getLogger("epost_parcel.config")


# --- Public contract ---------------------------------------------------------

REQUIRED_KEYS: Tuple[str, ...] = (
    "EPOST_API_KEY",
    "EPOST_SECURITY_KEY",
    "EPOST_CUSTOMER_ID",
)

# SEED-128 works on a 128-bit key.
CIPHER_KEY_BYTES = 16

# Sample customer number from the carrier's developer manual.
SAMPLE_CUSTOMER_NO = "vovok1122"

_TRUTHY = {"1", "y", "yes", "true", "on"}


def load_project_dotenv(start: Optional[Path] = None, *, override: bool = False) -> Path:
    """
    Load variables from the nearest `.env` file (searching upward from `start` or CWD).
    Does NOT override existing env vars unless `override=True`.
    Returns the resolved Path to the .env file if found; otherwise Path().
    """
    start_path = Path.cwd() if start is None else Path(start)

    dotenv_str = find_dotenv(filename=".env", usecwd=True)
    dotenv_path = Path(dotenv_str) if dotenv_str else Path()

    if not dotenv_str:
        for p in (start_path, *start_path.parents):
            candidate = p / ".env"
            if candidate.exists():
                dotenv_path = candidate
                break

    if not dotenv_path.exists() or dotenv_path.is_dir():
        return Path()

    load_dotenv(dotenv_path=dotenv_path, override=override)
    return dotenv_path.resolve()


def load_env(
    dotenv_path: Optional[Path] = None,
    *,
    override: bool = False,
    required_keys: Tuple[str, ...] = (),
    strict: bool = False,
) -> Dict[str, str]:
    """
    Load env vars from a .env file into the process environment and return the
    key/value pairs found in that file.

    - If `dotenv_path` is provided, load exactly that file.
    - Otherwise, auto-discover the nearest .env via `load_project_dotenv`.
    - If `strict=True`, every name in `required_keys` must be non-blank in
      `os.environ` after loading; otherwise ConfigurationError names the first gap.
    """
    loaded: Dict[str, str] = {}

    if dotenv_path:
        path = Path(dotenv_path)
        if path.exists():
            load_dotenv(dotenv_path=path, override=override)
            loaded = {k: v or "" for k, v in dotenv_values(path).items()}
    else:
        path = load_project_dotenv(override=override)
        if path and path.exists():
            loaded = {k: v or "" for k, v in dotenv_values(path).items()}

    if strict and required_keys:
        missing = [k for k in required_keys if not (os.getenv(k) or "").strip()]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variable(s): {', '.join(missing)}",
                variable=missing[0],
            )

    return loaded


def get_app_env(dotenv_path: Path | str | None = ".env", *, strict: bool = True) -> EnvCfg:
    """
    Load carrier variables and return a typed snapshot of them.

    - `dotenv_path` may point to a specific .env file, or be None to auto-discover.
    - Process env always wins over the file.
    - With `strict=True` the three credential variables must be present.
    """
    load_env(
        Path(dotenv_path) if dotenv_path else None,
        override=False,
        required_keys=REQUIRED_KEYS,
        strict=strict,
    )

    return EnvCfg(**{name: os.getenv(name, "") for name in EnvCfg.__dataclass_fields__})


def resolve_credentials(cfg: EnvCfg) -> CarrierCredentials:
    """
    Validate and return the three values every carrier call needs.

    Raises ConfigurationError naming the offending variable. Blank means absent.
    """
    api_key = (cfg.EPOST_API_KEY or "").strip()
    if not api_key:
        raise ConfigurationError(
            "EPOST_API_KEY is not set. Use the API key issued for the parcel OpenAPI.",
            variable="EPOST_API_KEY",
        )

    cipher_key = cfg.EPOST_SECURITY_KEY or ""
    if not cipher_key.strip():
        raise ConfigurationError(
            "EPOST_SECURITY_KEY is not set. It is the 16-character key used for SEED-128.",
            variable="EPOST_SECURITY_KEY",
        )
    if len(cipher_key.encode("utf-8")) != CIPHER_KEY_BYTES:
        raise ConfigurationError(
            f"EPOST_SECURITY_KEY must be exactly {CIPHER_KEY_BYTES} bytes for SEED-128 "
            f"(got {len(cipher_key.encode('utf-8'))}).",
            variable="EPOST_SECURITY_KEY",
        )

    customer_no = (cfg.EPOST_CUSTOMER_ID or "").strip()
    if not customer_no:
        raise ConfigurationError(
            "EPOST_CUSTOMER_ID is not set. Use the customer number from the parcel contract.",
            variable="EPOST_CUSTOMER_ID",
        )

    if customer_no == SAMPLE_CUSTOMER_NO:
        logger.warning(
            "EPOST_CUSTOMER_ID is the manual's sample number (%s); bookings will not reach a real contract.",
            SAMPLE_CUSTOMER_NO,
        )

    creds = CarrierCredentials(api_key=api_key, cipher_key=cipher_key, customer_no=customer_no)
    logger.debug("Carrier credentials resolved: %s", creds.masked())
    return creds


def try_resolve_credentials(cfg: EnvCfg) -> Optional[CarrierCredentials]:
    """
    Like resolve_credentials, but None when a credential variable is blank
    (mock-capable callers). A value that is present but invalid still raises.
    """
    missing = [k for k in REQUIRED_KEYS if not (getattr(cfg, k) or "").strip()]
    if missing:
        logger.info("Carrier credentials incomplete (missing %s)", ", ".join(missing))
        return None
    return resolve_credentials(cfg)


def load_settings(cfg: EnvCfg) -> CarrierSettings:
    return CarrierSettings(
        base_url=(cfg.EPOST_BASE_URL or DEFAULT_BASE_URL).rstrip("/"),
        trace_url=cfg.EPOST_TRACE_URL or DEFAULT_TRACE_URL,
        approval_no=(cfg.EPOST_APPROVAL_NO or "").strip() or None,
        office_ser=(cfg.EPOST_OFFICE_SER or "").strip() or None,
        test_mode=_flag(cfg.EPOST_TEST_MODE),
        use_mock=_flag(cfg.EPOST_USE_MOCK),
        app_env=(cfg.APP_ENV or "development").strip().lower(),
        delivery_code_api_key=(cfg.EPOST_DELIVERY_CODE_API_KEY or "").strip() or None,
        delivery_code_url=cfg.EPOST_DELIVERY_CODE_URL or DEFAULT_DELIVERY_CODE_URL,
    )


def _flag(raw: Optional[str]) -> bool:
    return (raw or "").strip().lower() in _TRUTHY


__all__ = [
    "REQUIRED_KEYS",
    "CIPHER_KEY_BYTES",
    "load_project_dotenv",
    "load_env",
    "get_app_env",
    "resolve_credentials",
    "try_resolve_credentials",
    "load_settings",
]
