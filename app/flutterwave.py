import os
from pathlib import Path
from typing import Optional

import httpx
from dotenv import load_dotenv

from app.exceptions import ConfigurationError, ProviderVerificationError
from app.logging_config import get_logger

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

DEFAULT_BASE_URL = "https://api.flutterwave.com/v3"
DEFAULT_TIMEOUT_SECONDS = 15.0

logger = get_logger(__name__)


def _secret_key() -> str:
    key = os.getenv("FLW_SECRET_KEY")
    if not key:
        raise ConfigurationError("Missing Flutterwave secret key")
    return key


def _timeout() -> float:
    return float(os.getenv("FLW_TIMEOUT_SECONDS") or DEFAULT_TIMEOUT_SECONDS)


def verify_transaction(transaction_id: Optional[str] = None, tx_ref: Optional[str] = None) -> dict:
    """
    Ask the provider for the authoritative state of a transaction.

    Looks up by transaction id when known, by merchant reference otherwise.
    Returns the provider's ``data`` object. Anything short of a 2xx response
    carrying ``data`` raises ProviderVerificationError; nothing is retried here.
    """
    secret = _secret_key()
    base_url = (os.getenv("FLW_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")

    if transaction_id:
        url = f"{base_url}/transactions/{transaction_id}/verify"
        params = None
    elif tx_ref:
        url = f"{base_url}/transactions/verify_by_reference"
        params = {"tx_ref": tx_ref}
    else:
        raise ValueError("transaction_id or tx_ref is required")

    try:
        response = httpx.get(
            url,
            params=params,
            headers={
                "Authorization": f"Bearer {secret}",
                "Content-Type": "application/json",
            },
            timeout=_timeout(),
        )
    except httpx.HTTPError as exc:
        logger.error("flutterwave_verify_transport_error", transaction_id=transaction_id, tx_ref=tx_ref, error=str(exc))
        raise ProviderVerificationError(f"Verification failed: {exc}") from exc

    try:
        result = response.json()
    except ValueError:
        result = {"message": response.text}
    if not isinstance(result, dict):
        result = {"message": str(result)}

    if not response.is_success or not result.get("data"):
        logger.error(
            "flutterwave_verify_failed",
            transaction_id=transaction_id,
            tx_ref=tx_ref,
            status_code=response.status_code,
            result=result,
        )
        raise ProviderVerificationError(result.get("message") or "Verification failed", data=result)

    return result["data"]
