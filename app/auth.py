import hmac
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import Header

from app.exceptions import AuthenticationError
from app.logging_config import get_logger

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

logger = get_logger(__name__)


def signature_matches(signature: Optional[str], secret: Optional[str]) -> bool:
    if not signature or not secret:
        return False
    return hmac.compare_digest(signature.encode("utf-8"), secret.encode("utf-8"))


def verify_webhook_signature(verif_hash: Optional[str] = Header(None, alias="verif-hash")):
    if not signature_matches(verif_hash, os.getenv("FLW_WEBHOOK_SECRET")):
        logger.warning("flutterwave_webhook_invalid_signature")
        raise AuthenticationError("Invalid signature")
