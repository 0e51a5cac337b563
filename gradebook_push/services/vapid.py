"""
VAPID credential loading and validation.

Credentials are checked once at startup. A failure disables push features
only; the rest of the application keeps running.
"""

import logging
from dataclasses import dataclass

from gradebook_push.errors import ConfigurationError
from gradebook_push.settings import Settings

logger = logging.getLogger(__name__)

PUBLIC_KEY_LENGTH = 87
PUBLIC_KEY_PREFIX = "B"  # uncompressed P-256 point, 0x04 in base64url
PRIVATE_KEY_LENGTH = 43


@dataclass(frozen=True)
class VapidConfig:
    """Validated VAPID credentials."""

    subject: str
    public_key: str
    private_key: str

    @property
    def claims(self) -> dict[str, str]:
        return {"sub": self.subject}


def normalize_subject(email: str) -> str:
    email = email.strip()
    return email if email.startswith("mailto:") else f"mailto:{email}"


def validate_vapid_credentials(
    email: str | None,
    public_key: str | None,
    private_key: str | None,
) -> list[str]:
    """Return a list of problems; empty means the credentials are usable."""
    problems = []
    if not email:
        problems.append("VAPID_EMAIL is not set")
    if not public_key:
        problems.append("VAPID_PUBLIC_KEY is not set")
    if not private_key:
        problems.append("VAPID_PRIVATE_KEY is not set")
    if problems:
        return problems

    if len(public_key) != PUBLIC_KEY_LENGTH:
        problems.append(
            f"VAPID_PUBLIC_KEY must be {PUBLIC_KEY_LENGTH} characters (got {len(public_key)})"
        )
    if not public_key.startswith(PUBLIC_KEY_PREFIX):
        problems.append(f"VAPID_PUBLIC_KEY must start with '{PUBLIC_KEY_PREFIX}'")
    if len(private_key) != PRIVATE_KEY_LENGTH:
        problems.append(
            f"VAPID_PRIVATE_KEY must be {PRIVATE_KEY_LENGTH} characters (got {len(private_key)})"
        )
    if "@" not in email or "." not in email:
        problems.append("VAPID_EMAIL is not a valid email address")
    return problems


def load_vapid_config(settings: Settings) -> VapidConfig:
    """Validate credentials from settings, raising ConfigurationError on failure."""
    email = (settings.vapid_email or "").strip() or None
    public_key = (settings.vapid_public_key or "").strip() or None
    private_key = (settings.vapid_private_key or "").strip() or None

    logger.info(
        "VAPID configuration check: email=%s public_key_length=%d private_key_length=%d",
        "set" if email else "missing",
        len(public_key or ""),
        len(private_key or ""),
    )
    if public_key:
        logger.debug("VAPID public key preview: %s...", public_key[:20])
    if private_key:
        logger.debug("VAPID private key preview: %s...", private_key[:4])

    problems = validate_vapid_credentials(email, public_key, private_key)
    if problems:
        for problem in problems:
            logger.error("VAPID check failed: %s", problem)
        raise ConfigurationError(problems=problems)

    config = VapidConfig(
        subject=normalize_subject(email),
        public_key=public_key,
        private_key=private_key,
    )
    logger.info("VAPID keys configured successfully - subject %s", config.subject)
    return config


def try_load_vapid_config(settings: Settings) -> VapidConfig | None:
    """Like load_vapid_config, but disables push instead of raising."""
    try:
        return load_vapid_config(settings)
    except ConfigurationError:
        logger.warning("Push notifications disabled - VAPID keys not configured")
        return None
