"""
Logging configuration and identifier hashing shared by the client and the
development backend.
"""
import hashlib
import logging

from storefront.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str = None) -> None:
    """Configure root logging once for the process"""
    logging.basicConfig(
        level=(level or Config.LOG_LEVEL).upper(),
        format=LOG_FORMAT
    )


def hash_identifier(identifier: str) -> str:
    """Hash identifier for logging (no PII)"""
    return hashlib.sha256(identifier.encode()).hexdigest()[:8]
