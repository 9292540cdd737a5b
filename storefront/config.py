"""
Configuration management for the storefront sync client.
Loads settings from environment variables and AWS Secrets Manager.
"""
import os
import json
import logging
import boto3
from typing import Optional

logger = logging.getLogger(__name__)


class Config:
    """Application configuration"""

    # API settings
    API_BASE_URL: str = os.getenv("STOREFRONT_API_BASE_URL", "http://localhost:8001/api")
    API_TIMEOUT_SECONDS: float = float(os.getenv("STOREFRONT_API_TIMEOUT_SECONDS", "10"))
    API_TOKEN: Optional[str] = os.getenv("STOREFRONT_API_TOKEN")
    API_TOKEN_SECRET_NAME: Optional[str] = os.getenv("STOREFRONT_API_TOKEN_SECRET_NAME")
    REGION: str = os.getenv("REGION", "ap-southeast-2")

    # Token store (Redis) settings
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_AUTH_TOKEN: Optional[str] = os.getenv("REDIS_AUTH_TOKEN")
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_SOCKET_CONNECT_TIMEOUT: int = 5
    REDIS_SOCKET_TIMEOUT: int = 5
    TOKEN_KEY: str = os.getenv("STOREFRONT_TOKEN_KEY", "token")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Development backend
    DEV_SERVER_PORT: int = int(os.getenv("DEV_SERVER_PORT", "8001"))

    @classmethod
    def load_api_secrets(cls) -> None:
        """Load the API bearer credential from AWS Secrets Manager"""
        if cls.API_TOKEN:
            return  # Already loaded from environment

        if not cls.API_TOKEN_SECRET_NAME:
            return  # No secret name provided, requests go out unauthenticated

        try:
            client = boto3.client("secretsmanager", region_name=cls.REGION)
            response = client.get_secret_value(SecretId=cls.API_TOKEN_SECRET_NAME)
            secret_data = json.loads(response["SecretString"])

            cls.API_TOKEN = secret_data.get("token")
            if "base_url" in secret_data:
                cls.API_BASE_URL = secret_data["base_url"]
        except Exception as e:
            logger.warning(f"Could not load API secrets from Secrets Manager: {e}")
