"""Configuration settings for the EdgeUp API."""
import os
from typing import Dict, List

# Database Configuration
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./edgeup.db")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")

# Observability
OTEL_ENABLED = os.getenv("OTEL_ENABLED", "true").lower() == "true"
OTEL_EXPORTER_OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")

# Authentication
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me-before-deploying")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# HTTP
CORS_ORIGINS: List[str] = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]

SEED_DEMO_DATA = os.getenv("SEED_DEMO_DATA", "true").lower() == "true"

# Application Settings
SERVICE_NAME = "edgeup-api"
API_VERSION = "1.0.0"

# Marketplace rules
ROLE_UNTRUSTED = "Untrusted"
ROLE_TRUSTED = "Trusted"
ROLE_ADMIN = "Admin"
ROLES = (ROLE_UNTRUSTED, ROLE_TRUSTED, ROLE_ADMIN)
SELF_ASSIGNABLE_ROLES = (ROLE_UNTRUSTED, ROLE_TRUSTED)

CITIES: Dict[str, List[str]] = {
    "RO": ["București", "Cluj-Napoca", "Iași", "Timișoara"],
    "DE": ["Berlin", "Munich", "Hamburg"],
    "FR": ["Paris", "Lyon"],
    "UK": ["London", "Manchester"],
}
COUNTRIES = tuple(CITIES)

CATEGORIES = ("Electronics", "Books", "Clothes", "Home", "Other")

KARMA_PER_REVIEW = 10

PRODUCTS_PAGE_SIZE = 12
PRODUCTS_MAX_PAGE_SIZE = 100
PRODUCTS_MAX_PAGE = 1_000_000
