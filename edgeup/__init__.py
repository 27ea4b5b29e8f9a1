"""EdgeUp marketplace API."""
