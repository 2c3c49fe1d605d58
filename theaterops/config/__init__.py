"""
theaterops config: load from env.

Load from env: load_postgres_config(), load_booking_config().
"""
from theaterops.config.booking import BookingConfig, load_booking_config
from theaterops.config.postgres import PostgresConfig, load_postgres_config

__all__ = [
    "PostgresConfig",
    "load_postgres_config",
    "BookingConfig",
    "load_booking_config",
]
