"""Database connection and session management."""
from typing import Generator, Tuple
import logging

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from edgeup.models import Base, Product, User
from edgeup.security import hash_password

logger = logging.getLogger(__name__)


def create_session_factory(database_url: str) -> Tuple[Engine, sessionmaker]:
    """
    Create an engine and its session factory.

    Each application instance owns its own pair, so tests can run against
    an isolated in-memory store.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        Tuple of (engine, session factory)
    """
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every checkout sees an empty database
            options["poolclass"] = StaticPool
        engine = create_engine(database_url, **options)

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    else:
        engine = create_engine(
            database_url,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,  # Verify connections before use
            pool_recycle=3600,
            pool_timeout=30,
        )

    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return engine, session_factory


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Dependency for getting database session.

    Yields:
        Database session bound to the application's engine
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def init_db(engine: Engine, session_factory: sessionmaker, seed: bool = False) -> None:
    """Create tables and optionally seed demo data."""
    Base.metadata.create_all(bind=engine)

    if not seed:
        return

    db = session_factory()
    try:
        if db.query(User).count() == 0:
            seller = User(name="a", email="a@yahoo.com", password=hash_password("a"), role="Trusted",
                          country="RO", city="București", karma=50)
            buyer = User(name="b", email="b@gmail.com", password=hash_password("b"), role="Untrusted",
                         country="RO", city="Cluj-Napoca", karma=10)
            admin = User(name="admin", email="admin@edgeup.ro", password=hash_password("admin"), role="Admin",
                         country="RO", city="Iași")
            db.add_all([seller, buyer, admin])
            db.flush()

            products = [
                Product(title="Carte JS pentru Începători", description="Bazele JavaScript, capitole scurte.",
                        price=120, category="Books", stock=5, seller_id=seller.id),
                Product(title="Mouse Office", description="Mouse optic simplu, USB.",
                        price=60, category="Electronics", stock=10, seller_id=seller.id),
                Product(title="Pernă decorativă", description="Pernă 40x40, umplutură sintetică.",
                        price=45, category="Home", stock=3, seller_id=seller.id),
            ]
            db.add_all(products)
            db.commit()
            logger.info("Seeded database with demo users and products", extra={
                "users": 3,
                "products": len(products)
            })
    finally:
        db.close()
