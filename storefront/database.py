"""Database connection and session management."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from typing import Any, Dict, Generator
import logging

from storefront.config import DATABASE_URL
from storefront.models import Base, Product

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        # SQLite is used for local runs and tests; sessions cross the threadpool
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,  # Verify connections before use
        "pool_recycle": 3600,
        "pool_timeout": 30,
    }


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

SEED_PRODUCTS = [
    {"name": "Cement (50kg bag)", "price": 500.0, "category": "material", "rating": 4.5,
     "description": "Ordinary Portland cement, grade 53."},
    {"name": "Red Bricks (1000 pcs)", "price": 8000.0, "category": "material", "rating": 4.2,
     "description": "Kiln-fired clay bricks for load-bearing walls."},
    {"name": "TMT Steel Bars (1 ton)", "price": 62000.0, "category": "material", "rating": 4.7,
     "description": "Fe 500D thermo-mechanically treated reinforcement bars."},
    {"name": "River Sand (1 truck)", "price": 15000.0, "category": "material", "rating": 3.9,
     "description": "Washed river sand for plastering and concrete."},
    {"name": "Concrete Mixer", "price": 45000.0, "category": "machine", "rating": 4.3,
     "description": "Diesel concrete mixer with 10/7 cft drum."},
    {"name": "Backhoe Loader", "price": 2500000.0, "category": "machine", "rating": 4.8,
     "description": "Backhoe loader for excavation and material handling."},
    {"name": "Plate Compactor", "price": 35000.0, "category": "machine", "rating": 4.0,
     "description": "Petrol plate compactor for soil and asphalt."},
    {"name": "Mason (per day)", "price": 900.0, "category": "worker", "rating": 4.4,
     "description": "Experienced mason for brickwork and plastering."},
    {"name": "Electrician (per day)", "price": 1200.0, "category": "worker", "rating": 4.6,
     "description": "Licensed electrician for residential wiring."},
    {"name": "Plumber (per day)", "price": 1000.0, "category": "worker", "rating": 3.8,
     "description": "Plumber for pipework and sanitary fittings."},
]


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session.

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Initialize database tables and seed the catalog."""
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        if db.query(Product).count() == 0:
            db.add_all([Product(**data) for data in SEED_PRODUCTS])
            db.commit()
            logger.info("Seeded catalog with sample products", extra={
                "product_count": len(SEED_PRODUCTS)
            })
    finally:
        db.close()
