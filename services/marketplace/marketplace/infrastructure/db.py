from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from marketplace.core_settings import get_settings
from marketplace.domain.models import Base

settings = get_settings()
DATABASE_URL = settings.database_url
engine = create_engine(DATABASE_URL, echo=False, future=True, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_models():
    Base.metadata.create_all(engine)
