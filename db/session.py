from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config.settings import DATABASE_URL
from db.models import Base

# 커넥션 풀 튜닝은 서버 DB(MySQL)에서만: 배치 워커 스레드 다수 동시 접근 대응
_engine_kwargs: dict = {"echo": False}
if not DATABASE_URL.startswith("sqlite"):
    _engine_kwargs.update(
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=1800,      # MySQL wait_timeout 대응
        pool_pre_ping=True,
    )

engine = create_engine(DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,  # commit 후 객체 속성 만료 방지 (결과 보고 시 detached 접근)
)


def init_db():
    Base.metadata.create_all(bind=engine)
