from sqlalchemy import String
from sqlalchemy.orm import declarative_base


def _uuid_col_type():
    try:
        # SQLAlchemy 2.x portable UUID type
        from sqlalchemy import Uuid  # type: ignore

        return Uuid(as_uuid=False)
    except ImportError:
        return String(36)


UUID_COL_TYPE = _uuid_col_type()

Base = declarative_base()
