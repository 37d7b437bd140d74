from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# PUBLIC_INTERFACE
class User(Base):
    """
    SQLAlchemy model for a diary user.
    The password is stored exactly as given.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    username = Column(Text, unique=True, index=True, nullable=False)
    password = Column(Text, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username})>"

# PUBLIC_INTERFACE
class DiaryEntry(Base):
    """
    SQLAlchemy model for a diary entry.
    """
    __tablename__ = "diary_entries"

    id = Column(String(36), primary_key=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    emotion = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self):
        return f"<DiaryEntry(id={self.id}, created_at={self.created_at}, emotion={self.emotion})>"

# PUBLIC_INTERFACE
class Memo(Base):
    """
    SQLAlchemy model for a short standalone memo.
    """
    __tablename__ = "memos"

    id = Column(String(36), primary_key=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self):
        return f"<Memo(id={self.id}, created_at={self.created_at})>"
