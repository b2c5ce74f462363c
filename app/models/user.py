from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, LargeBinary
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base


class User(Base):
    __tablename__ = "users"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(30), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    role = Column(String(10), default="user", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    bio = Column(Text, nullable=True)
    about = Column(Text, nullable=True)
    photo_data = Column(LargeBinary, nullable=True)
    photo_content_type = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    posts = relationship("Post", back_populates="author", passive_deletes=True)
    followers = relationship(
        "UserFollow", foreign_keys="UserFollow.followed_id", back_populates="followed", passive_deletes=True
    )
    following = relationship(
        "UserFollow", foreign_keys="UserFollow.follower_id", back_populates="follower", passive_deletes=True
    )

    @property
    def follower_ids(self):
        return [edge.follower_id for edge in self.followers]

    @property
    def following_ids(self):
        return [edge.followed_id for edge in self.following]
