from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, LargeBinary
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base


class Post(Base):
    __tablename__ = "posts"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    photo_data = Column(LargeBinary, nullable=True)
    photo_content_type = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    author = relationship("User", back_populates="posts")
    likes = relationship("Like", back_populates="post", passive_deletes=True)
    comments = relationship(
        "Comment", back_populates="post", order_by="Comment.id", passive_deletes=True
    )

    @property
    def like_ids(self):
        return [like.user_id for like in self.likes]
