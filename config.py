import os
from dotenv import load_dotenv

load_dotenv()

SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production-to-a-long-random-value")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./network.db")
ACCESS_TOKEN_EXPIRE_MINUTES = os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7))
API_PREFIX = os.getenv("API_PREFIX", "/api")
ENVIRONMENT = os.getenv("ENVIRONMENT", "production")

API_URL = os.getenv("API_URL", "http://localhost:8000/api")

ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

MAX_PROFILE_PHOTO_SIZE = int(os.getenv("MAX_PROFILE_PHOTO_SIZE", str(5 * 1024 * 1024)))
MAX_POST_PHOTO_SIZE = int(os.getenv("MAX_POST_PHOTO_SIZE", str(10 * 1024 * 1024)))
