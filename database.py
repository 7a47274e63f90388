# database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base
import databases

from config import DATABASE_URL

# For production with PostgreSQL (Render.com / Railway)
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args)

database = databases.Database(DATABASE_URL)

Base = declarative_base()