from sqlalchemy import Column, String
from models.base import Base, TimestampMixin

class User(Base, TimestampMixin):
    __tablename__ = "users"

    # Identity id issued by the external auth provider
    id = Column(String(128), primary_key=True)
    email = Column(String(255), nullable=False, index=True)
    role = Column(String(16), nullable=False)
