from sqlalchemy import Column, Integer, JSON, String, Text

from agrilink.models.base import Base


class Disease(Base):
    __tablename__ = "diseases"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=False)
    symptoms = Column(JSON, nullable=False, default=list)
    treatment = Column(Text)
    affected_crops = Column(JSON, nullable=False, default=list)


__all__ = ["Disease"]
