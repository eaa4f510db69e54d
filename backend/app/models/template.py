"""Invoice document template: an HTML body with placeholders plus its stylesheet."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, func, true
from sqlalchemy.orm import relationship

from backend.app.db.base_class import Base


class Template(Base):
    __tablename__ = "templates"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(500), nullable=True)
    html = Column(Text, nullable=False)
    css = Column(Text, nullable=False, default="")
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="templates")


# At most one default template per owner
Index(
    "uq_templates_owner_default",
    Template.owner_id,
    unique=True,
    sqlite_where=Template.is_default == true(),
    postgresql_where=Template.is_default == true(),
)
