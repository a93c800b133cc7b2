"""ORM models. Importing this package registers every table on `Base.metadata`."""

from app.models.ai_prompt_template import AIPromptTemplate
from app.models.base import AttachmentRef, is_object_id, new_object_id
from app.models.contact import CONTACT_TYPES, Contact
from app.models.template import Template
from app.models.user import User

__all__ = [
    "AIPromptTemplate",
    "AttachmentRef",
    "CONTACT_TYPES",
    "Contact",
    "Template",
    "User",
    "is_object_id",
    "new_object_id",
]
