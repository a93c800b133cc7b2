"""
Mailroom Backend — AI Prompt Template Service
===============================================

Named prompts bound to an agent, with the same optional attachment
lifecycle as email templates. The name is the unique key.
"""

from app.models.ai_prompt_template import AIPromptTemplate
from app.services.attachment_store import DOCUMENT_POLICY, AttachmentStore
from app.services.repository import Repository
from app.services.resource_service import AttachmentResourceService


class AIPromptTemplateService(AttachmentResourceService[AIPromptTemplate]):
    def __init__(self, store: AttachmentStore):
        super().__init__(
            repository=Repository(
                AIPromptTemplate,
                key_field="name",
                resource="AI prompt template",
                duplicate_message="AI prompt template with this name already exists",
            ),
            store=store,
            required_fields=("name", "agent", "prompt"),
            policy=DOCUMENT_POLICY,
        )
