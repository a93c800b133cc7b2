# Services package init
"""
Mailroom Backend — Services Layer
===================================

What:  Business logic layer sitting between routes (HTTP) and database (persistence).
Why:   Routes handle HTTP; services validate input, manage attachments and
       talk to the repositories.
How:   Service instances are built once in `create_app()`, stored on
       `app.state` and handed to routes through `app.dependencies`.

Service Inventory:
    - AttachmentStore: upload validation, storage, streaming paths, cleanup
    - Repository: generic unique-key persistence (one instance per resource)
    - AttachmentResourceService: create/update/upsert/delete lifecycle for
      resources with an optional attachment
    - ContactService: upsert by email, bulk import, export, soft delete
    - TemplateService: email templates, search and stats
    - AIPromptTemplateService: prompts bound to an agent
    - AuthService: registration, login, JWT, profile images
"""
