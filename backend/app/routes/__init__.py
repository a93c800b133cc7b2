# Routes package init
"""
Mailroom Backend — API Routes Package
=======================================

What:  HTTP route handlers that accept requests and return responses.
How:   Each route module handles one resource.

Route Inventory:
    - contacts.py:             /api/contacts
    - templates.py:            /api/templates
    - ai_prompt_templates.py:  /api/ai-prompt-templates
    - users.py:                /api/users
    - health.py:               GET /health

Design Principle:
    Routes are thin: extract request data, call the service taken from
    `app.dependencies`, wrap the result in the envelope. Business rules and
    error raising live in the services.
"""
