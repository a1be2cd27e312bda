"""Core catalog logic for Stylecat.

Modules
-------
config
    Pydantic Settings configuration and the global ``config`` instance.
catalog
    Pure style-record helpers (slugs, placeholders, updates, search, stats).
style_store
    ``styles.json`` persistence.
static_api
    Static JSON API generation and the ``stylecat-build`` script.
model_output
    JSON extraction from free-text model answers.
replicate
    Async Replicate prediction client.
analyzer
    Style analysis of reference images.
previews
    Batched preview image generation.
uploads
    Local image storage.
publisher
    git commit and push of the working tree.
"""
