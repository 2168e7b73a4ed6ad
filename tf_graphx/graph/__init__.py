"""
tf_graphx.graph — Resource graph model, extraction and synchronization.

Modules:
    model     — Node / Edge / Graph and the JSON export document.
    resolver  — Reference → resource address (longest match first).
    builder   — Plan trees → Graph (prior-state or configuration edges).
    sync      — Transactional, idempotent Graph → store reconciliation.

Schema:
    Node type : Resource (managed resource instance, id = full address)
    Edge type : DEPENDS_ON
"""
