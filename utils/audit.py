import json
from flask import request, has_request_context
from models import db
from models.audit_log import AuditLog


def log_event(action: str, provider_id=None, entity=None, entity_id=None, metadata=None):
    """Append one audit row and commit. Outside a request (CLI jobs) ip/user_agent stay empty."""
    ip = user_agent = None
    if has_request_context():
        ip = request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = (request.headers.get("User-Agent") or "")[:255] or None

    row = AuditLog(
        provider_id=provider_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=ip,
        user_agent=user_agent,
        metadata_json=json.dumps(metadata, default=str) if metadata else None
    )
    db.session.add(row)
    db.session.commit()
