from functools import wraps
from flask import g, jsonify
from models import db
from security.session import get_session_from_request
from models.provider import Provider

def load_current_provider():
    sess = get_session_from_request()
    if not sess:
        g.provider = None
        g.session = None
        return
    g.session = sess
    g.provider = db.session.get(Provider, sess.provider_id)

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "provider", None) is None:
            return jsonify(success=False, error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
