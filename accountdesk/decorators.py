"""
Custom route decorators for access control.

- workspace_role_required: ensures the user is logged in AND their
  membership in the workspace resolved by the tenant middleware passes a
  role predicate from accountdesk.roles.
"""

from functools import wraps

from flask import g
from flask_login import login_required

from accountdesk.errors import NotAuthorized, NotFound


def workspace_role_required(predicate=None):
    """Require login + workspace membership (+ `predicate(role)` when given)."""

    def decorator(f):
        @wraps(f)
        @login_required
        def decorated(*args, **kwargs):
            # g.membership is set by tenant middleware
            if getattr(g, "workspace", None) is None:
                raise NotFound("Workspace not found.")
            if g.membership is None:
                raise NotAuthorized("You are not a member of this workspace.")
            if predicate is not None and not predicate(g.membership.role):
                raise NotAuthorized()
            return f(*args, **kwargs)

        return decorated

    return decorator
