"""Tenant middleware — resolves workspace_id to workspace context.

Runs before every request whose route has a `workspace_id` URL parameter
(/api/workspaces/<workspace_id>/*). Sets g.workspace_id, g.workspace and
g.membership for the signed-in user.

    unknown workspace  -> 404 (NotFound)
    not a member       -> 403 (NotAuthorized)

Anonymous requests are left alone; login_required answers them with 401.
"""

from flask import g, request
from flask_login import current_user

from accountdesk.services import workspace_service


def resolve_tenant():
    """Before-request hook for workspace-scoped routes."""
    g.workspace_id = None
    g.workspace = None
    g.membership = None

    if request.view_args is None:
        return
    workspace_id = request.view_args.get("workspace_id")
    if workspace_id is None:
        return
    if not current_user.is_authenticated:
        return

    workspace, membership = workspace_service.require_membership(workspace_id, current_user)
    g.workspace_id = workspace.id
    g.workspace = workspace
    g.membership = membership


def init_tenant_middleware(app):
    """Register the tenant resolver as a before_request hook."""
    app.before_request(resolve_tenant)
